"""Shared versioned contracts for plan-doctor machine outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from plan_doctor import __version__ as TOOL_VERSION

CONTRACT_VERSIONS = {
    "plan_doctor.parse": "1.0.0",
    "plan_doctor.matrix": "1.0.0",
    "plan_doctor.import": "1.0.0",
    "plan_doctor.fill": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    input_path: Path | None,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "plan-doctor",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path) if input_path else "-",
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def with_contract(name: str, payload: dict[str, Any], run_summary: dict[str, Any]) -> dict[str, Any]:
    contract = build_contract(name)
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        **payload,
        "run_summary": run_summary,
    }
