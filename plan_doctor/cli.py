from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from plan_doctor import __version__ as TOOL_VERSION
from plan_doctor.contracts import build_run_summary, with_contract
from plan_doctor.export import plan_to_csv, write_preview_workbook
from plan_doctor.headers import map_headers, merge_header_artifacts
from plan_doctor.importer import (
    STATUS_NO_TABLE,
    STATUS_RAW_PREVIEW,
    fill_column,
    import_plan_text,
)
from plan_doctor.loader import load_text
from plan_doctor.schemas import Period, UnknownPeriodError, default_document, get_schema
from plan_doctor.tokenizer import (
    DELIMITER_NAMES,
    clean_extracted_text,
    looks_like_table,
    parse_table_matrix,
    parse_table_text,
)

PERIOD_CHOICES = [period.value for period in Period]
PLAN_FORMATS = ["json", "csv", "xlsx"]

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_RAW_PREVIEW = 3
EXIT_NO_TABLE = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class PlanDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def timestamp_token() -> str:
    override = os.environ.get("PLAN_DOCTOR_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def input_stem(input_arg: str) -> str:
    return "stdin" if input_arg == "-" else Path(input_arg).stem


def default_output_dir(input_arg: str) -> Path:
    return Path.cwd() / "plan-doctor-output" / f"{input_stem(input_arg)}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(args.input)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload) + "\n")


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, UnknownPeriodError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def read_input(args: argparse.Namespace) -> dict[str, Any]:
    loaded = load_text(args.input)
    for warning in loaded["warnings"]:
        emit_human(f"Warning: {warning}", quiet=getattr(args, "quiet", False))
    return loaded


def load_plan(plan_arg: str | None, period: str) -> dict[str, Any]:
    if not plan_arg:
        return default_document(period)
    plan_path = Path(plan_arg)
    if not plan_path.exists():
        raise CliError(f"Plan not found: {plan_path}", EXIT_COMMAND_ERROR)
    try:
        payload = json.loads(plan_path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise CliError(f"Could not read plan: {exc}", EXIT_COMMAND_ERROR) from exc
    if not isinstance(payload, dict):
        raise CliError("Plan root must be a JSON object.", EXIT_COMMAND_ERROR)
    # Accept a stored plan record that wraps the document in "data".
    if isinstance(payload.get("data"), dict) and get_schema(period).collection not in payload:
        return payload["data"]
    return payload


def input_path_or_none(input_arg: str) -> Path | None:
    return None if input_arg == "-" else Path(input_arg)


# ══════════════════════════════════════════════════════════════════════════════
# TEXT RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_frame(frame) -> str:
    if frame.empty and not len(frame.columns):
        return "(empty)"
    return frame.to_string(index=False)


def render_parse_text(payload: dict[str, Any], frame) -> str:
    lines = [
        "plan-doctor parse",
        f"Input: {payload['run_summary']['input_file']}",
        f"Delimiter: {payload['delimiter'] or '[none]'}",
        f"Columns: {len(payload['headers'])}",
        f"Rows: {len(payload['rows'])}",
        f"Looks tabular: {'yes' if payload['looks_like_table'] else 'no'}",
    ]
    if payload["header_tags"]:
        lines.append("Recognised headers:")
        lines.extend(f"- {header}: {tag}" for header, tag in payload["header_tags"].items())
    else:
        lines.append("Recognised headers: none")
    if payload["merged_headers"]:
        lines.append("Header repairs:")
        lines.extend(f"- {change}" for change in payload["merged_headers"])
    lines.append("")
    lines.append(render_frame(frame))
    return "\n".join(lines) + "\n"


def render_import_text(payload: dict[str, Any]) -> str:
    lines = [
        "plan-doctor import",
        f"Input: {payload['run_summary']['input_file']}",
        f"Period: {payload['period']}",
        f"Status: {payload['status']}",
        f"Strategy: {payload['mode'] or '[none]'}",
        f"Rows parsed: {payload['rows_parsed']}",
    ]
    if payload["matched"]:
        lines.append(f"Records updated: {payload['match_count']}")
    if payload["message"]:
        lines.append(payload["message"])
    if payload["warnings"]:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in payload["warnings"])
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def run_parse(args: argparse.Namespace) -> int:
    try:
        loaded = read_input(args)
        text = clean_extracted_text(loaded["text"])
        table = parse_table_text(text)
        merge = merge_header_artifacts(table)
        header_map = map_headers(merge.table.headers)
        payload = with_contract(
            "plan_doctor.parse",
            {
                "delimiter": DELIMITER_NAMES.get(table.delimiter) if table.delimiter else None,
                "headers": list(table.headers),
                "rows": [dict(row) for row in table.rows],
                "header_tags": header_map.to_dict(),
                "merged_headers": merge.changes,
                "looks_like_table": looks_like_table(text),
            },
            build_run_summary(
                command="parse",
                input_path=input_path_or_none(args.input),
                metrics={"rows": len(table), "columns": len(table.headers)},
                warnings=loaded["warnings"],
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            print(render_parse_text(payload, table.to_dataframe()), end="")
        return EXIT_SUCCESS if table.rows else EXIT_NO_TABLE
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_matrix(args: argparse.Namespace) -> int:
    try:
        loaded = read_input(args)
        matrix = parse_table_matrix(clean_extracted_text(loaded["text"]))
        payload = with_contract(
            "plan_doctor.matrix",
            {
                "delimiter": DELIMITER_NAMES.get(matrix.delimiter) if matrix.delimiter else None,
                **matrix.to_dict(),
            },
            build_run_summary(
                command="matrix",
                input_path=input_path_or_none(args.input),
                metrics={"lines": len(matrix.matrix), "width": matrix.width},
                warnings=loaded["warnings"],
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            print(render_frame(matrix.to_dataframe()))
        return EXIT_SUCCESS if matrix.matrix else EXIT_NO_TABLE
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def write_import_outputs(args: argparse.Namespace, outcome, out_dir: Path) -> dict[str, str]:
    outputs: dict[str, str] = {}

    if outcome.status == STATUS_NO_TABLE:
        return outputs

    if args.format == "xlsx":
        workbook_path = Path(args.output) if args.output else out_dir / "plan.xlsx"
        outputs["workbook"] = str(write_preview_workbook(workbook_path, outcome))
    elif outcome.status == STATUS_RAW_PREVIEW:
        preview_path = out_dir / "raw-preview.json"
        write_json(preview_path, outcome.matrix.to_dict())
        outputs["raw_preview"] = str(preview_path)
    elif args.format == "csv":
        plan_path = Path(args.output) if args.output else out_dir / "plan.csv"
        write_text(plan_path, plan_to_csv(outcome.period, outcome.document))
        outputs["plan"] = str(plan_path)
    else:
        plan_path = Path(args.output) if args.output else out_dir / "plan.json"
        write_json(plan_path, outcome.document)
        outputs["plan"] = str(plan_path)
    return outputs


def run_import(args: argparse.Namespace) -> int:
    try:
        document = load_plan(args.plan, args.period)
        loaded = read_input(args)
        outcome = import_plan_text(args.period, document, loaded["text"])

        out_dir = determine_output_dir(args)
        outputs = {} if args.dry_run else write_import_outputs(args, outcome, out_dir)
        summary_path = None
        if not args.dry_run and outcome.status != STATUS_NO_TABLE:
            summary_path = out_dir / "import-summary.json"
            outputs["summary"] = str(summary_path)
        warnings = [*loaded["warnings"], *outcome.warnings]
        payload = with_contract(
            "plan_doctor.import",
            {**outcome.to_dict(), "outputs": outputs},
            build_run_summary(
                command="import",
                input_path=input_path_or_none(args.input),
                status=outcome.status,
                output_path=Path(next(iter(outputs.values()))) if outputs else None,
                metrics={
                    "rows_parsed": len(outcome.table),
                    "match_count": outcome.result.match_count if outcome.result else 0,
                    "records": len(outcome.result.records) if outcome.result else 0,
                },
                warnings=warnings,
            ),
        )

        if summary_path is not None:
            write_json(summary_path, payload)

        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_import_text(payload).rstrip(), quiet=args.quiet)
            for label, path in outputs.items():
                emit_human(f"{label.replace('_', ' ').capitalize()}: {path}", quiet=args.quiet)

        if outcome.status == STATUS_NO_TABLE:
            return EXIT_NO_TABLE
        if outcome.status == STATUS_RAW_PREVIEW:
            return EXIT_RAW_PREVIEW
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_fill(args: argparse.Namespace) -> int:
    try:
        document = load_plan(args.plan, args.period)
        loaded = read_input(args)
        try:
            data = fill_column(args.period, document, args.column, clean_extracted_text(loaded["text"]))
        except ValueError as exc:
            raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
        schema = get_schema(args.period)
        output_path = Path(args.output) if args.output else None
        if output_path:
            write_json(output_path, data)
        payload = with_contract(
            "plan_doctor.fill",
            {"period": schema.period.value, "column": args.column, "data": data},
            build_run_summary(
                command="fill",
                input_path=input_path_or_none(args.input),
                output_path=output_path,
                metrics={"records": len(data[schema.collection])},
                warnings=loaded["warnings"],
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            print(plan_to_csv(schema.period, data), end="")
            if output_path:
                emit_human(f"Plan written: {output_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_template(args: argparse.Namespace) -> int:
    document = default_document(args.period)
    if args.format == "csv":
        print(plan_to_csv(args.period, document), end="")
    else:
        print(json_dumps(document))
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = PlanDoctorArgumentParser(prog="plan-doctor", description="Import pasted tables into lesson plans.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Show how text is split into headers and rows.")
    parse.add_argument("input", help="Text file path, or - for stdin")
    parse.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parse.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    matrix = subparsers.add_parser("matrix", help="Show the raw positional matrix.")
    matrix.add_argument("input", help="Text file path, or - for stdin")
    matrix.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    matrix.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    import_ = subparsers.add_parser("import", help="Apply a pasted table to a plan.")
    import_.add_argument("input", help="Text file path, or - for stdin")
    import_.add_argument("--period", required=True, choices=PERIOD_CHOICES, help="Plan period")
    import_.add_argument("--plan", help="Current plan JSON (default: a fresh plan for the period)")
    import_.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    import_.add_argument("--output", help="Explicit plan output path")
    import_.add_argument("--format", choices=PLAN_FORMATS, default="json", help="Plan output format")
    import_.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    import_.add_argument("--dry-run", action="store_true", help="Run the import without writing outputs")
    import_.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    fill = subparsers.add_parser("fill", help="Fill one plan column from free text, row by row.")
    fill.add_argument("input", help="Text file path, or - for stdin")
    fill.add_argument("--period", required=True, choices=PERIOD_CHOICES, help="Plan period")
    fill.add_argument("--column", required=True, help="Column to populate, e.g. focus")
    fill.add_argument("--plan", help="Current plan JSON (default: a fresh plan for the period)")
    fill.add_argument("--output", help="Write the filled plan JSON here")
    fill.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    fill.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    template = subparsers.add_parser("template", help="Print a fresh plan for a period.")
    template.add_argument("--period", required=True, choices=PERIOD_CHOICES, help="Plan period")
    template.add_argument("--format", choices=["json", "csv"], default="json", help="Output format")

    subparsers.add_parser("version", help="Print version")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "parse":
            return run_parse(args)
        if args.command == "matrix":
            return run_matrix(args)
        if args.command == "import":
            return run_import(args)
        if args.command == "fill":
            return run_fill(args)
        if args.command == "template":
            return run_template(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
