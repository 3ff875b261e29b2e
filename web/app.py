#!/usr/bin/env python3
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from plan_doctor.export import plan_to_csv, plan_to_rows  # noqa: E402
from plan_doctor.importer import (  # noqa: E402
    STATUS_MATCHED,
    STATUS_NO_TABLE,
    STATUS_RAW_PREVIEW,
    apply_matrix_columns,
    import_plan_text,
)
from plan_doctor.loader import decode_text  # noqa: E402
from plan_doctor.schemas import Period, default_document, get_schema  # noqa: E402

PERIOD_OPTIONS = [period.value for period in Period]
IGNORE_OPTION = "(ignore)"


def ensure_state() -> None:
    st.session_state.setdefault("outcome", None)
    st.session_state.setdefault("document", None)
    st.session_state.setdefault("paste_input", "")


def load_uploaded_plan(upload, period: str) -> tuple[dict, Optional[str]]:
    if upload is None:
        return default_document(period), None
    try:
        payload = json.loads(upload.getvalue().decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        return default_document(period), f"Could not read {upload.name}: {exc}. Using a fresh plan instead."
    if not isinstance(payload, dict):
        return default_document(period), f"{upload.name} is not a plan object. Using a fresh plan instead."
    if isinstance(payload.get("data"), dict) and get_schema(period).collection not in payload:
        payload = payload["data"]
    return payload, None


def load_paste_file(paste_file) -> tuple[Optional[dict], Optional[str]]:
    try:
        return decode_text(paste_file.getvalue(), source=paste_file.name), None
    except ValueError as exc:
        return None, f"Could not read {paste_file.name}: {exc}"


def plan_frame(period: str, document: dict) -> pd.DataFrame:
    headers, rows = plan_to_rows(period, document)
    return pd.DataFrame(rows, columns=headers)


def render_plan(period: str, document: dict, key: str) -> None:
    st.dataframe(plan_frame(period, document), width="stretch", hide_index=True)
    left, right = st.columns(2)
    left.download_button(
        "Download plan JSON",
        data=json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8"),
        file_name=f"{period}-plan.json",
        mime="application/json",
        width="stretch",
        key=f"download_json_{key}",
    )
    right.download_button(
        "Download plan CSV",
        data=plan_to_csv(period, document).encode("utf-8"),
        file_name=f"{period}-plan.csv",
        mime="text/csv",
        width="stretch",
        key=f"download_csv_{key}",
    )


def render_parse_details(outcome) -> None:
    cols = st.columns(4)
    cols[0].metric("Status", outcome.status.replace("_", " "))
    cols[1].metric("Rows parsed", len(outcome.table))
    cols[2].metric("Strategy", outcome.result.mode if outcome.result else "-")
    cols[3].metric("Records updated", outcome.result.match_count if outcome.result else 0)

    if outcome.table.headers:
        st.caption("Parsed table")
        st.dataframe(outcome.table.to_dataframe(), width="stretch", hide_index=True)
    tags = outcome.result.header_map.to_dict() if outcome.result and outcome.result.header_map else {}
    if tags:
        st.caption("Recognised headers")
        st.dataframe(
            pd.DataFrame([{"Header": header, "Field": tag} for header, tag in tags.items()]),
            width="stretch",
            hide_index=True,
        )


def render_raw_preview(period: str, document: dict, outcome) -> None:
    matrix = outcome.matrix
    st.caption("Raw columns")
    st.dataframe(matrix.to_dataframe(), width="stretch", hide_index=True)

    schema = get_schema(period)
    options = [IGNORE_OPTION, *schema.fields]
    column_map: dict[int, str] = {}
    pickers = st.columns(max(matrix.width, 1))
    for index in range(matrix.width):
        default = schema.positional_slots[index] if index < len(schema.positional_slots) else IGNORE_OPTION
        choice = pickers[index].selectbox(
            f"Column {index + 1}",
            options,
            index=options.index(default),
            key=f"pick_{period}_{index}",
        )
        if choice != IGNORE_OPTION:
            column_map[index] = choice
    skip_header = st.checkbox("First line is a header", value=True, key="skip_header")

    if st.button("Apply selected columns", type="primary", disabled=not column_map):
        st.session_state["document"] = apply_matrix_columns(
            period, document, matrix, column_map, skip_header=skip_header
        )
        st.rerun()


def set_visuals() -> None:
    st.set_page_config(page_title="plan-doctor UI", page_icon="📋", layout="wide", initial_sidebar_state="collapsed")
    st.markdown(
        """
        <style>
        .block-container {
            padding-top: 2rem;
            padding-bottom: 2rem;
            max-width: 1200px;
        }
        [data-testid="stDecoration"], [data-testid="stStatusWidget"] {
            display: none !important;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def main() -> None:
    set_visuals()
    ensure_state()

    st.title("plan-doctor")
    st.caption("Paste a table copied from a document or spreadsheet and fold it into a lesson plan.")

    period = st.selectbox("Plan period", PERIOD_OPTIONS, index=1, key="period_input")
    upload = st.file_uploader("Current plan (JSON, optional)", type=["json"], key="plan_upload")
    paste_file = st.file_uploader("Or load the table from a text file", type=["txt", "csv", "tsv"], key="paste_upload")
    st.text_area("Pasted table", key="paste_input", height=220)

    if st.button("Import", type="primary", width="stretch"):
        document, problem = load_uploaded_plan(upload, period)
        if problem:
            st.warning(problem)
        text = st.session_state["paste_input"]
        if paste_file is not None:
            loaded, problem = load_paste_file(paste_file)
            if problem:
                st.error(problem)
                return
            for warning in loaded["warnings"]:
                st.warning(warning)
            text = loaded["text"]
        outcome = import_plan_text(period, document, text)
        st.session_state["outcome"] = outcome
        st.session_state["document"] = outcome.document if outcome.status != STATUS_RAW_PREVIEW else None

    outcome = st.session_state.get("outcome")
    if outcome is None:
        st.info("Tab, comma and semicolon separated text is supported. The first line is read as headers.")
        return
    if outcome.period.value != period:
        st.info("The period changed since the last import. Import again to apply the table.")
        return

    if outcome.status == STATUS_NO_TABLE:
        st.error(outcome.message)
        return

    render_parse_details(outcome)
    for warning in outcome.warnings:
        st.warning(warning)
    if outcome.status == STATUS_MATCHED:
        st.success(outcome.message)
    elif outcome.message:
        st.info(outcome.message)

    document = st.session_state.get("document")
    if outcome.status == STATUS_RAW_PREVIEW:
        render_raw_preview(period, outcome.document, outcome)
        if document is None:
            return

    st.subheader("Resulting plan")
    render_plan(period, document, key=outcome.status)


if __name__ == "__main__":
    main()
