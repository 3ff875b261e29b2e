"""
importer.py — Caller-side import flow for pasted plan text

Wires the parser and reconciler together the way the planner page does:

    outcome = import_plan_text("weekly", current_plan, pasted_text)
    outcome.status   # "matched" | "replaced" | "raw_preview" | "no_table"
    outcome.document # the plan to show/save next

When a rebuild yields only empty records the outcome is "raw_preview": the
current plan is left as it was and a ParsedMatrix is attached so a person
can pick target columns by hand (see apply_matrix_columns).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from plan_doctor.reconcile import ReconcileResult, is_empty_result, reconcile
from plan_doctor.schemas import Period, blank_record, document_records, get_schema
from plan_doctor.tokenizer import (
    ParsedMatrix,
    ParsedTable,
    clean_extracted_text,
    looks_like_table,
    parse_table_matrix,
    parse_table_text,
)

STATUS_MATCHED = "matched"
STATUS_REPLACED = "replaced"
STATUS_RAW_PREVIEW = "raw_preview"
STATUS_NO_TABLE = "no_table"

NO_TABLE_MESSAGE = "No table data found. Paste a header line followed by at least one row."
RAW_PREVIEW_MESSAGE = (
    "The pasted table could not be mapped onto the plan. "
    "Review the raw columns and choose where each one belongs."
)

BLANK_LINES_RE = re.compile(r"\n\n+")
LINES_RE = re.compile(r"\n+")


@dataclass
class ImportOutcome:
    status: str
    period: Period
    document: dict[str, Any]
    table: ParsedTable
    result: Optional[ReconcileResult] = None
    matrix: Optional[ParsedMatrix] = None
    warnings: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def matched(self) -> bool:
        return self.status == STATUS_MATCHED

    def to_dict(self) -> dict[str, Any]:
        result = self.result
        return {
            "status": self.status,
            "period": self.period.value,
            "matched": self.matched,
            "mode": result.mode if result else None,
            "match_count": result.match_count if result else 0,
            "headers": list(self.table.headers),
            "header_tags": result.header_map.to_dict() if result and result.header_map else {},
            "rows_parsed": len(self.table),
            "data": self.document,
            "matrix": self.matrix.to_dict() if self.matrix else None,
            "warnings": list(self.warnings),
            "message": self.message,
        }


def import_plan_text(
    period: Union[Period, str],
    document: Optional[dict[str, Any]],
    text: str,
) -> ImportOutcome:
    schema = get_schema(period)
    document = document if isinstance(document, dict) else {}
    text = clean_extracted_text(text)
    table = parse_table_text(text)
    warnings: list[str] = []

    if not table.rows:
        return ImportOutcome(
            status=STATUS_NO_TABLE,
            period=schema.period,
            document=document,
            table=table,
            message=NO_TABLE_MESSAGE,
        )

    if not looks_like_table(text):
        warnings.append("Text does not look like a consistent table; columns may be misread")

    result = reconcile(schema.period, document, table)
    warnings.extend(result.warnings)

    if result.matched:
        return ImportOutcome(
            status=STATUS_MATCHED,
            period=schema.period,
            document=result.data,
            table=table,
            result=result,
            warnings=warnings,
            message=f"Updated {result.match_count} existing {schema.collection} by {schema.label_field}.",
        )

    if is_empty_result(result):
        return ImportOutcome(
            status=STATUS_RAW_PREVIEW,
            period=schema.period,
            document=document,
            table=table,
            result=result,
            matrix=parse_table_matrix(text),
            warnings=warnings,
            message=RAW_PREVIEW_MESSAGE,
        )

    return ImportOutcome(
        status=STATUS_REPLACED,
        period=schema.period,
        document=result.data,
        table=table,
        result=result,
        warnings=warnings,
        message=f"Replaced {schema.collection} with {len(result.records)} imported record(s).",
    )


# ══════════════════════════════════════════════════════════════════════════════
# SINGLE-COLUMN FILL
# ══════════════════════════════════════════════════════════════════════════════

def split_text_for_rows(text: str, row_count: int) -> list[str]:
    """
    Cut free text into one segment per plan row.

    Paragraphs are tried first, then single lines. Short input leaves the
    trailing rows empty; surplus segments are appended to the last row.
    """
    if not text or row_count <= 0:
        return []

    segments = [text]
    for splitter in (BLANK_LINES_RE, LINES_RE):
        segments = [part for seg in segments for part in splitter.split(seg) if part.strip()]
        if len(segments) >= row_count:
            break

    if len(segments) < row_count:
        result = [""] * row_count
        for i, seg in enumerate(segments):
            result[i] = seg.strip()
        return result

    result = segments[:row_count]
    if len(segments) > row_count:
        result[-1] += "\n" + " ".join(segments[row_count:])
    return [seg.strip() for seg in result]


def fill_column(
    period: Union[Period, str],
    document: Optional[dict[str, Any]],
    column: str,
    text: str,
) -> dict[str, Any]:
    """Return a copy of the plan with one column filled from free text, row by row."""
    schema = get_schema(period)
    column = (column or "").strip()
    if not column:
        raise ValueError("A target column is required")
    if column == schema.label_field:
        raise ValueError(f"Cannot fill the {schema.label_field!r} column; it identifies the rows")

    document = document if isinstance(document, dict) else {}
    records = document_records(document, schema)
    if not records:
        raise ValueError(f"The plan has no {schema.collection} to fill")

    segments = split_text_for_rows(text, len(records))
    if not segments:
        segments = [""] * len(records)
    data = dict(document)
    data[schema.collection] = [{**record, column: segments[i]} for i, record in enumerate(records)]
    return data


# ══════════════════════════════════════════════════════════════════════════════
# MANUAL COLUMN PICKING FROM THE RAW PREVIEW
# ══════════════════════════════════════════════════════════════════════════════

def apply_matrix_columns(
    period: Union[Period, str],
    document: Optional[dict[str, Any]],
    matrix: ParsedMatrix,
    column_map: dict[int, str],
    skip_header: bool = True,
) -> dict[str, Any]:
    """
    Build records from a raw matrix using a hand-picked column → field map.

    Several columns mapped to the same field are joined with a space. Rows
    that end up entirely empty are dropped.
    """
    schema = get_schema(period)
    unknown = sorted({name for name in column_map.values() if name not in schema.fields})
    if unknown:
        raise ValueError(f"Unknown {schema.period.value} fields: {', '.join(unknown)}")

    rows = matrix.matrix[1:] if skip_header else matrix.matrix
    records = []
    for row in rows:
        record = blank_record(schema)
        for index in sorted(column_map):
            field_name = column_map[index]
            value = row[index].strip() if 0 <= index < len(row) else ""
            if not value:
                continue
            record[field_name] = f"{record[field_name]} {value}".strip()
        if any(value.strip() for value in record.values()):
            records.append(record)

    data = dict(document) if isinstance(document, dict) else {}
    data[schema.collection] = records
    return data
