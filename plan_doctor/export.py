"""Writers for imported plans: CSV text and a reviewable Excel workbook."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from plan_doctor.schemas import Period, PlanSchema, document_records, get_schema

if TYPE_CHECKING:
    from plan_doctor.importer import ImportOutcome

FILL_EMPTY = PatternFill("solid", fgColor="FCE4D6")   # soft orange


def format_csv_value(value: Any, delimiter: str = ",") -> str:
    if value is None:
        return ""
    text = str(value)
    if delimiter in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def plan_columns(schema: PlanSchema, records: list[dict[str, Any]]) -> list[str]:
    """Schema fields first, then any extra keys the records carry, in first-seen order."""
    columns = list(schema.fields)
    for record in records:
        for key in record:
            if key not in columns:
                columns.append(key)
    return columns


def plan_to_rows(period: Union[Period, str], document: dict[str, Any]) -> tuple[list[str], list[list[str]]]:
    schema = get_schema(period)
    records = document_records(document, schema)
    columns = plan_columns(schema, records)
    headers = [schema.column_label(column) for column in columns]
    rows = [[str(record.get(column) or "") for column in columns] for record in records]
    return headers, rows


def plan_to_csv(period: Union[Period, str], document: dict[str, Any], delimiter: str = ",") -> str:
    headers, rows = plan_to_rows(period, document)
    lines = [delimiter.join(format_csv_value(h, delimiter) for h in headers)]
    for row in rows:
        lines.append(delimiter.join(format_csv_value(value, delimiter) for value in row))
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# WORKBOOK
# ══════════════════════════════════════════════════════════════════════════════

def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Bold coloured header, frozen top row, column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.fill = fill
        cell.font = font
        cell.alignment = Alignment(vertical="center", wrap_text=True)
    ws.freeze_panes = "A2"
    for idx, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60) -> list[int]:
    if not rows:
        return []
    width_count = max(len(row) for row in rows)
    widths = [min_width] * width_count
    for row in rows:
        for idx, value in enumerate(row):
            widths[idx] = max(widths[idx], min(max_width, len(str(value)) + 2))
    return widths


def write_preview_workbook(output_path: Path, outcome: "ImportOutcome") -> Path:
    """
    Write the import result for review.

    Sheet "Plan" holds the resulting records with empty cells shaded.
    Sheet "Raw Preview" holds the positional matrix when the import fell
    back to it.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb = openpyxl.Workbook()

    ws1 = wb.active
    ws1.title = "Plan"
    headers, rows = plan_to_rows(outcome.period, outcome.document)
    ws1.append(headers)
    for row in rows:
        ws1.append(row)
        last = ws1.max_row
        for idx, value in enumerate(row, start=1):
            if not value.strip():
                ws1.cell(last, idx).fill = FILL_EMPTY
    _style_sheet(ws1, _infer_col_widths([headers, *rows]), "4CAF50")   # green

    if outcome.matrix is not None:
        ws2 = wb.create_sheet("Raw Preview")
        width = outcome.matrix.width
        raw_header = [f"Column {i + 1}" for i in range(width)]
        ws2.append(raw_header)
        for row in outcome.matrix.matrix:
            ws2.append(list(row))
        _style_sheet(ws2, _infer_col_widths([raw_header, *outcome.matrix.matrix]), "E53935")   # red

    wb.save(output_path)
    return output_path
