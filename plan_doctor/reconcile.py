"""
reconcile.py — Merge a parsed table into a period plan document

Two strategies, tried in order:

  label       A header is tagged as the row label (Day, Phase, Stage, …) and
              at least one parsed label matches an existing record. Matched
              records are updated in place; everything else is left alone.
  semantic /  No usable label match. A fresh record list is built from the
  positional  table, either through header tags (when enough headers were
              recognised) or purely from cell order.

Ownership: a label match returns a shallow copy of the document wrapper that
shares the original record list, and the matched record dicts are mutated
in place. Callers holding references to those records see the new values.
A rebuild returns a shallow copy of the wrapper with a brand-new record list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from plan_doctor.headers import FieldTag, HeaderMap, map_headers, merge_header_artifacts
from plan_doctor.schemas import (
    Period,
    PlanSchema,
    blank_record,
    document_records,
    ensure_record_fields,
    get_schema,
)
from plan_doctor.tokenizer import ParsedTable, fallback_header

# Minimum share of recognised headers before header tags are trusted to
# build fresh records; below it rows are read purely by cell position.
SEMANTIC_DENSITY_THRESHOLD = 1 / 3

MODE_LABEL = "label"
MODE_SEMANTIC = "semantic"
MODE_POSITIONAL = "positional"


@dataclass
class ReconcileResult:
    matched: bool
    data: dict[str, Any]
    period: Period
    mode: str
    match_count: int = 0
    header_map: Optional[HeaderMap] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def records(self) -> list[dict[str, Any]]:
        return document_records(self.data, get_schema(self.period))

    def is_empty(self) -> bool:
        return is_empty_result(self)

    def to_dict(self) -> dict[str, Any]:
        return {"matched": self.matched, "data": self.data}


def _label_index(header_map: HeaderMap) -> Optional[int]:
    for i, header in enumerate(header_map.headers):
        if header_map.tag_for(header) is FieldTag.LABEL:
            return i
    return None


def _apply_tagged_fields(values: list[str], header_map: HeaderMap, target: dict[str, Any]) -> None:
    for i, header in enumerate(header_map.headers):
        tag = header_map.tag_for(header)
        if tag is None or tag is FieldTag.LABEL:
            continue
        target[tag.value] = values[i] if i < len(values) else ""


def _label_key(value: Any) -> str:
    return str(value or "").strip().lower()


# ══════════════════════════════════════════════════════════════════════════════
# LABEL-KEYED UPDATE
# ══════════════════════════════════════════════════════════════════════════════

def _update_by_label(
    schema: PlanSchema,
    records: list[dict[str, Any]],
    table: ParsedTable,
    header_map: HeaderMap,
) -> int:
    label_idx = _label_index(header_map)
    if label_idx is None:
        return 0

    existing: dict[str, dict[str, Any]] = {}
    for record in records:
        key = _label_key(record.get(schema.label_field))
        if key:
            existing[key] = record

    matched = 0
    for values in table.cells:
        key = _label_key(values[label_idx])
        if not key:
            continue
        target = existing.get(key)
        if target is None:
            continue
        _apply_tagged_fields(values, header_map, target)
        ensure_record_fields(target, schema)
        matched += 1
    return matched


# ══════════════════════════════════════════════════════════════════════════════
# REBUILD FROM TABLE
# ══════════════════════════════════════════════════════════════════════════════

def _semantic_record(schema: PlanSchema, values: list[str], header_map: HeaderMap) -> dict[str, Any]:
    record = blank_record(schema)
    label_idx = _label_index(header_map)
    if label_idx is not None:
        record[schema.label_field] = values[label_idx]
    _apply_tagged_fields(values, header_map, record)
    return record


def _positional_record(schema: PlanSchema, values: list[str]) -> dict[str, Any]:
    cells = [value for value in values if value and value.strip()]
    slots = schema.positional_slots
    record = blank_record(schema)
    for i, slot in enumerate(slots[:-1]):
        record[slot] = cells[i] if i < len(cells) else ""
    # Anything past the last slot is folded into it.
    record[slots[-1]] = " ".join(cells[len(slots) - 1:])
    return record


def _rebuild_records(
    schema: PlanSchema,
    table: ParsedTable,
    merged: ParsedTable,
    header_map: HeaderMap,
) -> tuple[list[dict[str, Any]], str]:
    """
    Build fresh records from the table.

    Header tags are read from the merged table. Positional rows come from
    the unmerged cells, since a merge keeps only one cell of each pair.
    """
    if header_map.tagged_count and header_map.density >= SEMANTIC_DENSITY_THRESHOLD:
        return [_semantic_record(schema, values, header_map) for values in merged.cells], MODE_SEMANTIC
    return [_positional_record(schema, table.row_values(i)) for i in range(len(table))], MODE_POSITIONAL


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def reconcile(
    period: Union[Period, str],
    document: Optional[dict[str, Any]],
    table: ParsedTable,
) -> ReconcileResult:
    """
    Apply a parsed table to the current plan document for a period.

    Header artifacts are merged before classification. Tagged values are
    copied through the merged columns; the positional fallback reads the
    unmerged cells so no pasted value is lost.
    """
    schema = get_schema(period)
    document = document if isinstance(document, dict) else {}
    warnings: list[str] = []

    merge = merge_header_artifacts(table)
    warnings.extend(merge.changes)
    working = merge.table
    header_map = map_headers(working.headers)

    if header_map.has_label:
        records = document_records(document, schema)
        match_count = _update_by_label(schema, records, working, header_map)
        if match_count > 0:
            data = dict(document)
            data[schema.collection] = records
            unmatched_rows = len(working.cells) - match_count
            if unmatched_rows > 0:
                warnings.append(
                    f"{unmatched_rows} row(s) had no matching {schema.label_field} in the current plan and were ignored"
                )
            return ReconcileResult(
                matched=True,
                data=data,
                period=schema.period,
                mode=MODE_LABEL,
                match_count=match_count,
                header_map=header_map,
                warnings=warnings,
            )
        warnings.append(
            f"Column {header_map.label_header!r} looks like a {schema.label_field} column "
            f"but no value matched the current plan; rebuilding {schema.collection} from the table"
        )

    new_records, mode = _rebuild_records(schema, table, working, header_map)
    data = dict(document)
    data[schema.collection] = new_records
    return ReconcileResult(
        matched=False,
        data=data,
        period=schema.period,
        mode=mode,
        header_map=header_map,
        warnings=warnings,
    )


def apply_import(
    period: Union[Period, str],
    document: Optional[dict[str, Any]],
    headers: list[str],
    rows: list[dict[str, str]],
) -> ReconcileResult:
    """Same as reconcile(), starting from headers plus header-keyed row dicts."""
    cell_rows = [
        [str(row.get(fallback_header(header, i)) or "") for i, header in enumerate(headers)]
        for row in rows
    ]
    return reconcile(period, document, ParsedTable.from_cells(list(headers), cell_rows))


def is_empty_result(result: ReconcileResult) -> bool:
    """
    True when a rebuild produced nothing worth saving.

    Callers should then show the raw matrix instead of committing the
    document. Label matches are never considered empty.
    """
    if result.matched:
        return False
    for record in result.records:
        for value in record.values():
            if str(value or "").strip():
                return False
    return True
