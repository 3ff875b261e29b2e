"""Period-specific plan document shapes and their default contents."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Union


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class UnknownPeriodError(ValueError):
    pass


@dataclass(frozen=True)
class PlanSchema:
    period: Period
    collection: str
    label_field: str
    fields: tuple[str, ...]
    positional_slots: tuple[str, ...]
    column_labels: tuple[tuple[str, str], ...]
    default_labels: tuple[str, ...]
    extra_document_fields: tuple[str, ...]

    def column_label(self, field_name: str) -> str:
        return dict(self.column_labels).get(field_name, field_name)


ROW_FIELDS = ("focus", "languageTarget", "assessment")
ROW_COLUMN_LABELS = (
    ("focus", "Focus"),
    ("languageTarget", "Language Target"),
    ("assessment", "Assessment"),
)

# 5E stages the daily template starts from: (stage, method).
DAILY_STAGES = (
    ("Engage", "5E"),
    ("Explore", "5E"),
    ("Explain", "Presentation"),
    ("Elaborate", "Practice → Production"),
    ("Evaluate", "Production Check"),
)
WEEKLY_DAY_LABELS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
MONTHLY_PHASE_LABELS = ("Engage", "Explore", "Explain", "Elaborate", "Evaluate")
YEARLY_SECTION_LABELS = ("Desired Results", "Assessment Evidence", "Unit Overview")


def _row_schema(period: Period, label_field: str, default_labels: tuple[str, ...]) -> PlanSchema:
    fields = (label_field,) + ROW_FIELDS
    return PlanSchema(
        period=period,
        collection="rows",
        label_field=label_field,
        fields=fields,
        positional_slots=fields,
        column_labels=((label_field, label_field.capitalize()),) + ROW_COLUMN_LABELS,
        default_labels=default_labels,
        extra_document_fields=("notes",),
    )


DAILY_FIELDS = ("stage", "method", "teacherActions", "studentActions", "assessment")

SCHEMAS = MappingProxyType({
    Period.DAILY: PlanSchema(
        period=Period.DAILY,
        collection="stages",
        label_field="stage",
        fields=DAILY_FIELDS,
        positional_slots=DAILY_FIELDS,
        column_labels=(
            ("stage", "Stage"),
            ("method", "Method"),
            ("teacherActions", "Teacher Actions"),
            ("studentActions", "Student Actions"),
            ("assessment", "Assessment"),
        ),
        default_labels=tuple(stage for stage, _ in DAILY_STAGES),
        extra_document_fields=("objective", "materials", "notes"),
    ),
    Period.WEEKLY: _row_schema(Period.WEEKLY, "day", WEEKLY_DAY_LABELS),
    Period.MONTHLY: _row_schema(Period.MONTHLY, "phase", MONTHLY_PHASE_LABELS),
    Period.YEARLY: _row_schema(Period.YEARLY, "section", YEARLY_SECTION_LABELS),
})


def get_schema(period: Union[Period, str]) -> PlanSchema:
    try:
        return SCHEMAS[Period(period)]
    except ValueError:
        valid = ", ".join(p.value for p in Period)
        raise UnknownPeriodError(f"Unknown plan period {period!r}. Expected one of: {valid}") from None


def blank_record(schema: PlanSchema, **values: str) -> dict[str, str]:
    record = {name: "" for name in schema.fields}
    record.update(values)
    return record


def ensure_record_fields(record: dict[str, Any], schema: PlanSchema) -> dict[str, Any]:
    for name in schema.fields:
        if record.get(name) is None:
            record[name] = ""
    return record


def document_records(document: dict[str, Any], schema: PlanSchema) -> list[dict[str, Any]]:
    records = (document or {}).get(schema.collection)
    return records if isinstance(records, list) else []


def default_document(period: Union[Period, str]) -> dict[str, Any]:
    """A freshly initialised plan for the period, as the planner page starts one."""
    schema = get_schema(period)
    document: dict[str, Any] = {name: "" for name in schema.extra_document_fields}
    if schema.period is Period.DAILY:
        document["stages"] = [
            blank_record(schema, stage=stage, method=method) for stage, method in DAILY_STAGES
        ]
    else:
        document["rows"] = [
            blank_record(schema, **{schema.label_field: label}) for label in schema.default_labels
        ]
    return document
