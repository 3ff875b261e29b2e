"""Header repair and keyword classification for parsed plan tables."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Optional

from plan_doctor.tokenizer import ParsedTable, fallback_header


class FieldTag(str, Enum):
    """Semantic meaning a header can carry. At most one per header."""

    LABEL = "label"
    FOCUS = "focus"
    LANGUAGE_TARGET = "languageTarget"
    ASSESSMENT = "assessment"
    TEACHER_ACTIONS = "teacherActions"
    STUDENT_ACTIONS = "studentActions"
    METHOD = "method"


# Order matters: the first tag with a keyword contained in the header wins.
HEADER_CANDIDATES = MappingProxyType({
    FieldTag.LABEL: ("day", "date", "phase", "section", "stage", "title"),
    FieldTag.FOCUS: ("focus", "topic", "objective"),
    FieldTag.LANGUAGE_TARGET: ("language", "language target", "lang", "language_target"),
    FieldTag.ASSESSMENT: ("assessment", "assess"),
    FieldTag.TEACHER_ACTIONS: ("teacher", "teacher actions", "teacher_action"),
    FieldTag.STUDENT_ACTIONS: ("student", "student actions", "student_action"),
    FieldTag.METHOD: ("method", "methods"),
})

ARTIFACT_PUNCTUATION_RE = re.compile(r"^[:,-]?$")


@dataclass
class HeaderMap:
    headers: list[str]
    tags: dict[str, FieldTag] = field(default_factory=dict)

    def tag_for(self, header: str) -> Optional[FieldTag]:
        return self.tags.get(header)

    @property
    def has_label(self) -> bool:
        return FieldTag.LABEL in self.tags.values()

    @property
    def label_header(self) -> Optional[str]:
        return next((h for h, tag in self.tags.items() if tag is FieldTag.LABEL), None)

    @property
    def tagged_count(self) -> int:
        return sum(1 for header in self.headers if header in self.tags)

    @property
    def density(self) -> float:
        if not self.headers:
            return 0.0
        return self.tagged_count / len(self.headers)

    def to_dict(self) -> dict[str, str]:
        return {header: tag.value for header, tag in self.tags.items()}


@dataclass
class HeaderMerge:
    table: ParsedTable
    merged_pairs: list[tuple[int, int]] = field(default_factory=list)
    changes: list[str] = field(default_factory=list)

    @property
    def merged(self) -> bool:
        return bool(self.merged_pairs)


# ══════════════════════════════════════════════════════════════════════════════
# HEADER-ARTIFACT MERGER
# ══════════════════════════════════════════════════════════════════════════════

def is_header_artifact(header: str) -> bool:
    """True for the stray punctuation column some extractors split off a header."""
    cleaned = (header or "").strip()
    return cleaned.startswith(":") or bool(ARTIFACT_PUNCTUATION_RE.fullmatch(cleaned))


def merge_header_artifacts(table: ParsedTable) -> HeaderMerge:
    """
    Collapse "Topic" + ": …" style header pairs into one column.

    The merged column takes its value from the second source cell, where
    the extractor put the content. Returns the input table untouched when
    nothing needed merging.
    """
    headers = table.headers
    new_headers: list[str] = []
    sources: list[int] = []
    merged_pairs: list[tuple[int, int]] = []
    changes: list[str] = []

    i = 0
    while i < len(headers):
        current = headers[i] or ""
        if i + 1 < len(headers) and is_header_artifact(headers[i + 1]):
            following = headers[i + 1] or ""
            merged_name = (current + " " + following).strip() or fallback_header(current, i)
            new_headers.append(merged_name)
            sources.append(i + 1)
            merged_pairs.append((i, i + 1))
            changes.append(
                f"Merged header columns {i + 1} and {i + 2} ({current!r} + {following!r}) into {merged_name!r}"
            )
            i += 2
            continue
        new_headers.append(fallback_header(current, i))
        sources.append(i)
        i += 1

    if not merged_pairs:
        return HeaderMerge(table=table)

    cell_rows = [[values[src] for src in sources] for values in table.cells]
    merged = ParsedTable.from_cells(new_headers, cell_rows, delimiter=table.delimiter)
    return HeaderMerge(table=merged, merged_pairs=merged_pairs, changes=changes)


# ══════════════════════════════════════════════════════════════════════════════
# HEADER CLASSIFIER
# ══════════════════════════════════════════════════════════════════════════════

def classify_header(header: str) -> Optional[FieldTag]:
    lowered = (header or "").lower()
    for tag, variants in HEADER_CANDIDATES.items():
        for variant in variants:
            if variant in lowered:
                return tag
    return None


def map_headers(headers: list[str]) -> HeaderMap:
    header_map = HeaderMap(headers=list(headers))
    for header in headers:
        tag = classify_header(header)
        if tag is not None:
            header_map.tags[header] = tag
    return header_map
