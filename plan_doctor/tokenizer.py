"""
tokenizer.py — Delimited-text parsing for plan-doctor

Turns pasted or upstream-extracted text into a header/row table.

Public API:
    table  = parse_table_text(text)     # ParsedTable (label-keyed rows)
    matrix = parse_table_matrix(text)   # ParsedMatrix (positional rows)

Delimiter choice is a cheap global heuristic: any tab wins, otherwise the
more frequent of comma/semicolon (comma on ties). Comma/semicolon lines are
split quote-aware; tab lines are split naively.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

TAB = "\t"
COMMA = ","
SEMICOLON = ";"
DELIMITER_NAMES = {TAB: "tab", COMMA: "comma", SEMICOLON: "semicolon"}

LINE_BREAK_RE = re.compile(r"\r?\n")
TAB_RUN_RE = re.compile(r"\t+")
EXCESS_BLANK_LINES_RE = re.compile(r"\n{3,}")
COLUMN_SPACING_RE = re.compile(r" {2,}")
NBSP = "\u00a0"

TABLE_SNIFF_LINES = 5


def fallback_header(header: str, index: int) -> str:
    """Key used for a column whose header cell is blank."""
    return header or f"col{index}"


@dataclass
class ParsedTable:
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)
    cells: list[list[str]] = field(default_factory=list)
    delimiter: Optional[str] = None

    @classmethod
    def from_cells(
        cls,
        headers: list[str],
        cell_rows: list[list[str]],
        delimiter: Optional[str] = None,
    ) -> "ParsedTable":
        width = len(headers)
        cells = [[(row[i] if i < len(row) else "") or "" for i in range(width)] for row in cell_rows]
        rows = []
        for values in cells:
            record: dict[str, str] = {}
            for i, header in enumerate(headers):
                record[fallback_header(header, i)] = values[i]
            rows.append(record)
        return cls(headers=list(headers), rows=rows, cells=cells, delimiter=delimiter)

    def __len__(self) -> int:
        return len(self.rows)

    def row_values(self, index: int) -> list[str]:
        return list(self.cells[index])

    def to_dict(self) -> dict:
        return {"headers": list(self.headers), "rows": [dict(row) for row in self.rows]}

    def to_dataframe(self) -> pd.DataFrame:
        columns = [fallback_header(header, i) for i, header in enumerate(self.headers)]
        return pd.DataFrame(self.cells, columns=columns, dtype=str)


@dataclass
class ParsedMatrix:
    headers: list[str] = field(default_factory=list)
    matrix: list[list[str]] = field(default_factory=list)
    delimiter: Optional[str] = None

    @property
    def width(self) -> int:
        return max([len(self.headers), *(len(row) for row in self.matrix)], default=0)

    def to_dict(self) -> dict:
        return {"headers": list(self.headers), "matrix": [list(row) for row in self.matrix]}

    def to_dataframe(self) -> pd.DataFrame:
        width = self.width
        columns = [
            fallback_header(self.headers[i] if i < len(self.headers) else "", i)
            for i in range(width)
        ]
        padded = [list(row) + [""] * (width - len(row)) for row in self.matrix]
        return pd.DataFrame(padded, columns=columns, dtype=str)


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def detect_delimiter(text: str) -> str:
    """Pick tab, comma or semicolon for the whole text."""
    if TAB in text:
        return TAB
    return COMMA if text.count(COMMA) >= text.count(SEMICOLON) else SEMICOLON


# ══════════════════════════════════════════════════════════════════════════════
# LINE TOKENIZER
# ══════════════════════════════════════════════════════════════════════════════

def split_line(line: str, delimiter: str) -> list[str]:
    """
    Split one line into trimmed fields.

    Tab lines are split naively. Comma/semicolon lines are scanned with an
    in-quotes flag: a quote toggles the flag (and is consumed), a doubled
    quote inside quotes is a literal quote, and the delimiter only separates
    fields outside quotes. An unbalanced quote keeps the flag set, so the
    rest of the line lands in one field.
    """
    if delimiter == TAB:
        return [part.strip() for part in line.split(TAB)]

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
            i += 1
            continue
        if ch == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
            i += 1
            continue
        current.append(ch)
        i += 1
    fields.append("".join(current).strip())
    return fields


def prepare_lines(text: str) -> list[str]:
    lines = []
    for raw_line in LINE_BREAK_RE.split(text.strip()):
        line = TAB_RUN_RE.sub(TAB, raw_line.replace(NBSP, " "), count=1).strip()
        if line:
            lines.append(line)
    return lines


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def parse_table_text(text: str) -> ParsedTable:
    """
    Parse delimited text into headers plus label-keyed rows.

    The first non-empty line is the header row. Rows shorter than the header
    get "" for the missing positions; extra cells are dropped. Empty input
    gives an empty table rather than an error.
    """
    lines = prepare_lines(text or "")
    if not lines:
        return ParsedTable()

    delimiter = detect_delimiter(text)
    headers = split_line(lines[0], delimiter)
    cell_rows = [split_line(line, delimiter) for line in lines[1:]]
    return ParsedTable.from_cells(headers, cell_rows, delimiter=delimiter)


def parse_table_matrix(text: str) -> ParsedMatrix:
    """Positional parse for raw review: every line, header line included, is a row."""
    lines = prepare_lines(text or "")
    if not lines:
        return ParsedMatrix()

    delimiter = detect_delimiter(text)
    matrix = [split_line(line, delimiter) for line in lines]
    return ParsedMatrix(headers=list(matrix[0]), matrix=matrix, delimiter=delimiter)


def clean_extracted_text(text: str) -> str:
    """Normalise line endings and collapse runs of blank lines."""
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    return EXCESS_BLANK_LINES_RE.sub("\n\n", text).strip()


def looks_like_table(text: str) -> bool:
    """
    Cheap check for whether text is tabular at all.

    Tabs are the most reliable signal for extracted text, then a comma or
    pipe count that repeats on every sampled line, then columnar spacing.
    """
    lines = [line for line in (text or "").strip().split("\n") if line.strip()]
    if len(lines) < 2:
        return False
    sample = lines[:TABLE_SNIFF_LINES]

    tab_count = lines[0].count(TAB)
    if tab_count >= 2:
        consistent = [line for line in sample if abs(line.count(TAB) - tab_count) <= 1]
        if len(consistent) >= len(sample) * 0.5:
            return True

    for delim in (COMMA, "|"):
        counts = [line.count(delim) for line in sample]
        if len(set(counts)) == 1 and counts[0] > 0:
            return True

    spaced = sum(1 for line in sample if COLUMN_SPACING_RE.search(line))
    return spaced >= max(1, math.ceil(len(sample) * 0.3))
