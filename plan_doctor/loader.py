"""
loader.py — Read pasted-table text from a file or stdin

Public API:
    result = load_text("paste.txt")
    text   = result["text"]

Result dict keys:
    text              — decoded text, null bytes removed
    source            — path string, or "-" for stdin
    detected_encoding — "utf-8", or the chardet guess used for non-UTF-8 lines
    encoding_info     — detected, confidence, fallback_lines (1-based line numbers)
    warnings          — list of warning strings

Only plain text is accepted. Document formats (.pdf, .docx, …) must be
converted to text before they reach plan-doctor.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import BinaryIO, Optional

import chardet

TEXT_FORMATS = {".txt", ".csv", ".tsv", ".tab", ""}
DOCUMENT_FORMATS = {".pdf", ".doc", ".docx", ".odt", ".rtf", ".xls", ".xlsx", ".xlsm", ".ods", ".pptx"}
MAX_TEXT_BYTES = 5 * 1024 * 1024


# ══════════════════════════════════════════════════════════════════════════════
# DECODING
# ══════════════════════════════════════════════════════════════════════════════

def _guess_encoding(raw: bytes) -> tuple[str, float]:
    guess = chardet.detect(raw)
    return guess.get("encoding") or "cp1252", round(guess.get("confidence") or 0.0, 2)


def _decode_line(line: bytes, fallback: str) -> str:
    try:
        return line.decode(fallback)
    except (LookupError, UnicodeDecodeError):
        return line.decode("cp1252", errors="replace")


def _decode_lines(raw: bytes, fallback: str) -> tuple[str, list[int]]:
    """
    Decode a paste that is not valid UTF-8 as a whole.

    Lines that are valid UTF-8 keep it; the rest use the guessed encoding.
    Returns the text and the 1-based numbers of the lines that fell back.
    """
    lines: list[str] = []
    fallback_lines: list[int] = []
    for number, line in enumerate(raw.split(b"\n"), start=1):
        try:
            lines.append(line.decode("utf-8"))
        except UnicodeDecodeError:
            lines.append(_decode_line(line, fallback))
            fallback_lines.append(number)
    return "\n".join(lines), fallback_lines


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def decode_text(raw: bytes, source: str = "-") -> dict:
    if len(raw) > MAX_TEXT_BYTES:
        raise ValueError(
            f"Input is {len(raw)} bytes; pasted tables above {MAX_TEXT_BYTES} bytes are not supported"
        )
    if raw.startswith(b"\xef\xbb\xbf"):
        raw = raw[3:]

    warnings: list[str] = []
    try:
        text = raw.decode("utf-8")
        encoding_info = {"detected": "utf-8", "confidence": 1.0, "fallback_lines": []}
    except UnicodeDecodeError:
        detected, confidence = _guess_encoding(raw)
        text, fallback_lines = _decode_lines(raw, detected)
        encoding_info = {"detected": detected, "confidence": confidence, "fallback_lines": fallback_lines}
        warnings.append(
            f"Input is not valid UTF-8 (detected {detected}); "
            f"{len(fallback_lines)} line(s) decoded with a fallback encoding"
        )

    return {
        "text": text.replace("\x00", ""),
        "source": source,
        "detected_encoding": encoding_info["detected"],
        "encoding_info": encoding_info,
        "warnings": warnings,
    }


def load_text(path: "str | Path", stdin: Optional[BinaryIO] = None) -> dict:
    """
    Load table text from a path, or from stdin when path is "-".

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the file is a document format or too large.
    """
    if str(path) == "-":
        stream = stdin if stdin is not None else sys.stdin.buffer
        return decode_text(stream.read(), source="-")

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in DOCUMENT_FORMATS:
        raise ValueError(
            f"Unsupported format '{suffix}'. Extract or copy the table as plain text first."
        )

    loaded = decode_text(path.read_bytes(), source=str(path))
    if suffix not in TEXT_FORMATS:
        loaded["warnings"].append(f"Unrecognised extension '{suffix}'; read as plain text")
    return loaded
