"""Line-window chunking and text sanitation for embedding."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from devforge.errors import FileUnreadable

MAX_OVERLAP_LINES = 3
AVG_LINE_CHARS = 80

_LINE_SPLIT = re.compile(r"\r?\n")

# UTF-8 punctuation that was decoded as cp1252 and re-encoded somewhere upstream.
_MOJIBAKE = {
    "\u00e2\u20ac\u2122": "\u2019",
    "\u00e2\u20ac\u02dc": "\u2018",
    "\u00e2\u20ac\u0153": "\u201c",
    "\u00e2\u20ac\u009d": "\u201d",
    "\u00e2\u20ac\u201c": "\u2013",
    "\u00e2\u20ac\u201d": "\u2014",
    "\u00e2\u20ac\u00a6": "\u2026",
    "\u00c2\u00a0": "\u00a0",
}
_MOJIBAKE_RE = re.compile("|".join(re.escape(k) for k in _MOJIBAKE))


@dataclass(frozen=True)
class Chunk:
    text: str
    start_line: int
    end_line: int


# ------------------------------
# Sanitation
# ------------------------------

def sanitize_text(text: str) -> str:
    if text.startswith("\ufeff"):
        text = text[1:]
    return _MOJIBAKE_RE.sub(lambda m: _MOJIBAKE[m.group(0)], text)


def sanitize_bytes(data: bytes) -> str:
    """Decode file bytes as UTF-8 and repair double-encoded punctuation.

    Bytes that are not valid UTF-8 fall back to ASCII with every non-ASCII
    byte replaced by "?", so one bad file never aborts a run.
    """
    try:
        return sanitize_text(data.decode("utf-8"))
    except UnicodeDecodeError:
        return bytes(b if b < 0x80 else 0x3F for b in data).decode("ascii")


def read_text_file(path: Path) -> str:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise FileUnreadable(f"cannot read {path}: {e}") from e
    return sanitize_bytes(data)


# ------------------------------
# Line windows
# ------------------------------

def split_lines(text: str) -> List[str]:
    """Split on \\n or \\r\\n. A trailing newline does not open an extra line."""
    if not text:
        return []
    lines = _LINE_SPLIT.split(text)
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return lines


def overlap_line_count(overlap_chars: int, avg_line_chars: int = AVG_LINE_CHARS,
                       cap: int = MAX_OVERLAP_LINES) -> int:
    if avg_line_chars <= 0:
        return 0
    return max(0, min(cap, overlap_chars // avg_line_chars))


def chunk_text(text: str, max_chars: int = 2000, overlap_chars: int = 200,
               max_overlap_lines: int = MAX_OVERLAP_LINES) -> List[Chunk]:
    """Pack consecutive lines into windows of at most max_chars characters.

    Each line counts its length plus one separator. A line longer than
    max_chars becomes a window of its own. The next window may reach back a
    few lines into the previous one, but its start line always moves forward.
    Windows with no text are dropped, so a blank file yields no chunks.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be >= 1")
    if overlap_chars < 0:
        raise ValueError("overlap_chars must be >= 0")

    lines = split_lines(text)
    if not any(ln.strip() for ln in lines):
        return []
    n = len(lines)
    overlap = overlap_line_count(overlap_chars, cap=max_overlap_lines)

    chunks: List[Chunk] = []
    start = 0
    while start < n:
        end = start
        size = 0
        while end < n and size + len(lines[end]) + 1 <= max_chars:
            size += len(lines[end]) + 1
            end += 1
        if end == start:
            end = start + 1
        window = "\n".join(lines[start:end])
        if window:
            chunks.append(Chunk(text=window, start_line=start, end_line=end - 1))
        if end >= n:
            break
        start = max(end - overlap, start + 1)
    return chunks


@dataclass
class Chunker:
    max_chars: int = 2000
    overlap_chars: int = 200
    max_overlap_lines: int = MAX_OVERLAP_LINES

    def __call__(self, text: str) -> List[Chunk]:
        return chunk_text(sanitize_text(text), self.max_chars, self.overlap_chars, self.max_overlap_lines)
