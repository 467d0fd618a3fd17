"""Cosine ranking over the vector index with one-chunk-per-file diversification."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from devforge.chunking import read_text_file, split_lines
from devforge.errors import FileUnreadable
from devforge.index import IndexEntry, VectorIndex
from devforge.ollama import is_vector

# Breaks ties between near-identical scores; far below any real similarity gap.
FRESHNESS_BOOST = 1e-6


@dataclass(frozen=True)
class ScoredEntry:
    score: float
    entry: IndexEntry


@dataclass(frozen=True)
class ContextBlock:
    path: str
    start_line: int
    end_line: int
    text: str

    @property
    def citation(self) -> str:
        return f"{self.path}:{self.start_line}-{self.end_line}"


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    n = min(len(a), len(b))
    dot = na = nb = 0.0
    for i in range(n):
        dot += a[i] * b[i]
        na += a[i] * a[i]
        nb += b[i] * b[i]
    return dot / (math.sqrt(na) * math.sqrt(nb) + 1e-9)


def rank_entries(index: VectorIndex, query: Sequence[float]) -> List[ScoredEntry]:
    """Score every usable entry, best first. Ties fall back to path then chunk id."""
    scored: List[ScoredEntry] = []
    for entry in index.chunks:
        if not is_vector(entry.vector):
            continue
        score = cosine(query, entry.vector)
        if entry.updated_at:
            score += FRESHNESS_BOOST
        scored.append(ScoredEntry(score, entry))
    scored.sort(key=lambda s: (-s.score, s.entry.path, s.entry.chunk_id))
    return scored


def diversify(scored: Sequence[ScoredEntry], k: int) -> List[ScoredEntry]:
    """Pick the best chunk of each file first, then fill from the overall ranking."""
    if k <= 0:
        return []
    best: Dict[str, ScoredEntry] = {}
    for s in scored:
        best.setdefault(s.entry.path, s)
    representatives = sorted(best.values(), key=lambda s: (-s.score, s.entry.path, s.entry.chunk_id))

    picked = representatives[:k]
    taken = {id(s) for s in picked}
    for s in scored:
        if len(picked) >= k:
            break
        if id(s) not in taken:
            picked.append(s)
            taken.add(id(s))
    return picked


def read_slice(root: Path, rel_path: str, start_line: int, end_line: int) -> str:
    lines = split_lines(read_text_file(Path(root) / rel_path))
    start = max(0, start_line)
    end = min(len(lines), end_line + 1)
    return "\n".join(lines[start:end])


def retrieve(index: VectorIndex, query: Sequence[float], k: int, root: Path) -> List[ContextBlock]:
    """Return up to k context blocks, re-reading each line range from disk.

    A file that can no longer be read yields a block with empty text.
    """
    blocks: List[ContextBlock] = []
    for s in diversify(rank_entries(index, query), k):
        e = s.entry
        try:
            text = read_slice(root, e.path, e.start_line, e.end_line)
        except FileUnreadable:
            text = ""
        blocks.append(ContextBlock(path=e.path, start_line=e.start_line, end_line=e.end_line, text=text))
    return blocks
