from __future__ import annotations

import math
from pathlib import Path

import pytest

from devforge.index import IndexEntry, VectorIndex
from devforge.retrieval import FRESHNESS_BOOST, cosine, diversify, rank_entries, read_slice, retrieve


def _unit(c: float):
    return [c, math.sqrt(1.0 - c * c)]


def _entry(path: str, chunk_id: int, score: float, start: int = 0, end: int = 0, updated_at="t") -> IndexEntry:
    return IndexEntry(path=path, hash="h", chunk_id=chunk_id, start_line=start, end_line=end,
                      vector=_unit(score), updated_at=updated_at)


QUERY = [1.0, 0.0]


@pytest.fixture
def two_files(tmp_path: Path) -> VectorIndex:
    (tmp_path / "a.py").write_text("a0\na1\na2\na3\n", encoding="utf-8")
    (tmp_path / "b.py").write_text("b0\nb1\n", encoding="utf-8")
    return VectorIndex(chunks=[
        _entry("a.py", 0, 0.9, 0, 1),
        _entry("a.py", 1, 0.85, 2, 3),
        _entry("b.py", 0, 0.95, 0, 1),
    ])


def test_cosine_basics() -> None:
    assert cosine([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)
    assert cosine([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
    assert cosine([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_top_one_is_best_file(two_files: VectorIndex, tmp_path: Path) -> None:
    blocks = retrieve(two_files, QUERY, 1, tmp_path)

    assert [(b.path, b.start_line) for b in blocks] == [("b.py", 0)]
    assert blocks[0].text == "b0\nb1"


def test_top_two_spreads_across_files(two_files: VectorIndex, tmp_path: Path) -> None:
    blocks = retrieve(two_files, QUERY, 2, tmp_path)

    assert [(b.path, b.start_line, b.end_line) for b in blocks] == [("b.py", 0, 1), ("a.py", 0, 1)]
    assert blocks[1].text == "a0\na1"
    assert blocks[1].citation == "a.py:0-1"


def test_remaining_slots_fill_from_overall_ranking(two_files: VectorIndex, tmp_path: Path) -> None:
    blocks = retrieve(two_files, QUERY, 5, tmp_path)

    assert [(b.path, b.start_line) for b in blocks] == [("b.py", 0), ("a.py", 0), ("a.py", 2)]
    assert blocks[2].text == "a2\na3"


def test_entries_with_bad_vectors_are_skipped() -> None:
    index = VectorIndex(chunks=[
        _entry("a.py", 0, 0.5),
        IndexEntry(path="b.py", hash="h", chunk_id=0, start_line=0, end_line=0, vector=None),
        IndexEntry(path="c.py", hash="h", chunk_id=0, start_line=0, end_line=0, vector=["x", "y"]),
        IndexEntry(path="d.py", hash="h", chunk_id=0, start_line=0, end_line=0, vector=[]),
    ])

    assert [s.entry.path for s in rank_entries(index, QUERY)] == ["a.py"]


def test_timestamped_entries_win_ties_without_dominating() -> None:
    index = VectorIndex(chunks=[
        _entry("old.py", 0, 0.8, updated_at=None),
        _entry("new.py", 0, 0.8),
        _entry("better.py", 0, 0.81, updated_at=None),
    ])

    ranked = rank_entries(index, QUERY)

    assert [s.entry.path for s in ranked] == ["better.py", "new.py", "old.py"]
    assert ranked[1].score - ranked[2].score == pytest.approx(FRESHNESS_BOOST)


def test_diversify_handles_non_positive_k(two_files: VectorIndex) -> None:
    assert diversify(rank_entries(two_files, QUERY), 0) == []


def test_unreadable_file_gives_empty_text(tmp_path: Path) -> None:
    index = VectorIndex(chunks=[_entry("deleted.py", 0, 0.9, 0, 4)])

    blocks = retrieve(index, QUERY, 3, tmp_path)

    assert len(blocks) == 1
    assert blocks[0].text == ""


def test_read_slice_is_inclusive_and_clamped(tmp_path: Path) -> None:
    (tmp_path / "f.txt").write_text("l0\r\nl1\r\nl2\r\n", encoding="utf-8")

    assert read_slice(tmp_path, "f.txt", 1, 1) == "l1"
    assert read_slice(tmp_path, "f.txt", 1, 99) == "l1\nl2"
