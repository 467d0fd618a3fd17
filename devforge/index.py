"""JSON-backed vector index keyed by (path, chunk id)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from devforge.chunking import Chunk
from devforge.storage import load_json, utc_now, write_json_atomic

INDEX_VERSION = 1


@dataclass
class IndexEntry:
    path: str
    hash: str
    chunk_id: int
    start_line: int
    end_line: int
    vector: Optional[List[float]]
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            "path": self.path,
            "hash": self.hash,
            "chunkId": self.chunk_id,
            "start": self.start_line,
            "end": self.end_line,
            "vector": self.vector,
        }
        if self.updated_at:
            data["updated_at"] = self.updated_at
        return data

    @staticmethod
    def from_dict(data: Dict) -> "IndexEntry":
        vector = data.get("vector")
        return IndexEntry(
            path=str(data["path"]),
            hash=str(data.get("hash", "")),
            chunk_id=int(data.get("chunkId", 0)),
            start_line=int(data.get("start", 0)),
            end_line=int(data.get("end", 0)),
            vector=vector if isinstance(vector, list) else None,
            updated_at=data.get("updated_at") or None,
        )


@dataclass
class VectorIndex:
    version: int = INDEX_VERSION
    chunks: List[IndexEntry] = field(default_factory=list)

    def entries_for(self, path: str) -> List[IndexEntry]:
        return [c for c in self.chunks if c.path == path]

    def paths(self) -> List[str]:
        return sorted({c.path for c in self.chunks})

    def to_dict(self) -> Dict:
        return {"version": self.version, "chunks": [c.to_dict() for c in self.chunks]}


# ------------------------------
# Persistence
# ------------------------------

def load_index(path: Path) -> VectorIndex:
    """Load the index; a missing or unparsable file gives a fresh empty index."""
    data = load_json(path)
    if data is None or not isinstance(data.get("chunks"), list):
        return VectorIndex()
    entries: List[IndexEntry] = []
    for raw in data["chunks"]:
        if not isinstance(raw, dict) or "path" not in raw:
            continue
        try:
            entries.append(IndexEntry.from_dict(raw))
        except (TypeError, ValueError):
            continue
    version = data.get("version", INDEX_VERSION)
    return VectorIndex(version=version if isinstance(version, int) else INDEX_VERSION, chunks=entries)


def save_index(path: Path, index: VectorIndex) -> None:
    write_json_atomic(path, index.to_dict())


# ------------------------------
# Mutation
# ------------------------------

def upsert_file(index: VectorIndex, path: str, file_hash: str, chunks: Sequence[Chunk],
                vectors: Sequence[List[float]], now: Optional[str] = None) -> int:
    """Replace every entry for path with one entry per (chunk, vector).

    Chunk ids are renumbered 0..n-1. Nothing is touched when the chunk and
    vector counts disagree.
    """
    if len(chunks) != len(vectors):
        raise ValueError(f"{path}: {len(chunks)} chunks but {len(vectors)} vectors")
    stamp = now or utc_now()
    fresh = [
        IndexEntry(
            path=path,
            hash=file_hash,
            chunk_id=i,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            vector=list(vector),
            updated_at=stamp,
        )
        for i, (chunk, vector) in enumerate(zip(chunks, vectors))
    ]
    index.chunks = [c for c in index.chunks if c.path != path]
    index.chunks.extend(fresh)
    return len(fresh)


def prune_files(index: VectorIndex, paths: Iterable[str]) -> int:
    drop = set(paths)
    if not drop:
        return 0
    before = len(index.chunks)
    index.chunks = [c for c in index.chunks if c.path not in drop]
    return before - len(index.chunks)
