"""Incremental index update: prune removed files, re-embed added and changed ones."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from tqdm import tqdm

from devforge.chunking import Chunk
from devforge.errors import BadResponse, FileUnreadable, MalformedResponse, ServiceUnavailable
from devforge.index import VectorIndex, prune_files, upsert_file
from devforge.manifest import ManifestDelta
from devforge.ollama import EmbeddingGateway


@dataclass(frozen=True)
class FileError:
    path: str
    kind: str
    message: str


@dataclass
class UpdateResult:
    processed: int = 0
    new_chunks: int = 0
    pruned: int = 0
    errors: List[FileError] = field(default_factory=list)

    @property
    def failed_paths(self) -> List[str]:
        return [e.path for e in self.errors]


def _error_kind(exc: Exception) -> str:
    if isinstance(exc, (FileUnreadable, OSError)):
        return "unreadable"
    if isinstance(exc, ServiceUnavailable):
        return "unavailable"
    if isinstance(exc, BadResponse):
        return "status"
    if isinstance(exc, MalformedResponse):
        return "malformed"
    return "error"


def update_index(
    index: VectorIndex,
    delta: ManifestDelta,
    chunker: Callable[[str], List[Chunk]],
    gateway: EmbeddingGateway,
    embed_model: str,
    file_reader: Callable[[str], str],
    silent: bool = False,
    now: Optional[str] = None,
) -> UpdateResult:
    """Bring the index in line with one manifest delta.

    Removed paths are pruned first. Each added or changed file is read,
    chunked and embedded in one gateway call before its entries are swapped
    in, so a failure leaves that file's previous entries untouched. Failures
    are collected per file and never stop the loop.
    """
    result = UpdateResult()
    result.pruned = prune_files(index, delta.removed)

    todo = delta.to_process()
    for rec in tqdm(todo, desc="Embedding", unit="file", disable=silent or not todo):
        try:
            chunks = chunker(file_reader(rec.path))
            vectors = gateway.embed(embed_model, [c.text for c in chunks]) if chunks else []
            added = upsert_file(index, rec.path, rec.hash, chunks, vectors, now=now)
        except (FileUnreadable, OSError, ServiceUnavailable, BadResponse, MalformedResponse, ValueError) as e:
            err = FileError(path=rec.path, kind=_error_kind(e), message=str(e))
            result.errors.append(err)
            tqdm.write(f"[WARN] {rec.path}: {err.message}", file=sys.stderr)
            continue
        result.processed += 1
        result.new_chunks += added
    return result
