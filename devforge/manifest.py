"""Manifest persistence and the added/changed/removed diff between two scans."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from devforge.scan import FileRecord
from devforge.storage import load_json, utc_now, write_json_atomic


@dataclass
class Manifest:
    root: str
    files: List[FileRecord]
    languages: Dict[str, int] = field(default_factory=dict)
    max_file_kb: int = 256
    models: Dict[str, str] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> Dict:
        return {
            "root": self.root,
            "files_total": len(self.files),
            "files_with_hashes": [f.to_dict() for f in self.files],
            "languages": self.languages,
            "max_file_kb": self.max_file_kb,
            "models": self.models,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: Dict) -> "Manifest":
        return Manifest(
            root=str(data.get("root", "")),
            files=[FileRecord.from_dict(f) for f in data.get("files_with_hashes", [])],
            languages=dict(data.get("languages", {})),
            max_file_kb=int(data.get("max_file_kb", 256)),
            models=dict(data.get("models", {})),
            created_at=str(data.get("created_at", "")),
        )

    def hashes(self) -> Dict[str, str]:
        return {f.path: f.hash for f in self.files}


@dataclass
class ManifestDelta:
    added: List[FileRecord] = field(default_factory=list)
    changed: List[FileRecord] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.changed or self.removed)

    def to_process(self) -> List[FileRecord]:
        return [*self.added, *self.changed]


def diff_manifest(previous: Optional[Manifest], current: Sequence[FileRecord]) -> ManifestDelta:
    """Compare the current scan to the previous manifest.

    Unchanged files (same path and hash) land in none of the three lists.
    """
    delta = ManifestDelta()
    if previous is None:
        delta.added = list(current)
        return delta

    prev = previous.hashes()
    seen = set()
    for rec in current:
        seen.add(rec.path)
        if rec.path not in prev:
            delta.added.append(rec)
        elif prev[rec.path] != rec.hash:
            delta.changed.append(rec)
    delta.removed = [f.path for f in previous.files if f.path not in seen]
    return delta


def build_manifest(root: Path, files: Sequence[FileRecord], languages: Dict[str, int], max_file_kb: int,
                   models: Dict[str, str]) -> Manifest:
    return Manifest(
        root=str(root),
        files=list(files),
        languages=dict(languages),
        max_file_kb=max_file_kb,
        models=dict(models),
        created_at=utc_now(),
    )


# ------------------------------
# Persistence
# ------------------------------

def load_manifest(path: Path) -> Optional[Manifest]:
    data = load_json(path)
    if data is None:
        return None
    try:
        return Manifest.from_dict(data)
    except (KeyError, TypeError, ValueError):
        return None


def save_manifest(path: Path, manifest: Manifest) -> None:
    write_json_atomic(path, manifest.to_dict())
