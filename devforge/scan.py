"""Repository scanning: include/exclude resolution, size cap and content hashes."""

from __future__ import annotations

import hashlib
import math
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence

import pathspec


@dataclass(frozen=True)
class FileRecord:
    path: str
    size_kb: int
    hash: str

    def to_dict(self) -> Dict:
        return {"path": self.path, "sizeKB": self.size_kb, "hash": self.hash}

    @staticmethod
    def from_dict(data: Dict) -> "FileRecord":
        return FileRecord(path=str(data["path"]), size_kb=int(data.get("sizeKB", 0)), hash=str(data["hash"]))


@dataclass
class ScanResult:
    files: List[FileRecord]
    languages: Dict[str, int]


# ------------------------------
# Helpers
# ------------------------------

def sha256_file(path: Path, block: int = 1024 * 1024) -> str:
    """SHA-256 of the full file bytes. Only used to detect changes."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(block), b""):
            h.update(chunk)
    return h.hexdigest()


def find_repo_root(cwd: Optional[Path] = None) -> Path:
    start = (cwd or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if (candidate / ".git").exists():
            return candidate
    return start


def read_pattern_file(path: Path) -> List[str]:
    """Read one gitignore-style pattern per line, skipping blanks and comments."""
    if not path.exists():
        return []
    try:
        lines = path.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError:
        return []
    return [ln.strip() for ln in lines if ln.strip() and not ln.strip().startswith("#")]


# ------------------------------
# Ignore handling (config + .devforge/ignore + .gitignore)
# ------------------------------

def build_ignore_spec(root: Path, excludes: Sequence[str], ignore_file: Optional[Path] = None) -> pathspec.GitIgnoreSpec:
    patterns: List[str] = list(excludes or [])
    if ignore_file is not None:
        patterns.extend(read_pattern_file(ignore_file))
    patterns.extend(read_pattern_file(root / ".gitignore"))
    return pathspec.GitIgnoreSpec.from_lines(patterns)


def _is_hidden(rel: str) -> bool:
    return any(part.startswith(".") for part in PurePosixPath(rel).parts)


def iter_candidate_files(root: Path, include: pathspec.PathSpec, exclude: pathspec.PathSpec) -> Iterable[str]:
    """Yield POSIX-style relative paths in sorted walk order."""
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir
        kept = []
        for d in sorted(dirnames):
            rel = f"{rel_dir}/{d}" if rel_dir else d
            if d.startswith(".") or exclude.match_file(rel + "/"):
                continue
            kept.append(d)
        dirnames[:] = kept
        for name in sorted(filenames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if _is_hidden(rel):
                continue
            if not include.match_file(rel) or exclude.match_file(rel):
                continue
            yield rel


def extension_of(rel: str) -> str:
    return PurePosixPath(rel).suffix.lower().lstrip(".")


def tally_languages(files: Sequence[FileRecord]) -> Dict[str, int]:
    """Count extensions, case-insensitively; extensionless files are skipped."""
    languages: Dict[str, int] = {}
    for rec in files:
        ext = extension_of(rec.path)
        if ext:
            languages[ext] = languages.get(ext, 0) + 1
    return dict(sorted(languages.items()))


def scan_repo(
    root: Path,
    include: Sequence[str] = ("**/*",),
    exclude: Sequence[str] = (),
    max_file_kb: int = 256,
    ignore_file: Optional[Path] = None,
) -> ScanResult:
    """Scan files under root.

    Oversized or unreadable files are left out silently. The result is sorted
    by path so two scans of the same tree compare equal.
    """
    root = Path(root)
    include_spec = pathspec.GitIgnoreSpec.from_lines(list(include) or ["**/*"])
    exclude_spec = build_ignore_spec(root, exclude, ignore_file)

    files: List[FileRecord] = []
    for rel in iter_candidate_files(root, include_spec, exclude_spec):
        full = root / rel
        try:
            size_kb = math.ceil(full.stat().st_size / 1024)
            if size_kb > max_file_kb:
                continue
            digest = sha256_file(full)
        except OSError:
            continue
        files.append(FileRecord(path=rel, size_kb=size_kb, hash=digest))

    files.sort(key=lambda f: f.path)
    return ScanResult(files=files, languages=tally_languages(files))
