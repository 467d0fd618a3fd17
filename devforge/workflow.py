"""The `read` (scan, diff, embed, persist) and `ask` (retrieve, answer) cycles."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from devforge.answer import answer_question
from devforge.chunking import Chunker, read_text_file
from devforge.config import DevforgeConfig, ensure_workspace, load_config
from devforge.errors import NoVectorsError
from devforge.index import VectorIndex, load_index, save_index
from devforge.manifest import Manifest, ManifestDelta, build_manifest, diff_manifest, load_manifest, save_manifest
from devforge.ollama import EmbeddingGateway, OllamaClient, check_ollama
from devforge.retrieval import ContextBlock, retrieve
from devforge.scan import FileRecord, scan_repo, tally_languages
from devforge.updater import UpdateResult, update_index

DOT_DIR = ".devforge"


@dataclass(frozen=True)
class DevforgePaths:
    root: Path
    dot: Path
    config: Path
    ignore: Path
    manifest: Path
    index: Path

    @staticmethod
    def for_root(root: Path) -> "DevforgePaths":
        root = Path(root)
        dot = root / DOT_DIR
        return DevforgePaths(
            root=root,
            dot=dot,
            config=dot / "config.json",
            ignore=dot / "ignore",
            manifest=dot / "manifest.json",
            index=dot / "index.json",
        )


@dataclass
class ReadReport:
    manifest: Manifest
    delta: ManifestDelta
    result: UpdateResult
    first_run: bool


@dataclass
class AskResult:
    answer: str
    blocks: List[ContextBlock]


def _quiet(*_args, **_kwargs) -> None:
    return None


def settle_records(current: List[FileRecord], previous: Optional[Manifest], failed: List[str]) -> List[FileRecord]:
    """Records to persist: failed files keep their old record, or are left out if new.

    Either way the next read sees them as added or changed and retries them.
    """
    if not failed:
        return list(current)
    failed_set = set(failed)
    prev: Dict[str, FileRecord] = {f.path: f for f in previous.files} if previous else {}
    out: List[FileRecord] = []
    for rec in current:
        if rec.path not in failed_set:
            out.append(rec)
        elif rec.path in prev:
            out.append(prev[rec.path])
    return out


def run_read(
    root: Path,
    config: Optional[DevforgeConfig] = None,
    force: bool = False,
    silent: bool = False,
    client: Optional[OllamaClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReadReport:
    log = _quiet if silent else print
    paths = DevforgePaths.for_root(root)

    if force:
        log("[INFO] --force: clearing manifest and index (keeping your settings)")
        for p in (paths.manifest, paths.index):
            if p.exists():
                p.unlink()
                log(f"[INFO]   deleted {p.name}")

    # ---- Preflight (Ollama + models) ----
    cfg = config or load_config(paths.config)
    client = client or OllamaClient(base_url=cfg.ollama_url, timeout=cfg.timeout)
    log(f"[INFO] Preflight: Ollama at {client.base}, models {cfg.chat_model}, {cfg.embed_model}")
    check_ollama(client, [cfg.chat_model, cfg.embed_model])

    wrote_cfg, wrote_ignore = ensure_workspace(paths.dot)
    if wrote_cfg:
        log(f"[OK] Created {DOT_DIR}/config.json")
    if wrote_ignore:
        log(f"[OK] Created {DOT_DIR}/ignore")

    # ---- Scan & diff ----
    scan = scan_repo(paths.root, cfg.include, cfg.exclude, cfg.max_file_kb, ignore_file=paths.ignore)
    previous = load_manifest(paths.manifest)
    delta = diff_manifest(previous, scan.files)
    if previous is None:
        log(f"[INFO] Scanned {len(scan.files)} files (no previous manifest)")
    else:
        log(f"[INFO] Scanned {len(scan.files)} files; added: {len(delta.added)}, "
            f"changed: {len(delta.changed)}, removed: {len(delta.removed)}")
    langs = ", ".join(f"{k}({v})" for k, v in scan.languages.items()) or "n/a"
    log(f"[INFO] Languages: {langs}")

    # ---- Embeddings for added/changed, prune removed ----
    # Without a manifest nothing can be marked removed, so the index starts over.
    if previous is None:
        index = VectorIndex()
    else:
        index = load_index(paths.index)
    result = update_index(
        index,
        delta,
        chunker=Chunker(max_chars=cfg.max_chars, overlap_chars=cfg.overlap_chars),
        gateway=EmbeddingGateway(client, cfg.pacing, sleep=sleep),
        embed_model=cfg.embed_model,
        file_reader=lambda rel: read_text_file(paths.root / rel),
        silent=silent,
    )

    records = settle_records(scan.files, previous, result.failed_paths)
    manifest = build_manifest(paths.root, records, tally_languages(records), cfg.max_file_kb, cfg.models)
    save_index(paths.index, index)
    save_manifest(paths.manifest, manifest)

    if result.pruned:
        log(f"[INFO] Pruned {result.pruned} stale chunks")
    if not delta.to_process():
        log("[INFO] No files changed; embeddings are up to date.")
    else:
        log(f"[OK] Embedded {result.processed} file(s), {result.new_chunks} chunk(s)")
    if result.errors:
        log(f"[WARN] {len(result.errors)} file(s) failed and will be retried on the next read")
    return ReadReport(manifest=manifest, delta=delta, result=result, first_run=previous is None)


def run_ask(
    root: Path,
    question: str,
    config: Optional[DevforgeConfig] = None,
    k: Optional[int] = None,
    max_tokens: int = 512,
    model: Optional[str] = None,
    refresh: bool = True,
    client: Optional[OllamaClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AskResult:
    paths = DevforgePaths.for_root(root)
    cfg = config or load_config(paths.config)
    client = client or OllamaClient(base_url=cfg.ollama_url, timeout=cfg.timeout)

    if refresh:
        run_read(paths.root, config=cfg, silent=True, client=client, sleep=sleep)

    index = load_index(paths.index)
    if not index.chunks:
        raise NoVectorsError("No vectors found. Run `devforge read` first.")

    query = EmbeddingGateway(client, cfg.pacing, sleep=sleep).embed(cfg.embed_model, [question])[0]
    blocks = retrieve(index, query, max(1, k or cfg.top_k), paths.root)
    answer = answer_question(client, model or cfg.chat_model, question, blocks, max_tokens=max_tokens)
    return AskResult(answer=answer, blocks=blocks)
