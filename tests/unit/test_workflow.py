from __future__ import annotations

from pathlib import Path

import pytest

from devforge.errors import ModelMissing, NoVectorsError
from devforge.index import load_index
from devforge.manifest import load_manifest
from devforge.ollama import OllamaClient
from devforge.retrieval import retrieve
from devforge.workflow import DevforgePaths, run_ask, run_read
from tests.helpers import StubSession, ollama_routes


def _no_sleep(_seconds: float) -> None:
    return None


def _repo(root: Path) -> Path:
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("def verify(token):\n    return token == 'ok'\n", encoding="utf-8")
    (root / "README.md").write_text("# Demo\nAuth lives in src/app.py\n", encoding="utf-8")
    return root


def _read(root: Path, client: OllamaClient, **kwargs):
    return run_read(root, silent=True, client=client, sleep=_no_sleep, **kwargs)


def test_second_read_without_changes_is_a_noop(tmp_path: Path, client: OllamaClient) -> None:
    root = _repo(tmp_path)
    paths = DevforgePaths.for_root(root)

    first = _read(root, client)
    index_bytes = paths.index.read_bytes()
    second = _read(root, client)

    assert first.first_run
    assert [f.path for f in first.delta.added] == ["README.md", "src/app.py"]
    assert second.delta.is_empty()
    assert second.result.processed == 0
    assert paths.index.read_bytes() == index_bytes
    assert paths.config.exists() and paths.ignore.exists()


def test_changed_and_removed_files_update_index(tmp_path: Path, client: OllamaClient) -> None:
    root = _repo(tmp_path)
    _read(root, client)

    (root / "src" / "app.py").write_text("def verify(token):\n    return False\n", encoding="utf-8")
    (root / "README.md").unlink()
    report = _read(root, client)

    assert [f.path for f in report.delta.changed] == ["src/app.py"]
    assert report.delta.removed == ["README.md"]
    index = load_index(DevforgePaths.for_root(root).index)
    assert index.paths() == ["src/app.py"]
    new_hash = report.manifest.hashes()["src/app.py"]
    assert {e.hash for e in index.chunks} == {new_hash}


def test_failed_files_are_retried_on_next_read(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    (root / "flaky.txt").write_text("FAIL once\n", encoding="utf-8")
    session = StubSession(ollama_routes(fail_prompts=("FAIL",)))
    client = OllamaClient(base_url="http://ollama.test:11434", session=session)

    first = _read(root, client)
    assert first.result.failed_paths == ["flaky.txt"]
    assert "flaky.txt" not in first.manifest.hashes()

    session.routes = ollama_routes()
    second = _read(root, client)
    assert [f.path for f in second.delta.added] == ["flaky.txt"]
    assert second.result.errors == []
    assert "flaky.txt" in load_manifest(DevforgePaths.for_root(root).manifest).hashes()


def test_force_clears_manifest_and_index(tmp_path: Path, client: OllamaClient) -> None:
    root = _repo(tmp_path)
    _read(root, client)

    report = _read(root, client, force=True)

    assert report.first_run
    assert len(report.delta.added) == 2


def test_preflight_failure_aborts_before_touching_disk(tmp_path: Path) -> None:
    root = _repo(tmp_path)
    client = OllamaClient(base_url="http://ollama.test:11434", session=StubSession(ollama_routes(models=())))

    with pytest.raises(ModelMissing):
        _read(root, client)

    assert not (root / ".devforge").exists()


def test_ask_retrieves_and_answers(tmp_path: Path, client: OllamaClient, stub_session) -> None:
    root = _repo(tmp_path)

    result = run_ask(root, "where is the token verified?", k=1, client=client, sleep=_no_sleep)

    assert result.answer == "It is in src/app.py."
    assert len(result.blocks) == 1
    assert result.blocks[0].text
    assert ("get", "/api/tags", None) in stub_session.calls


def test_ask_without_vectors_fails(tmp_path: Path, client: OllamaClient) -> None:
    root = _repo(tmp_path)

    with pytest.raises(NoVectorsError):
        run_ask(root, "anything?", refresh=False, client=client, sleep=_no_sleep)


def test_corrupt_manifest_rebuilds_index_without_deleted_files(tmp_path: Path, client: OllamaClient) -> None:
    root = _repo(tmp_path)
    paths = DevforgePaths.for_root(root)
    _read(root, client)

    paths.manifest.write_text("{not json", encoding="utf-8")
    (root / "README.md").unlink()
    report = _read(root, client)

    assert report.first_run
    index = load_index(paths.index)
    assert index.paths() == ["src/app.py"]
    blocks = retrieve(index, index.chunks[0].vector, 2, root)
    assert [b.path for b in blocks] == ["src/app.py"]
