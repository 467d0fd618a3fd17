from __future__ import annotations

from typing import List

import pytest

from devforge.ollama import OllamaClient
from tests.helpers import StubSession, ollama_routes


@pytest.fixture
def stub_session() -> StubSession:
    return StubSession(ollama_routes())


@pytest.fixture
def client(stub_session) -> OllamaClient:
    return OllamaClient(base_url="http://ollama.test:11434", session=stub_session)


@pytest.fixture
def sleeps() -> List[float]:
    return []
