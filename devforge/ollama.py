"""Ollama client (embeddings, chat, model listing) and the paced embedding gateway."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Union

import requests

from devforge.errors import BadResponse, DevforgeError, MalformedResponse, ModelMissing, ServiceUnavailable

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"

UNAVAILABLE = "unavailable"
STATUS = "status"
MALFORMED = "malformed"


# ------------------------------
# Result variants for a single embedding call
# ------------------------------

@dataclass(frozen=True)
class EmbedSuccess:
    vector: List[float]


@dataclass(frozen=True)
class EmbedFailure:
    kind: str
    detail: str
    status: Optional[int] = None

    def error(self) -> DevforgeError:
        if self.kind == UNAVAILABLE:
            return ServiceUnavailable(self.detail)
        if self.kind == STATUS:
            return BadResponse(self.detail, status=self.status)
        return MalformedResponse(self.detail)

    def raise_for_kind(self) -> None:
        raise self.error()


EmbedResult = Union[EmbedSuccess, EmbedFailure]


def is_vector(value) -> bool:
    if not isinstance(value, list) or not value:
        return False
    return all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in value)


# ------------------------------
# Ollama client
# ------------------------------

class OllamaClient:
    def __init__(self, base_url: str = DEFAULT_OLLAMA_URL, timeout: int = 120, session=None):
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, timeout: Optional[int] = None, **kwargs) -> requests.Response:
        url = f"{self.base}{path}"
        try:
            r = getattr(self.session, method)(url, timeout=timeout or self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ServiceUnavailable(f"Ollama is not reachable at {self.base}: {e}") from e
        if not r.ok:
            raise BadResponse(f"{method.upper()} {path} failed (HTTP {r.status_code}): {r.text[:200]}",
                              status=r.status_code)
        return r

    def embed_one(self, model: str, text: str) -> EmbedResult:
        try:
            r = self._request("post", "/api/embeddings", json={"model": model, "prompt": text})
        except ServiceUnavailable as e:
            return EmbedFailure(UNAVAILABLE, str(e))
        except BadResponse as e:
            return EmbedFailure(STATUS, str(e), status=e.status)
        try:
            data = r.json()
        except ValueError:
            return EmbedFailure(MALFORMED, "embedding response is not JSON")
        vector = data.get("embedding") if isinstance(data, dict) else None
        if not is_vector(vector):
            return EmbedFailure(MALFORMED, "Invalid embedding response format")
        return EmbedSuccess([float(x) for x in vector])

    def list_models(self) -> List[str]:
        r = self._request("get", "/api/tags", timeout=10)
        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponse("model list is not JSON") from e
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [m["name"] for m in models if isinstance(m, dict) and "name" in m]

    def chat(self, model: str, messages: List[Dict], num_predict: int = 512, timeout: Optional[int] = None) -> str:
        """Return the raw response body; it may be one JSON object or JSON lines."""
        r = self._request(
            "post",
            "/api/chat",
            timeout=timeout,
            json={"model": model, "messages": messages, "options": {"num_predict": int(num_predict)}},
        )
        return r.text


def model_installed(required: str, installed: Sequence[str]) -> bool:
    if required in installed:
        return True
    return ":" not in required and f"{required}:latest" in installed


def check_ollama(client: OllamaClient, required_models: Sequence[str]) -> List[str]:
    """Preflight: the server answers and every required model is pulled."""
    try:
        installed = client.list_models()
    except (BadResponse, ServiceUnavailable) as e:
        raise ServiceUnavailable(f"Ollama is not running at {client.base}. Start it with: `ollama serve`") from e
    missing = [m for m in dict.fromkeys(required_models) if not model_installed(m, installed)]
    if missing:
        raise ModelMissing(missing)
    return installed


# ------------------------------
# Paced embedding gateway
# ------------------------------

@dataclass(frozen=True)
class PacingPolicy:
    batch_size: int = 10
    call_delay: float = 0.05
    batch_delay: float = 0.1
    retries: int = 0
    backoff: float = 0.5


class EmbeddingGateway:
    """Embed texts one request at a time, pausing between calls and batches.

    Vectors come back in input order. The first failing text raises the
    exception matching its failure kind; nothing partial is returned.
    """

    def __init__(self, client: OllamaClient, policy: Optional[PacingPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.policy = policy or PacingPolicy()
        self.sleep = sleep

    def _embed_with_retry(self, model: str, text: str) -> EmbedResult:
        result = self.client.embed_one(model, text)
        for attempt in range(self.policy.retries):
            if isinstance(result, EmbedSuccess) or result.kind == MALFORMED:
                break
            self.sleep(self.policy.backoff * (2 ** attempt))
            result = self.client.embed_one(model, text)
        return result

    def embed(self, model: str, texts: Sequence[str]) -> List[List[float]]:
        size = max(1, self.policy.batch_size)
        vectors: List[List[float]] = []
        for i in range(0, len(texts), size):
            if i > 0 and self.policy.batch_delay > 0:
                self.sleep(self.policy.batch_delay)
            batch = texts[i:i + size]
            for j, text in enumerate(batch):
                if j > 0 and self.policy.call_delay > 0:
                    self.sleep(self.policy.call_delay)
                result = self._embed_with_retry(model, text)
                if isinstance(result, EmbedFailure):
                    result.raise_for_kind()
                vectors.append(result.vector)
        return vectors
