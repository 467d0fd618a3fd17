from __future__ import annotations

import json
from typing import Callable, Dict, List, Optional, Tuple

import requests


class StubResponse:
    def __init__(self, status_code: int = 200, payload=None, text: Optional[str] = None):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        return json.loads(self.text)


class StubSession:
    """Routes get/post by URL path to handlers; records every call."""

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Callable]] = None):
        self.routes = dict(routes or {})
        self.calls: List[Tuple[str, str, Optional[dict]]] = []

    def _dispatch(self, method: str, url: str, payload):
        path = "/" + url.split("/", 3)[3]
        self.calls.append((method, path, payload))
        handler = self.routes.get((method, path))
        if handler is None:
            raise requests.ConnectionError(f"no route for {method} {path}")
        return handler(payload)

    def get(self, url, timeout=None, **kwargs):
        return self._dispatch("get", url, None)

    def post(self, url, json=None, timeout=None, **kwargs):
        return self._dispatch("post", url, json)


def fake_vector(text: str) -> List[float]:
    """Deterministic toy embedding: vowel counts plus a bias term."""
    lower = text.lower()
    return [float(lower.count(v)) for v in "aeiou"] + [1.0]


def ollama_routes(models=("gemma3:latest", "nomic-embed-text:latest"), answer="It is in src/app.py.",
                  fail_prompts=()):
    def tags(_payload):
        return StubResponse(payload={"models": [{"name": m} for m in models]})

    def embeddings(payload):
        if any(marker in payload["prompt"] for marker in fail_prompts):
            return StubResponse(status_code=500, text="boom")
        return StubResponse(payload={"embedding": fake_vector(payload["prompt"])})

    def chat(_payload):
        words = answer.split(" ")
        parts = [w + " " for w in words[:-1]] + words[-1:]
        return StubResponse(text="\n".join(json.dumps({"message": {"content": p}}) for p in parts))

    return {("get", "/api/tags"): tags, ("post", "/api/embeddings"): embeddings, ("post", "/api/chat"): chat}


