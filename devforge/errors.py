"""Exception taxonomy shared by the indexer, retriever and CLI."""

from __future__ import annotations

from typing import List, Optional


class DevforgeError(Exception):
    pass


class ServiceUnavailable(DevforgeError):
    """The Ollama endpoint could not be reached (refused, timed out)."""


class BadResponse(DevforgeError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedResponse(DevforgeError):
    """The service answered 2xx but the body did not have the expected shape."""


class ModelMissing(DevforgeError):
    def __init__(self, missing: List[str]):
        pulls = "\n  ".join(f"ollama pull {m}" for m in missing)
        super().__init__(f"Missing model(s): {', '.join(missing)}\nRun:\n  {pulls}")
        self.missing = list(missing)


class FileUnreadable(DevforgeError):
    pass


class NoVectorsError(DevforgeError):
    pass
