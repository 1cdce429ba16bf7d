"""Framework exception types."""

from __future__ import annotations

from typing import Any

from .http import Status, ensure_status, reason_phrase
from .serialization import json_encode


class FroqError(Exception):
    """Base error type."""


class HTTPError(FroqError):
    """Structured HTTP error that is msgspec serializable.

    Raised by handlers (or by parameter conversion) to fail a request with a
    specific status instead of the generic 500.
    """

    def __init__(self, status: int | Status, detail: Any = None) -> None:
        status_code = ensure_status(status)
        super().__init__(status_code, detail)
        self.status = status_code
        self.detail = detail
        self.reason = reason_phrase(status_code)

    def to_response_body(self) -> bytes:
        return json_encode({"error": {"status": self.status, "reason": self.reason, "detail": self.detail}})


class AdmissionRejected(FroqError):
    """A request was refused by the admission gate before dispatch."""

    def __init__(self, status: int | Status, reason: str) -> None:
        status_code = ensure_status(status)
        super().__init__(status_code, reason)
        self.status = status_code
        self.reason = reason


class HandlerError(FroqError):
    """Wraps an exception escaping a handler once it has been captured."""

    def __init__(self, error: BaseException, *, status: int) -> None:
        super().__init__(f"{type(error).__name__}: {error}")
        self.error = error
        self.status = status


class ResponseAlreadySent(FroqError):
    """The response was finalized already; it can be sent only once."""


class PipelineError(FroqError):
    """The dispatcher was driven into an invalid state transition."""


__all__ = [
    "AdmissionRejected",
    "FroqError",
    "HTTPError",
    "HandlerError",
    "PipelineError",
    "ResponseAlreadySent",
]
