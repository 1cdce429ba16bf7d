"""Status codes for the request pipeline.

Codes are grouped by their leading digit into a :class:`StatusClass`; the
buffer and dispatcher only ever ask which class a code falls into.
"""

from __future__ import annotations

from enum import IntEnum
from http import HTTPStatus as _HTTPStatus


class Status(IntEnum):
    OK = 200
    NO_CONTENT = 204
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    TOO_MANY_REQUESTS = 429
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class StatusClass(IntEnum):
    INFORMATIONAL = 1
    SUCCESS = 2
    REDIRECT = 3
    CLIENT_ERROR = 4
    SERVER_ERROR = 5


_PHRASES: dict[int, str] = {status.value: status.phrase for status in _HTTPStatus}
UNKNOWN_PHRASE = "Unknown Status"


def ensure_status(status: int) -> int:
    """Return ``status`` as a plain ``int``; codes outside 100-599 raise ``ValueError``."""

    code = int(status)
    if not 100 <= code <= 599:
        raise ValueError(f"Invalid HTTP status code: {status}")
    return code


def status_class(status: int) -> StatusClass:
    return StatusClass(ensure_status(status) // 100)


def is_redirect(status: int) -> bool:
    return status_class(status) is StatusClass.REDIRECT


def is_error(status: int) -> bool:
    return status_class(status) >= StatusClass.CLIENT_ERROR


def reason_phrase(status: int) -> str:
    return _PHRASES.get(int(status), UNKNOWN_PHRASE)


def status_line(status: int) -> str:
    """``"<code> <reason>"`` for WSGI ``start_response``."""

    code = ensure_status(status)
    return f"{code} {reason_phrase(code)}"


__all__ = [
    "Status",
    "StatusClass",
    "UNKNOWN_PHRASE",
    "ensure_status",
    "is_error",
    "is_redirect",
    "reason_phrase",
    "status_class",
    "status_line",
]
