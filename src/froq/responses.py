"""Response state and emission."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Literal, Protocol

import msgspec

from .exceptions import ResponseAlreadySent
from .http import Status, ensure_status
from .serialization import json_encode

UNSET = msgspec.UNSET
"""Marks a body that nobody has produced yet."""

Headers = tuple[tuple[str, str], ...]


class Cookie(msgspec.Struct, frozen=True):
    name: str
    value: str
    expires: datetime | None = None
    max_age: int | None = None
    path: str | None = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = False
    samesite: Literal["Lax", "Strict", "None"] | None = None

    def render(self) -> str:
        """Return the ``Set-Cookie`` header value."""

        parts = [f"{self.name}={self.value}"]
        if self.expires is not None:
            expires = self.expires if self.expires.tzinfo else self.expires.replace(tzinfo=timezone.utc)
            parts.append(f"Expires={format_datetime(expires.astimezone(timezone.utc), usegmt=True)}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)


class Response(msgspec.Struct, frozen=True):
    """Immutable record of what was sent to the client."""

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return default

    def header_values(self, name: str) -> list[str]:
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


class ResponseEmitter(Protocol):
    """Host-side sink for a finalized response.

    ``ResponseState.end`` calls the three methods exactly once each, in
    declaration order.
    """

    def emit_headers(self, status: int, headers: Headers) -> None: ...

    def emit_cookies(self, cookies: tuple[Cookie, ...]) -> None: ...

    def emit_body(self, body: bytes) -> None: ...


class CollectingEmitter:
    """Collect emissions into a :class:`Response`."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._status = int(Status.OK)
        self._headers: list[tuple[str, str]] = []
        self._body = b""

    def emit_headers(self, status: int, headers: Headers) -> None:
        self.calls.append("headers")
        self._status = status
        self._headers.extend(headers)

    def emit_cookies(self, cookies: tuple[Cookie, ...]) -> None:
        self.calls.append("cookies")
        self._headers.extend(("set-cookie", cookie.render()) for cookie in cookies)

    def emit_body(self, body: bytes) -> None:
        self.calls.append("body")
        self._body = body

    def response(self) -> Response:
        return Response(status=self._status, headers=tuple(self._headers), body=self._body)


class ResponseState:
    """Mutable response for one request; sent exactly once."""

    def __init__(self, *, charset: str | None = "UTF-8") -> None:
        self._status = int(Status.OK)
        self._headers: dict[str, tuple[str, str]] = {}
        self._cookies: list[Cookie] = []
        self._body: Any = UNSET
        self._content_type: str | None = "text/html"
        self.charset = charset
        self._sent = False
        self._status_set = False

    # ------------------------------------------------------------------ state
    @property
    def sent(self) -> bool:
        return self._sent

    def _ensure_open(self) -> None:
        if self._sent:
            raise ResponseAlreadySent("Response already sent")

    @property
    def status(self) -> int:
        return self._status

    @status.setter
    def status(self, value: int | Status) -> None:
        self._ensure_open()
        self._status = ensure_status(value)
        self._status_set = True

    @property
    def status_was_set(self) -> bool:
        return self._status_set

    # ------------------------------------------------------------------ headers
    def set_header(self, name: str, value: str) -> None:
        self._ensure_open()
        self._headers[name.lower()] = (name, value)

    def get_header(self, name: str, default: str | None = None) -> str | None:
        entry = self._headers.get(name.lower())
        return entry[1] if entry else default

    def remove_header(self, name: str) -> None:
        self._ensure_open()
        self._headers.pop(name.lower(), None)

    @property
    def headers(self) -> Headers:
        return tuple(self._headers.values())

    # ------------------------------------------------------------------ cookies
    def set_cookie(self, name: str, value: str, **options: Any) -> Cookie:
        self._ensure_open()
        cookie = Cookie(name=name, value=value, **options)
        self._cookies.append(cookie)
        return cookie

    def remove_cookie(self, name: str, *, path: str | None = "/") -> Cookie:
        return self.set_cookie(name, "", max_age=0, path=path)

    @property
    def cookies(self) -> tuple[Cookie, ...]:
        return tuple(self._cookies)

    # ------------------------------------------------------------------ body
    @property
    def body(self) -> Any:
        return self._body

    @property
    def content_type(self) -> str | None:
        return self._content_type

    @content_type.setter
    def content_type(self, value: str | None) -> None:
        self._ensure_open()
        self._content_type = value

    def set_body(self, content: Any, *, content_type: str | None | msgspec.UnsetType = UNSET) -> None:
        """Attach ``content``; ``None`` means "no content"."""

        self._ensure_open()
        if content_type is not UNSET:
            self._content_type = content_type
        if content is None or content is UNSET or isinstance(content, (str, bytes)):
            self._body = content
            if content is None:
                self._content_type = None
            return
        self._body = json_encode(content)
        if content_type is UNSET:
            self._content_type = "application/json"

    def redirect(self, location: str, status: int | Status = Status.FOUND) -> None:
        code = ensure_status(status)
        if not 300 <= code < 400:
            raise ValueError(f"Redirect status must be 3xx, got {code}")
        self.status = code
        self.set_header("Location", location)

    # ------------------------------------------------------------------ finalize
    def encoded_body(self) -> bytes:
        body = self._body
        if body is UNSET or body is None:
            return b""
        if isinstance(body, bytes):
            return body
        return str(body).encode(self.charset or "utf-8")

    def end(self, emitter: ResponseEmitter, *, omit_body: bool = False) -> None:
        """Emit headers, then cookies, then body, and freeze the response."""

        self._ensure_open()
        self._sent = True
        payload = self.encoded_body()
        headers = list(self._headers.values())
        has_body = self._body is not None and self._body is not UNSET
        if has_body and self._content_type is not None and "content-type" not in self._headers:
            content_type = self._content_type
            if self.charset and content_type.startswith("text/") and "charset=" not in content_type:
                content_type = f"{content_type}; charset={self.charset.lower()}"
            headers.append(("content-type", content_type))
        headers.append(("content-length", str(len(payload))))
        emitter.emit_headers(self._status, tuple(headers))
        emitter.emit_cookies(tuple(self._cookies))
        emitter.emit_body(b"" if omit_body else payload)



__all__ = [
    "UNSET",
    "CollectingEmitter",
    "Cookie",
    "Response",
    "ResponseEmitter",
    "ResponseState",
]
