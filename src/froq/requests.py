"""Request primitives."""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any, Iterable, TypeVar
from urllib.parse import parse_qsl

import msgspec

from .serialization import json_decode

T = TypeVar("T")

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

Params = Mapping[str, tuple[str, ...]]


class Headers(Mapping[str, str]):
    """Read-only, case-insensitive header mapping."""

    __slots__ = ("_items",)

    def __init__(self, headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None) -> None:
        pairs = headers.items() if isinstance(headers, Mapping) else (headers or ())
        items: dict[str, tuple[str, str]] = {}
        for name, value in pairs:
            items[name.lower()] = (name, value)
        self._items = items

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"


class ClientInfo(msgspec.Struct, frozen=True):
    ip: str | None = None
    user_agent: str | None = None
    language: str | None = None


def parse_params(raw: str | bytes) -> Params:
    """Parse a url-encoded string into ``{name: (value, ...)}``."""

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    parsed: dict[str, list[str]] = {}
    for key, value in parse_qsl(raw, keep_blank_values=True):
        parsed.setdefault(key, []).append(value)
    return MappingProxyType({key: tuple(values) for key, values in parsed.items()})


def parse_cookies(raw: str | None) -> Mapping[str, str]:
    cookies: dict[str, str] = {}
    if raw:
        for chunk in raw.split(";"):
            name, sep, value = chunk.strip().partition("=")
            if sep and name:
                cookies[name] = value.strip().strip('"')
    return MappingProxyType(cookies)


class Request:
    """Immutable snapshot of an incoming request.

    Built once at the host boundary (WSGI adapter, test client) and passed
    explicitly through the pipeline.
    """

    __slots__ = (
        "body",
        "body_params",
        "client",
        "cookies",
        "headers",
        "method",
        "path",
        "query_params",
        "query_string",
        "received_at",
        "scheme",
        "server_name",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        query_string: str = "",
        body: bytes = b"",
        scheme: str = "http",
        client_ip: str | None = None,
        server_name: str | None = None,
        received_at: float | None = None,
    ) -> None:
        setter = object.__setattr__
        method = method.upper()
        header_map = headers if isinstance(headers, Headers) else Headers(headers)
        setter(self, "method", method)
        setter(self, "path", path or "/")
        setter(self, "headers", header_map)
        setter(self, "query_string", query_string)
        setter(self, "query_params", parse_params(query_string))
        setter(self, "body", body)
        content_type = header_map.get("content-type", "").split(";", 1)[0].strip().lower()
        if method in _BODY_METHODS and content_type == _FORM_CONTENT_TYPE:
            setter(self, "body_params", parse_params(body))
        else:
            setter(self, "body_params", MappingProxyType({}))
        setter(self, "cookies", parse_cookies(header_map.get("cookie")))
        setter(self, "scheme", scheme.lower())
        setter(self, "server_name", server_name)
        setter(
            self,
            "client",
            ClientInfo(
                ip=client_ip,
                user_agent=header_map.get("user-agent"),
                language=_primary_language(header_map.get("accept-language")),
            ),
        )
        setter(self, "received_at", time.monotonic() if received_at is None else received_at)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"Request is immutable; cannot set {name!r}")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Request is immutable; cannot delete {name!r}")

    def __repr__(self) -> str:
        return f"Request({self.method} {self.path})"

    @property
    def host(self) -> str | None:
        return self.headers.get("host")

    @property
    def param_count(self) -> int:
        return len(self.query_params) + len(self.body_params)

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name, default)

    def query(self, name: str, default: str | None = None) -> str | None:
        values = self.query_params.get(name)
        return values[-1] if values else default

    def form(self, name: str, default: str | None = None) -> str | None:
        values = self.body_params.get(name)
        return values[-1] if values else default

    def cookie(self, name: str, default: str | None = None) -> str | None:
        return self.cookies.get(name, default)

    def is_method(self, method: str) -> bool:
        return self.method == method.upper()

    def json(self, model: type[T] | None = None) -> T | Any:
        """Decode the JSON body using :mod:`msgspec`."""

        payload = json_decode(self.body) if self.body else None
        if model is None:
            return payload
        return msgspec.convert(payload, type=model)

    def text(self) -> str:
        return self.body.decode()


def _primary_language(header: str | None) -> str | None:
    if not header:
        return None
    first = header.split(",", 1)[0].split(";", 1)[0].strip()
    return first or None


__all__ = ["ClientInfo", "Headers", "Params", "Request", "parse_cookies", "parse_params"]
