from __future__ import annotations

from typing import Any, Protocol, cast

import msgspec


class _JSONModule(Protocol):
    def encode(self, obj: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


_json = cast(_JSONModule, getattr(msgspec, "json"))


def _sanitize_for_json(value: Any) -> Any:
    if isinstance(value, msgspec.Struct):
        return {key: _sanitize_for_json(val) for key, val in msgspec.structs.asdict(value).items()}
    if isinstance(value, dict):
        return {key: _sanitize_for_json(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize_for_json(item) for item in value]
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return value


def json_encode(value: Any) -> bytes:
    """Serialize ``value`` to JSON bytes using msgspec."""

    return _json.encode(_sanitize_for_json(value))


def json_decode(data: bytes) -> Any:
    """Deserialize JSON ``data`` into native Python values."""

    return _json.decode(data)
