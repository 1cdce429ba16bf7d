"""Conversion of captured path parameters into annotated action arguments."""

from __future__ import annotations

import inspect
import types
from enum import Enum
from typing import Any, Callable, Mapping, Union, get_args, get_origin, get_type_hints

import msgspec

from .exceptions import HTTPError
from .http import Status

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def convert_param(value: str, annotation: Any, *, name: str) -> Any:
    """Convert the captured ``value`` into ``annotation``.

    Raises :class:`HTTPError` with a 400 status when the value does not fit.
    """

    if annotation in (str, Any, inspect.Parameter.empty) or annotation is None:
        return value
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        for option in get_args(annotation):
            if option is type(None):
                continue
            try:
                return convert_param(value, option, name=name)
            except HTTPError:
                continue
        raise _bad_param(name, annotation, value)
    if annotation is bool:
        lowered = value.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise _bad_param(name, annotation, value)
    if annotation in (int, float):
        try:
            return annotation(value)
        except ValueError as exc:
            raise _bad_param(name, annotation, value) from exc
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        try:
            return annotation(value)
        except ValueError as exc:
            raise _bad_param(name, annotation, value) from exc
    try:
        return msgspec.convert(value, type=annotation, strict=False)
    except msgspec.ValidationError as exc:
        raise _bad_param(name, annotation, value) from exc


def bind_params(func: Callable[..., Any], params: Mapping[str, str]) -> dict[str, Any]:
    """Return keyword arguments for ``func`` built from path ``params``.

    Only parameters named in the signature are bound; conversion follows the
    parameter annotations.
    """

    signature = inspect.signature(func)
    try:
        hints = get_type_hints(func)
    except (NameError, TypeError):
        hints = {}
    accepts_kwargs = any(p.kind is inspect.Parameter.VAR_KEYWORD for p in signature.parameters.values())
    arguments: dict[str, Any] = {}
    for key, raw in params.items():
        parameter = signature.parameters.get(key)
        if parameter is None:
            if accepts_kwargs:
                arguments[key] = raw
            continue
        annotation = hints.get(key, parameter.annotation)
        arguments[key] = convert_param(raw, annotation, name=key)
    return arguments


def _bad_param(name: str, annotation: Any, value: str) -> HTTPError:
    expected = getattr(annotation, "__name__", repr(annotation))
    return HTTPError(Status.BAD_REQUEST, {"param": name, "expected": expected, "value": value})


__all__ = ["bind_params", "convert_param"]
