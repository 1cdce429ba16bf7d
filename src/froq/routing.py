"""Routing utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

import rure
from rure.regex import RegexObject

from .http import Status

Action = Union[str, Callable[..., Any]]

ANY_METHOD = "*"
DEFAULT_CONTROLLER = "@default"
DEFAULT_ACTION = "index"

_PATH_PARAM_PATTERN = re.compile(r"{([a-zA-Z_][a-zA-Z0-9_]*)(?::([a-zA-Z_][a-zA-Z0-9_]*))?}")
_METHOD_SEPARATORS = re.compile(r"[|,\s]+")


@dataclass(slots=True, frozen=True)
class HandlerRef:
    controller: str
    action: Action

    @classmethod
    def parse(cls, call: "HandlerRef | str | tuple[str, Action] | Callable[..., Any]") -> "HandlerRef":
        """Accept ``"Controller.action"``, ``"Controller"``, a pair or a callable."""

        if isinstance(call, HandlerRef):
            return call
        if isinstance(call, tuple):
            controller, action = call
            return cls(controller, action)
        if isinstance(call, str):
            controller, _, action = call.partition(".")
            if not controller:
                raise ValueError(f"Invalid handler reference: {call!r}")
            return cls(controller, action or DEFAULT_ACTION)
        if callable(call):
            return cls(DEFAULT_CONTROLLER, call)
        raise TypeError(f"Unsupported handler reference: {call!r}")


@dataclass(slots=True)
class Route:
    pattern: str
    methods: tuple[str, ...]
    handler: HandlerRef
    matcher: RegexObject
    param_names: tuple[str, ...]
    name: str | None = None

    def allows(self, method: str) -> bool:
        if ANY_METHOD in self.methods or method in self.methods:
            return True
        return method == "HEAD" and "GET" in self.methods

    def match(self, path: str) -> dict[str, str] | None:
        captures = self.matcher.match(path)
        if captures is None:
            return None
        params: dict[str, str] = {}
        for name in self.param_names:
            group = captures.group(name)
            if group is not None:
                params[name] = group
        return params


@dataclass(slots=True, frozen=True)
class ResolvedHandler:
    """Outcome of a successful resolution; always fully populated."""

    controller: str
    action: Action
    params: Mapping[str, str]
    route: Route | None = None


@dataclass(slots=True, frozen=True)
class RouteNotFound:
    """No route (or registered controller/action) serves the path."""

    method: str
    path: str
    detail: str = "no route"

    @property
    def status(self) -> int:
        return int(Status.NOT_FOUND)


@dataclass(slots=True, frozen=True)
class ActionNotAllowed:
    """A route serves the path but not with this method."""

    method: str
    path: str
    allowed: tuple[str, ...] = field(default=())

    @property
    def status(self) -> int:
        return int(Status.METHOD_NOT_ALLOWED)


RouteError = Union[RouteNotFound, ActionNotAllowed]
Resolution = Union[ResolvedHandler, RouteNotFound, ActionNotAllowed]


@dataclass(slots=True)
class RouteSpec:
    path: str
    methods: tuple[str, ...]
    name: str | None = None


class Router:
    def __init__(self) -> None:
        self._routes: tuple[Route, ...] = ()
        self._named: dict[str, Route] = {}
        self._frozen = False

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._routes

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def add_route(
        self,
        pattern: str,
        *,
        methods: Sequence[str] | str,
        handler: HandlerRef | str | tuple[str, Action] | Callable[..., Any],
        name: str | None = None,
    ) -> Route:
        if self._frozen:
            raise RuntimeError("Routes cannot be added once the application is serving")
        if not pattern.startswith("/"):
            pattern = "/" + pattern
        matcher, param_names = _compile_path(pattern)
        route = Route(
            pattern=pattern,
            methods=normalize_methods(methods),
            handler=HandlerRef.parse(handler),
            matcher=matcher,
            param_names=param_names,
            name=name,
        )
        # Copy-on-write so an in-flight resolve keeps iterating its own snapshot.
        self._routes = self._routes + (route,)
        if name is not None:
            self._named[name] = route
        return route

    def add_routes(self, routes: Mapping[str, Any]) -> list[Route]:
        """Register routes from config: ``{pattern: call}`` or ``{pattern: {method: call}}``."""

        added: list[Route] = []
        for pattern, call in routes.items():
            if isinstance(call, Mapping):
                for methods, target in call.items():
                    added.append(self.add_route(pattern, methods=methods, handler=target))
            else:
                added.append(self.add_route(pattern, methods=ANY_METHOD, handler=call))
        return added

    def resolve(self, method: str, path: str) -> Resolution:
        method = method.upper()
        allowed: list[str] = []
        for route in self._routes:
            params = route.match(path)
            if params is None:
                continue
            if route.allows(method):
                return ResolvedHandler(
                    controller=route.handler.controller,
                    action=route.handler.action,
                    params=params,
                    route=route,
                )
            allowed.extend(m for m in route.methods if m not in allowed)
        if allowed:
            return ActionNotAllowed(method=method, path=path, allowed=tuple(allowed))
        return RouteNotFound(method=method, path=path)

    def url_for(self, name: str, /, **params: Any) -> str:
        route = self._named.get(name)
        if route is None:
            raise LookupError(f"Route {name!r} not found")
        missing = [key for key in route.param_names if key not in params]
        if missing:
            raise KeyError(f"Missing value for route parameters: {', '.join(missing)}")
        return _PATH_PARAM_PATTERN.sub(lambda m: str(params[m.group(1)]), route.pattern)

    def include(self, handlers: Iterable[Callable[..., Any]], *, controller: str | None = None) -> None:
        """Register functions (or controller methods) decorated with :func:`route`."""

        for handler in handlers:
            spec: RouteSpec | None = getattr(handler, "__froq_route__", None)
            if spec is None:
                raise ValueError(f"Handler {handler!r} missing @route decorator metadata")
            target: Any = (controller, handler.__name__) if controller else handler
            self.add_route(spec.path, methods=spec.methods, handler=target, name=spec.name)


def normalize_methods(methods: Sequence[str] | str) -> tuple[str, ...]:
    if isinstance(methods, str):
        methods = [m for m in _METHOD_SEPARATORS.split(methods) if m]
    normalized = tuple(dict.fromkeys(m.upper() for m in methods))
    if not normalized or ANY_METHOD in normalized:
        return (ANY_METHOD,)
    return normalized


def route(
    path: str,
    *,
    methods: Sequence[str] | str,
    name: str | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, "__froq_route__", RouteSpec(path=path, methods=normalize_methods(methods), name=name))
        return func

    return decorator


def get(path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return route(path, methods=["GET"], name=name)


def post(path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return route(path, methods=["POST"], name=name)


def put(path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return route(path, methods=["PUT"], name=name)


def delete(path: str, *, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return route(path, methods=["DELETE"], name=name)


_REGEX_META = frozenset("\\.+*?()|[]{}^$")


def _escape_literal(text: str) -> str:
    return "".join("\\" + char if char in _REGEX_META else char for char in text)


def _compile_path(path: str) -> tuple[RegexObject, tuple[str, ...]]:
    param_names: list[str] = []
    pieces: list[str] = []
    position = 0
    for match in _PATH_PARAM_PATTERN.finditer(path):
        pieces.append(_escape_literal(path[position : match.start()]))
        name, converter = match.group(1), match.group(2)
        if name in param_names:
            raise ValueError(f"Duplicate path parameter {name!r} in {path!r}")
        param_names.append(name)
        if converter is None:
            pieces.append(f"(?P<{name}>[^/]+)")
        elif converter == "int":
            pieces.append(f"(?P<{name}>[0-9]+)")
        elif converter == "path":
            pieces.append(f"(?P<{name}>.*)")
        else:
            raise ValueError(f"Unsupported path converter: {converter}")
        position = match.end()
    pieces.append(_escape_literal(path[position:]))
    return rure.compile("^" + "".join(pieces) + "$"), tuple(param_names)


__all__ = [
    "ANY_METHOD",
    "DEFAULT_ACTION",
    "DEFAULT_CONTROLLER",
    "ActionNotAllowed",
    "HandlerRef",
    "ResolvedHandler",
    "Resolution",
    "Route",
    "RouteError",
    "RouteNotFound",
    "Router",
    "delete",
    "get",
    "normalize_methods",
    "post",
    "put",
    "route",
]
