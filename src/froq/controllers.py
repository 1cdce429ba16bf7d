"""Controllers and the per-request context handed to them."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Mapping

from .buffering import OutputBuffer
from .exceptions import HTTPError
from .http import Status, reason_phrase
from .requests import Request
from .responses import ResponseState
from .routing import DEFAULT_CONTROLLER, HandlerRef
from .typing_utils import bind_params

if TYPE_CHECKING:
    from .application import App

ControllerFactory = Callable[["RequestContext"], "Controller"]


@dataclass(slots=True)
class RequestContext:
    """Everything a handler may touch for one request."""

    app: "App"
    request: Request
    response: ResponseState
    buffer: OutputBuffer
    params: Mapping[str, str] = field(default_factory=dict)
    session: Any = None
    database: Any = None

    def echo(self, *parts: Any) -> None:
        for part in parts:
            self.buffer.write(part)

    def service(self, name: str) -> Any:
        return self.app.servicer.get_service(name)

    @property
    def config(self):
        return self.app.config


class Controller:
    """Base class for controllers registered with an application."""

    name: ClassVar[str | None] = None

    def __init__(self, context: RequestContext) -> None:
        self.context = context
        self.app = context.app
        self.request = context.request
        self.response = context.response

    @classmethod
    def defines_action(cls, action: str) -> bool:
        if action.startswith("_") or action in _RESERVED_ACTIONS:
            return False
        return callable(getattr(cls, action, None))

    def has_action(self, action: str) -> bool:
        return type(self).defines_action(action)

    def call(self, action: str, params: Mapping[str, str] | None = None) -> Any:
        if not self.has_action(action):
            raise LookupError(f"No action {action!r} on {type(self).__name__}")
        return self.call_callable(getattr(self, action), params)

    def call_callable(self, func: Callable[..., Any], params: Mapping[str, str] | None = None) -> Any:
        arguments = bind_params(func, params or {})
        arguments.update(self._injections(func, arguments))
        return func(**arguments)

    def forward(self, call: str | HandlerRef, *args: Any) -> Any:
        """Run another controller action (``"Controller.action"``) with ``args``."""

        ref = HandlerRef.parse(call)
        target = self.app.controllers.create(ref.controller, self.context)
        if callable(ref.action):
            return ref.action(*args)
        if not target.has_action(ref.action):
            raise LookupError(f"No action {ref.action!r} on {type(target).__name__}")
        return getattr(target, ref.action)(*args)

    def echo(self, *parts: Any) -> None:
        self.context.echo(*parts)

    def redirect(self, location: str, status: int | Status = Status.FOUND) -> None:
        self.response.redirect(location, status)

    def _injections(self, func: Callable[..., Any], bound: Mapping[str, Any]) -> dict[str, Any]:
        available: dict[str, Any] = {
            "context": self.context,
            "request": self.request,
            "response": self.response,
            "app": self.app,
            "params": dict(self.context.params),
        }
        injected: dict[str, Any] = {}
        for name, parameter in inspect.signature(func).parameters.items():
            if name in bound:
                continue
            annotation = parameter.annotation
            if annotation is RequestContext or annotation == "RequestContext":
                injected[name] = self.context
            elif annotation is Request or annotation == "Request":
                injected[name] = self.request
            elif annotation is ResponseState or annotation == "ResponseState":
                injected[name] = self.response
            elif name in available:
                injected[name] = available[name]
        return injected


_RESERVED_ACTIONS = frozenset(dir(Controller))


class DefaultController(Controller):
    """Serves callable routes and renders error pages."""

    name = DEFAULT_CONTROLLER

    def index(self) -> str:
        return ""

    def error(self, error: BaseException) -> Any:
        status = self.response.status
        if isinstance(error, HTTPError) and error.detail is not None:
            self.response.content_type = "application/json"
            return error.to_response_body()
        return f"{status} {reason_phrase(status)}"


class ControllerRegistry:
    """Controller name -> factory table populated at startup."""

    def __init__(self) -> None:
        self._factories: dict[str, ControllerFactory] = {DEFAULT_CONTROLLER: DefaultController}

    def register(self, name: str | None, factory: ControllerFactory) -> ControllerFactory:
        key = name or controller_name(factory)
        self._factories[key] = factory
        return factory

    def has(self, name: str) -> bool:
        return name in self._factories

    def has_action(self, name: str, action: str) -> bool:
        factory = self._factories.get(name)
        if factory is None:
            return False
        if isinstance(factory, type) and issubclass(factory, Controller):
            return factory.defines_action(action)
        return True

    def create(self, name: str, context: RequestContext) -> Controller:
        factory = self._factories.get(name)
        if factory is None:
            raise LookupError(f"No controller registered as {name!r}")
        return factory(context)

    def names(self) -> tuple[str, ...]:
        return tuple(self._factories)


def controller_name(factory: Any) -> str:
    explicit = getattr(factory, "name", None)
    if isinstance(explicit, str) and explicit:
        return explicit
    raw = getattr(factory, "__name__", None)
    if not raw:
        raise ValueError(f"Cannot derive a controller name from {factory!r}")
    if raw.endswith("Controller") and raw != "Controller":
        return raw[: -len("Controller")]
    return raw


__all__ = [
    "Controller",
    "ControllerFactory",
    "ControllerRegistry",
    "DefaultController",
    "RequestContext",
    "controller_name",
]
