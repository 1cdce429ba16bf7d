"""Application core."""

from __future__ import annotations

import inspect
import locale
import logging
import os
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence

from .admission import AdmissionGate, AdmissionPolicy, LoadAverage
from .config import AppConfig, load_config, merge_config
from .controllers import Controller, ControllerFactory, ControllerRegistry, DefaultController, RequestContext
from .dispatch import Dispatcher
from .events import Events
from .exceptions import FroqError
from .logger import AppLogger
from .observability import Observability
from .requests import Request
from .responses import Response
from .routing import (
    DEFAULT_ACTION,
    DEFAULT_CONTROLLER,
    Action,
    HandlerRef,
    ResolvedHandler,
    Resolution,
    Route,
    RouteNotFound,
    Router,
)
from .servicer import ServiceFactory, Servicer

if TYPE_CHECKING:
    from .wsgi import StartResponse, WSGIEnvironment

logger = logging.getLogger(__name__)

HandlerTarget = HandlerRef | str | tuple[str, Action] | Callable[..., Any]
ResourceFactory = Callable[[Mapping[str, Any]], Any]
ErrorRenderer = Callable[[BaseException, RequestContext], Any]


class App:
    """Central application object.

    Holds the read-only route table, controllers, services and configuration
    shared by every request. Each call to :meth:`run` drives a fresh
    :class:`~froq.dispatch.Dispatcher`.
    """

    def __init__(
        self,
        config: AppConfig | Mapping[str, Any] | None = None,
        *,
        logger: AppLogger | None = None,
        events: Events | None = None,
        observability: Observability | None = None,
        session_factory: ResourceFactory | None = None,
        database_factory: ResourceFactory | None = None,
        load_average: LoadAverage | None = None,
    ) -> None:
        self.config = load_config(config)
        self.router = Router()
        self.controllers = ControllerRegistry()
        self.servicer = Servicer(self)
        self.events = events or Events()
        self.logger = logger or AppLogger(self.config.logger)
        self.observability = observability or Observability(self.config.observability)
        self.session_factory = session_factory
        self.database_factory = database_factory
        self.error_renderer: ErrorRenderer | None = None
        self._load_average = load_average
        self.gate = AdmissionGate(AdmissionPolicy.from_config(self.config), load_average=load_average)
        self._started = time.monotonic()
        self._applied_defaults: tuple[Any, ...] | None = None
        self._register_config_sections(self.config.routes, self.config.services)

    # ------------------------------------------------------------------ configuration
    def configure(self, updates: Mapping[str, Any]) -> AppConfig:
        """Merge ``updates`` into the configuration and apply its side effects."""

        self.config = merge_config(self.config, updates)
        logger.debug("configuration updated: %s", ", ".join(sorted(updates)))
        self.logger.configure(self.config.logger)
        self.gate = AdmissionGate(AdmissionPolicy.from_config(self.config), load_average=self._load_average)
        self._register_config_sections(updates.get("routes") or {}, updates.get("services") or {})
        return self.config

    def _register_config_sections(self, routes: Mapping[str, Any], services: Mapping[str, Any]) -> None:
        if routes:
            self.router.add_routes(routes)
        if services:
            self.servicer.add_services(services)

    def apply_defaults(self) -> None:
        """Apply timezone and locales from configuration once per change."""

        config = self.config
        wanted = (config.timezone, tuple(sorted(config.locales.items())))
        if wanted == self._applied_defaults:
            return
        if config.timezone:
            os.environ["TZ"] = config.timezone
            if hasattr(time, "tzset"):
                time.tzset()
        for name, value in config.locales.items():
            category = getattr(locale, name.upper(), None)
            if not isinstance(category, int):
                raise FroqError(f"Unknown locale category: {name!r}")
            try:
                locale.setlocale(category, value)
            except locale.Error:
                self.logger.warning("locale %s=%s is not available", name, value)
        self._applied_defaults = wanted

    # ------------------------------------------------------------------ routing
    def route(self, pattern: str, methods: Sequence[str] | str, call: HandlerTarget | None = None, *, name: str | None = None) -> Any:
        """Register ``call`` for ``pattern``; without ``call`` act as a decorator."""

        if call is None:

            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                self.router.add_route(pattern, methods=methods, handler=func, name=name)
                return func

            return decorator
        self.router.add_route(pattern, methods=methods, handler=call, name=name)
        return self

    def get(self, pattern: str, call: HandlerTarget | None = None, *, name: str | None = None) -> Any:
        return self.route(pattern, ("GET",), call, name=name)

    def post(self, pattern: str, call: HandlerTarget | None = None, *, name: str | None = None) -> Any:
        return self.route(pattern, ("POST",), call, name=name)

    def put(self, pattern: str, call: HandlerTarget | None = None, *, name: str | None = None) -> Any:
        return self.route(pattern, ("PUT",), call, name=name)

    def delete(self, pattern: str, call: HandlerTarget | None = None, *, name: str | None = None) -> Any:
        return self.route(pattern, ("DELETE",), call, name=name)

    def include(self, *handlers: Callable[..., Any], controller: str | None = None) -> None:
        self.router.include(handlers, controller=controller)

    def url_for(self, name: str, /, **params: Any) -> str:
        path = self.router.url_for(name, **params)
        root = self.config.root.rstrip("/")
        return root + path if root else path

    @property
    def routes(self) -> tuple[Route, ...]:
        return self.router.routes

    # ------------------------------------------------------------------ controllers & services
    def controller(self, name: str | None = None) -> Callable[[type[Controller]], type[Controller]]:
        """Class decorator registering a controller under ``name``."""

        def decorator(cls: type[Controller]) -> type[Controller]:
            self.controllers.register(name, cls)
            return cls

        return decorator

    def register_controller(self, factory: ControllerFactory, name: str | None = None) -> None:
        self.controllers.register(name, factory)

    def service(self, name: str, factory: ServiceFactory | None = None) -> Any:
        """Return the service ``name``, or register ``factory`` for it."""

        if factory is None:
            return self.servicer.get_service(name)
        self.servicer.add_service(name, factory)
        return self

    def open_session(self) -> Any:
        if self.session_factory is None or self.config.session is None:
            return None
        return self.session_factory(self.config.session)

    def open_database(self) -> Any:
        if self.database_factory is None or self.config.database is None:
            return None
        return self.database_factory(self.config.database)

    # ------------------------------------------------------------------ request handling
    def resolve(self, method: str, path: str) -> Resolution:
        """Resolve ``path`` (relative to ``root``) to a handler, service or failure."""

        relative = self._relative_path(path)
        if relative is None:
            return RouteNotFound(method=method.upper(), path=path, detail="outside application root")
        resolution = self.router.resolve(method, relative)
        if isinstance(resolution, ResolvedHandler):
            if callable(resolution.action):
                return resolution
            if not self.controllers.has(resolution.controller):
                return RouteNotFound(method.upper(), path, f"no controller {resolution.controller!r}")
            if not self.controllers.has_action(resolution.controller, resolution.action):
                return RouteNotFound(method.upper(), path, f"no action {resolution.controller}.{resolution.action}")
            return resolution
        if isinstance(resolution, RouteNotFound):
            return self._resolve_service(relative) or resolution
        return resolution

    def _resolve_service(self, path: str) -> ResolvedHandler | None:
        segments = [segment for segment in path.split("/") if segment]
        if not segments or not self.servicer.has_service(segments[0]):
            return None
        service = self.servicer.get_service(segments[0])
        action_name = segments[1] if len(segments) > 1 else DEFAULT_ACTION
        if action_name.startswith("_"):
            return None
        target = getattr(service, action_name, None)
        if not callable(target):
            if len(segments) == 1 and callable(service):
                target = service
            else:
                return None
        params = dict(zip(_positional_names(target), segments[2:]))
        return ResolvedHandler(controller=DEFAULT_CONTROLLER, action=target, params=params)

    def _relative_path(self, path: str) -> str | None:
        root = self.config.root.rstrip("/")
        if not root:
            return path
        if path == root:
            return "/"
        if path.startswith(root + "/"):
            return path[len(root) :]
        return None

    def is_root(self, request: Request) -> bool:
        root = self.config.root
        return request.path == root or request.path.rstrip("/") == root.rstrip("/")

    def dispatcher(self, request: Request) -> Dispatcher:
        if not self.config.env or not self.config.root:
            raise FroqError("App env or root cannot be empty")
        self.router.freeze()
        return Dispatcher(self, request)

    def run(self, request: Request) -> Response:
        """Handle ``request`` and return the response that was sent."""

        return self.dispatcher(request).run()

    def error(self, error: BaseException, context: RequestContext) -> Any:
        """Render the body for a failed request."""

        if self.error_renderer is not None:
            return self.error_renderer(error, context)
        return DefaultController(context).error(error)

    def runtime(self) -> float:
        return round(time.monotonic() - self._started, 4)

    # ------------------------------------------------------------------ interface adapters
    def __call__(self, environ: "WSGIEnvironment", start_response: "StartResponse") -> Iterable[bytes]:
        from .wsgi import WSGIAdapter

        return WSGIAdapter(self)(environ, start_response)


def _positional_names(func: Callable[..., Any]) -> list[str]:
    try:
        parameters = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return []
    return [p.name for p in parameters if p.kind is inspect.Parameter.POSITIONAL_OR_KEYWORD]


__all__ = ["App", "ErrorRenderer", "ResourceFactory"]
