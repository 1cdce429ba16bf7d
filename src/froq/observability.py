"""Tracing and error tracking around the request pipeline."""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any, Mapping

import msgspec

if TYPE_CHECKING:
    from .requests import Request
    from .responses import Response


class ObservabilityConfig(msgspec.Struct, frozen=True):
    """Top-level observability configuration."""

    enabled: bool = True
    opentelemetry_enabled: bool = True
    opentelemetry_tracer: str = "froq"
    span_name: str = "froq.request"
    sentry_enabled: bool = True
    sentry_capture_exceptions: bool = True
    sentry_breadcrumb_category: str = "froq"


class _ObservationContext:
    __slots__ = ("attributes", "failed", "span", "stack", "start")

    def __init__(self, *, start: float, stack: ExitStack, span: Any | None, attributes: Mapping[str, Any]) -> None:
        self.start = start
        self.stack = stack
        self.span = span
        self.attributes = dict(attributes)
        self.failed = False

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000.0

    def close(self) -> None:
        self.stack.__exit__(None, None, None)


class Observability:
    """Coordinate tracing, error tracking and request logging providers."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        self.config = config or ObservabilityConfig()
        self._tracer = None
        self._server_span_kind = None
        self._status_cls = None
        self._status_ok = None
        self._status_error = None
        self._sentry: Any | None = None
        self._logger = logging.getLogger("froq.observability")
        if self.config.enabled:
            self._prepare_opentelemetry()
            self._prepare_sentry()
        self._enabled = self.config.enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _prepare_opentelemetry(self) -> None:
        if not self.config.opentelemetry_enabled:
            return
        try:
            from opentelemetry import trace  # type: ignore[import-not-found]
            from opentelemetry.trace import SpanKind, Status, StatusCode  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._tracer = trace.get_tracer(self.config.opentelemetry_tracer)
        self._server_span_kind = SpanKind.SERVER
        self._status_cls = Status
        self._status_ok = StatusCode.OK
        self._status_error = StatusCode.ERROR

    def _prepare_sentry(self) -> None:
        if not self.config.sentry_enabled:
            return
        try:
            import sentry_sdk  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._sentry = sentry_sdk

    def _status(self, code: Any, description: str | None = None) -> Any | None:
        if self._status_cls is None or code is None:
            return None
        if description is None:
            return self._status_cls(code)
        return self._status_cls(code, description=description)

    def on_request_start(self, request: "Request") -> _ObservationContext | None:
        if not self._enabled:
            return None
        attributes = {"http.method": request.method, "http.target": request.path}
        if request.host:
            attributes["http.host"] = request.host
        stack = ExitStack()
        span = None
        if self._tracer is not None:
            span = stack.enter_context(
                self._tracer.start_as_current_span(self.config.span_name, kind=self._server_span_kind)
            )
            for key, value in attributes.items():
                span.set_attribute(key, value)
        if self._sentry is not None:
            self._sentry.add_breadcrumb(
                category=self.config.sentry_breadcrumb_category,
                message=f"{request.method} {request.path}",
                level="info",
            )
        return _ObservationContext(start=time.perf_counter(), stack=stack, span=span, attributes=attributes)

    def on_handler_error(
        self,
        context: _ObservationContext | None,
        error: BaseException,
        *,
        status_code: int,
    ) -> None:
        if context is not None:
            context.failed = True
            if context.span is not None:
                context.span.set_attribute("http.result", "error")
                context.span.record_exception(error)
                status = self._status(self._status_error, description=str(error))
                if status is not None:
                    context.span.set_status(status)
        if self._sentry is not None and self.config.sentry_capture_exceptions and status_code >= 500:
            self._sentry.capture_exception(error)

    def on_request_end(self, context: _ObservationContext | None, response: "Response") -> None:
        if context is None:
            return
        if context.span is not None:
            context.span.set_attribute("http.status_code", response.status)
            if not context.failed:
                context.span.set_attribute("http.result", "success")
                status = self._status(self._status_ok)
                if status is not None:
                    context.span.set_status(status)
        self._logger.debug(
            "request complete",
            extra={**context.attributes, "http.status_code": response.status, "duration_ms": context.elapsed_ms},
        )
        context.close()


__all__ = ["Observability", "ObservabilityConfig"]
