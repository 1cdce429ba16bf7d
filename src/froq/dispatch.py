"""Request pipeline.

One :class:`Dispatcher` drives one request from admission to the sent
response. Every stage is recorded as a :class:`PipelineState` and transitions
are checked, so a request can only be sent once and only through one of the
normal, error or rejection paths.
"""

from __future__ import annotations

import logging
import traceback
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from .admission import Reject
from .buffering import OutputBuffer
from .controllers import RequestContext
from .events import AFTER, BEFORE, ERROR, OUTPUT
from .exceptions import HandlerError, HTTPError, PipelineError, ResponseAlreadySent
from .http import Status, is_error, reason_phrase
from .requests import Request
from .responses import UNSET, CollectingEmitter, Response, ResponseState
from .routing import ActionNotAllowed, ResolvedHandler

if TYPE_CHECKING:
    from .application import App

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    START = "start"
    ADMISSION_CHECKED = "admission_checked"
    DEFAULTS_APPLIED = "defaults_applied"
    BUFFER_OPENED = "buffer_opened"
    ROUTE_RESOLVED = "route_resolved"
    BEFORE_FIRED = "before_fired"
    HANDLER_INVOKED = "handler_invoked"
    AFTER_FIRED = "after_fired"
    BUFFER_CLOSED = "buffer_closed"
    SENT = "sent"
    END = "end"
    REJECTED = "rejected"
    RESOLUTION_FAILED = "resolution_failed"
    HANDLER_FAILED = "handler_failed"


_S = PipelineState

_TRANSITIONS: dict[PipelineState | None, frozenset[PipelineState]] = {
    None: frozenset({_S.START}),
    _S.START: frozenset({_S.ADMISSION_CHECKED}),
    # Defaults and collaborator handles can fail before a buffer exists.
    _S.ADMISSION_CHECKED: frozenset({_S.DEFAULTS_APPLIED, _S.REJECTED, _S.HANDLER_FAILED}),
    _S.REJECTED: frozenset({_S.SENT}),
    _S.DEFAULTS_APPLIED: frozenset({_S.BUFFER_OPENED}),
    # The error path re-opens a buffer and closes it without resolving.
    _S.BUFFER_OPENED: frozenset({_S.ROUTE_RESOLVED, _S.BUFFER_CLOSED}),
    _S.ROUTE_RESOLVED: frozenset({_S.BEFORE_FIRED, _S.RESOLUTION_FAILED, _S.HANDLER_FAILED}),
    _S.RESOLUTION_FAILED: frozenset({_S.SENT}),
    _S.BEFORE_FIRED: frozenset({_S.HANDLER_INVOKED, _S.HANDLER_FAILED}),
    _S.HANDLER_INVOKED: frozenset({_S.AFTER_FIRED, _S.HANDLER_FAILED}),
    _S.AFTER_FIRED: frozenset({_S.BUFFER_CLOSED, _S.HANDLER_FAILED}),
    _S.HANDLER_FAILED: frozenset({_S.BUFFER_OPENED}),
    _S.BUFFER_CLOSED: frozenset({_S.SENT}),
    _S.SENT: frozenset({_S.END}),
    _S.END: frozenset(),
}


class Dispatcher:
    def __init__(self, app: "App", request: Request) -> None:
        self.app = app
        self.request = request
        self.response = ResponseState(charset=app.config.encoding)
        self.buffer = OutputBuffer(output_hook=self._output_hook if app.events.has(OUTPUT) else None)
        self.context = RequestContext(app=app, request=request, response=self.response, buffer=self.buffer)
        self.trail: list[PipelineState] = []
        self.error: HandlerError | None = None
        self._observation: Any = None

    @property
    def state(self) -> PipelineState | None:
        return self.trail[-1] if self.trail else None

    def _enter(self, state: PipelineState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise PipelineError(f"Invalid pipeline transition {self.state} -> {state}")
        self.trail.append(state)

    def _output_hook(self, content: Any) -> Any:
        return self.app.events.fire(OUTPUT, content)

    # ------------------------------------------------------------------ pipeline
    def run(self) -> Response:
        app = self.app
        self._enter(_S.START)
        self._observation = app.observability.on_request_start(self.request)

        verdict = app.gate.check(self.request)
        self._enter(_S.ADMISSION_CHECKED)
        if isinstance(verdict, Reject):
            return self._reject(verdict)

        try:
            app.apply_defaults()
            self.context.session = app.open_session()
            self.context.database = app.open_database()
        except Exception as exc:
            self._handle_failure(exc)
            return self._send()
        self._enter(_S.DEFAULTS_APPLIED)

        self.buffer.begin()
        self._enter(_S.BUFFER_OPENED)

        resolution = app.resolve(self.request.method, self.request.path)
        self._enter(_S.ROUTE_RESOLVED)
        if not isinstance(resolution, ResolvedHandler):
            return self._resolution_failed(resolution)
        self.context.params = dict(resolution.params)

        try:
            body = self._invoke(resolution)
            self.buffer.end(self.response, body)
        except ResponseAlreadySent:
            raise
        except Exception as exc:
            self._handle_failure(exc)
        else:
            self._enter(_S.BUFFER_CLOSED)
        return self._send()

    def _invoke(self, resolution: ResolvedHandler) -> Any:
        app = self.app
        controller = app.controllers.create(resolution.controller, self.context)
        app.events.fire(BEFORE, self.context)
        self._enter(_S.BEFORE_FIRED)
        if callable(resolution.action):
            result = controller.call_callable(resolution.action, resolution.params)
        else:
            result = controller.call(resolution.action, resolution.params)
        self._enter(_S.HANDLER_INVOKED)
        # "after" is skipped when the handler raises; "error" fires instead.
        app.events.fire(AFTER, self.context)
        self._enter(_S.AFTER_FIRED)
        return UNSET if result is None else result

    # ------------------------------------------------------------------ terminal paths
    def _reject(self, verdict: Reject) -> Response:
        self._enter(_S.REJECTED)
        self.app.logger.warning("request rejected with %s: %s", verdict.status, verdict.reason)
        self.response.status = verdict.status
        self.response.set_body(None)
        return self._send()

    def _resolution_failed(self, failure: Any) -> Response:
        self._enter(_S.RESOLUTION_FAILED)
        self.buffer.discard()
        response = self.response
        response.status = failure.status
        if isinstance(failure, ActionNotAllowed) and failure.allowed:
            response.set_header("Allow", ", ".join(failure.allowed))
        logger.info("%s %s -> %s", failure.method, failure.path, failure.status)
        response.set_body(f"{failure.status} {reason_phrase(failure.status)}", content_type="text/plain")
        return self._send()

    def _handle_failure(self, error: Exception) -> None:
        app = self.app
        response = self.response
        status = _failure_status(error, response)
        self.error = HandlerError(error, status=status)
        self._enter(_S.HANDLER_FAILED)
        if status >= 500:
            self._guarded(app.logger.log_failure, error)
        else:
            self._guarded(app.logger.warning, "handler failed with %s: %s", status, error)
        self._guarded(app.observability.on_handler_error, self._observation, error, status_code=status)
        self._guarded(app.events.fire, ERROR, error)

        self.buffer.discard()
        response.status = status
        response.remove_header("Location")
        self.buffer.begin()
        self._enter(_S.BUFFER_OPENED)
        try:
            output = app.error(error, self.context)
        except Exception as render_error:
            app.logger.log_failure(render_error)
            output = None
        if app.config.show_errors and (output is None or isinstance(output, str)):
            detail = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            output = (detail + "\n\n" + (output or "")).strip()
        try:
            self.buffer.end(response, output, is_error=True)
        except ResponseAlreadySent:
            raise
        except Exception as hook_error:
            app.logger.log_failure(hook_error)
            self.buffer.discard()
            response.set_body(f"{status} {reason_phrase(status)}", content_type="text/plain")
        self._enter(_S.BUFFER_CLOSED)

    def _guarded(self, call: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Run an error-path collaborator; its own failure is logged, not raised."""

        try:
            call(*args, **kwargs)
        except ResponseAlreadySent:
            raise
        except Exception:
            logger.exception("error path collaborator %s failed", getattr(call, "__qualname__", call))

    def _send(self) -> Response:
        app = self.app
        response = self.response
        if self.buffer.depth:
            self.buffer.discard()
        if app.config.exposes_runtime():
            response.set_header("X-App-Runtime", f"{app.runtime():.4f}")
        emitter = CollectingEmitter()
        response.end(emitter, omit_body=self.request.method == "HEAD")
        self._enter(_S.SENT)
        final = emitter.response()
        app.observability.on_request_end(self._observation, final)
        self._enter(_S.END)
        return final


def _failure_status(error: Exception, response: ResponseState) -> int:
    if isinstance(error, HTTPError):
        return error.status
    if response.status_was_set and is_error(response.status):
        return response.status
    return int(Status.INTERNAL_SERVER_ERROR)


__all__ = ["Dispatcher", "PipelineState"]
