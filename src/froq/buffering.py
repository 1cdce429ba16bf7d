"""Scoped output capture for handlers.

Handlers may ``echo`` text instead of returning a body. Captured text lives
in nested :class:`BufferScope` levels owned by an :class:`OutputBuffer`, and
is reconciled with the handler's return value when the request ends.
"""

from __future__ import annotations

from typing import Any, Callable

from .http import is_redirect
from .responses import UNSET, ResponseState

OutputHook = Callable[[Any], Any]


class BufferScope:
    """One nested capture level. Release in LIFO order."""

    __slots__ = ("_buffer", "_chunks", "_released", "level")

    def __init__(self, buffer: "OutputBuffer", level: int) -> None:
        self._buffer = buffer
        self._chunks: list[str] = []
        self._released = False
        self.level = level

    @property
    def released(self) -> bool:
        return self._released

    def write(self, text: str) -> None:
        if self._released:
            raise RuntimeError("Buffer scope already released")
        self._chunks.append(text)

    def getvalue(self) -> str:
        return "".join(self._chunks)

    def release(self) -> str:
        """Close this scope and return what it captured."""

        return self._buffer._release(self)

    def __enter__(self) -> "BufferScope":
        return self

    def __exit__(self, *exc: Any) -> None:
        if not self._released:
            self.release()


class OutputBuffer:
    """Stack of capture scopes for a single request."""

    def __init__(self, *, output_hook: OutputHook | None = None) -> None:
        self._scopes: list[BufferScope] = []
        self._output_hook = output_hook
        self._hook_ran = False
        self.acquired = 0
        self.released = 0

    @property
    def depth(self) -> int:
        return len(self._scopes)

    def begin(self) -> BufferScope:
        scope = BufferScope(self, len(self._scopes) + 1)
        self._scopes.append(scope)
        self.acquired += 1
        return scope

    def write(self, text: Any) -> None:
        if not self._scopes:
            raise RuntimeError("No open buffer scope to write to")
        self._scopes[-1].write(text if isinstance(text, str) else str(text))

    def _release(self, scope: BufferScope) -> str:
        if scope._released:
            raise RuntimeError("Buffer scope already released")
        if not self._scopes or self._scopes[-1] is not scope:
            raise RuntimeError("Buffer scopes must be released innermost first")
        self._scopes.pop()
        scope._released = True
        self.released += 1
        return scope.getvalue()

    def drain(self) -> str:
        """Close every open scope, returning their text in acquisition order."""

        captured: list[str] = []
        while self._scopes:
            captured.append(self._scopes[-1].release())
        return "".join(reversed(captured))

    def discard(self) -> None:
        while self._scopes:
            self._scopes[-1].release()

    def end(self, response: ResponseState, explicit_body: Any = UNSET, *, is_error: bool = False) -> Any:
        """Reconcile captured output with ``explicit_body`` onto ``response``.

        Redirects drop all output and carry no content. Otherwise an explicit
        body wins, then a body the handler placed on ``response``, then the
        captured text. On the error path ``explicit_body`` is the rendered
        error page. Every open scope is closed before returning.
        """

        if is_redirect(response.status):
            self.discard()
            response.set_body(None)
            return None
        if is_error:
            self.discard()
            content = "" if explicit_body is UNSET or explicit_body is None else explicit_body
        elif explicit_body is not UNSET:
            self.discard()
            content = explicit_body
        else:
            captured = self.drain()
            existing = response.body
            content = existing if existing not in (UNSET, None, "", b"") else captured
        if self._output_hook is not None and not self._hook_ran:
            self._hook_ran = True
            content = self._output_hook(content)
        response.set_body(content)
        return content


__all__ = ["BufferScope", "OutputBuffer", "OutputHook"]
