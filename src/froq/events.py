"""Named lifecycle events."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]

BEFORE = "before"
AFTER = "after"
OUTPUT = "output"
ERROR = "error"

_NO_PAYLOAD: Any = object()


class Events:
    """Registry of listeners fired around dispatch.

    ``fire`` threads the payload through listeners in registration order: a
    listener returning something other than ``None`` replaces the payload.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, name: str, listener: Listener | None = None) -> Any:
        """Register ``listener`` for ``name``; usable as a decorator."""

        def register(func: Listener) -> Listener:
            self._listeners.setdefault(name, []).append(func)
            return func

        if listener is None:
            return register
        return register(listener)

    def off(self, name: str, listener: Listener | None = None) -> None:
        if listener is None:
            self._listeners.pop(name, None)
            return
        listeners = self._listeners.get(name, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(name, None)

    def has(self, name: str) -> bool:
        return bool(self._listeners.get(name))

    def fire(self, name: str, payload: Any = _NO_PAYLOAD) -> Any:
        for listener in tuple(self._listeners.get(name, ())):
            logger.debug("firing %s -> %r", name, listener)
            result = listener() if payload is _NO_PAYLOAD else listener(payload)
            if result is not None:
                payload = result
        return None if payload is _NO_PAYLOAD else payload


__all__ = ["AFTER", "BEFORE", "ERROR", "Events", "Listener", "OUTPUT"]
