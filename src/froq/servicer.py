"""Named service registry."""

from __future__ import annotations

import inspect
from typing import Any, Callable, Mapping

ServiceFactory = Callable[..., Any]


class Servicer:
    """Map service names to factories, constructing each service once.

    A factory taking a positional parameter receives the servicer's owner
    (normally the :class:`~froq.application.App`).
    """

    def __init__(self, owner: Any = None) -> None:
        self._owner = owner
        self._factories: dict[str, ServiceFactory] = {}
        self._instances: dict[str, Any] = {}

    def add_service(self, name: str, factory: ServiceFactory) -> ServiceFactory:
        if not name:
            raise ValueError("Service name cannot be empty")
        if not callable(factory):
            raise TypeError(f"Service {name!r} factory must be callable")
        self._factories[name] = factory
        self._instances.pop(name, None)
        return factory

    def add_services(self, services: Mapping[str, ServiceFactory]) -> None:
        for name, factory in services.items():
            self.add_service(name, factory)

    def has_service(self, name: str) -> bool:
        return name in self._factories

    def get_service(self, name: str) -> Any:
        if name in self._instances:
            return self._instances[name]
        factory = self._factories.get(name)
        if factory is None:
            raise LookupError(f"No service registered for {name!r}")
        instance = factory(*self._arguments(factory))
        self._instances[name] = instance
        return instance

    def names(self) -> tuple[str, ...]:
        return tuple(self._factories)

    def _arguments(self, factory: ServiceFactory) -> tuple[Any, ...]:
        try:
            signature = inspect.signature(factory)
        except (TypeError, ValueError):  # pragma: no cover - builtins without signatures
            return ()
        positional = [
            p
            for p in signature.parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
        ]
        return (self._owner,) if positional else ()


__all__ = ["ServiceFactory", "Servicer"]
