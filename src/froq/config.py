"""Application configuration objects."""

from __future__ import annotations

from typing import Any, Mapping

import msgspec
from msgspec import Struct

from .observability import ObservabilityConfig


class SecurityConfig(Struct, frozen=True):
    """Admission limits; ``None`` disables a rule."""

    max_params: int | None = None
    require_user_agent: bool | None = None
    block_script_extensions: bool | None = None


class LoggerConfig(Struct, frozen=True):
    level: str = "WARNING"
    directory: str | None = None


class AppConfig(Struct, frozen=True):
    """Typed, read-only configuration for an :class:`~froq.application.App`."""

    env: str = "development"
    root: str = "/"
    hosts: tuple[str, ...] = ()
    security: SecurityConfig = SecurityConfig()
    load_avg_ceiling: float | None = None
    logger: LoggerConfig = LoggerConfig()
    timezone: str | None = None
    encoding: str | None = "UTF-8"
    locales: dict[str, str] = {}
    show_errors: bool = False
    expose_app_runtime: bool | str = False
    session: dict[str, Any] | None = None
    database: dict[str, Any] | None = None
    routes: dict[str, Any] = {}
    services: dict[str, Any] = {}
    observability: ObservabilityConfig = ObservabilityConfig()

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dotted ``key`` such as ``"security.max_params"``."""

        node: Any = self
        for part in key.split("."):
            if isinstance(node, Struct):
                if part not in node.__struct_fields__:
                    return default
                node = getattr(node, part)
            elif isinstance(node, Mapping):
                if part not in node:
                    return default
                node = node[part]
            else:
                return default
        return node

    def exposes_runtime(self) -> bool:
        flag = self.expose_app_runtime
        return flag is True or (isinstance(flag, str) and flag == self.env)


def load_config(config: AppConfig | Mapping[str, Any] | None) -> AppConfig:
    """Build an :class:`AppConfig` from a mapping (or pass one through)."""

    if config is None:
        return AppConfig()
    if isinstance(config, AppConfig):
        return config
    return msgspec.convert(dict(config), type=AppConfig)


def merge_config(base: AppConfig, updates: Mapping[str, Any]) -> AppConfig:
    """Return ``base`` with ``updates`` deep-merged on top of it."""

    merged = _deep_merge(_as_mapping(base), updates)
    return msgspec.convert(merged, type=AppConfig)


def _as_mapping(config: Struct) -> dict[str, Any]:
    return {
        name: _as_mapping(value) if isinstance(value, Struct) else value
        for name, value in msgspec.structs.asdict(config).items()
    }


def _deep_merge(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in updates.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(current, value)
        else:
            result[key] = value
    return result


__all__ = ["AppConfig", "LoggerConfig", "SecurityConfig", "load_config", "merge_config"]
