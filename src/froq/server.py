"""Granian integration helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping

import msgspec
from granian import Granian

from .application import App
from .wsgi import WSGIAdapter


class ServerConfig(msgspec.Struct, frozen=True):
    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 1
    blocking_threads: int | None = None
    certificate_path: str | Path | None = None
    private_key_path: str | Path | None = None


def app_loader(app: App) -> Callable[[], WSGIAdapter]:
    """Return a Granian ``target_loader`` bound to ``app``."""

    def load() -> WSGIAdapter:
        return WSGIAdapter(app)

    return load


def _granian_kwargs(cfg: ServerConfig) -> Mapping[str, Any]:
    kwargs: dict[str, Any] = {
        "address": cfg.host,
        "port": cfg.port,
        "interface": "wsgi",
        "workers": cfg.workers,
    }
    if cfg.blocking_threads is not None:
        kwargs["blocking_threads"] = cfg.blocking_threads
    if (cfg.certificate_path is None) != (cfg.private_key_path is None):
        raise RuntimeError("TLS needs both certificate_path and private_key_path")
    if cfg.certificate_path is not None and cfg.private_key_path is not None:
        certificate, key = Path(cfg.certificate_path), Path(cfg.private_key_path)
        missing = [str(path) for path in (certificate, key) if not path.exists()]
        if missing:
            raise RuntimeError(f"TLS files not found: {', '.join(missing)}")
        kwargs["ssl_cert"] = certificate
        kwargs["ssl_key"] = key
    return kwargs


def create_server(app: App, config: ServerConfig | None = None) -> Granian:
    cfg = config or ServerConfig()
    # The target string is informational; workers load through app_loader.
    return Granian(f"froq:{cfg.host}:{cfg.port}", **_granian_kwargs(cfg))


def run(app: App, config: ServerConfig | None = None) -> None:
    server = create_server(app, config)
    app.router.freeze()
    server.serve(target_loader=app_loader(app), wrap_loader=False)


__all__ = ["ServerConfig", "app_loader", "create_server", "run"]
