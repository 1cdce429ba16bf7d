"""Minimal Froq application.

Run ``pip install -e .`` once, then ``python example.py`` to serve the app on
``127.0.0.1:8000`` through Granian. ``FROQ_HOSTS`` (comma separated) turns on
the host allow-list; ``FROQ_ENV`` selects the environment name, and the
``X-App-Runtime`` header is exposed while it is ``development``.
"""

from __future__ import annotations

import os
from typing import Iterable

from froq import App, Controller, RequestContext
from froq.server import ServerConfig, run


def _parse_hosts(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    candidates: Iterable[str] = (host.strip() for host in raw.split(","))
    return tuple(sorted({host for host in candidates if host}))


class Clock:
    """Service reachable as ``/clock`` and ``/clock/since/<seconds>``."""

    def __init__(self, app: App) -> None:
        self.app = app

    def index(self) -> dict[str, float]:
        return {"uptime": self.app.runtime()}

    def since(self, seconds: float) -> str:
        return f"{self.app.runtime() - seconds:.2f}"


def create_app() -> App:
    app = App(
        {
            "env": os.getenv("FROQ_ENV", "development"),
            "hosts": _parse_hosts(os.getenv("FROQ_HOSTS")),
            "security": {"max_params": 50, "block_script_extensions": True},
            "expose_app_runtime": "development",
            "logger": {"level": "INFO"},
            "services": {"clock": Clock},
        }
    )

    @app.controller()
    class UserController(Controller):
        def show(self, id: int) -> str:
            return f"ok:{id}"

    app.get("/users/{id}", "User.show")

    @app.get("/")
    def home(context: RequestContext) -> None:
        context.echo("<h1>Froq</h1>")
        context.echo(f"<p>{context.request.method} {context.request.path}</p>")

    return app


if __name__ == "__main__":
    run(create_app(), ServerConfig(host=os.getenv("FROQ_HOST", "127.0.0.1"), port=int(os.getenv("FROQ_PORT", "8000"))))
