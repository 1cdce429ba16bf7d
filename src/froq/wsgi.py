"""WSGI host boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterable, MutableMapping

from .http import status_line
from .requests import Request
from .responses import Response

if TYPE_CHECKING:
    from .application import App

WSGIEnvironment = MutableMapping[str, Any]
StartResponse = Callable[..., Any]

_UNPREFIXED_HEADERS = {"CONTENT_TYPE": "content-type", "CONTENT_LENGTH": "content-length"}


def _wsgi_str(value: str) -> str:
    # PEP 3333 hands bytes over as latin-1 decoded text.
    try:
        return value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value


def environ_headers(environ: WSGIEnvironment) -> list[tuple[str, str]]:
    """Headers the client actually sent; ``SERVER_NAME`` goes to ``Request.server_name``."""

    headers: list[tuple[str, str]] = []
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers.append((key[5:].replace("_", "-").lower(), value))
        elif key in _UNPREFIXED_HEADERS and value:
            headers.append((_UNPREFIXED_HEADERS[key], value))
    return headers


def _server_name(environ: WSGIEnvironment) -> str | None:
    name = environ.get("SERVER_NAME")
    if not name:
        return None
    port = str(environ.get("SERVER_PORT") or "")
    return f"{name}:{port}" if port and port not in ("80", "443") else name


def read_body(environ: WSGIEnvironment) -> bytes:
    stream = environ.get("wsgi.input")
    if stream is None:
        return b""
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if length <= 0:
        return b""
    return stream.read(length)


def request_from_environ(environ: WSGIEnvironment) -> Request:
    """Snapshot a WSGI environ into a :class:`Request`."""

    return Request(
        method=environ.get("REQUEST_METHOD", "GET"),
        path=_wsgi_str(environ.get("PATH_INFO") or "/"),
        headers=environ_headers(environ),
        query_string=_wsgi_str(environ.get("QUERY_STRING", "")),
        body=read_body(environ),
        scheme=environ.get("wsgi.url_scheme", "http"),
        client_ip=environ.get("REMOTE_ADDR"),
        server_name=_server_name(environ),
    )


class WSGIAdapter:
    """Run an :class:`~froq.application.App` behind a WSGI server."""

    def __init__(self, app: "App") -> None:
        self.app = app

    def __call__(self, environ: WSGIEnvironment, start_response: StartResponse) -> Iterable[bytes]:
        request = request_from_environ(environ)
        response = self.app.run(request)
        return self.respond(response, start_response)

    @staticmethod
    def respond(response: Response, start_response: StartResponse) -> list[bytes]:
        start_response(status_line(response.status), list(response.headers))
        return [response.body] if response.body else []


__all__ = [
    "StartResponse",
    "WSGIAdapter",
    "WSGIEnvironment",
    "environ_headers",
    "read_body",
    "request_from_environ",
]
