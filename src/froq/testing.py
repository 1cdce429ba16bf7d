"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode

from .application import App
from .requests import Request
from .responses import Response
from .serialization import json_encode


class TestClient:
    """Synchronous client that runs requests through an app in-process."""

    __test__ = False

    def __init__(self, app: App, *, host: str = "testserver", user_agent: str | None = "froq-testclient") -> None:
        self.app = app
        self.host = host
        self.user_agent = user_agent

    def __enter__(self) -> "TestClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.app.logger.close()

    def build_request(
        self,
        method: str,
        path: str,
        *,
        host: str | None = None,
        json: Any | None = None,
        form: Mapping[str, Any] | None = None,
        body: bytes = b"",
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        client_ip: str | None = "127.0.0.1",
    ) -> Request:
        request_headers: dict[str, str] = {}
        resolved_host = host if host is not None else self.host
        if resolved_host:
            request_headers["host"] = resolved_host
        if self.user_agent:
            request_headers["user-agent"] = self.user_agent
        request_headers.update({name.lower(): value for name, value in (headers or {}).items()})
        payload = body
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        elif form is not None:
            payload = urlencode(form, doseq=True).encode()
            request_headers.setdefault("content-type", "application/x-www-form-urlencoded")
        path, _, inline_query = path.partition("?")
        query_string = urlencode(query, doseq=True) if query else inline_query
        return Request(
            method=method,
            path=path,
            headers=request_headers,
            query_string=query_string,
            body=payload,
            client_ip=client_ip,
        )

    def request(self, method: str, path: str, **options: Any) -> Response:
        return self.app.run(self.build_request(method, path, **options))

    def get(self, path: str, **options: Any) -> Response:
        return self.request("GET", path, **options)

    def head(self, path: str, **options: Any) -> Response:
        return self.request("HEAD", path, **options)

    def post(self, path: str, **options: Any) -> Response:
        return self.request("POST", path, **options)

    def put(self, path: str, **options: Any) -> Response:
        return self.request("PUT", path, **options)

    def delete(self, path: str, **options: Any) -> Response:
        return self.request("DELETE", path, **options)


__all__ = ["TestClient"]
