from __future__ import annotations

from froq.application import App
from froq.exceptions import HTTPError
from froq.observability import Observability, ObservabilityConfig
from froq.requests import Request
from tests.observability_stubs import setup_stub_opentelemetry, setup_stub_sentry


def _request(path: str) -> Request:
    return Request(method="GET", path=path, headers={"host": "example.com"})


def test_successful_request_is_traced(monkeypatch) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    hub = setup_stub_sentry(monkeypatch)
    app = App(observability=Observability(ObservabilityConfig(span_name="test.request")))
    app.get("/ping", lambda: "pong")

    assert app.run(_request("/ping")).status == 200

    span = tracer.spans[-1]
    assert span.name == "test.request"
    assert span.kind == "server"
    assert span.attributes["http.method"] == "GET"
    assert span.attributes["http.target"] == "/ping"
    assert span.attributes["http.host"] == "example.com"
    assert span.attributes["http.status_code"] == 200
    assert span.attributes["http.result"] == "success"
    assert span.status.status_code == "ok"
    assert span.ended
    assert hub.breadcrumbs[-1]["message"] == "GET /ping"
    assert hub.captured == []


def test_server_errors_are_captured(monkeypatch) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    hub = setup_stub_sentry(monkeypatch)
    app = App(observability=Observability())

    @app.get("/boom")
    def boom() -> str:
        raise RuntimeError("boom")

    assert app.run(_request("/boom")).status == 500

    span = tracer.spans[-1]
    assert span.attributes["http.result"] == "error"
    assert span.attributes["http.status_code"] == 500
    assert isinstance(span.exceptions[-1], RuntimeError)
    assert span.status.status_code == "error"
    assert isinstance(hub.captured[-1], RuntimeError)


def test_client_errors_are_not_sent_to_sentry(monkeypatch) -> None:
    setup_stub_opentelemetry(monkeypatch)
    hub = setup_stub_sentry(monkeypatch)
    app = App(observability=Observability())

    @app.get("/gone")
    def gone() -> str:
        raise HTTPError(404)

    assert app.run(_request("/gone")).status == 404
    assert hub.captured == []


def test_disabled_observability_is_inert(monkeypatch) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    observability = Observability(ObservabilityConfig(enabled=False))
    assert not observability.enabled
    assert observability.on_request_start(_request("/")) is None
    app = App(observability=observability)
    app.get("/", lambda: "ok")
    assert app.run(_request("/")).body == b"ok"
    assert tracer.spans == []
