from __future__ import annotations

from typing import Any

import pytest

from froq.application import App
from froq.controllers import Controller, RequestContext
from froq.dispatch import PipelineState
from froq.events import AFTER, BEFORE, ERROR, OUTPUT
from froq.exceptions import HTTPError, ResponseAlreadySent
from froq.requests import Request
from froq.responses import CollectingEmitter, ResponseState
from froq.serialization import json_decode

S = PipelineState


def _request(method: str = "GET", path: str = "/", **headers: str) -> Request:
    return Request(method=method, path=path, headers={"host": "example.com", **headers})


def _recording_app(config: dict[str, Any] | None = None) -> tuple[App, list[str]]:
    app = App(config)
    seen: list[str] = []
    app.events.on(BEFORE, lambda context: seen.append("before"))
    app.events.on(AFTER, lambda context: seen.append("after"))
    app.events.on(ERROR, lambda error: seen.append(f"error:{type(error).__name__}"))
    return app, seen


def test_normal_path_visits_every_state_once() -> None:
    app, seen = _recording_app()
    app.get("/users/{id}", lambda id: f"ok:{id}")
    dispatcher = app.dispatcher(_request(path="/users/42"))
    response = dispatcher.run()
    assert response.status == 200
    assert response.body == b"ok:42"
    assert dispatcher.context.params == {"id": "42"}
    assert dispatcher.trail == [
        S.START,
        S.ADMISSION_CHECKED,
        S.DEFAULTS_APPLIED,
        S.BUFFER_OPENED,
        S.ROUTE_RESOLVED,
        S.BEFORE_FIRED,
        S.HANDLER_INVOKED,
        S.AFTER_FIRED,
        S.BUFFER_CLOSED,
        S.SENT,
        S.END,
    ]
    assert seen == ["before", "after"]
    assert dispatcher.buffer.acquired == dispatcher.buffer.released


def test_rejection_path_never_reaches_the_handler() -> None:
    app, seen = _recording_app({"hosts": ["example.com"]})
    called: list[bool] = []
    app.get("/", lambda: called.append(True) or "home")
    dispatcher = app.dispatcher(_request(host="evil.com"))
    response = dispatcher.run()
    assert response.status == 400
    assert response.body == b""
    assert response.header("content-type") is None
    assert called == []
    assert seen == []
    assert dispatcher.trail == [S.START, S.ADMISSION_CHECKED, S.REJECTED, S.SENT, S.END]
    assert dispatcher.buffer.acquired == 0


def test_resolution_failure_paths() -> None:
    app, seen = _recording_app()
    app.get("/items", lambda: "items")

    dispatcher = app.dispatcher(_request(path="/nothing"))
    response = dispatcher.run()
    assert response.status == 404
    assert response.body == b"404 Not Found"
    assert response.header("content-type") == "text/plain; charset=utf-8"
    assert dispatcher.trail[-3:] == [S.RESOLUTION_FAILED, S.SENT, S.END]

    response = app.run(_request("POST", "/items"))
    assert response.status == 405
    assert response.header("allow") == "GET"
    assert response.body == b"405 Method Not Allowed"
    assert seen == []


def test_handler_failure_renders_error_page() -> None:
    app, seen = _recording_app()

    @app.get("/boom")
    def boom(context: RequestContext) -> str:
        context.echo("partial output")
        raise RuntimeError("boom")

    dispatcher = app.dispatcher(_request(path="/boom"))
    response = dispatcher.run()
    assert response.status == 500
    assert response.body == b"500 Internal Server Error"
    assert seen == ["before", "error:RuntimeError"]
    assert S.HANDLER_FAILED in dispatcher.trail
    assert S.AFTER_FIRED not in dispatcher.trail
    assert dispatcher.trail[-4:] == [S.BUFFER_OPENED, S.BUFFER_CLOSED, S.SENT, S.END]
    assert dispatcher.error is not None
    assert dispatcher.error.status == 500
    assert isinstance(dispatcher.error.error, RuntimeError)
    assert dispatcher.buffer.depth == 0
    assert dispatcher.buffer.acquired == dispatcher.buffer.released == 2


def test_failure_keeps_error_status_set_by_handler() -> None:
    app = App()

    @app.get("/forbidden")
    def forbidden(response: ResponseState) -> str:
        response.status = 403
        raise PermissionError("nope")

    response = app.run(_request(path="/forbidden"))
    assert response.status == 403
    assert response.body == b"403 Forbidden"


def test_success_status_set_by_handler_is_forced_to_500() -> None:
    app = App()

    @app.get("/created")
    def created(response: ResponseState) -> str:
        response.status = 204
        raise ValueError("late failure")

    assert app.run(_request(path="/created")).status == 500


def test_http_error_status_and_json_detail() -> None:
    app = App()

    @app.get("/missing/{id}")
    def missing(id: int) -> str:
        raise HTTPError(404, {"id": id})

    response = app.run(_request(path="/missing/7"))
    assert response.status == 404
    assert response.header("content-type") == "application/json"
    assert json_decode(response.body)["error"]["detail"] == {"id": 7}


def test_bad_path_param_is_a_400() -> None:
    app = App()

    def typed(id: int) -> str:
        return str(id)

    app.get("/typed/{id}", typed)
    response = app.run(_request(path="/typed/abc"))
    assert response.status == 400
    assert json_decode(response.body)["error"]["detail"]["param"] == "id"


def test_redirect_drops_buffered_output_and_explicit_body() -> None:
    app = App()

    @app.get("/old")
    def old(context: RequestContext) -> str:
        context.echo("never shown")
        context.response.redirect("/new")
        return "also never shown"

    response = app.run(_request(path="/old"))
    assert response.status == 302
    assert response.header("location") == "/new"
    assert response.body == b""
    assert response.header("content-type") is None


def test_echoed_output_becomes_body_when_nothing_returned() -> None:
    app = App()

    @app.get("/echo")
    def echo(context: RequestContext) -> None:
        context.echo("hello ", "world")
        with context.buffer.begin() as scope:
            scope.write("!")
        context.buffer.begin()
        context.echo("?")

    response = app.run(_request(path="/echo"))
    assert response.body == b"hello world?"


def test_explicit_return_beats_echoed_output() -> None:
    app = App()

    @app.get("/users/{id}")
    def show(id: str, context: RequestContext) -> str:
        context.echo("debug noise")
        return f"ok:{id}"

    assert app.run(_request(path="/users/42")).body == b"ok:42"


def test_structured_return_is_json() -> None:
    app = App()
    app.get("/data", lambda: {"items": [1, 2]})
    response = app.run(_request(path="/data"))
    assert response.header("content-type") == "application/json"
    assert json_decode(response.body) == {"items": [1, 2]}


def test_output_event_rewrites_body_once() -> None:
    app = App()
    calls: list[str] = []

    @app.events.on(OUTPUT)
    def shout(body: str) -> str:
        calls.append(body)
        return body.upper()

    app.get("/", lambda: "quiet")
    assert app.run(_request()).body == b"QUIET"
    assert calls == ["quiet"]


def test_output_hook_failure_goes_through_error_path() -> None:
    app, seen = _recording_app()

    @app.events.on(OUTPUT)
    def broken(body: str) -> str:
        raise RuntimeError("filter failed")

    app.get("/", lambda: "fine")
    response = app.run(_request())
    assert response.status == 500
    assert response.body == b"500 Internal Server Error"
    assert seen == ["before", "after", "error:RuntimeError"]


def test_show_errors_prefixes_traceback() -> None:
    app = App({"show_errors": True})

    @app.get("/boom")
    def boom() -> str:
        raise RuntimeError("kaboom")

    body = app.run(_request(path="/boom")).text
    assert body.startswith("Traceback")
    assert "RuntimeError: kaboom" in body
    assert body.endswith("500 Internal Server Error")


def test_custom_error_renderer() -> None:
    app = App()
    app.error_renderer = lambda error, context: f"sorry ({context.response.status}): {error}"
    app.get("/boom", lambda: 1 / 0)
    response = app.run(_request(path="/boom"))
    assert response.status == 500
    assert response.body == b"sorry (500): division by zero"


def test_failing_error_renderer_falls_back_to_empty_body() -> None:
    app = App()

    def renderer(error: BaseException, context: RequestContext) -> str:
        raise LookupError("renderer broke")

    app.error_renderer = renderer
    app.get("/boom", lambda: 1 / 0)
    response = app.run(_request(path="/boom"))
    assert response.status == 500
    assert response.body == b""


def test_sending_twice_is_fatal() -> None:
    app = App()

    @app.get("/self-send")
    def self_send(response: ResponseState) -> str:
        response.end(CollectingEmitter())
        return "late"

    with pytest.raises(ResponseAlreadySent):
        app.run(_request(path="/self-send"))


def test_head_request_keeps_headers_without_body() -> None:
    app = App()
    app.get("/page", lambda: "content")
    response = app.run(_request("HEAD", "/page"))
    assert response.status == 200
    assert response.body == b""
    assert response.header("content-length") == "7"


def test_runtime_header_is_opt_in() -> None:
    app = App({"env": "dev", "expose_app_runtime": "dev"})
    app.get("/", lambda: "")
    value = app.run(_request()).header("x-app-runtime")
    assert value is not None
    assert float(value) >= 0.0
    assert App().run(_request()).header("x-app-runtime") is None


def test_controller_routes() -> None:
    app = App()

    @app.controller()
    class UserController(Controller):
        def show(self, id: str) -> str:
            return f"ok:{id}"

        def _hidden(self) -> str:
            return "hidden"

    app.get("/users/{id}", "User.show")
    app.get("/hidden", "User._hidden")
    app.get("/ghost", "Ghost.index")
    assert app.run(_request(path="/users/42")).body == b"ok:42"
    assert app.run(_request(path="/hidden")).status == 404
    assert app.run(_request(path="/ghost")).status == 404


def test_session_and_database_handles_reach_the_handler() -> None:
    opened: list[str] = []

    def session_factory(config: dict[str, Any]) -> dict[str, Any]:
        opened.append("session")
        return {"name": config["name"]}

    def database_factory(config: dict[str, Any]) -> str:
        opened.append("database")
        return config["dsn"]

    app = App(
        {"session": {"name": "sid"}, "database": {"dsn": "sqlite://"}},
        session_factory=session_factory,
        database_factory=database_factory,
    )
    app.get("/", lambda context: f"{context.session['name']}|{context.database}")
    assert app.run(_request()).body == b"sid|sqlite://"
    assert opened == ["session", "database"]


def test_handles_are_absent_without_config() -> None:
    app = App(session_factory=lambda config: "unused")
    app.get("/", lambda context: repr(context.session))
    assert app.run(_request()).body == b"None"


class RecordingObservability:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def on_request_start(self, request: Request) -> str:
        self.calls.append("start")
        return "observation"

    def on_handler_error(self, context: Any, error: BaseException, *, status_code: int) -> None:
        self.calls.append(f"error:{status_code}")

    def on_request_end(self, context: Any, response: Any) -> None:
        self.calls.append(f"end:{response.status}")


def test_raising_error_listener_still_sends_500() -> None:
    observability = RecordingObservability()
    app = App(observability=observability)  # type: ignore[arg-type]
    app.events.on(ERROR, lambda error: 1 / 0)

    @app.get("/boom")
    def boom() -> str:
        raise RuntimeError("boom")

    dispatcher = app.dispatcher(_request(path="/boom"))
    response = dispatcher.run()
    assert response.status == 500
    assert response.body == b"500 Internal Server Error"
    assert dispatcher.trail[-2:] == [S.SENT, S.END]
    assert observability.calls == ["start", "error:500", "end:500"]


def test_raising_observability_hook_still_sends_500() -> None:
    class BrokenObservability(RecordingObservability):
        def on_handler_error(self, context: Any, error: BaseException, *, status_code: int) -> None:
            raise RuntimeError("collector down")

    app, seen = _recording_app()
    app.observability = BrokenObservability()  # type: ignore[assignment]
    app.get("/boom", lambda: 1 / 0)
    assert app.run(_request(path="/boom")).status == 500
    assert seen == ["before", "error:ZeroDivisionError"]


def test_failing_session_factory_goes_through_error_path() -> None:
    called: list[bool] = []

    def session_factory(config: dict[str, Any]) -> Any:
        raise ConnectionError("session store down")

    observability = RecordingObservability()
    app = App({"session": {"dsn": "x"}}, session_factory=session_factory, observability=observability)  # type: ignore[arg-type]
    seen: list[str] = []
    app.events.on(BEFORE, lambda context: seen.append("before"))
    app.events.on(ERROR, lambda error: seen.append(f"error:{type(error).__name__}"))
    app.get("/", lambda: called.append(True) or "home")

    dispatcher = app.dispatcher(_request())
    response = dispatcher.run()
    assert response.status == 500
    assert response.body == b"500 Internal Server Error"
    assert called == []
    assert seen == ["error:ConnectionError"]
    assert dispatcher.trail == [
        S.START,
        S.ADMISSION_CHECKED,
        S.HANDLER_FAILED,
        S.BUFFER_OPENED,
        S.BUFFER_CLOSED,
        S.SENT,
        S.END,
    ]
    assert dispatcher.buffer.depth == 0
    assert observability.calls == ["start", "error:500", "end:500"]


def test_failing_database_factory_is_a_500() -> None:
    def database_factory(config: dict[str, Any]) -> Any:
        raise OSError("database unreachable")

    app = App({"database": {"dsn": "x"}}, database_factory=database_factory)
    app.get("/", lambda: "home")
    assert app.run(_request()).status == 500
