from __future__ import annotations

import pytest

from froq.buffering import OutputBuffer
from froq.responses import UNSET, ResponseState


def test_drain_concatenates_in_acquisition_order() -> None:
    buffer = OutputBuffer()
    buffer.begin()
    buffer.write("a")
    buffer.begin()
    buffer.write("b")
    buffer.write(1)
    assert buffer.depth == 2
    assert buffer.drain() == "ab1"
    assert buffer.depth == 0
    assert buffer.acquired == buffer.released == 2


def test_scopes_release_lifo() -> None:
    buffer = OutputBuffer()
    outer = buffer.begin()
    inner = buffer.begin()
    with pytest.raises(RuntimeError):
        outer.release()
    assert inner.release() == ""
    assert outer.release() == ""
    with pytest.raises(RuntimeError):
        outer.release()


def test_scope_context_manager_releases() -> None:
    buffer = OutputBuffer()
    with buffer.begin() as scope:
        scope.write("x")
    assert scope.released
    assert buffer.depth == 0
    with pytest.raises(RuntimeError):
        buffer.write("nowhere")


def test_unset_body_takes_captured_output() -> None:
    buffer = OutputBuffer()
    response = ResponseState()
    buffer.begin()
    buffer.write("hello ")
    buffer.begin()
    buffer.write("world")
    assert buffer.end(response) == "hello world"
    assert response.body == "hello world"
    assert buffer.acquired == buffer.released


def test_explicit_body_wins_and_closes_scopes() -> None:
    buffer = OutputBuffer()
    response = ResponseState()
    buffer.begin()
    buffer.write("echoed")
    buffer.begin()
    assert buffer.end(response, "ok:42") == "ok:42"
    assert response.body == "ok:42"
    assert buffer.depth == 0
    assert buffer.acquired == buffer.released == 2


def test_body_set_on_response_beats_captured_output() -> None:
    buffer = OutputBuffer()
    response = ResponseState()
    buffer.begin()
    buffer.write("ignored")
    response.set_body("direct")
    assert buffer.end(response) == "direct"


def test_redirect_discards_everything() -> None:
    buffer = OutputBuffer()
    response = ResponseState()
    buffer.begin()
    buffer.write("gone")
    response.status = 302
    assert buffer.end(response, "also gone") is None
    assert response.body is None
    assert buffer.depth == 0


def test_error_path_uses_rendered_error_only() -> None:
    buffer = OutputBuffer()
    response = ResponseState()
    buffer.begin()
    buffer.write("partial")
    assert buffer.end(response, "500 Internal Server Error", is_error=True) == "500 Internal Server Error"
    assert buffer.end(ResponseState(), UNSET, is_error=True) == ""


def test_output_hook_runs_at_most_once() -> None:
    seen: list[str] = []

    def hook(content: str) -> str:
        seen.append(content)
        return content.upper()

    buffer = OutputBuffer(output_hook=hook)
    response = ResponseState()
    buffer.begin()
    buffer.write("abc")
    assert buffer.end(response) == "ABC"
    buffer.begin()
    assert buffer.end(ResponseState(), "again", is_error=True) == "again"
    assert seen == ["abc"]
