from __future__ import annotations

import msgspec
import pytest

from froq.requests import Headers, Request, parse_cookies, parse_params


class Payload(msgspec.Struct):
    name: str
    count: int


def test_headers_are_case_insensitive() -> None:
    headers = Headers({"Content-Type": "text/plain", "X-Trace": "abc"})
    assert headers["content-type"] == "text/plain"
    assert "x-trace" in headers
    assert list(headers) == ["Content-Type", "X-Trace"]
    assert len(headers) == 2


def test_parse_params_keeps_repeated_values() -> None:
    params = parse_params("a=1&b=2&a=3&empty=")
    assert params["a"] == ("1", "3")
    assert params["empty"] == ("",)
    with pytest.raises(TypeError):
        params["c"] = ("x",)  # type: ignore[index]


def test_parse_cookies() -> None:
    assert dict(parse_cookies('sid=abc; theme="dark"; broken')) == {"sid": "abc", "theme": "dark"}
    assert dict(parse_cookies(None)) == {}


def test_request_snapshot_fields() -> None:
    request = Request(
        method="get",
        path="/users/42",
        headers={"Host": "example.com", "User-Agent": "pytest", "Accept-Language": "tr-TR,tr;q=0.9"},
        query_string="page=2&sort=name",
        client_ip="10.0.0.1",
        received_at=12.5,
    )
    assert request.method == "GET"
    assert request.host == "example.com"
    assert request.query("page") == "2"
    assert request.query("missing", "x") == "x"
    assert request.param_count == 2
    assert request.client.ip == "10.0.0.1"
    assert request.client.user_agent == "pytest"
    assert request.client.language == "tr-TR"
    assert request.received_at == 12.5
    assert request.is_method("get")


def test_request_is_immutable() -> None:
    request = Request(method="GET", path="/")
    with pytest.raises(AttributeError):
        request.path = "/other"  # type: ignore[misc]
    with pytest.raises(AttributeError):
        del request.method


def test_form_body_counts_towards_params() -> None:
    request = Request(
        method="POST",
        path="/submit",
        headers={"content-type": "application/x-www-form-urlencoded; charset=utf-8"},
        query_string="a=1",
        body=b"b=2&c=3",
    )
    assert request.form("b") == "2"
    assert request.param_count == 3


def test_form_body_ignored_for_get() -> None:
    request = Request(
        method="GET",
        path="/",
        headers={"content-type": "application/x-www-form-urlencoded"},
        body=b"b=2",
    )
    assert request.form("b") is None
    assert request.param_count == 0


def test_json_body_decodes_into_struct() -> None:
    request = Request(method="POST", path="/", body=b'{"name": "froq", "count": 2}')
    assert request.json() == {"name": "froq", "count": 2}
    assert request.json(Payload) == Payload(name="froq", count=2)
    assert Request(method="POST", path="/").json() is None


def test_cookies_are_parsed_from_header() -> None:
    request = Request(method="GET", path="/", headers={"Cookie": "sid=xyz"})
    assert request.cookie("sid") == "xyz"
    assert request.cookie("other") is None
