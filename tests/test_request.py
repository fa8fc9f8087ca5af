import io

import pytest

from luraproxy.request import (
    Request,
    clone_request,
    clone_request_headers,
    clone_request_params,
)


@pytest.mark.parametrize(
    ("pattern", "expected"),
    [
        ("/a/{{.Supu}}", "/a/42"),
        ("/a?b={{.Tupu}}", "/a?b=false"),
        ("/a/{{.Supu}}/foo/{{.Foo}}", "/a/42/foo/bar"),
        ("/a", "/a"),
    ],
)
def test_generate_path(pattern, expected):
    r = Request(method="GET", params={"Supu": "42", "Tupu": "false", "Foo": "bar"})
    r.generate_path(pattern)
    assert r.path == expected


def test_generate_path_without_params():
    r = Request()
    r.generate_path("/x/{{.Missing}}")
    assert r.path == "/x/{{.Missing}}"


def test_request_clone_shares_maps():
    r = Request(
        method="GET",
        params={"Supu": "42", "Tupu": "false", "Foo": "bar"},
        headers={"Content-Type": ["application/json"]},
    )
    clone = r.clone()
    assert clone.params == r.params
    assert clone.headers == r.headers

    r.headers["extra"] = ["supu"]
    assert len(clone.headers) == len(r.headers)
    assert clone.headers["extra"] == ["supu"]


def test_clone_request_deep():
    body = b'{"a":1,"b":2}'
    r = Request(
        method="POST",
        params={"Supu": "42", "Tupu": "false", "Foo": "bar"},
        headers={"Content-Type": ["application/json"]},
        body=io.BytesIO(body),
    )
    clone = clone_request(r)
    assert clone.params == r.params
    assert clone.headers == r.headers

    r.headers["extra"] = ["supu"]
    assert "extra" not in clone.headers

    del r.params["Supu"]
    assert clone.params["Supu"] == "42"

    original_body = r.body.read()
    cloned_body = clone.body.read()
    assert original_body == body
    assert cloned_body == body


def test_clone_request_without_body():
    r = Request(method="GET")
    clone = clone_request(r)
    assert clone.body is None
    assert clone.method == "GET"


def test_clone_request_headers_copies_lists():
    headers = {"A": ["1"]}
    copy = clone_request_headers(headers)
    headers["A"].append("2")
    assert copy == {"A": ["1"]}


def test_clone_request_params():
    params = {"a": "b"}
    copy = clone_request_params(params)
    params["c"] = "d"
    assert copy == {"a": "b"}
    assert clone_request_params(None) == {}