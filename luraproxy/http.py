"""Proxies calling HTTP backends, and the middleware building backend requests."""

import inspect
import json
import string
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from luraproxy.http_response import HTTPResponseParser
from luraproxy.proxy import (
    Metadata,
    Middleware,
    NotEnoughProxiesError,
    Proxy,
    Response,
    TooManyProxiesError,
)
from luraproxy.request import Request

HTTPRequestExecutor = Callable[[httpx.Request], Awaitable[httpx.Response]]
HTTPStatusHandler = Callable[[httpx.Response], Any]

_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _validate_method(method: str) -> str:
    method = method.upper() or "GET"
    if not all(char in _TOKEN_CHARS for char in method):
        raise ValueError(f"invalid method {json.dumps(method)}")
    return method


def _content_length(request: Request) -> str | None:
    values = (request.headers or {}).get("Content-Length")
    if request.body is None or not values or len(values) != 1 or values[0] == "chunked":
        return None
    try:
        int(values[0])
    except ValueError:
        return None
    return values[0]


def _build_backend_request(request: Request) -> httpx.Request:
    method = _validate_method(request.method)
    if not request.url:
        raise ValueError("missing backend url")
    headers = [
        (key, value)
        for key, values in (request.headers or {}).items()
        if key.lower() != "content-length"
        for value in values
    ]
    length = _content_length(request)
    if length is not None:
        headers.append(("Content-Length", length))
    content = request.body.read() if request.body is not None else None
    return httpx.Request(method, str(request.url), headers=headers, content=content)


def _response_error_details(error: BaseException) -> tuple[str, int] | None:
    name = getattr(error, "name", None)
    status = getattr(error, "status_code", None)
    if callable(name):
        name = name()
    if callable(status):
        status = status()
    if isinstance(name, str) and isinstance(status, int) and not isinstance(status, bool):
        return name, status
    return None


def new_http_proxy_detailed(
    executor: HTTPRequestExecutor,
    status_handler: HTTPStatusHandler,
    parser: HTTPResponseParser,
) -> Proxy:
    """Return a proxy sending the request through executor and parsing the answer.

    Errors raised by status_handler that carry a ``name`` and a ``status_code``
    become a response holding the error under ``error_<name>``.
    """

    async def proxy(request: Request) -> Response | None:
        backend_request = _build_backend_request(request)
        try:
            response = await executor(backend_request)
        finally:
            if request.body is not None:
                request.body.close()

        try:
            response = await _resolve(status_handler(response))
        except Exception as exc:
            details = _response_error_details(exc)
            if details is None:
                raise
            name, status = details
            return Response(data={f"error_{name}": exc}, metadata=Metadata(status_code=status))

        return await _resolve(parser(response))

    return proxy


def new_request_builder_middleware(remote: Any) -> Middleware:
    """Create a middleware setting the backend path and method on each request."""
    url_pattern = getattr(remote, "url_pattern", "")
    method = getattr(remote, "method", "")

    def middleware(*next_proxies: Proxy) -> Proxy:
        if len(next_proxies) > 1:
            raise TooManyProxiesError()
        if not next_proxies:
            raise NotEnoughProxiesError()
        next_proxy = next_proxies[0]

        async def proxy(request: Request) -> Response | None:
            built = request.clone()
            built.generate_path(url_pattern)
            built.method = method
            return await next_proxy(built)

        return proxy

    return middleware