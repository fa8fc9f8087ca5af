"""Proxy middlewares running the registered modifier plugins.

Request modifiers run before the next proxy is called; response modifiers
run on what it returns. A modifier receives a wrapper and returns either a
replacement wrapper or anything else to keep the current one. A modifier
rejects by raising.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from luraproxy.modifier import (
    NAMESPACE,
    Modifier,
    get_request_modifier,
    get_response_modifier,
)
from luraproxy.proxy import (
    Metadata,
    Middleware,
    NotEnoughProxiesError,
    Proxy,
    Response,
    TooManyProxiesError,
    empty_middleware,
)
from luraproxy.request import Request

_REQUEST_FIELDS = ("method", "url", "query", "path", "body", "params", "headers")
_RESPONSE_FIELDS = ("data", "is_complete", "headers", "status_code", "io")


@dataclass(frozen=True)
class RequestWrapper:
    """The view of a request handed to request modifiers."""

    method: str = ""
    url: str | None = None
    query: dict[str, list[str]] = field(default_factory=dict)
    path: str = ""
    body: Any = None
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseWrapper:
    """The view of a response handed to response modifiers."""

    data: dict[str, Any] | None = None
    is_complete: bool = False
    headers: dict[str, list[str]] | None = None
    status_code: int = 0
    io: Any = None


def _has_fields(value: Any, names: tuple[str, ...]) -> bool:
    return value is not None and all(hasattr(value, name) for name in names)


def _execute_request_modifiers(modifiers: list[Modifier], request: Request) -> Request:
    current: Any = RequestWrapper(
        method=request.method,
        url=request.url,
        query=request.query,
        path=request.path,
        body=request.body,
        params=request.params,
        headers=request.headers,
    )
    for modifier in modifiers:
        result = modifier(current)
        if _has_fields(result, _REQUEST_FIELDS):
            current = result
    for name in _REQUEST_FIELDS:
        setattr(request, name, getattr(current, name))
    return request


def _execute_response_modifiers(modifiers: list[Modifier], response: Response | None) -> Response | None:
    if response is None:
        return None
    current: Any = ResponseWrapper(
        data=response.data,
        is_complete=response.is_complete,
        headers=response.metadata.headers,
        status_code=response.metadata.status_code,
        io=response.io,
    )
    for modifier in modifiers:
        result = modifier(current)
        if _has_fields(result, _RESPONSE_FIELDS):
            current = result
    response.data = current.data
    response.is_complete = current.is_complete
    response.io = current.io
    response.metadata = Metadata(headers=current.headers, status_code=current.status_code)
    return response


def _plugin_section(extra: dict[str, Any] | None) -> dict[str, Any] | None:
    section = (extra or {}).get(NAMESPACE)
    return section if isinstance(section, dict) else None


def new_plugin_middleware(logger: logging.Logger, endpoint: Any) -> Middleware:
    """Return the endpoint's plugin middleware, or an empty one if none apply."""
    cfg = _plugin_section(getattr(endpoint, "extra_config", None))
    if cfg is None:
        return empty_middleware
    return _new_plugin_middleware(logger, "ENDPOINT", getattr(endpoint, "endpoint", ""), cfg)


def new_backend_plugin_middleware(logger: logging.Logger, remote: Any) -> Middleware:
    """Return the backend's plugin middleware, or an empty one if none apply."""
    cfg = _plugin_section(getattr(remote, "extra_config", None))
    if cfg is None:
        return empty_middleware
    return _new_plugin_middleware(logger, "BACKEND", getattr(remote, "url_pattern", ""), cfg)


def _new_plugin_middleware(logger: logging.Logger, tag: str, pattern: str, cfg: dict[str, Any]) -> Middleware:
    names = cfg.get("name")
    if not isinstance(names, list):
        return empty_middleware

    request_modifiers: list[Modifier] = []
    response_modifiers: list[Modifier] = []
    for name in names:
        if not isinstance(name, str):
            continue
        factory = get_request_modifier(name)
        if factory is not None:
            request_modifiers.append(factory(cfg))
            continue
        factory = get_response_modifier(name)
        if factory is not None:
            response_modifiers.append(factory(cfg))

    if not request_modifiers and not response_modifiers:
        return empty_middleware

    logger.debug(
        "[%s: %s][Modifier Plugins] Adding %d request and %d response modifiers",
        tag,
        pattern,
        len(request_modifiers),
        len(response_modifiers),
    )

    def middleware(*next_proxies: Proxy) -> Proxy:
        if len(next_proxies) > 1:
            raise TooManyProxiesError()
        if not next_proxies:
            raise NotEnoughProxiesError()
        next_proxy = next_proxies[0]

        async def proxy(request: Request) -> Response | None:
            if request_modifiers:
                request = _execute_request_modifiers(request_modifiers, request)
            response = await next_proxy(request)
            if response_modifiers:
                response = _execute_response_modifiers(response_modifiers, response)
            return response

        return proxy

    return middleware