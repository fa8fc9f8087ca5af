"""Proxy middleware that logs calls to the backend."""

import logging
import time

from luraproxy.proxy import (
    Middleware,
    NotEnoughProxiesError,
    Proxy,
    Response,
    TooManyProxiesError,
)
from luraproxy.request import Request


def _format_duration(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:.6f}s"
    return f"{seconds * 1000:.3f}ms"


def new_logging_middleware(logger: logging.Logger, name: str) -> Middleware:
    """Create a middleware logging start, duration and outcome of each call."""
    prefix = f"[{name.upper()}]"

    def middleware(*next_proxies: Proxy) -> Proxy:
        if len(next_proxies) > 1:
            raise TooManyProxiesError()
        if not next_proxies:
            raise NotEnoughProxiesError()
        next_proxy = next_proxies[0]

        async def proxy(request: Request) -> Response | None:
            begin = time.monotonic()
            logger.info("%s Calling backend", prefix)
            logger.debug("%s Request %r", prefix, request)
            try:
                result = await next_proxy(request)
            except Exception as exc:
                logger.info("%s Call to backend took %s", prefix, _format_duration(time.monotonic() - begin))
                logger.warning("%s Call to backend failed: %s", prefix, exc)
                raise
            logger.info("%s Call to backend took %s", prefix, _format_duration(time.monotonic() - begin))
            if result is None:
                logger.warning("%s Call to backend returned a null response", prefix)
            return result

        return proxy

    return middleware