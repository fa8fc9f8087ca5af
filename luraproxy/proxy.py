"""Core proxy types: responses, errors and the simplest middlewares.

A proxy is an async callable taking a Request and returning a Response or
None. Failures are raised. When a failure still carries usable data, the
exception gets that Response as its ``partial_response`` attribute.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from luraproxy.request import Request

NAMESPACE = "luraproxy/proxy"

Proxy = Callable[[Request], Awaitable["Response | None"]]
Middleware = Callable[..., Proxy]


@dataclass
class Metadata:
    """Headers and status code of a response."""

    headers: dict[str, list[str]] | None = None
    status_code: int = 0


@dataclass
class Response:
    """The entity returned by a proxy."""

    data: dict[str, Any] | None = None
    is_complete: bool = False
    metadata: Metadata = field(default_factory=Metadata)
    io: Any = None


class ProxyError(Exception):
    """Base class for errors in building or running a proxy pipe."""

    default_message = "proxy error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoBackendsError(ProxyError):
    default_message = "all endpoints must have at least one backend"


class TooManyBackendsError(ProxyError):
    default_message = "too many backends for this proxy"


class TooManyProxiesError(ProxyError):
    default_message = "too many proxies for this proxy middleware"


class NotEnoughProxiesError(ProxyError):
    default_message = "not enough proxies for this endpoint"


class ReadCloserWrapper:
    """A readable stream that gets closed once the done signal fires."""

    def __init__(self, done: "asyncio.Event | Awaitable[Any]", stream: BinaryIO) -> None:
        self._done = done
        self._stream = stream
        self._watcher = asyncio.get_running_loop().create_task(self._close_when_done())

    async def _close_when_done(self) -> None:
        try:
            if isinstance(self._done, asyncio.Event):
                await self._done.wait()
            else:
                await self._done
        finally:
            self.close()

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes from the wrapped stream."""
        return self._stream.read(size)

    def close(self) -> None:
        """Close the wrapped stream."""
        self._stream.close()


def new_read_closer_wrapper(done: "asyncio.Event | Awaitable[Any]", stream: BinaryIO) -> ReadCloserWrapper:
    """Wrap stream so it is closed when done is set or resolved."""
    return ReadCloserWrapper(done, stream)


def empty_middleware(*args: Proxy) -> Proxy:
    """Return the single proxy received, unchanged."""
    if len(args) > 1:
        raise TooManyProxiesError()
    if not args:
        raise NotEnoughProxiesError()
    return args[0]


async def noop_proxy(request: Request) -> Response | None:
    """A proxy that yields to the event loop once and returns no response."""
    await asyncio.sleep(0)
    return None