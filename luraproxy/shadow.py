"""Shadow backends: requests are mirrored to them and their responses ignored."""

import asyncio
from dataclasses import dataclass
from typing import Any

from luraproxy.proxy import (
    NAMESPACE,
    NoBackendsError,
    NotEnoughProxiesError,
    Proxy,
    Response,
    TooManyProxiesError,
)
from luraproxy.request import Request, clone_request

_SHADOW_KEY = "shadow"
_background_tasks: set[asyncio.Task] = set()


@dataclass(frozen=True)
class ShadowFactory:
    """Proxy factory splitting shadow backends from regular ones."""

    factory: Any

    def new(self, cfg: Any) -> Proxy:
        """Build the proxy for an endpoint, mirroring to its shadow backends."""
        backends = list(cfg.backend or [])
        if not backends:
            raise NoBackendsError()

        shadow = [b for b in backends if is_shadow_backend(b)]
        regular = [b for b in backends if not is_shadow_backend(b)]

        cfg.backend = regular
        primary = self.factory.new(cfg)
        if not shadow:
            return primary

        cfg.backend = shadow
        try:
            secondary = self.factory.new(cfg)
        except Exception:
            return primary
        return shadow_middleware(primary, secondary)


def new_shadow_factory(factory: Any) -> ShadowFactory:
    """Wrap a proxy factory so it honours shadow backends."""
    return ShadowFactory(factory)


def shadow_middleware(*args: Proxy) -> Proxy:
    """Combine a primary proxy with an optional shadow one."""
    match len(args):
        case 0:
            raise NotEnoughProxiesError()
        case 1:
            return args[0]
        case 2:
            return new_shadow_proxy(args[0], args[1])
        case _:
            raise TooManyProxiesError()


async def _run_shadow(shadow: Proxy, request: Request) -> None:
    try:
        await shadow(request)
    except Exception:
        pass


def new_shadow_proxy(primary: Proxy, shadow: Proxy) -> Proxy:
    """Return a proxy sending each request to both, answering with primary only.

    The shadow call runs in the background and outlives the caller's cancellation.
    """

    async def proxy(request: Request) -> Response | None:
        task = asyncio.get_running_loop().create_task(_run_shadow(shadow, clone_request(request)))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return await primary(request)

    return proxy


def is_shadow_backend(backend: Any) -> bool:
    """Tell whether the backend's extra config flags it as a shadow."""
    extra = getattr(backend, "extra_config", None) or {}
    namespace = extra.get(NAMESPACE)
    if not isinstance(namespace, dict):
        return False
    value = namespace.get(_SHADOW_KEY)
    return isinstance(value, bool) and value