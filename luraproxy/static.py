"""Proxy middleware adding static values to the processed responses."""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any

from luraproxy.proxy import (
    NAMESPACE,
    Middleware,
    NotEnoughProxiesError,
    Proxy,
    Response,
    TooManyProxiesError,
    empty_middleware,
)
from luraproxy.request import Request

_STATIC_KEY = "static"


class StaticStrategy(str, enum.Enum):
    """When the static data is added to a response."""

    ALWAYS = "always"
    SUCCESS = "success"
    ERRORED = "errored"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


@dataclass
class StaticConfig:
    """Static data and the strategy name deciding when to add it."""

    data: dict[str, Any]
    strategy: str = StaticStrategy.ALWAYS.value

    def match(self, response: Response | None, error: BaseException | None) -> bool:
        """Tell whether the static data applies to this outcome."""
        try:
            strategy = StaticStrategy(self.strategy)
        except ValueError:
            strategy = StaticStrategy.ALWAYS
        match strategy:
            case StaticStrategy.SUCCESS:
                return error is None
            case StaticStrategy.ERRORED:
                return error is not None
            case StaticStrategy.COMPLETE:
                return error is None and response is not None and response.is_complete
            case StaticStrategy.INCOMPLETE:
                return response is None or not response.is_complete
            case _:
                return True


def get_static_middleware_cfg(extra: dict[str, Any] | None) -> StaticConfig | None:
    """Parse the static section of an extra config, or return None."""
    namespace = (extra or {}).get(NAMESPACE)
    if not isinstance(namespace, dict):
        return None
    section = namespace.get(_STATIC_KEY)
    if not isinstance(section, dict):
        return None
    data = section.get("data")
    if not isinstance(data, dict):
        return None
    strategy = section.get("strategy")
    if not isinstance(strategy, str):
        strategy = StaticStrategy.ALWAYS.value
    return StaticConfig(data=data, strategy=strategy)


def new_static_middleware(logger: logging.Logger, endpoint: Any) -> Middleware:
    """Create a middleware adding the endpoint's static data to responses."""
    cfg = get_static_middleware_cfg(getattr(endpoint, "extra_config", None))
    if cfg is None:
        return empty_middleware

    logger.debug(
        "[ENDPOINT: %s][Static] Adding a static response using '%s' strategy. Data: %s",
        getattr(endpoint, "endpoint", ""),
        cfg.strategy,
        json.dumps(cfg.data, default=str),
    )

    def middleware(*next_proxies: Proxy) -> Proxy:
        if len(next_proxies) > 1:
            raise TooManyProxiesError()
        if not next_proxies:
            raise NotEnoughProxiesError()
        next_proxy = next_proxies[0]

        async def proxy(request: Request) -> Response | None:
            error: Exception | None = None
            try:
                result = await next_proxy(request)
            except Exception as exc:
                error = exc
                result = getattr(exc, "partial_response", None)

            if not cfg.match(result, error):
                if error is not None:
                    raise error
                return result

            if result is None:
                result = Response(data={})
            elif result.data is None:
                result.data = {}
            result.data.update(cfg.data)

            if error is not None:
                error.partial_response = result
                raise error
            return result

        return proxy

    return middleware