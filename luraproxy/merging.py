"""Merging the responses of several backends into a single response.

Backends run either in parallel or one after another. In the sequential mode,
values taken from earlier responses can be injected into the request params
of later backends through ``{{.RespN_key}}`` placeholders in their URL patterns.
"""

import asyncio
import dataclasses
import logging
import math
import re
import struct
from collections.abc import Callable, Iterable, Sequence
from datetime import timedelta
from decimal import Decimal
from typing import Any

from luraproxy.proxy import (
    NAMESPACE,
    Middleware,
    NoBackendsError,
    NotEnoughProxiesError,
    Proxy,
    ProxyError,
    Response,
    empty_middleware,
)
from luraproxy.register import Untyped
from luraproxy.request import Request, clone_request

ResponseCombiner = Callable[[int, list[Response | None]], Response]

_MERGE_KEY = "combiner"
_SEQUENTIAL_KEY = "sequential"
DEFAULT_COMBINER_NAME = "default"

_MERGE_KEY_PATTERN = re.compile(r"\{\{\.Resp(\d+)_([\w\-.]+)\}\}", re.ASCII)


class NullResultError(ProxyError):
    """Raised in place of a backend that answered with no response."""

    default_message = "null result"


class MergeError(Exception):
    """Collects the errors found while merging backend responses.

    ``partial_response`` holds whatever data could be merged, if any.
    """

    def __init__(self, errors: Iterable[BaseException], partial_response: Response | None = None) -> None:
        self.errors = list(errors)
        self.partial_response = partial_response
        super().__init__("\n".join(str(error) for error in self.errors))


def _deadline_exceeded() -> TimeoutError:
    return TimeoutError("context deadline exceeded")


def combine_data(total: int, parts: Sequence[Response | None]) -> Response:
    """Merge the data of all parts into the first usable one."""
    is_complete = len(parts) == total
    merged: Response | None = None
    for part in parts:
        if part is None or part.data is None:
            is_complete = False
            continue
        is_complete = is_complete and part.is_complete
        if merged is None:
            merged = part
            continue
        merged.data.update(part.data)

    if merged is None:
        return Response(data={}, is_complete=is_complete)
    merged.is_complete = is_complete
    return merged


class CombinerRegister:
    """Named response combiners with a fallback for unknown names."""

    def __init__(
        self,
        combiners: dict[str, ResponseCombiner] | None = None,
        fallback: ResponseCombiner = combine_data,
    ) -> None:
        self._data = Untyped()
        self._fallback = fallback
        for name, combiner in (combiners or {}).items():
            self._data.register(name, combiner)

    def get_response_combiner(self, name: str) -> ResponseCombiner:
        """Return the combiner registered as name, or the fallback."""
        combiner = self._data.get(name)
        return combiner if callable(combiner) else self._fallback

    def set_response_combiner(self, name: str, combiner: ResponseCombiner) -> None:
        """Register combiner under name."""
        self._data.register(name, combiner)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __len__(self) -> int:
        return len(self._data)


_response_combiners = CombinerRegister({DEFAULT_COMBINER_NAME: combine_data}, combine_data)


def new_register() -> CombinerRegister:
    """Return the shared register of response combiners."""
    return _response_combiners


def register_response_combiner(name: str, combiner: ResponseCombiner) -> None:
    """Add a combiner to the shared register."""
    _response_combiners.set_response_combiner(name, combiner)


class IncrementalMergeAccumulator:
    """Merges responses as they arrive and tracks the failures."""

    def __init__(self, total: int, combiner: ResponseCombiner) -> None:
        self._pending = total
        self._combiner = combiner
        self._data: Response | None = None
        self._errors: list[BaseException] = []

    def merge(self, response: Response | None, error: BaseException | None) -> None:
        """Account for one backend outcome."""
        self._pending -= 1
        if error is not None:
            self._errors.append(error)
            if self._data is not None:
                self._data.is_complete = False
            return
        if response is None:
            self._errors.append(NullResultError())
            return
        if self._data is None:
            self._data = response
            return
        self._data = self._combiner(2, [self._data, response])

    def result(self) -> Response | None:
        """Return the merged response, raising MergeError if anything failed."""
        if self._data is None:
            if self._errors:
                raise MergeError(self._errors)
            return None
        if self._pending != 0 or self._errors:
            self._data.is_complete = False
        if self._errors:
            raise MergeError(self._errors, partial_response=self._data)
        return self._data


def _extra_section(extra: dict[str, Any] | None) -> dict[str, Any]:
    section = (extra or {}).get(NAMESPACE)
    return section if isinstance(section, dict) else {}


def _should_run_sequential(extra: dict[str, Any] | None) -> bool:
    value = _extra_section(extra).get(_SEQUENTIAL_KEY)
    return isinstance(value, bool) and value


def _response_combiner_name(extra: dict[str, Any] | None) -> str:
    name = _extra_section(extra).get(_MERGE_KEY)
    if isinstance(name, str) and name in _response_combiners:
        return name
    return DEFAULT_COMBINER_NAME


def _service_timeout(timeout: Any) -> float | None:
    seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout or 0)
    if seconds <= 0:
        return None
    return seconds * 0.85


def new_merge_data_middleware(logger: logging.Logger, endpoint: Any) -> Middleware:
    """Create a middleware merging the responses of the endpoint's backends.

    A non-positive endpoint timeout means the merge runs without a deadline.
    """
    backends = list(endpoint.backend or [])
    total = len(backends)
    if total == 0:
        raise NoBackendsError()
    if total == 1:
        return empty_middleware

    extra = getattr(endpoint, "extra_config", None)
    timeout = _service_timeout(getattr(endpoint, "timeout", 0))
    combiner_name = _response_combiner_name(extra)
    combiner = _response_combiners.get_response_combiner(combiner_name)
    sequential = _should_run_sequential(extra)

    logger.debug(
        "[ENDPOINT: %s][Merge] Backends: %d, sequential: %s, combiner: %s",
        getattr(endpoint, "endpoint", ""),
        total,
        "true" if sequential else "false",
        combiner_name,
    )

    def middleware(*next_proxies: Proxy) -> Proxy:
        if len(next_proxies) != total:
            raise NotEnoughProxiesError()
        if not sequential:
            return _parallel_merge(timeout, combiner, next_proxies)
        patterns = [getattr(backend, "url_pattern", "") for backend in backends]
        return _sequential_merge(patterns, timeout, combiner, next_proxies)

    return middleware


async def _call(proxy: Proxy, request: Request) -> tuple[Response | None, BaseException | None]:
    try:
        response = await proxy(request)
    except Exception as exc:
        return None, exc
    if response is None:
        return None, NullResultError()
    return response, None


def _parallel_merge(timeout: float | None, combiner: ResponseCombiner, proxies: Sequence[Proxy]) -> Proxy:
    async def merged(request: Request) -> Response | None:
        tasks = [asyncio.ensure_future(_call(proxy, request)) for proxy in proxies]
        accumulator = IncrementalMergeAccumulator(len(proxies), combiner)
        try:
            for next_done in asyncio.as_completed(tasks, timeout=timeout):
                try:
                    response, error = await next_done
                except TimeoutError:
                    response, error = None, _deadline_exceeded()
                accumulator.merge(response, error)
        finally:
            for task in tasks:
                task.cancel()
        return accumulator.result()

    return merged


def _restore(request: Request, snapshot: Request) -> None:
    for request_field in dataclasses.fields(snapshot):
        setattr(request, request_field.name, getattr(snapshot, request_field.name))


async def _sequential_call(
    proxy: Proxy, request: Request, timeout: float | None
) -> tuple[Response | None, BaseException | None]:
    snapshot = clone_request(request)
    try:
        return await asyncio.wait_for(_call(proxy, request), timeout)
    except TimeoutError:
        return None, _deadline_exceeded()
    finally:
        _restore(request, snapshot)


def _sequential_merge(
    patterns: Sequence[str], timeout: float | None, combiner: ResponseCombiner, proxies: Sequence[Proxy]
) -> Proxy:
    async def merged(request: Request) -> Response | None:
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        parts: dict[int, Response] = {}
        accumulator = IncrementalMergeAccumulator(len(proxies), combiner)

        for index, (pattern, proxy) in enumerate(zip(patterns, proxies)):
            if index > 0:
                _inject_params(pattern, index, parts, request)
            remaining = None if deadline is None else max(deadline - loop.time(), 0.0)
            response, error = await _sequential_call(proxy, request, remaining)
            if error is not None:
                if index == 0:
                    raise error
                accumulator.merge(None, error)
                break
            accumulator.merge(response, None)
            if not response.is_complete:
                break
            parts[index] = response

        return accumulator.result()

    return merged


def _inject_params(pattern: str, index: int, parts: dict[int, Response], request: Request) -> None:
    if request.params is None:
        request.params = {}
    for number, path in _MERGE_KEY_PATTERN.findall(pattern):
        response_number = int(number)
        if response_number >= index or response_number not in parts:
            continue
        data = parts[response_number].data or {}
        *parents, last = path.split(".")
        for key in parents:
            nested = data.get(key)
            if not isinstance(nested, dict):
                break
            data = nested
        if last not in data:
            continue
        request.params[f"Resp{number}_{path}"] = _param_value(data[last])


def _param_value(value: Any) -> str:
    match value:
        case list():
            return ",".join(_format_v(item) for item in value)
        case str():
            return value
        case bool():
            return "true" if value else "false"
        case int():
            return str(value)
        case float():
            return _format_float32_e(value)
        case _:
            return _format_v(value)


def _format_v(value: Any) -> str:
    match value:
        case None:
            return "<nil>"
        case bool():
            return "true" if value else "false"
        case float():
            return _format_float_shortest(value)
        case str():
            return value
        case dict():
            items = sorted(value.items(), key=lambda item: str(item[0]))
            return "map[" + " ".join(f"{_format_v(k)}:{_format_v(v)}" for k, v in items) + "]"
        case list() | tuple():
            return "[" + " ".join(_format_v(item) for item in value) + "]"
        case _:
            return str(value)


def _format_special(value: float) -> str | None:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return None


def _format_float_shortest(value: float) -> str:
    special = _format_special(value)
    if special is not None:
        return special
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    number = Decimal(repr(value)).normalize()
    exponent = number.adjusted()
    if -4 <= exponent < 21:
        return format(number, "f")
    sign, digits, _ = number.as_tuple()
    mantissa = str(digits[0])
    if len(digits) > 1:
        mantissa += "." + "".join(str(digit) for digit in digits[1:])
    exponent_sign = "-" if exponent < 0 else "+"
    return f"{'-' if sign else ''}{mantissa}e{exponent_sign}{abs(exponent):02d}"


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _format_float32_e(value: float) -> str:
    single = _to_float32(value)
    special = _format_special(single)
    if special is not None:
        return special
    candidates = (f"{single:.{precision}e}" for precision in range(9))
    text = next(candidate for candidate in candidates if _to_float32(float(candidate)) == single)
    return text.upper()