"""Turning backend HTTP responses into proxy responses."""

import io
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, BinaryIO

import httpx

from luraproxy.proxy import Metadata, Response

Decoder = Callable[[BinaryIO], "dict[str, Any] | None"]
EntityFormatter = Callable[[Response], Response]
HTTPResponseParser = Callable[[httpx.Response], Awaitable[Response]]


@dataclass(frozen=True)
class HTTPResponseParserConfig:
    """The decoder and entity formatter a response parser works with."""

    decoder: Decoder
    entity_formatter: EntityFormatter


def _nop_decoder(reader: BinaryIO) -> dict[str, Any]:
    """Discard the whole body and decode it to an empty mapping."""
    reader.read()
    return {}


def _identity_formatter(response: Response) -> Response:
    """Return a shallow copy of the response with nothing changed."""
    return replace(response)


DEFAULT_HTTP_RESPONSE_PARSER_CONFIG = HTTPResponseParserConfig(
    decoder=_nop_decoder,
    entity_formatter=_identity_formatter,
)


async def _read_body(response: httpx.Response) -> bytes:
    # httpx undoes gzip (and other) content encodings while reading the body.
    try:
        return await response.aread()
    finally:
        await response.aclose()


def _canonical_header_key(key: str) -> str:
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def _canonical_headers(headers: httpx.Headers) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for key, value in headers.multi_items():
        result.setdefault(_canonical_header_key(key), []).append(value)
    return result


def default_http_response_parser_factory(cfg: HTTPResponseParserConfig) -> HTTPResponseParser:
    """Return a parser decoding the body with cfg's decoder and formatting the result."""

    async def parse(response: httpx.Response) -> Response:
        content = await _read_body(response)
        data = cfg.decoder(io.BytesIO(content))
        return cfg.entity_formatter(Response(data=data, is_complete=True))

    return parse


async def noop_http_response_parser(response: httpx.Response) -> Response:
    """Return a response carrying the backend body untouched in its io stream."""
    content = await _read_body(response)
    return Response(
        data={},
        is_complete=True,
        io=io.BytesIO(content),
        metadata=Metadata(
            headers=_canonical_headers(response.headers),
            status_code=response.status_code,
        ),
    )