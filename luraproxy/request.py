"""The request handed down the proxy pipe to the backends."""

import dataclasses
import io
from dataclasses import dataclass, field
from typing import BinaryIO


@dataclass
class Request:
    """Data to send to a backend."""

    method: str = ""
    url: str | None = None
    query: dict[str, list[str]] = field(default_factory=dict)
    path: str = ""
    body: BinaryIO | None = None
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)

    def generate_path(self, url_pattern: str) -> None:
        """Set the path from url_pattern, filling in {{.Name}} placeholders from params."""
        path = url_pattern
        for key, value in (self.params or {}).items():
            path = path.replace("{{." + key + "}}", value)
        self.path = path

    def clone(self) -> "Request":
        """Return a shallow copy sharing params, headers and body with this request."""
        return dataclasses.replace(self)


def clone_request(request: Request) -> Request:
    """Return a copy sharing no mutable state with the original.

    The body is read once and both requests get their own readable copy.
    """
    clone = request.clone()
    clone.headers = clone_request_headers(request.headers)
    clone.params = clone_request_params(request.params)
    if request.body is None:
        return clone
    content = request.body.read()
    request.body.close()
    request.body = io.BytesIO(content)
    clone.body = io.BytesIO(content)
    return clone


def clone_request_headers(headers: dict[str, list[str]] | None) -> dict[str, list[str]]:
    """Return a copy of the headers, lists included."""
    return {key: list(values) for key, values in (headers or {}).items()}


def clone_request_params(params: dict[str, str] | None) -> dict[str, str]:
    """Return a copy of the params."""
    return dict(params or {})