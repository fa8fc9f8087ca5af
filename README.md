# luraproxy

Building blocks for the proxy layer of an API gateway, on `asyncio`.

A *proxy* is an async callable that takes a `Request` and returns a
`Response` (or `None`). A *middleware* is a callable that takes one or more
proxies and returns a new proxy. Failures are raised as exceptions; when a
failure still carries usable data, the exception has that `Response` in its
`partial_response` attribute.

## Install

```
pip install luraproxy
pip install "luraproxy[test]"   # to run the test suite
```

## Modules

- `luraproxy.request`: the `Request` dataclass (`method`, `url`, `query`,
  `path`, `body`, `params`, `headers`). `generate_path(url_pattern)` fills
  `{{.Name}}` placeholders from `params`; `clone()` makes a shallow copy.
  `clone_request` makes a copy sharing nothing mutable, reading the body once
  and giving both requests their own readable copy. `clone_request_headers`
  and `clone_request_params` copy those mappings.
- `luraproxy.proxy`: `Response`, `Metadata`, `empty_middleware`, `noop_proxy`,
  `ReadCloserWrapper` / `new_read_closer_wrapper` (closes a stream once an
  `asyncio.Event` is set or an awaitable resolves), and the errors
  `ProxyError`, `NoBackendsError`, `TooManyBackendsError`,
  `TooManyProxiesError`, `NotEnoughProxiesError`.
- `luraproxy.register`: `Untyped`, a thread-safe name-to-value register, and
  `Namespaced`, a register of registers keyed by namespace.
- `luraproxy.logging_middleware`: `new_logging_middleware(logger, name)` logs,
  through a standard `logging.Logger`, the start, duration and failure or
  empty result of every call.
- `luraproxy.static`: `new_static_middleware(logger, endpoint)` adds static
  data to responses. `get_static_middleware_cfg(extra)` parses the section;
  `StaticConfig.match` applies one of the `StaticStrategy` rules: `always`,
  `success`, `errored`, `complete`, `incomplete`.
- `luraproxy.shadow`: `shadow_middleware`, `new_shadow_proxy`,
  `new_shadow_factory` / `ShadowFactory` and `is_shadow_backend`. Shadow
  backends get a copy of every request in a background task; their replies
  and errors are ignored.
- `luraproxy.merging`: `new_merge_data_middleware(logger, endpoint)` calls
  several backends, in parallel or in sequence, and merges their data with a
  response combiner (`combine_data` by default). The merge runs under 85% of
  the endpoint timeout; a non-positive timeout means no deadline. In
  sequential mode, `{{.RespN_key}}` placeholders (dotted keys allowed) in a
  backend's URL pattern put values from earlier responses into the request
  params. Failures are gathered in a `MergeError`; a backend answering `None`
  counts as a `NullResultError`. Custom combiners go in with
  `register_response_combiner`; `new_register()` returns the shared
  `CombinerRegister`. `IncrementalMergeAccumulator` is the merging step on its
  own.
- `luraproxy.modifier`: `register_modifier`, `get_request_modifier`,
  `get_response_modifier`, and `load(registerers, register_func, logger)`,
  which lets each plugin object call `register_modifiers(register_func)` (and
  `register_logger(logger)` when it has one) and raises `LoaderError` listing
  the ones that failed.
- `luraproxy.plugins`: `new_plugin_middleware(logger, endpoint)` and
  `new_backend_plugin_middleware(logger, remote)` run the named modifiers
  around a proxy, passing them `RequestWrapper` and `ResponseWrapper` views.
- `luraproxy.http_response`: `HTTPResponseParserConfig`,
  `default_http_response_parser_factory(cfg)` (decodes the body with the
  configured decoder and formats the result) and `noop_http_response_parser`
  (keeps the raw body in `Response.io` with the status code and headers).
  Bodies are read through `httpx`, which undoes gzip content encoding.
- `luraproxy.http`: `new_http_proxy_detailed(executor, status_handler, parser)`
  turns a `Request` into an `httpx.Request`, hands it to your executor, runs
  the status handler and then the parser. A status-handler error with a
  `name` and a `status_code` becomes a response holding it under
  `error_<name>`. `new_request_builder_middleware(remote)` sets the backend
  path and method on each request.

## Configuration objects

Endpoints and backends are any objects with the attributes the functions
read: an endpoint has `backend` (a list), `timeout` (seconds or a
`timedelta`), `extra_config` and `endpoint`; a backend has `url_pattern`,
`method` and `extra_config`. The `extra_config` sections live under the key
`"luraproxy/proxy"` (keys `sequential`, `combiner`, `static`, `shadow`) and,
for plugins, `"luraproxy/proxy/plugin"` (key `name`, a list of modifier names).

## Example

```python
import asyncio
import logging
from types import SimpleNamespace

from luraproxy.merging import new_merge_data_middleware
from luraproxy.proxy import Response
from luraproxy.request import Request


def backend(data):
    async def call(request):
        return Response(data=dict(data), is_complete=True)
    return call


async def main():
    endpoint = SimpleNamespace(
        endpoint="/combined",
        backend=[SimpleNamespace(url_pattern="/a"), SimpleNamespace(url_pattern="/b")],
        timeout=1.0,
        extra_config={},
    )
    middleware = new_merge_data_middleware(logging.getLogger("gateway"), endpoint)
    proxy = middleware(backend({"a": 1}), backend({"b": 2}))
    response = await proxy(Request())
    print(response.data, response.is_complete)  # {'a': 1, 'b': 2} True


asyncio.run(main())
```

## What it does not do

The package is the proxy pipeline only. It has no HTTP server, router or
command line, does not read configuration files, and does not build the
endpoint and backend configuration objects. It makes no HTTP client of its
own: `new_http_proxy_detailed` takes the executor and status handler from
you. Plugins are Python objects passed to `load`; nothing is loaded from
disk.

## Tests

```
pytest
```