import logging
from dataclasses import replace
from types import SimpleNamespace

import pytest

from luraproxy.modifier import NAMESPACE, load, register_modifier
from luraproxy.plugins import (
    RequestWrapper,
    ResponseWrapper,
    new_backend_plugin_middleware,
    new_plugin_middleware,
)
from luraproxy.proxy import (
    Metadata,
    Response,
    TooManyProxiesError,
    empty_middleware,
    noop_proxy,
)
from luraproxy.request import Request

LOGGER = logging.getLogger("test-plugins")


class StatusCodeError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class _LoggerPlugin:
    name = "lura-request-modifier-example"

    def register_modifiers(self, register):
        register(self.name + "-request", self._request_factory, True, False)
        register(self.name + "-response", self._response_factory, False, True)

    def register_logger(self, logger):
        self.logger = logger

    def _request_factory(self, _cfg):
        def modify(wrapper):
            if not isinstance(wrapper, RequestWrapper):
                raise TypeError("unknown request type")
            return replace(wrapper, path=wrapper.path.rstrip("/") + "/fooo")

        return modify

    def _response_factory(self, _cfg):
        def modify(wrapper):
            if not isinstance(wrapper, ResponseWrapper):
                raise TypeError("unknown request type")
            return wrapper

        return modify


class _ErrorPlugin:
    name = "lura-error-example"

    def register_modifiers(self, register):
        register(self.name + "-request", self._request_factory, True, False)
        register(self.name + "-response", self._response_factory, False, True)

    def _request_factory(self, _cfg):
        def modify(_wrapper):
            raise StatusCodeError("request rejected just because", 418)

        return modify

    def _response_factory(self, _cfg):
        def modify(_wrapper):
            raise StatusCodeError("response replaced because reasons", 418)

        return modify


@pytest.fixture(autouse=True)
def loaded_plugins():
    return load([_LoggerPlugin(), _ErrorPlugin()], register_modifier, LOGGER)


def _endpoint(*names):
    return SimpleNamespace(endpoint="/test", extra_config={NAMESPACE: {"name": list(names)}})


def _backend(*names):
    extra = {NAMESPACE: {"name": list(names)}} if names else {}
    return SimpleNamespace(url_pattern="/backend", extra_config=extra)


@pytest.mark.asyncio
async def test_plugin_middleware_logger():
    async def validator(request):
        if request.path != "/bar/fooo/fooo":
            raise ValueError(f"unexpected path {request.path}")
        return Response(
            data={"foo": "bar"},
            is_complete=True,
            metadata=Metadata(headers={}, status_code=0),
        )

    backend = new_backend_plugin_middleware(LOGGER, _backend("lura-request-modifier-example-request"))(validator)
    proxy = new_plugin_middleware(
        LOGGER,
        _endpoint("lura-request-modifier-example-request", "lura-request-modifier-example-response"),
    )(backend)

    response = await proxy(Request(path="/bar"))
    assert response.data == {"foo": "bar"}
    assert response.is_complete is True


@pytest.mark.asyncio
async def test_plugin_middleware_error_request():
    calls = []

    async def validator(request):
        calls.append(request)
        return None

    backend = new_backend_plugin_middleware(LOGGER, _backend())(validator)
    proxy = new_plugin_middleware(LOGGER, _endpoint("lura-error-example-request"))(backend)

    with pytest.raises(StatusCodeError) as info:
        await proxy(Request(path="/bar"))
    assert info.value.status_code == 418
    assert str(info.value) == "request rejected just because"
    assert calls == []


@pytest.mark.asyncio
async def test_plugin_middleware_error_response():
    calls = []

    async def validator(request):
        calls.append(request)
        return Response(data={"foo": "bar"}, is_complete=True, metadata=Metadata(headers={}))

    backend = new_backend_plugin_middleware(LOGGER, _backend())(validator)
    proxy = new_plugin_middleware(LOGGER, _endpoint("lura-error-example-response"))(backend)

    with pytest.raises(StatusCodeError) as info:
        await proxy(Request(path="/bar"))
    assert info.value.status_code == 418
    assert str(info.value) == "response replaced because reasons"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_response_modifier_replaces_response_fields():
    def factory(_cfg):
        return lambda wrapper: ResponseWrapper(
            data={"replaced": True}, is_complete=False, headers={"X": ["y"]}, status_code=201
        )

    register_modifier("test-plugins-replacing-response", factory, False, True)

    async def backend(_request):
        return Response(data={"foo": "bar"}, is_complete=True)

    proxy = new_plugin_middleware(LOGGER, _endpoint("test-plugins-replacing-response"))(backend)
    response = await proxy(Request())
    assert response.data == {"replaced": True}
    assert response.is_complete is False
    assert response.metadata == Metadata(headers={"X": ["y"]}, status_code=201)


@pytest.mark.asyncio
async def test_request_modifier_result_of_other_type_is_ignored():
    def factory(_cfg):
        return lambda wrapper: "not a wrapper"

    register_modifier("test-plugins-ignored-result", factory, True, False)

    async def backend(request):
        return Response(data={"path": request.path}, is_complete=True)

    proxy = new_plugin_middleware(LOGGER, _endpoint("test-plugins-ignored-result"))(backend)
    response = await proxy(Request(path="/keep"))
    assert response.data == {"path": "/keep"}
    assert response.is_complete is True


def test_no_config_gives_empty_middleware():
    assert new_plugin_middleware(LOGGER, SimpleNamespace(endpoint="/x", extra_config={})) is empty_middleware
    assert new_backend_plugin_middleware(LOGGER, _backend()) is empty_middleware


def test_unknown_names_give_empty_middleware():
    assert new_plugin_middleware(LOGGER, _endpoint("test-plugins-unknown", 42)) is empty_middleware
    bad_names = SimpleNamespace(endpoint="/x", extra_config={NAMESPACE: {"name": "not-a-list"}})
    assert new_plugin_middleware(LOGGER, bad_names) is empty_middleware


def test_plugin_middleware_multiple_next():
    middleware = new_plugin_middleware(LOGGER, _endpoint("lura-error-example-request"))
    with pytest.raises(TooManyProxiesError):
        middleware(noop_proxy, noop_proxy)


def test_loaded_plugin_count(loaded_plugins):
    assert loaded_plugins == 2