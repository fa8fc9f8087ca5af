import logging
from dataclasses import dataclass, field, replace

import pytest

from luraproxy.modifier import (
    LoaderError,
    get_request_modifier,
    get_response_modifier,
    load,
    register_modifier,
)


@dataclass(frozen=True)
class _Wrapper:
    method: str = ""
    url: str | None = None
    query: dict = field(default_factory=dict)
    path: str = ""
    body: object = None
    params: dict = field(default_factory=dict)
    headers: dict = field(default_factory=dict)


class _RequestModifierPlugin:
    name = "lura-request-modifier-example"

    def __init__(self):
        self.logger = None

    def register_modifiers(self, register):
        register(self.name + "-request", self._request_factory, True, False)
        register(self.name + "-response", self._response_factory, False, True)

    def register_logger(self, logger):
        self.logger = logger

    def _request_factory(self, _cfg):
        def modify(wrapper):
            return replace(wrapper, path=wrapper.path.rstrip("/") + "/fooo")

        return modify

    def _response_factory(self, _cfg):
        return lambda wrapper: wrapper


class _ErrorPlugin:
    name = "lura-error-example"

    def register_modifiers(self, register):
        register(self.name + "-request", self._factory, True, False)
        register(self.name + "-response", self._factory, False, True)

    def _factory(self, _cfg):
        def modify(_wrapper):
            raise ValueError("rejected")

        return modify


class Broken:
    pass


class Exploding:
    name = "exploding"

    def register_modifiers(self, register):
        raise RuntimeError("boom")


def test_load():
    total = load([_RequestModifierPlugin(), _ErrorPlugin()], register_modifier)
    assert total == 2

    factory = get_request_modifier("lura-request-modifier-example-request")
    assert factory is not None
    modifier = factory({})
    output = modifier(_Wrapper(path="/bar"))
    assert output.path == "/bar/fooo"


def test_load_registers_through_given_function():
    calls = []
    total = load([_ErrorPlugin()], lambda name, f, req, resp: calls.append((name, req, resp)))
    assert total == 1
    assert calls == [
        ("lura-error-example-request", True, False),
        ("lura-error-example-response", False, True),
    ]


def test_load_passes_logger():
    plugin = _RequestModifierPlugin()
    logger = logging.getLogger("test-modifier")
    assert load([plugin], lambda *args: None, logger) == 1
    assert plugin.logger is logger


def test_load_unknown_type():
    with pytest.raises(LoaderError) as info:
        load([Broken()], lambda *args: None)
    assert str(info.value) == (
        "plugin loader found 1 error(s): \nplugin #0 (Broken): modifier plugin loader: unknown type"
    )
    assert len(info.value) == 1
    assert info.value.loaded == 0


def test_load_partial_failure_counts_loaded():
    with pytest.raises(LoaderError) as info:
        load([_ErrorPlugin(), Exploding()], lambda *args: None)
    assert info.value.loaded == 1
    assert [str(error) for error in info.value.errors] == ["plugin #1 (exploding): boom"]


def test_register_modifier_namespaces():
    def factory(_cfg):
        return lambda wrapper: wrapper

    register_modifier("test-modifier-only-response", factory, False, True)
    assert get_request_modifier("test-modifier-only-response") is None
    assert get_response_modifier("test-modifier-only-response") is factory

    register_modifier("test-modifier-both", factory, True, True)
    assert get_request_modifier("test-modifier-both") is factory
    assert get_response_modifier("test-modifier-both") is factory


def test_unknown_modifier():
    assert get_request_modifier("test-modifier-missing") is None
    assert get_response_modifier("test-modifier-missing") is None