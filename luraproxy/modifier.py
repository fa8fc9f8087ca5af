"""Registration and loading of request and response modifier plugins.

A plugin is any object exposing ``register_modifiers(register_func)``. It may
also expose ``register_logger(logger)`` to receive the host logger.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from luraproxy.register import Namespaced

NAMESPACE = "luraproxy/proxy/plugin"
_REQUEST_NAMESPACE = "luraproxy/proxy/plugin/request"
_RESPONSE_NAMESPACE = "luraproxy/proxy/plugin/response"

Modifier = Callable[[Any], Any]
ModifierFactory = Callable[[dict[str, Any]], Modifier]
RegisterModifierFunc = Callable[[str, ModifierFactory, bool, bool], None]

_modifier_register = Namespaced()


class LoaderError(Exception):
    """Collects the failures found while loading modifier plugins.

    ``loaded`` holds how many plugins were loaded successfully.
    """

    def __init__(self, errors: Iterable[BaseException], loaded: int = 0) -> None:
        self.errors = list(errors)
        self.loaded = loaded
        messages = "\n".join(str(error) for error in self.errors)
        super().__init__(f"plugin loader found {len(self.errors)} error(s): \n{messages}")

    def __len__(self) -> int:
        return len(self.errors)


def register_modifier(
    name: str,
    modifier_factory: ModifierFactory,
    applies_to_request: bool,
    applies_to_response: bool,
) -> None:
    """Register a modifier factory for requests, responses or both."""
    if applies_to_request:
        _modifier_register.register(_REQUEST_NAMESPACE, name, modifier_factory)
    if applies_to_response:
        _modifier_register.register(_RESPONSE_NAMESPACE, name, modifier_factory)


def _get_modifier(namespace: str, name: str) -> ModifierFactory | None:
    register = _modifier_register.get(namespace)
    if register is None:
        return None
    factory = register.get(name)
    return factory if callable(factory) else None


def get_request_modifier(name: str) -> ModifierFactory | None:
    """Return the request modifier factory registered as name, if any."""
    return _get_modifier(_REQUEST_NAMESPACE, name)


def get_response_modifier(name: str) -> ModifierFactory | None:
    """Return the response modifier factory registered as name, if any."""
    return _get_modifier(_RESPONSE_NAMESPACE, name)


def _plugin_label(registerer: Any) -> str:
    return str(getattr(registerer, "name", type(registerer).__name__))


def _open(registerer: Any, register_func: RegisterModifierFunc, logger: logging.Logger | None) -> None:
    register_modifiers = getattr(registerer, "register_modifiers", None)
    if not callable(register_modifiers):
        raise TypeError("modifier plugin loader: unknown type")
    if logger is not None:
        register_logger = getattr(registerer, "register_logger", None)
        if callable(register_logger):
            register_logger(logger)
    register_modifiers(register_func)


def load(
    registerers: Iterable[Any],
    register_func: RegisterModifierFunc = register_modifier,
    logger: logging.Logger | None = None,
) -> int:
    """Let every plugin register its modifiers and return how many succeeded.

    Raises LoaderError listing every plugin that failed.
    """
    errors: list[Exception] = []
    loaded = 0
    for index, registerer in enumerate(registerers):
        try:
            _open(registerer, register_func, logger)
        except Exception as exc:
            errors.append(RuntimeError(f"plugin #{index} ({_plugin_label(registerer)}): {exc}"))
            continue
        loaded += 1
    if errors:
        raise LoaderError(errors, loaded)
    return loaded