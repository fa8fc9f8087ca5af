"""Registers safe for concurrent access: a flat one and a namespaced one."""

import threading
from typing import Any


class Untyped:
    """A simple name-to-value register, safe for concurrent access."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, name: str, value: Any) -> None:
        """Store value under name, replacing any previous value."""
        with self._lock:
            self._data[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        """Return the value stored under name, or default when missing."""
        with self._lock:
            return self._data.get(name, default)

    def clone(self) -> dict[str, Any]:
        """Return a snapshot of the register contents."""
        with self._lock:
            return dict(self._data)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class Namespaced:
    """A register keeping values under a namespace and a name."""

    def __init__(self) -> None:
        self._data = Untyped()

    def get(self, namespace: str) -> Untyped | None:
        """Return the register stored under namespace, if any."""
        value = self._data.get(namespace)
        return value if isinstance(value, Untyped) else None

    def register(self, namespace: str, name: str, value: Any) -> None:
        """Store value under name inside the given namespace."""
        existing = self.get(namespace)
        if existing is not None:
            existing.register(name, value)
            return
        created = Untyped()
        created.register(name, value)
        self._data.register(namespace, created)

    def add_namespace(self, namespace: str) -> None:
        """Add an empty register under namespace unless it already exists."""
        if self.get(namespace) is None:
            self._data.register(namespace, Untyped())