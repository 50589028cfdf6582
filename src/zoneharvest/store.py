"""Durable key-value store used for every coordination record.

All caches and per-agent state live behind the small ``KeyValueStore``
protocol so the coordination layer never holds ambient globals.  Keys are
plain strings built by the ``*_key`` helpers below; values are the record
dataclasses themselves.  ``InMemoryStore`` is the default implementation and
the one the test-suite runs against.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Protocol, Type, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...

    def keys(self, prefix: str = "") -> list[str]:
        ...


class InMemoryStore:
    """Dictionary-backed store; ``keys`` iterates in sorted order."""

    def __init__(self, initial: Dict[str, Any] | None = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._data if key.startswith(prefix))

    def items(self, prefix: str = "") -> Iterator[tuple[str, Any]]:
        for key in self.keys(prefix):
            yield key, self._data[key]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


def get_typed(store: KeyValueStore, key: str, cls: Type[T]) -> T | None:
    value = store.get(key)
    if value is None:
        return None
    if not isinstance(value, cls):
        raise TypeError(f"Store key '{key}' holds {type(value).__name__}, expected {cls.__name__}")
    return value


SAFETY_PREFIX = "safety:"
ACCESS_PREFIX = "access:"
RESOURCES_PREFIX = "resources:"
PROFIT_PREFIX = "profit:"
AGENT_PREFIX = "agent:"
EXPLORE_PREFIX = "explore:"
ROUND_ROBIN_PREFIX = "rr:"
META_PREFIX = "meta:"


def safety_key(zone: str) -> str:
    return f"{SAFETY_PREFIX}{zone}"


def access_key(from_zone: str, to_zone: str) -> str:
    return f"{ACCESS_PREFIX}{from_zone}->{to_zone}"


def resources_key(home_zone: str) -> str:
    return f"{RESOURCES_PREFIX}{home_zone}"


def profit_key(node_id: str, home_zone: str) -> str:
    return f"{PROFIT_PREFIX}{node_id}@{home_zone}"


def agent_key(agent_name: str) -> str:
    return f"{AGENT_PREFIX}{agent_name}"


def explore_key(zone: str) -> str:
    return f"{EXPLORE_PREFIX}{zone}"


def round_robin_key(zone: str, role: str) -> str:
    return f"{ROUND_ROBIN_PREFIX}{zone}:{role}"


def meta_key(name: str) -> str:
    return f"{META_PREFIX}{name}"


def strip_prefix(key: str, prefix: str) -> str:
    return key[len(prefix) :] if key.startswith(prefix) else key


__all__ = [
    "ACCESS_PREFIX",
    "AGENT_PREFIX",
    "EXPLORE_PREFIX",
    "InMemoryStore",
    "KeyValueStore",
    "META_PREFIX",
    "PROFIT_PREFIX",
    "RESOURCES_PREFIX",
    "ROUND_ROBIN_PREFIX",
    "SAFETY_PREFIX",
    "access_key",
    "agent_key",
    "explore_key",
    "get_typed",
    "meta_key",
    "profit_key",
    "resources_key",
    "round_robin_key",
    "safety_key",
    "strip_prefix",
]
