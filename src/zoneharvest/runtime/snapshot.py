from __future__ import annotations

import importlib
import json
import math
from dataclasses import fields, is_dataclass
from enum import Enum
from hashlib import sha256
from typing import Any, Mapping, MutableMapping, Sequence

from zoneharvest.store import InMemoryStore, KeyValueStore

SNAPSHOT_SCHEMA_VERSION = "zoneharvest_store_v1"

_TRUSTED_PREFIX = "zoneharvest."


def _resolve_type(path: str):
    if not path.startswith(_TRUSTED_PREFIX):
        raise ValueError(f"Refusing to restore type outside the package: {path}")
    module_path, _, attr = path.rpartition(".")
    module = importlib.import_module(module_path)
    return getattr(module, attr)


def to_snapshot_dict(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        payload = {field.name: to_snapshot_dict(getattr(obj, field.name)) for field in fields(obj)}
        return {"__type__": f"{obj.__class__.__module__}.{obj.__class__.__qualname__}", "data": payload}

    if isinstance(obj, Enum):
        return {"__enum__": f"{obj.__class__.__module__}.{obj.__class__.__qualname__}", "value": obj.value}

    if isinstance(obj, float) and not math.isfinite(obj):
        return {"__float__": repr(obj)}

    if isinstance(obj, set):
        return {"__set__": [to_snapshot_dict(item) for item in sorted(obj, key=lambda itm: str(itm))]}

    if isinstance(obj, Mapping):
        return {str(k): to_snapshot_dict(v) for k, v in sorted(obj.items(), key=lambda item: str(item[0]))}

    if isinstance(obj, Sequence) and not isinstance(obj, (str, bytes, bytearray)):
        return [to_snapshot_dict(item) for item in obj]

    return obj


def from_snapshot_dict(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        if "__enum__" in obj:
            enum_cls = _resolve_type(obj["__enum__"])
            return enum_cls(obj["value"])

        if "__float__" in obj:
            return float(obj["__float__"])

        if "__set__" in obj:
            return set(from_snapshot_dict(item) for item in obj.get("__set__", []))

        if "__type__" in obj and "data" in obj:
            cls = _resolve_type(obj["__type__"])
            if is_dataclass(cls):
                kwargs: MutableMapping[str, Any] = {}
                for field in fields(cls):
                    if field.name in obj["data"]:
                        kwargs[field.name] = from_snapshot_dict(obj["data"][field.name])
                return cls(**kwargs)

        return {key: from_snapshot_dict(value) for key, value in obj.items()}

    if isinstance(obj, list):
        return [from_snapshot_dict(item) for item in obj]

    return obj


def snapshot_store(store: KeyValueStore, *, tick: int = 0) -> dict[str, Any]:
    """Type-tagged, JSON-serialisable copy of every record in ``store``."""

    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "tick": int(tick),
        "records": {key: to_snapshot_dict(store.get(key)) for key in sorted(store.keys())},
    }


def restore_store(payload: Mapping[str, Any]) -> InMemoryStore:
    version = payload.get("schema_version", SNAPSHOT_SCHEMA_VERSION)
    if version != SNAPSHOT_SCHEMA_VERSION:
        raise ValueError(f"Unsupported snapshot schema: {version}")
    store = InMemoryStore()
    for key, value in payload.get("records", {}).items():
        store.set(key, from_snapshot_dict(value))
    return store


def _canonical_dumps(data: Mapping[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), allow_nan=False)


def dumps_snapshot(payload: Mapping[str, Any]) -> str:
    return _canonical_dumps(payload)


def loads_snapshot(raw: str) -> dict[str, Any]:
    return json.loads(raw)


def store_signature(store: KeyValueStore) -> str:
    records = {key: to_snapshot_dict(store.get(key)) for key in sorted(store.keys())}
    return sha256(_canonical_dumps(records).encode("utf-8")).hexdigest()


__all__ = [
    "SNAPSHOT_SCHEMA_VERSION",
    "dumps_snapshot",
    "from_snapshot_dict",
    "loads_snapshot",
    "restore_store",
    "snapshot_store",
    "store_signature",
    "to_snapshot_dict",
]
