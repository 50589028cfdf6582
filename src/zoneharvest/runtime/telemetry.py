from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class TopKEntry:
    key: str
    score: float
    payload: Mapping[str, object] | None = None


@dataclass(slots=True)
class TopK:
    k: int = 10
    entries: list[TopKEntry] = field(default_factory=list)

    def add(self, key: str, score: float, payload: Mapping[str, object] | None = None) -> None:
        self.entries = [entry for entry in self.entries if entry.key != key]
        self.entries.append(TopKEntry(key=key, score=float(score), payload=dict(payload or {})))
        self.entries.sort(key=lambda e: (-e.score, e.key))
        if len(self.entries) > max(1, int(self.k)):
            self.entries = self.entries[: int(self.k)]

    def snapshot(self) -> list[Mapping[str, object]]:
        return [
            {"key": entry.key, "score": entry.score, "payload": dict(entry.payload or {})}
            for entry in self.entries
        ]


@dataclass(slots=True)
class Metrics:
    counters: dict[str, float] = field(default_factory=dict)
    gauges: dict[str, Any] = field(default_factory=dict)
    topk: dict[str, TopK] = field(default_factory=dict)

    def inc(self, path: str, n: float = 1.0) -> float:
        self.counters[path] = self.counters.get(path, 0.0) + float(n)
        return self.counters[path]

    def get(self, path: str, default: float = 0.0) -> float:
        return self.counters.get(path, default)

    def set_gauge(self, path: str, value: Any) -> Any:
        self.gauges[path] = value
        return value

    def topk_add(self, path: str, key: str, score: float, payload: Mapping[str, object] | None = None) -> None:
        bucket = self.topk.get(path)
        if bucket is None:
            bucket = TopK()
            self.topk[path] = bucket
        bucket.add(key, score, payload=payload)

    def hit_rate(self, kind: str) -> float:
        """Return the hit ratio recorded under ``cache.<kind>.hit|miss``."""

        hits = self.counters.get(f"cache.{kind}.hit", 0.0)
        misses = self.counters.get(f"cache.{kind}.miss", 0.0)
        total = hits + misses
        if total <= 0:
            return 0.0
        return hits / total


@dataclass(slots=True)
class EventRing:
    capacity: int = 200
    events: list[Mapping[str, object]] = field(default_factory=list)

    def append(self, event: Mapping[str, object]) -> None:
        self.events.append(dict(event))
        if len(self.events) > max(1, int(self.capacity)):
            self.events = self.events[-int(self.capacity) :]

    def tail(self, n: int = 10) -> list[Mapping[str, object]]:
        return list(self.events[-max(0, int(n)) :])

    def of_type(self, event_type: str) -> list[Mapping[str, object]]:
        return [event for event in self.events if event.get("type") == event_type]


@dataclass(slots=True)
class DebugConfig:
    level: str = "standard"

    def has_event_ring(self) -> bool:
        return self.level in {"standard", "verbose"}

    def is_verbose(self) -> bool:
        return self.level == "verbose"


def ensure_metrics(state: Any) -> Metrics:
    metrics = getattr(state, "metrics", None)
    if isinstance(metrics, Metrics):
        return metrics
    converted = Metrics()
    if isinstance(metrics, Mapping):
        for key, value in metrics.items():
            try:
                converted.counters[str(key)] = float(value)
            except (TypeError, ValueError):
                continue
    state.metrics = converted
    return converted


def ensure_event_ring(state: Any) -> EventRing:
    cfg = getattr(state, "debug_cfg", None)
    if not isinstance(cfg, DebugConfig):
        cfg = DebugConfig()
        state.debug_cfg = cfg
    ring = getattr(state, "event_ring", None)
    if cfg.has_event_ring():
        if not isinstance(ring, EventRing):
            ring = EventRing()
            state.event_ring = ring
        return ring
    return ring if isinstance(ring, EventRing) else EventRing(capacity=0)


def record_event(state: Any, event: Mapping[str, object]) -> None:
    ensure_metrics(state).inc(f"events.{event.get('type', 'UNKNOWN')}")
    ring = ensure_event_ring(state)
    if ring.capacity <= 0:
        return
    payload = dict(event)
    if "tick" not in payload:
        payload["tick"] = getattr(state, "tick", 0)
    ring.append(payload)


def record_debug(state: Any, event: Mapping[str, object]) -> None:
    """Record ``event`` only when the debug level is ``verbose``."""

    cfg = getattr(state, "debug_cfg", None)
    if isinstance(cfg, DebugConfig) and cfg.is_verbose():
        record_event(state, event)


def record_cache_lookup(state: Any, kind: str, *, hit: bool) -> None:
    ensure_metrics(state).inc(f"cache.{kind}.{'hit' if hit else 'miss'}")


def guarded_call(
    state: Any,
    collaborator: str,
    operation: str,
    fn: Callable[..., T],
    *args: Any,
    default: T,
    zone: str | None = None,
) -> T:
    """Call into a world collaborator; failures become a warning event and ``default``."""

    try:
        return fn(*args)
    except Exception as exc:
        record_event(
            state,
            {
                "type": "COLLABORATOR_ERROR",
                "severity": "warning",
                "collaborator": collaborator,
                "operation": operation,
                "error": f"{type(exc).__name__}: {exc}",
                "zone": zone,
            },
        )
        return default


__all__ = [
    "DebugConfig",
    "EventRing",
    "Metrics",
    "TopK",
    "TopKEntry",
    "ensure_event_ring",
    "ensure_metrics",
    "guarded_call",
    "record_cache_lookup",
    "record_debug",
    "record_event",
]
