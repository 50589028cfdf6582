"""Canonical contracts between the coordination layer and the world."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Any, Dict, Mapping, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class PayloadSchema:
    """Minimal structural schema for validating payload dictionaries."""

    required: Mapping[str, tuple[type, ...]]
    optional: Mapping[str, tuple[type, ...]] = field(default_factory=dict)

    def validate(self, payload: Mapping[str, Any]) -> None:
        missing = [key for key in self.required if key not in payload]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")
        for key, expected in self.required.items():
            if not isinstance(payload[key], expected):
                raise TypeError(f"Field '{key}' has type {type(payload[key])!r}, expected {expected!r}")
        for key, expected in self.optional.items():
            if key in payload and not isinstance(payload[key], expected):
                raise TypeError(f"Field '{key}' has type {type(payload[key])!r}, expected {expected!r}")


NUMERIC = (int, float)
OPTIONAL_STR = (str, type(None))


class ZoneOwnership(str, Enum):
    OWNED = "owned"
    RESERVED = "reserved"
    NEUTRAL = "neutral"
    HOSTILE = "hostile"


class MoveResult(str, Enum):
    OK = "OK"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    NO_PATH = "NO_PATH"
    INVALID_TARGET = "INVALID_TARGET"

    @property
    def is_failure(self) -> bool:
        return self in (MoveResult.NO_PATH, MoveResult.INVALID_TARGET)


@dataclass(slots=True)
class ObservedNode:
    node_id: str
    zone_name: str
    amount: int
    capacity: int
    ticks_to_replenish: int | None = None
    nearby_agents: int = 0

    @property
    def amount_ratio(self) -> float:
        if self.capacity <= 0:
            return 0.0
        return max(0.0, min(1.0, self.amount / self.capacity))


@dataclass(slots=True)
class ZoneObservation:
    zone_name: str
    hostile_agents: int = 0
    hostile_structures: int = 0
    controller_level: int | None = None
    ownership: ZoneOwnership = ZoneOwnership.NEUTRAL
    resource_nodes: list[ObservedNode] = field(default_factory=list)
    loose_amounts: list[int] = field(default_factory=list)
    salvage_amounts: list[int] = field(default_factory=list)


@dataclass(slots=True)
class RouteResult:
    exists: bool
    exit_direction: str | None = None
    path_cost: float = math.inf

    @classmethod
    def unreachable(cls) -> "RouteResult":
        return cls(exists=False, exit_direction=None, path_cost=math.inf)


@dataclass(slots=True)
class AgentContext:
    """What the coordinator knows about one agent during a step."""

    agent_name: str
    home_zone: str
    current_zone: str
    capacity: int = 0
    role: str = "harvester"
    node_distances: Dict[str, float] = field(default_factory=dict)

    def distance_to(self, node_id: str) -> float:
        return float(self.node_distances.get(node_id, 0.0))


@runtime_checkable
class ObservationProvider(Protocol):
    def observe(self, zone: str) -> ZoneObservation | None:
        ...

    def visible_zones(self) -> Sequence[str]:
        ...

    def lookup_node(self, node_id: str) -> ObservedNode | None:
        ...


@runtime_checkable
class RouteProvider(Protocol):
    def find_route(self, from_zone: str, to_zone: str) -> RouteResult:
        ...

    def adjacent_zones(self, zone: str) -> Sequence[str]:
        ...

    def zone_distance(self, a: str, b: str) -> int:
        ...


@runtime_checkable
class MovementExecutor(Protocol):
    def move_toward(self, agent_name: str, from_zone: str, to_zone: str) -> MoveResult:
        ...


EVENT_PAYLOAD_SCHEMAS: Dict[str, PayloadSchema] = {
    "SAFETY_REFRESH": PayloadSchema(
        required={"zone": (str,), "status": (str,)},
        optional={"hostile_agents": (int,), "hostile_structures": (int,)},
    ),
    "SAFETY_ABORT": PayloadSchema(
        required={"agent": (str,), "zone": (str,)},
        optional={"hostile_agents": (int,)},
    ),
    "TRANSITION_BEGIN": PayloadSchema(
        required={"agent": (str,), "target_zone": (str,), "home_zone": (str,)},
        optional={"node_id": OPTIONAL_STR},
    ),
    "TRANSITION_ARRIVED": PayloadSchema(
        required={"agent": (str,), "zone": (str,), "elapsed": NUMERIC},
    ),
    "TRANSITION_ABORT": PayloadSchema(
        required={"agent": (str,), "target_zone": OPTIONAL_STR, "reason": (str,), "failure_count": (int,)},
    ),
    "TRANSITION_HOME": PayloadSchema(
        required={"agent": (str,), "zone": (str,)},
    ),
    "MIGRATION_RECOMMENDED": PayloadSchema(
        required={"agent": (str,), "from_node": (str,), "to_node": OPTIONAL_STR},
        optional={"current_score": NUMERIC, "best_score": NUMERIC},
    ),
    "AGENT_REDISTRIBUTED": PayloadSchema(
        required={"agent": (str,), "node_id": (str,)},
        optional={"distance": NUMERIC},
    ),
    "CONFIG_ISSUE": PayloadSchema(
        required={"setting": (str,), "message": (str,), "severity": (str,)},
    ),
    "COLLABORATOR_ERROR": PayloadSchema(
        required={"collaborator": (str,), "operation": (str,), "error": (str,)},
        optional={"zone": OPTIONAL_STR},
    ),
    "NODE_INVALID": PayloadSchema(
        required={"agent": (str,), "node_id": (str,)},
    ),
}


def validate_event_payload(event_type: str, payload: Mapping[str, Any]) -> None:
    schema = EVENT_PAYLOAD_SCHEMAS.get(event_type)
    if schema is None:
        return
    schema.validate(payload)


__all__ = [
    "AgentContext",
    "EVENT_PAYLOAD_SCHEMAS",
    "MoveResult",
    "MovementExecutor",
    "NUMERIC",
    "ObservationProvider",
    "ObservedNode",
    "PayloadSchema",
    "RouteProvider",
    "RouteResult",
    "ZoneObservation",
    "ZoneOwnership",
    "validate_event_payload",
]
