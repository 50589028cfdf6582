"""Exploration records produced by scouting and consumed by coordination."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List

from zoneharvest.interfaces.contracts import ZoneOwnership
from zoneharvest.store import EXPLORE_PREFIX, explore_key, get_typed


class ExplorationStatus(str, Enum):
    SAFE = "SAFE"
    UNSAFE = "UNSAFE"
    UNKNOWN = "UNKNOWN"
    INACCESSIBLE = "INACCESSIBLE"
    EXPIRED = "EXPIRED"


@dataclass(slots=True)
class ExplorationRecord:
    zone_name: str
    safety_status: ExplorationStatus = ExplorationStatus.UNKNOWN
    last_scanned_tick: int = 0
    hostile_count: int = 0
    resource_node_count: int = 0
    controller_owner: ZoneOwnership | None = None
    scout_agent_name: str | None = None
    enabled_for_remote_use: bool = True
    expired_at_tick: int | None = None


def exploration_record(state: Any, zone: str) -> ExplorationRecord | None:
    return get_typed(state.store, explore_key(zone), ExplorationRecord)


def ingest_exploration(state: Any, record: ExplorationRecord) -> ExplorationRecord:
    """Store a scout report, keeping any expiry mark coordination placed on the zone."""

    previous = exploration_record(state, record.zone_name)
    if previous is not None and previous.expired_at_tick is not None and record.expired_at_tick is None:
        record.expired_at_tick = previous.expired_at_tick
        record.safety_status = ExplorationStatus.EXPIRED
    state.store.set(explore_key(record.zone_name), record)
    return record


def mark_zone_expired(state: Any, zone: str) -> ExplorationRecord:
    record = exploration_record(state, zone)
    if record is None:
        record = ExplorationRecord(zone_name=zone, last_scanned_tick=state.tick)
    record.safety_status = ExplorationStatus.EXPIRED
    record.expired_at_tick = state.tick
    state.store.set(explore_key(zone), record)
    return record


def is_zone_excluded(state: Any, zone: str) -> bool:
    """True when the zone's nodes must not be offered for collection right now."""

    record = exploration_record(state, zone)
    if record is None:
        return False
    if not record.enabled_for_remote_use:
        return True
    if record.expired_at_tick is None:
        return False
    return state.tick - record.expired_at_tick < state.config.exploration_expiry_duration


def clear_expired_marks(state: Any) -> List[str]:
    cleared: List[str] = []
    duration = state.config.exploration_expiry_duration
    for key in state.store.keys(EXPLORE_PREFIX):
        record = get_typed(state.store, key, ExplorationRecord)
        if record is None or record.expired_at_tick is None:
            continue
        if state.tick - record.expired_at_tick < duration:
            continue
        record.expired_at_tick = None
        if record.safety_status is ExplorationStatus.EXPIRED:
            record.safety_status = ExplorationStatus.UNKNOWN
        state.store.set(key, record)
        cleared.append(record.zone_name)
    return cleared


__all__ = [
    "ExplorationRecord",
    "ExplorationStatus",
    "clear_expired_marks",
    "exploration_record",
    "ingest_exploration",
    "is_zone_excluded",
    "mark_zone_expired",
]
