"""Zone safety assessment with a TTL cache.

A zone is only ever SAFE or UNSAFE on the strength of a fresh observation.
Zones that cannot be observed are UNKNOWN, which planning treats the same as
unsafe.  Scout data may fill in hostile counts and ownership on an UNKNOWN
record but never upgrades its status.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List

from zoneharvest.interfaces.contracts import ZoneObservation, ZoneOwnership
from zoneharvest.store import ACCESS_PREFIX, SAFETY_PREFIX, get_typed, meta_key, safety_key

from .config import CoordinationConfig
from .exploration import exploration_record
from .telemetry import guarded_call, record_cache_lookup, record_debug, record_event

LAST_SWEEP_KEY = meta_key("last_safety_sweep")


class ZoneSafetyStatus(str, Enum):
    SAFE = "SAFE"
    UNSAFE = "UNSAFE"
    UNKNOWN = "UNKNOWN"
    INACCESSIBLE = "INACCESSIBLE"


@dataclass(slots=True)
class ZoneSafetyRecord:
    zone_name: str
    status: ZoneSafetyStatus
    last_checked_tick: int
    hostile_agent_count: int = 0
    hostile_structure_count: int = 0
    controller_level: int | None = None
    ownership: ZoneOwnership = ZoneOwnership.NEUTRAL
    resource_value: float = 0.0

    @property
    def is_safe(self) -> bool:
        return self.status is ZoneSafetyStatus.SAFE


def zone_resource_value(cfg: CoordinationConfig, observation: ZoneObservation) -> float:
    total = 0.0
    for node in observation.resource_nodes:
        if node.amount >= cfg.min_node_amount:
            total += node.amount
    for amount in observation.loose_amounts:
        if amount >= cfg.min_loose_amount:
            total += amount
    for amount in observation.salvage_amounts:
        if amount > 0:
            total += amount
    return total


def classify_observation(cfg: CoordinationConfig, observation: ZoneObservation) -> ZoneSafetyStatus:
    if observation.ownership is ZoneOwnership.HOSTILE:
        return ZoneSafetyStatus.UNSAFE
    if observation.hostile_agents > cfg.max_hostile_agents:
        return ZoneSafetyStatus.UNSAFE
    if observation.hostile_structures > cfg.max_hostile_structures:
        return ZoneSafetyStatus.UNSAFE
    if observation.controller_level is not None and observation.controller_level < cfg.min_controller_level:
        return ZoneSafetyStatus.UNSAFE
    return ZoneSafetyStatus.SAFE


def _unknown_record(state: Any, zone: str) -> ZoneSafetyRecord:
    record = ZoneSafetyRecord(zone_name=zone, status=ZoneSafetyStatus.UNKNOWN, last_checked_tick=state.tick)
    scouted = exploration_record(state, zone)
    if scouted is not None:
        record.hostile_agent_count = scouted.hostile_count
        if scouted.controller_owner is not None:
            record.ownership = scouted.controller_owner
    return record


def assess_zone(state: Any, zone: str) -> ZoneSafetyRecord:
    """Build a fresh record from live observation, or UNKNOWN when the zone is not visible."""

    observation = guarded_call(state, "observer", "observe", state.observer.observe, zone, default=None, zone=zone)
    if observation is None:
        return _unknown_record(state, zone)
    return ZoneSafetyRecord(
        zone_name=zone,
        status=classify_observation(state.config, observation),
        last_checked_tick=state.tick,
        hostile_agent_count=observation.hostile_agents,
        hostile_structure_count=observation.hostile_structures,
        controller_level=observation.controller_level,
        ownership=observation.ownership,
        resource_value=zone_resource_value(state.config, observation),
    )


def safety_record(state: Any, zone: str) -> ZoneSafetyRecord | None:
    return get_typed(state.store, safety_key(zone), ZoneSafetyRecord)


def _is_fresh(state: Any, last_tick: int, duration: int) -> bool:
    return state.tick - last_tick < duration


def zone_safety_status(state: Any, zone: str, force_refresh: bool = False) -> ZoneSafetyStatus:
    cfg = state.config
    cached = safety_record(state, zone)
    if cfg.use_cache("safety") and not force_refresh and cached is not None:
        if _is_fresh(state, cached.last_checked_tick, cfg.safety_cache_duration):
            record_cache_lookup(state, "safety", hit=True)
            return cached.status
    record_cache_lookup(state, "safety", hit=False)
    record = assess_zone(state, zone)
    state.store.set(safety_key(zone), record)
    record_debug(state, {"type": "SAFETY_ASSESSED", "zone": zone, "status": record.status.value})
    return record.status


def is_zone_safe(state: Any, zone: str, force_refresh: bool = False) -> bool:
    return zone_safety_status(state, zone, force_refresh=force_refresh) is ZoneSafetyStatus.SAFE


def update_safety_cache(state: Any) -> List[str]:
    """Refresh stale records for visible zones, a bounded batch per call."""

    cfg = state.config
    last_sweep = state.store.get(LAST_SWEEP_KEY)
    if last_sweep is not None and state.tick - int(last_sweep) < cfg.safety_check_interval:
        return []

    visible = guarded_call(state, "observer", "visible_zones", state.observer.visible_zones, default=())
    stale: List[str] = []
    for zone in sorted(visible):
        cached = safety_record(state, zone)
        if cached is None or state.tick - cached.last_checked_tick >= cfg.safety_check_interval:
            stale.append(zone)

    batch = stale[: max(0, cfg.max_zones_scan_per_tick)]
    for zone in batch:
        record = assess_zone(state, zone)
        state.store.set(safety_key(zone), record)
        record_event(
            state,
            {
                "type": "SAFETY_REFRESH",
                "zone": zone,
                "status": record.status.value,
                "hostile_agents": record.hostile_agent_count,
                "hostile_structures": record.hostile_structure_count,
            },
        )

    if len(stale) <= len(batch):
        state.store.set(LAST_SWEEP_KEY, state.tick)
    return batch


def cleanup_caches(state: Any) -> int:
    """Evict safety and accessibility entries older than twice the safety TTL."""

    max_age = 2 * state.config.safety_cache_duration
    evicted = 0
    for key in state.store.keys(SAFETY_PREFIX):
        record = state.store.get(key)
        if record is not None and state.tick - record.last_checked_tick > max_age:
            state.store.delete(key)
            evicted += 1
    for key in state.store.keys(ACCESS_PREFIX):
        record = state.store.get(key)
        if record is not None and state.tick - record.last_checked_tick > max_age:
            state.store.delete(key)
            evicted += 1
    return evicted


__all__ = [
    "ZoneSafetyRecord",
    "ZoneSafetyStatus",
    "assess_zone",
    "classify_observation",
    "cleanup_caches",
    "is_zone_safe",
    "safety_record",
    "update_safety_cache",
    "zone_resource_value",
    "zone_safety_status",
]
