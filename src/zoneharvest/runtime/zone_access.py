from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from zoneharvest.interfaces.contracts import RouteResult
from zoneharvest.store import access_key, get_typed

from .telemetry import guarded_call, record_cache_lookup


@dataclass(slots=True)
class ZoneAccessibilityRecord:
    from_zone: str
    to_zone: str
    accessible: bool
    exit_direction: str | None = None
    path_cost: float = math.inf
    last_checked_tick: int = 0


def _compute(state: Any, from_zone: str, to_zone: str) -> ZoneAccessibilityRecord:
    if from_zone == to_zone:
        return ZoneAccessibilityRecord(
            from_zone=from_zone,
            to_zone=to_zone,
            accessible=True,
            path_cost=0.0,
            last_checked_tick=state.tick,
        )
    route = guarded_call(
        state,
        "router",
        "find_route",
        state.router.find_route,
        from_zone,
        to_zone,
        default=RouteResult.unreachable(),
        zone=to_zone,
    )
    if route is None or not route.exists:
        return ZoneAccessibilityRecord(
            from_zone=from_zone,
            to_zone=to_zone,
            accessible=False,
            path_cost=math.inf,
            last_checked_tick=state.tick,
        )
    return ZoneAccessibilityRecord(
        from_zone=from_zone,
        to_zone=to_zone,
        accessible=True,
        exit_direction=route.exit_direction,
        path_cost=float(route.path_cost),
        last_checked_tick=state.tick,
    )


def access_record(state: Any, from_zone: str, to_zone: str, force_refresh: bool = False) -> ZoneAccessibilityRecord:
    cfg = state.config
    key = access_key(from_zone, to_zone)
    cached = get_typed(state.store, key, ZoneAccessibilityRecord)
    if cfg.use_cache("accessibility") and not force_refresh and cached is not None:
        if state.tick - cached.last_checked_tick < cfg.accessibility_cache_duration:
            record_cache_lookup(state, "accessibility", hit=True)
            return cached
    record_cache_lookup(state, "accessibility", hit=False)
    record = _compute(state, from_zone, to_zone)
    state.store.set(key, record)
    return record


def is_zone_accessible(state: Any, from_zone: str, to_zone: str, force_refresh: bool = False) -> bool:
    return access_record(state, from_zone, to_zone, force_refresh=force_refresh).accessible


def zone_path_cost(state: Any, from_zone: str, to_zone: str) -> float:
    return access_record(state, from_zone, to_zone).path_cost


__all__ = [
    "ZoneAccessibilityRecord",
    "access_record",
    "is_zone_accessible",
    "zone_path_cost",
]
