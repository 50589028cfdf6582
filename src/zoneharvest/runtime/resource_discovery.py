"""Bounded breadth-first discovery of harvestable nodes around a home zone.

Discovery walks the zone graph outward from ``home_zone`` one hop at a
time, visiting each zone once, and stops when either the hop limit or the
node cap is reached.  Only nodes in zones that are both SAFE and accessible
from home are reported.  Results are cached per home zone.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Sequence

from zoneharvest.store import RESOURCES_PREFIX, get_typed, resources_key

from .config import CoordinationConfig
from .exploration import is_zone_excluded
from .telemetry import ensure_metrics, guarded_call, record_cache_lookup
from .zone_access import is_zone_accessible
from .zone_safety import ZoneSafetyStatus, safety_record, zone_safety_status


@dataclass(slots=True)
class ResourceNode:
    node_id: str
    zone_name: str
    distance: int
    priority: int
    safety_status: ZoneSafetyStatus
    accessibility_status: bool
    resource_value: float
    amount: int = 0
    capacity: int = 0


@dataclass(slots=True)
class ResourceDiscoveryCache:
    home_zone: str
    nodes: list[ResourceNode] = field(default_factory=list)
    last_updated_tick: int = 0
    exploration_depth: int = 0


@dataclass(slots=True)
class ResourceCacheStats:
    total_zones: int
    total_nodes: int
    oldest_age: int


def clamp_depth(cfg: CoordinationConfig, depth: int | None) -> int:
    if depth is None:
        depth = cfg.exploration_depth
    return max(0, min(int(depth), cfg.max_exploration_depth))


def ownership_weight(cfg: CoordinationConfig, controller_level: int | None, ownership: str) -> float:
    if controller_level is None:
        return 1.0
    return float(cfg.ownership_priority.get(str(ownership), 0.0)) / 100.0


def compute_priority(
    cfg: CoordinationConfig,
    *,
    hops: int,
    amount_ratio: float,
    weight: float,
    resource_value: float,
) -> int:
    bonus = cfg.rich_zone_bonus if resource_value > cfg.rich_zone_threshold else 1.0
    raw = cfg.base_priority * cfg.distance_multiplier(hops) * (0.5 + 0.5 * amount_ratio) * weight * bonus
    return int(round(raw))


def prioritize_nodes(nodes: Iterable[ResourceNode]) -> list[ResourceNode]:
    return sorted(nodes, key=lambda n: (-n.priority, n.distance, -n.resource_value, n.node_id))


def filter_safe_nodes(nodes: Iterable[ResourceNode]) -> list[ResourceNode]:
    return [n for n in nodes if n.safety_status is ZoneSafetyStatus.SAFE and n.accessibility_status]


def _collect_zone(state: Any, home_zone: str, zone: str, hops: int) -> List[ResourceNode]:
    cfg = state.config
    status = zone_safety_status(state, zone)
    if status is not ZoneSafetyStatus.SAFE:
        return []
    if not is_zone_accessible(state, home_zone, zone):
        return []
    observation = guarded_call(state, "observer", "observe", state.observer.observe, zone, default=None, zone=zone)
    if observation is None:
        return []

    record = safety_record(state, zone)
    resource_value = record.resource_value if record is not None else 0.0
    weight = ownership_weight(cfg, observation.controller_level, observation.ownership.value)

    found: List[ResourceNode] = []
    for node in sorted(observation.resource_nodes, key=lambda n: n.node_id):
        if node.amount < cfg.min_node_amount:
            continue
        found.append(
            ResourceNode(
                node_id=node.node_id,
                zone_name=zone,
                distance=hops,
                priority=compute_priority(
                    cfg,
                    hops=hops,
                    amount_ratio=node.amount_ratio,
                    weight=weight,
                    resource_value=resource_value,
                ),
                safety_status=status,
                accessibility_status=True,
                resource_value=resource_value,
                amount=node.amount,
                capacity=node.capacity,
            )
        )
    return found


def discover_nodes(state: Any, home_zone: str, depth: int) -> list[ResourceNode]:
    cfg = state.config
    cap = max(1, cfg.max_discovered_nodes)
    visited = {home_zone}
    frontier: deque[tuple[str, int]] = deque([(home_zone, 0)])
    found: List[ResourceNode] = []
    zones_scanned = 0

    while frontier and len(found) < cap:
        zone, hops = frontier.popleft()
        zones_scanned += 1
        if not is_zone_excluded(state, zone):
            found.extend(_collect_zone(state, home_zone, zone, hops))
        if hops >= depth:
            continue
        neighbours = guarded_call(
            state, "router", "adjacent_zones", state.router.adjacent_zones, zone, default=(), zone=zone
        )
        for nbr in sorted(neighbours):
            if nbr in visited:
                continue
            visited.add(nbr)
            frontier.append((nbr, hops + 1))

    metrics = ensure_metrics(state)
    metrics.inc("discovery.runs")
    metrics.inc("discovery.zones_scanned", zones_scanned)
    return prioritize_nodes(found[:cap])


def find_resource_nodes(
    state: Any,
    home_zone: str,
    depth: int | None = None,
    force_refresh: bool = False,
) -> list[ResourceNode]:
    cfg = state.config
    depth = clamp_depth(cfg, depth)
    key = resources_key(home_zone)
    cached = get_typed(state.store, key, ResourceDiscoveryCache)
    if cfg.use_cache("discovery") and not force_refresh and cached is not None:
        fresh = state.tick - cached.last_updated_tick < cfg.resource_cache_duration
        if fresh and cached.exploration_depth == depth:
            record_cache_lookup(state, "discovery", hit=True)
            return list(cached.nodes)
    record_cache_lookup(state, "discovery", hit=False)

    nodes = discover_nodes(state, home_zone, depth)
    state.store.set(
        key,
        ResourceDiscoveryCache(
            home_zone=home_zone,
            nodes=list(nodes),
            last_updated_tick=state.tick,
            exploration_depth=depth,
        ),
    )
    return list(nodes)


def update_resource_discovery_cache(state: Any) -> List[str]:
    refreshed: List[str] = []
    for key in state.store.keys(RESOURCES_PREFIX):
        cached = get_typed(state.store, key, ResourceDiscoveryCache)
        if cached is None:
            continue
        if state.tick - cached.last_updated_tick < state.config.resource_discovery_interval:
            continue
        find_resource_nodes(state, cached.home_zone, depth=cached.exploration_depth, force_refresh=True)
        refreshed.append(cached.home_zone)
    return refreshed


def drop_cached_node(state: Any, node_id: str) -> int:
    """Remove a node that turned out to be gone from every discovery cache."""

    dropped = 0
    for key in state.store.keys(RESOURCES_PREFIX):
        cached = get_typed(state.store, key, ResourceDiscoveryCache)
        if cached is None:
            continue
        kept = [node for node in cached.nodes if node.node_id != node_id]
        if len(kept) != len(cached.nodes):
            dropped += len(cached.nodes) - len(kept)
            cached.nodes = kept
            state.store.set(key, cached)
    return dropped


def clear_resource_cache(state: Any, home_zone: str | None = None) -> int:
    if home_zone is not None:
        return 1 if state.store.delete(resources_key(home_zone)) else 0
    removed = 0
    for key in state.store.keys(RESOURCES_PREFIX):
        if state.store.delete(key):
            removed += 1
    return removed


def resource_cache_stats(state: Any) -> ResourceCacheStats:
    caches: Sequence[ResourceDiscoveryCache] = [
        cache
        for cache in (get_typed(state.store, key, ResourceDiscoveryCache) for key in state.store.keys(RESOURCES_PREFIX))
        if cache is not None
    ]
    if not caches:
        return ResourceCacheStats(total_zones=0, total_nodes=0, oldest_age=0)
    return ResourceCacheStats(
        total_zones=len(caches),
        total_nodes=sum(len(cache.nodes) for cache in caches),
        oldest_age=max(state.tick - cache.last_updated_tick for cache in caches),
    )


__all__ = [
    "ResourceCacheStats",
    "ResourceDiscoveryCache",
    "ResourceNode",
    "clamp_depth",
    "clear_resource_cache",
    "compute_priority",
    "discover_nodes",
    "drop_cached_node",
    "filter_safe_nodes",
    "find_resource_nodes",
    "ownership_weight",
    "prioritize_nodes",
    "resource_cache_stats",
    "update_resource_discovery_cache",
]
