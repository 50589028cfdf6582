"""Coordination thresholds and their documented valid ranges.

All values are in ticks unless the name says otherwise.  The defaults mirror
the tuning of the live harvesting colony: exploration one zone out, two
agents per node, three failed transitions before an agent is benched.

``validate_config`` never raises.  It returns the list of problems so the
caller can surface them; the coordinator records each one as a
``CONFIG_ISSUE`` event and keeps running on the supplied values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping

CACHE_KINDS: tuple[str, ...] = ("safety", "accessibility", "discovery", "profitability")

HARD_MAX_EXPLORATION_DEPTH: int = 3


def _default_distance_multipliers() -> Dict[int, float]:
    return {0: 1.0, 1: 0.8, 2: 0.6, 3: 0.4}


def _default_ownership_priority() -> Dict[str, float]:
    return {"owned": 100.0, "reserved": 80.0, "neutral": 60.0, "hostile": 0.0}


def _default_multi_zone_caps() -> Dict[str, int]:
    return {"harvester": 3, "hauler": 4}


def _default_cache_enabled() -> Dict[str, bool]:
    return {kind: True for kind in CACHE_KINDS}


@dataclass(slots=True)
class CoordinationConfig:
    enabled: bool = True

    # exploration
    exploration_depth: int = 1
    max_exploration_depth: int = 3
    max_discovered_nodes: int = 50
    max_collection_distance: int = 2

    # safety / accessibility
    safety_check_interval: int = 50
    safety_cache_duration: int = 200
    accessibility_cache_duration: int = 200
    max_hostile_agents: int = 0
    max_hostile_structures: int = 0
    min_controller_level: int = 0
    max_zones_scan_per_tick: int = 2

    # discovery / prioritisation
    min_node_amount: int = 500
    min_loose_amount: int = 50
    rich_zone_threshold: float = 1000.0
    rich_zone_bonus: float = 1.2
    base_priority: float = 100.0
    fallback_distance_multiplier: float = 0.2
    distance_multipliers: Dict[int, float] = field(default_factory=_default_distance_multipliers)
    ownership_priority: Dict[str, float] = field(default_factory=_default_ownership_priority)
    resource_discovery_interval: int = 25
    resource_cache_duration: int = 100
    exploration_expiry_duration: int = 200

    # profitability / migration
    migration_floor: int = 300
    migration_margin: float = 20.0
    distance_penalty: float = 10.0
    crowding_penalty: float = 15.0
    replenish_bonus: float = 10.0
    replenish_soon_ticks: int = 50
    profitability_check_interval: int = 50
    profitability_max_age: int = 500

    # agents
    max_agents_per_node: int = 2
    min_agent_capacity: int = 300
    transition_timeout: int = 150
    max_failures: int = 3
    failure_cooldown: int = 1500
    retry_interval: int = 100
    max_multi_zone_agents: Dict[str, int] = field(default_factory=_default_multi_zone_caps)

    # housekeeping
    cleanup_interval: int = 100
    redistribution_interval: int = 10
    cache_enabled: Dict[str, bool] = field(default_factory=_default_cache_enabled)

    def cache_duration(self, kind: str) -> int:
        if kind == "safety":
            return self.safety_cache_duration
        if kind == "accessibility":
            return self.accessibility_cache_duration
        if kind == "discovery":
            return self.resource_cache_duration
        if kind == "profitability":
            return self.profitability_check_interval
        raise ValueError(f"Unknown cache kind '{kind}'")

    def use_cache(self, kind: str) -> bool:
        if kind not in CACHE_KINDS:
            raise ValueError(f"Unknown cache kind '{kind}'")
        return bool(self.cache_enabled.get(kind, True))

    def distance_multiplier(self, hops: int) -> float:
        return float(self.distance_multipliers.get(int(hops), self.fallback_distance_multiplier))


@dataclass(slots=True)
class ConfigIssue:
    setting: str
    message: str
    severity: str = "error"


def _check_range(
    issues: List[ConfigIssue],
    setting: str,
    value: float,
    *,
    low: float | None = None,
    high: float | None = None,
) -> None:
    if low is not None and value < low:
        issues.append(ConfigIssue(setting, f"{setting}={value} is below the minimum {low}"))
    elif high is not None and value > high:
        issues.append(ConfigIssue(setting, f"{setting}={value} is above the maximum {high}"))


def validate_config(cfg: CoordinationConfig) -> List[ConfigIssue]:
    issues: List[ConfigIssue] = []

    _check_range(issues, "max_exploration_depth", cfg.max_exploration_depth, low=0, high=HARD_MAX_EXPLORATION_DEPTH)
    _check_range(issues, "exploration_depth", cfg.exploration_depth, low=0, high=cfg.max_exploration_depth)
    _check_range(issues, "max_discovered_nodes", cfg.max_discovered_nodes, low=1, high=500)
    _check_range(issues, "max_collection_distance", cfg.max_collection_distance, low=0, high=HARD_MAX_EXPLORATION_DEPTH)

    for setting in (
        "safety_check_interval",
        "safety_cache_duration",
        "accessibility_cache_duration",
        "resource_discovery_interval",
        "resource_cache_duration",
        "exploration_expiry_duration",
        "profitability_check_interval",
        "profitability_max_age",
        "transition_timeout",
        "cleanup_interval",
        "redistribution_interval",
        "max_zones_scan_per_tick",
    ):
        _check_range(issues, setting, getattr(cfg, setting), low=1)

    for setting in (
        "max_hostile_agents",
        "max_hostile_structures",
        "min_controller_level",
        "min_node_amount",
        "min_loose_amount",
        "migration_floor",
        "migration_margin",
        "distance_penalty",
        "crowding_penalty",
        "replenish_bonus",
        "replenish_soon_ticks",
        "min_agent_capacity",
        "failure_cooldown",
        "retry_interval",
    ):
        _check_range(issues, setting, getattr(cfg, setting), low=0)

    _check_range(issues, "max_agents_per_node", cfg.max_agents_per_node, low=1)
    _check_range(issues, "max_failures", cfg.max_failures, low=1)
    _check_range(issues, "rich_zone_bonus", cfg.rich_zone_bonus, low=1.0)

    for hops, multiplier in sorted(cfg.distance_multipliers.items()):
        _check_range(issues, f"distance_multipliers[{hops}]", multiplier, low=0.0, high=1.0)
    for owner, weight in sorted(cfg.ownership_priority.items()):
        _check_range(issues, f"ownership_priority[{owner}]", weight, low=0.0, high=100.0)
    for role, cap in sorted(cfg.max_multi_zone_agents.items()):
        _check_range(issues, f"max_multi_zone_agents[{role}]", cap, low=0)

    unknown_caches = sorted(set(cfg.cache_enabled) - set(CACHE_KINDS))
    for kind in unknown_caches:
        issues.append(ConfigIssue("cache_enabled", f"unknown cache kind '{kind}'"))

    if cfg.safety_check_interval < 10:
        issues.append(
            ConfigIssue(
                "safety_check_interval",
                "safety_check_interval below 10 rescans zones almost every tick",
                severity="warning",
            )
        )
    if cfg.resource_cache_duration < cfg.resource_discovery_interval:
        issues.append(
            ConfigIssue(
                "resource_cache_duration",
                "resource_cache_duration shorter than resource_discovery_interval forces rediscovery on every read",
                severity="warning",
            )
        )

    return issues


def config_from_mapping(values: Mapping[str, object]) -> CoordinationConfig:
    """Build a config from a flat mapping, ignoring unknown keys."""

    known = set(CoordinationConfig.__dataclass_fields__)
    return CoordinationConfig(**{key: value for key, value in values.items() if key in known})


__all__ = [
    "CACHE_KINDS",
    "ConfigIssue",
    "CoordinationConfig",
    "HARD_MAX_EXPLORATION_DEPTH",
    "config_from_mapping",
    "validate_config",
]
