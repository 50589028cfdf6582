"""Per-step driver for the multi-zone coordination layer.

``step_coordination`` runs the periodic jobs (safety sweep, discovery
refresh, cache cleanup, redistribution) and then walks every agent once, in
the order given: re-seat agents that lost their node, re-evaluate the
current node, pick a target when idle, and advance the transition
controller.  Later agents see the writes of earlier ones within the same
step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Sequence

from zoneharvest.interfaces.contracts import AgentContext
from zoneharvest.state import CoordinatorState, ensure_config_validated

from .agent_state import (
    TransitionPhase,
    collect_garbage,
    get_agent_state,
    iter_agent_states,
    multi_zone_agents_by_role,
    save_agent_state,
)
from .assignment import redistribute_overcrowded
from .config import CACHE_KINDS
from .exploration import clear_expired_marks
from .profitability import cleanup_profitability_cache
from .resource_discovery import resource_cache_stats, update_resource_discovery_cache
from .telemetry import ensure_metrics
from .zone_safety import cleanup_caches, update_safety_cache
from .zone_transition import advance_transition, reassign_in_zone, reevaluate_assignment, select_target


@dataclass(slots=True)
class StepReport:
    tick: int
    enabled: bool = True
    safety_refreshed: list[str] = field(default_factory=list)
    discovery_refreshed: list[str] = field(default_factory=list)
    caches_evicted: int = 0
    profitability_purged: int = 0
    expired_cleared: list[str] = field(default_factory=list)
    garbage_agents: list[str] = field(default_factory=list)
    redistributed: list[str] = field(default_factory=list)
    reassigned: Dict[str, str] = field(default_factory=dict)
    selected: Dict[str, str] = field(default_factory=dict)
    migrations: Dict[str, str] = field(default_factory=dict)
    phases: Dict[str, TransitionPhase] = field(default_factory=dict)


@dataclass(slots=True)
class CoordinationStatus:
    enabled: bool
    multi_zone_agents: Dict[str, int]
    cached_zones: int
    cached_nodes: int
    oldest_cache_age: int
    cache_hit_rate: Dict[str, float]
    average_transition_time: float
    counters: Mapping[str, float]


def _due(tick: int, interval: int) -> bool:
    return interval > 0 and tick % interval == 0


def step_coordination(state: CoordinatorState, agents: Sequence[AgentContext], tick: int | None = None) -> StepReport:
    if tick is not None:
        state.advance(tick)
    ensure_config_validated(state)
    cfg = state.config
    report = StepReport(tick=state.tick, enabled=cfg.enabled)
    if not cfg.enabled:
        return report

    metrics = ensure_metrics(state)
    metrics.inc("coordinator.steps")

    report.safety_refreshed = update_safety_cache(state)
    report.discovery_refreshed = update_resource_discovery_cache(state)

    if _due(state.tick, cfg.cleanup_interval):
        report.caches_evicted = cleanup_caches(state)
        report.profitability_purged = len(cleanup_profitability_cache(state))
        report.expired_cleared = clear_expired_marks(state)
        report.garbage_agents = collect_garbage(state, [agent.agent_name for agent in agents]).removed_agents

    if _due(state.tick, cfg.redistribution_interval):
        report.redistributed = redistribute_overcrowded(state, agents)

    for ctx in agents:
        reassigned = reassign_in_zone(state, ctx)
        if reassigned is not None:
            report.reassigned[ctx.agent_name] = reassigned
        migrated = reevaluate_assignment(state, ctx)
        if migrated is not None:
            report.migrations[ctx.agent_name] = migrated
        record = get_agent_state(state, ctx.agent_name)
        if record is None or record.phase is TransitionPhase.AT_HOME:
            node = select_target(state, ctx)
            if node is not None:
                report.selected[ctx.agent_name] = node.node_id
        report.phases[ctx.agent_name] = advance_transition(state, ctx)

    metrics.set_gauge("coordinator.multi_zone_agents", multi_zone_agents_by_role(state))
    return report


def average_transition_time(state: CoordinatorState) -> float:
    """Mean ticks spent so far by agents currently en route."""

    elapsed = [
        state.tick - record.transition_start_tick
        for record in iter_agent_states(state)
        if record.phase is TransitionPhase.EN_ROUTE and record.transition_start_tick is not None
    ]
    if not elapsed:
        return 0.0
    return sum(elapsed) / len(elapsed)


def coordination_status(state: CoordinatorState) -> CoordinationStatus:
    metrics = ensure_metrics(state)
    stats = resource_cache_stats(state)
    return CoordinationStatus(
        enabled=state.config.enabled,
        multi_zone_agents=multi_zone_agents_by_role(state),
        cached_zones=stats.total_zones,
        cached_nodes=stats.total_nodes,
        oldest_cache_age=stats.oldest_age,
        cache_hit_rate={kind: metrics.hit_rate(kind) for kind in CACHE_KINDS},
        average_transition_time=average_transition_time(state),
        counters=dict(sorted(metrics.counters.items())),
    )


def set_multi_zone_enabled(state: CoordinatorState, enabled: bool, agent_name: str | None = None) -> bool:
    """Flip the global switch, or a single agent's switch when ``agent_name`` is given."""

    if agent_name is None:
        state.config.enabled = bool(enabled)
        return True
    record = get_agent_state(state, agent_name)
    if record is None:
        return False
    record.enabled = bool(enabled)
    if not enabled:
        record.clear_target()
        record.phase = TransitionPhase.AT_HOME
    save_agent_state(state, record)
    return True


__all__ = [
    "CoordinationStatus",
    "StepReport",
    "average_transition_time",
    "coordination_status",
    "set_multi_zone_enabled",
    "step_coordination",
]
