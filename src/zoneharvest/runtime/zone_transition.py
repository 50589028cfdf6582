"""Per-agent zone transition controller.

Phases run ``AT_HOME -> EN_ROUTE -> IN_TARGET -> RETURNING -> AT_HOME``.
An agent that cannot reach its target (timeout, no path, target turned
unsafe or unreachable) aborts straight back to ``AT_HOME`` with one failure
charged to its budget and the target zone marked expired.  Hostile presence
at the target sends the agent home without a failure.
"""

from __future__ import annotations

from typing import Any

from zoneharvest.interfaces.contracts import AgentContext, MoveResult

from .agent_state import (
    AgentMultiZoneState,
    TransitionPhase,
    ensure_agent_state,
    get_agent_state,
    iter_agent_states,
    save_agent_state,
)
from .assignment import assign_targets
from .exploration import is_zone_excluded, mark_zone_expired
from .profitability import best_alternative, clear_profitability_cache, should_migrate
from .resource_discovery import ResourceNode, drop_cached_node, filter_safe_nodes, find_resource_nodes
from .telemetry import ensure_metrics, guarded_call, record_event
from .zone_access import is_zone_accessible
from .zone_safety import ZoneSafetyStatus, is_zone_safe, zone_safety_status


def _active_for_role(state: Any, role: str, exclude: str) -> int:
    return sum(
        1
        for record in iter_agent_states(state)
        if record.role == role and record.in_flight and record.agent_name != exclude
    )


def should_use_multi_zone(state: Any, ctx: AgentContext) -> bool:
    cfg = state.config
    if not cfg.enabled:
        return False
    if ctx.capacity < cfg.min_agent_capacity:
        return False
    record = get_agent_state(state, ctx.agent_name)
    if record is not None:
        if not record.enabled:
            return False
        allowed = record.budget.should_attempt(state.tick, cfg)
        save_agent_state(state, record)
        if not allowed:
            return False
        if record.in_flight:
            return True
    cap = cfg.max_multi_zone_agents.get(ctx.role)
    if cap is not None and _active_for_role(state, ctx.role, ctx.agent_name) >= cap:
        return False
    return True


def _arrive(state: Any, record: AgentMultiZoneState) -> None:
    record.phase = TransitionPhase.IN_TARGET
    record.arrivals += 1
    start = record.transition_start_tick
    elapsed = 0 if start is None else state.tick - start
    ensure_metrics(state).inc("transition.arrived")
    record_event(
        state,
        {"type": "TRANSITION_ARRIVED", "agent": record.agent_name, "zone": record.target_zone or "", "elapsed": elapsed},
    )


def begin_transition(state: Any, ctx: AgentContext, target_zone: str, node_id: str | None = None) -> bool:
    record = ensure_agent_state(state, ctx)
    if record.phase is not TransitionPhase.AT_HOME:
        return False
    record.target_zone = target_zone
    record.target_node_id = node_id
    record.collection_zone = target_zone
    record.is_returning_home = False
    record.transition_start_tick = state.tick
    record.budget.record_attempt(state.tick)
    record.phase = TransitionPhase.EN_ROUTE
    record_event(
        state,
        {
            "type": "TRANSITION_BEGIN",
            "agent": ctx.agent_name,
            "target_zone": target_zone,
            "home_zone": record.home_zone,
            "node_id": node_id,
        },
    )
    if target_zone == ctx.current_zone:
        _arrive(state, record)
    save_agent_state(state, record)
    return True


def _abort(state: Any, record: AgentMultiZoneState, reason: str) -> None:
    target = record.target_zone
    if target is not None:
        mark_zone_expired(state, target)
    count = record.budget.record_failure(state.tick)
    if record.assigned_node_id is not None:
        record.prev_node_id = record.assigned_node_id
        record.assigned_node_id = None
    record.clear_target()
    record.phase = TransitionPhase.AT_HOME
    ensure_metrics(state).inc("transition.aborted")
    record_event(
        state,
        {
            "type": "TRANSITION_ABORT",
            "agent": record.agent_name,
            "target_zone": target,
            "reason": reason,
            "failure_count": count,
        },
    )


def _begin_return(record: AgentMultiZoneState) -> None:
    record.phase = TransitionPhase.RETURNING
    record.is_returning_home = True


def _move(state: Any, agent_name: str, from_zone: str, to_zone: str) -> MoveResult:
    if state.mover is None:
        return MoveResult.IN_PROGRESS
    return guarded_call(
        state,
        "mover",
        "move_toward",
        state.mover.move_toward,
        agent_name,
        from_zone,
        to_zone,
        default=MoveResult.BLOCKED,
        zone=to_zone,
    )


def _step_en_route(state: Any, ctx: AgentContext, record: AgentMultiZoneState) -> None:
    cfg = state.config
    target = record.target_zone
    if target is None:
        record.phase = TransitionPhase.AT_HOME
        return
    if ctx.current_zone == target:
        _arrive(state, record)
        return
    start = record.transition_start_tick if record.transition_start_tick is not None else state.tick
    if state.tick - start > cfg.transition_timeout:
        _abort(state, record, "timeout")
        return
    if zone_safety_status(state, target) is ZoneSafetyStatus.UNSAFE:
        _abort(state, record, "target_unsafe")
        return
    if not is_zone_accessible(state, ctx.current_zone, target):
        _abort(state, record, "target_inaccessible")
        return
    result = _move(state, ctx.agent_name, ctx.current_zone, target)
    if result.is_failure:
        _abort(state, record, result.value.lower())


def _step_in_target(state: Any, ctx: AgentContext, record: AgentMultiZoneState) -> None:
    target = record.target_zone
    if target is None:
        _begin_return(record)
        return
    observation = guarded_call(state, "observer", "observe", state.observer.observe, target, default=None, zone=target)
    if observation is None or observation.hostile_agents <= state.config.max_hostile_agents:
        return
    zone_safety_status(state, target, force_refresh=True)
    _begin_return(record)
    record_event(
        state,
        {
            "type": "SAFETY_ABORT",
            "agent": ctx.agent_name,
            "zone": target,
            "hostile_agents": observation.hostile_agents,
        },
    )


def _step_returning(state: Any, ctx: AgentContext, record: AgentMultiZoneState) -> None:
    if ctx.current_zone == record.home_zone:
        record.clear_target()
        record.phase = TransitionPhase.AT_HOME
        record_event(state, {"type": "TRANSITION_HOME", "agent": ctx.agent_name, "zone": record.home_zone})
        return
    result = _move(state, ctx.agent_name, ctx.current_zone, record.home_zone)
    if result.is_failure:
        count = record.budget.record_failure(state.tick)
        record.clear_target()
        record.phase = TransitionPhase.AT_HOME
        record_event(
            state,
            {
                "type": "TRANSITION_ABORT",
                "agent": ctx.agent_name,
                "target_zone": record.home_zone,
                "reason": f"return_{result.value.lower()}",
                "failure_count": count,
            },
        )


def advance_transition(state: Any, ctx: AgentContext) -> TransitionPhase:
    """Run one step of the controller for ``ctx`` and return the resulting phase."""

    record = get_agent_state(state, ctx.agent_name)
    if record is None:
        return TransitionPhase.AT_HOME
    if record.phase is TransitionPhase.EN_ROUTE:
        _step_en_route(state, ctx, record)
    elif record.phase is TransitionPhase.IN_TARGET:
        _step_in_target(state, ctx, record)
    elif record.phase is TransitionPhase.RETURNING:
        _step_returning(state, ctx, record)
    save_agent_state(state, record)
    return record.phase


def complete_task(state: Any, agent_name: str) -> bool:
    record = get_agent_state(state, agent_name)
    if record is None or record.phase is not TransitionPhase.IN_TARGET:
        return False
    _begin_return(record)
    save_agent_state(state, record)
    return True


def candidate_nodes(state: Any, ctx: AgentContext) -> list[ResourceNode]:
    cfg = state.config
    nodes = filter_safe_nodes(find_resource_nodes(state, ctx.home_zone))
    return [
        node
        for node in nodes
        if node.distance <= cfg.max_collection_distance
        and not is_zone_excluded(state, node.zone_name)
        and is_zone_safe(state, node.zone_name)
    ]


def select_target(state: Any, ctx: AgentContext) -> ResourceNode | None:
    """Pick a node for an idle agent and start the transition toward it."""

    record = get_agent_state(state, ctx.agent_name)
    if record is not None and record.phase is not TransitionPhase.AT_HOME:
        return None
    if not should_use_multi_zone(state, ctx):
        return None
    nodes = candidate_nodes(state, ctx)
    if not nodes:
        return None
    choice = assign_targets(state, [ctx], nodes).get(ctx.agent_name)
    if choice is None:
        return None
    node = next(n for n in nodes if n.node_id == choice)
    begin_transition(state, ctx, node.zone_name, node.node_id)
    return node


def reassign_in_zone(state: Any, ctx: AgentContext) -> str | None:
    """Give an in-flight agent that lost its node another one in its target zone.

    Agents unassigned by redistribution keep travelling or working; when the
    target zone has no node with room left they head home instead.
    """

    record = get_agent_state(state, ctx.agent_name)
    if record is None or record.assigned_node_id is not None or record.target_zone is None:
        return None
    if record.phase not in (TransitionPhase.EN_ROUTE, TransitionPhase.IN_TARGET):
        return None
    nodes = [node for node in candidate_nodes(state, ctx) if node.zone_name == record.target_zone]
    choice = assign_targets(state, [ctx], nodes).get(ctx.agent_name) if nodes else None
    record = get_agent_state(state, ctx.agent_name)
    if choice is None:
        _begin_return(record)
    else:
        record.target_node_id = choice
    save_agent_state(state, record)
    return choice


def report_node_invalid(state: Any, ctx: AgentContext, node_id: str) -> None:
    """The action layer found ``node_id`` gone; drop every reference to it."""

    record_event(state, {"type": "NODE_INVALID", "agent": ctx.agent_name, "node_id": node_id})
    clear_profitability_cache(state, node_id)
    drop_cached_node(state, node_id)
    record = get_agent_state(state, ctx.agent_name)
    if record is None:
        return
    if record.assigned_node_id == node_id:
        record.prev_node_id = node_id
        record.assigned_node_id = None
    if record.target_node_id == node_id:
        record.target_node_id = None
        if record.phase in (TransitionPhase.EN_ROUTE, TransitionPhase.IN_TARGET):
            _begin_return(record)
    save_agent_state(state, record)


def reevaluate_assignment(state: Any, ctx: AgentContext) -> str | None:
    """Check a working agent's node and switch it when a clearly better one exists."""

    cfg = state.config
    record = get_agent_state(state, ctx.agent_name)
    if record is None or record.phase is not TransitionPhase.IN_TARGET or record.assigned_node_id is None:
        return None
    last = record.last_profit_check_tick
    if last is not None and state.tick - last < cfg.profitability_check_interval:
        return None
    record.last_profit_check_tick = state.tick
    save_agent_state(state, record)

    current_id = record.assigned_node_id
    current = guarded_call(state, "observer", "lookup_node", state.observer.lookup_node, current_id, default=None)
    if current is None:
        report_node_invalid(state, ctx, current_id)
        return None

    alternatives = []
    for node in candidate_nodes(state, ctx):
        observed = guarded_call(state, "observer", "lookup_node", state.observer.lookup_node, node.node_id, default=None)
        if observed is not None:
            alternatives.append(observed)
    if not should_migrate(state, current, alternatives, ctx):
        return None

    best, best_score = best_alternative(state, current, alternatives, ctx)
    if best is None:
        return None
    record_event(
        state,
        {
            "type": "MIGRATION_RECOMMENDED",
            "agent": ctx.agent_name,
            "from_node": current_id,
            "to_node": best.node_id,
            "best_score": best_score,
        },
    )
    record = get_agent_state(state, ctx.agent_name)
    record.prev_node_id = current_id
    record.assigned_node_id = best.node_id
    record.target_node_id = best.node_id
    if best.zone_name != record.target_zone:
        _begin_return(record)
    save_agent_state(state, record)
    return best.node_id


def disable_multi_zone(state: Any, agent_name: str) -> bool:
    record = get_agent_state(state, agent_name)
    if record is None:
        return False
    record.enabled = False
    record.clear_target()
    record.phase = TransitionPhase.AT_HOME
    save_agent_state(state, record)
    return True


def reset_multi_zone(state: Any, agent_name: str) -> bool:
    record = get_agent_state(state, agent_name)
    if record is None:
        return False
    record.enabled = True
    record.budget.reset()
    record.clear_target()
    record.phase = TransitionPhase.AT_HOME
    save_agent_state(state, record)
    return True


__all__ = [
    "advance_transition",
    "begin_transition",
    "candidate_nodes",
    "complete_task",
    "disable_multi_zone",
    "reassign_in_zone",
    "reevaluate_assignment",
    "report_node_invalid",
    "reset_multi_zone",
    "select_target",
    "should_use_multi_zone",
]
