"""Per-agent multi-zone state kept in the store under ``agent:<name>``.

Records are created on an agent's first multi-zone attempt and are
validated on every read, so a record written by an older build or restored
from a plain mapping comes back with its defaults filled in.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping

from zoneharvest.interfaces.contracts import AgentContext
from zoneharvest.store import AGENT_PREFIX, agent_key, strip_prefix

from .failure_budget import FailureBudget
from .telemetry import guarded_call


class TransitionPhase(str, Enum):
    AT_HOME = "AT_HOME"
    EN_ROUTE = "EN_ROUTE"
    IN_TARGET = "IN_TARGET"
    RETURNING = "RETURNING"


@dataclass(slots=True)
class AgentMultiZoneState:
    agent_name: str
    home_zone: str
    enabled: bool = True
    role: str = "harvester"
    phase: TransitionPhase = TransitionPhase.AT_HOME
    target_zone: str | None = None
    target_node_id: str | None = None
    collection_zone: str | None = None
    collection_target_id: str | None = None
    is_returning_home: bool = False
    transition_start_tick: int | None = None
    budget: FailureBudget = field(default_factory=FailureBudget)
    assigned_node_id: str | None = None
    prev_node_id: str | None = None
    last_profit_check_tick: int | None = None
    arrivals: int = 0

    @property
    def failure_count(self) -> int:
        return self.budget.failure_count

    @property
    def last_attempt_tick(self) -> int | None:
        return self.budget.last_attempt_tick

    @property
    def in_flight(self) -> bool:
        return self.phase is not TransitionPhase.AT_HOME

    def clear_target(self) -> None:
        self.target_zone = None
        self.target_node_id = None
        self.collection_zone = None
        self.transition_start_tick = None
        self.is_returning_home = False


@dataclass(slots=True)
class GarbageReport:
    removed_agents: list[str] = field(default_factory=list)
    cleared_nodes: list[str] = field(default_factory=list)


_FIELD_NAMES = {f.name for f in fields(AgentMultiZoneState)}


def _budget_from(value: Any) -> FailureBudget:
    if isinstance(value, FailureBudget):
        budget = value
    elif isinstance(value, Mapping):
        budget = FailureBudget(
            failure_count=int(value.get("failure_count", 0) or 0),
            last_attempt_tick=value.get("last_attempt_tick"),
            last_failure_tick=value.get("last_failure_tick"),
        )
    else:
        budget = FailureBudget()
    budget.failure_count = max(0, int(budget.failure_count))
    return budget


def _coerce(agent_name: str, value: Any, home_zone: str | None) -> AgentMultiZoneState | None:
    if value is None:
        return None
    if isinstance(value, AgentMultiZoneState):
        record = value
    elif isinstance(value, Mapping):
        kwargs: Dict[str, Any] = {k: v for k, v in value.items() if k in _FIELD_NAMES}
        kwargs["agent_name"] = agent_name
        kwargs.setdefault("home_zone", home_zone or "")
        # flat failure fields from older records
        if "budget" not in kwargs:
            kwargs["budget"] = {k: value[k] for k in ("failure_count", "last_attempt_tick", "last_failure_tick") if k in value}
        record = AgentMultiZoneState(**kwargs)
    else:
        raise TypeError(f"Store key '{agent_key(agent_name)}' holds {type(value).__name__}, expected AgentMultiZoneState")

    if not isinstance(record.phase, TransitionPhase):
        try:
            record.phase = TransitionPhase(str(record.phase))
        except ValueError:
            record.phase = TransitionPhase.AT_HOME
    record.budget = _budget_from(record.budget)
    if not record.home_zone and home_zone:
        record.home_zone = home_zone
    if record.phase is TransitionPhase.EN_ROUTE and (record.target_zone is None or record.transition_start_tick is None):
        record.phase = TransitionPhase.AT_HOME
        record.clear_target()
    if record.phase is TransitionPhase.IN_TARGET and record.target_zone is None:
        record.phase = TransitionPhase.AT_HOME
    record.is_returning_home = record.phase is TransitionPhase.RETURNING
    return record


def get_agent_state(state: Any, agent_name: str) -> AgentMultiZoneState | None:
    return _coerce(agent_name, state.store.get(agent_key(agent_name)), None)


def ensure_agent_state(state: Any, ctx: AgentContext) -> AgentMultiZoneState:
    record = _coerce(ctx.agent_name, state.store.get(agent_key(ctx.agent_name)), ctx.home_zone)
    if record is None:
        record = AgentMultiZoneState(agent_name=ctx.agent_name, home_zone=ctx.home_zone, role=ctx.role)
    if record.home_zone != ctx.home_zone and record.phase is TransitionPhase.AT_HOME:
        record.home_zone = ctx.home_zone
    record.role = ctx.role
    save_agent_state(state, record)
    return record


def save_agent_state(state: Any, record: AgentMultiZoneState) -> None:
    state.store.set(agent_key(record.agent_name), record)


def iter_agent_states(state: Any) -> List[AgentMultiZoneState]:
    records: List[AgentMultiZoneState] = []
    for key in state.store.keys(AGENT_PREFIX):
        record = _coerce(strip_prefix(key, AGENT_PREFIX), state.store.get(key), None)
        if record is not None:
            records.append(record)
    return records


def multi_zone_agents_by_role(state: Any) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for record in iter_agent_states(state):
        if record.in_flight:
            counts[record.role] = counts.get(record.role, 0) + 1
    return dict(sorted(counts.items()))


def _node_exists(state: Any, node_id: str) -> bool:
    node = guarded_call(state, "observer", "lookup_node", state.observer.lookup_node, node_id, default=None)
    return node is not None


def collect_garbage(state: Any, live_agents: Iterable[str]) -> GarbageReport:
    """Drop state for agents that are gone and node references that no longer resolve."""

    live = set(live_agents)
    report = GarbageReport()
    for record in iter_agent_states(state):
        if record.agent_name not in live:
            state.store.delete(agent_key(record.agent_name))
            report.removed_agents.append(record.agent_name)
            continue
        changed = False
        if (
            not record.in_flight
            and record.assigned_node_id is not None
            and not _node_exists(state, record.assigned_node_id)
        ):
            report.cleared_nodes.append(record.assigned_node_id)
            record.assigned_node_id = None
            changed = True
        if record.prev_node_id is not None and not _node_exists(state, record.prev_node_id):
            record.prev_node_id = None
            changed = True
        if changed:
            save_agent_state(state, record)
    return report


def validate_agent_states(state: Any) -> List[str]:
    cfg = state.config
    issues: List[str] = []
    for key in state.store.keys(AGENT_PREFIX):
        name = strip_prefix(key, AGENT_PREFIX)
        raw = state.store.get(key)
        if not isinstance(raw, (AgentMultiZoneState, Mapping)):
            issues.append(f"{name}: unexpected record type {type(raw).__name__}")
            continue
        record = _coerce(name, raw, None)
        if record is None:
            continue
        if not record.home_zone:
            issues.append(f"{name}: missing home zone")
        if record.phase is TransitionPhase.EN_ROUTE and record.transition_start_tick is not None:
            if state.tick - record.transition_start_tick > cfg.transition_timeout:
                issues.append(f"{name}: transition to {record.target_zone} past timeout")
        if not record.enabled and record.in_flight:
            issues.append(f"{name}: disabled but still {record.phase.value}")
        if record.failure_count > cfg.max_failures:
            issues.append(f"{name}: failure count {record.failure_count} above limit {cfg.max_failures}")
        if record.assigned_node_id is not None and not _node_exists(state, record.assigned_node_id):
            issues.append(f"{name}: assigned node {record.assigned_node_id} no longer exists")
    return issues


__all__ = [
    "AgentMultiZoneState",
    "GarbageReport",
    "TransitionPhase",
    "collect_garbage",
    "ensure_agent_state",
    "get_agent_state",
    "iter_agent_states",
    "multi_zone_agents_by_role",
    "save_agent_state",
    "validate_agent_states",
]
