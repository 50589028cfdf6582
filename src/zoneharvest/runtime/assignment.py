from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from zoneharvest.interfaces.contracts import AgentContext
from zoneharvest.store import round_robin_key

from .agent_state import ensure_agent_state, get_agent_state, iter_agent_states, save_agent_state
from .resource_discovery import ResourceNode
from .telemetry import record_event


@dataclass(slots=True)
class CollectionTarget:
    target_id: str
    zone_name: str
    amount: int


def _distance(agent: AgentContext, node: ResourceNode) -> float:
    return float(agent.node_distances.get(node.node_id, node.distance))


def _average_distance(agent: AgentContext, nodes: Sequence[ResourceNode]) -> float:
    if not nodes:
        return 0.0
    return sum(_distance(agent, node) for node in nodes) / len(nodes)


def _agent_sort_key(agent: AgentContext, nodes: Sequence[ResourceNode]) -> Tuple[int, float, str]:
    return (-int(agent.capacity), _average_distance(agent, nodes), agent.agent_name)


def _seed_counts(state: Any, node_ids: Sequence[str], batch: set[str], field_name: str) -> Dict[str, int]:
    """Count assignments already held by agents outside this batch."""

    counts = {node_id: 0 for node_id in node_ids}
    for record in iter_agent_states(state):
        if record.agent_name in batch:
            continue
        held = getattr(record, field_name)
        if held in counts:
            counts[held] += 1
    return counts


def assign_targets(
    state: Any,
    agents: Sequence[AgentContext],
    nodes: Sequence[ResourceNode],
) -> Dict[str, str | None]:
    """Greedy least-loaded assignment of ``agents`` onto ``nodes``.

    Agents with the most carrying capacity choose first.  An agent keeps its
    current node while that node has room; otherwise it takes the open node
    with the fewest agents, preferring higher priority.
    """

    cap = max(1, state.config.max_agents_per_node)
    by_id: Dict[str, ResourceNode] = {}
    for node in nodes:
        by_id.setdefault(node.node_id, node)
    unique_nodes = list(by_id.values())
    counts = _seed_counts(state, list(by_id), {a.agent_name for a in agents}, "assigned_node_id")

    result: Dict[str, str | None] = {}
    for agent in sorted(agents, key=lambda a: _agent_sort_key(a, unique_nodes)):
        record = ensure_agent_state(state, agent)
        existing = record.assigned_node_id
        choice: str | None = None
        if existing in counts and counts[existing] < cap:
            choice = existing
        else:
            open_nodes = [node for node in unique_nodes if counts[node.node_id] < cap]
            if open_nodes:
                best = min(open_nodes, key=lambda n: (counts[n.node_id], -n.priority, n.node_id))
                choice = best.node_id
        if choice is not None:
            counts[choice] += 1
        if existing is not None and existing != choice:
            record.prev_node_id = existing
        record.assigned_node_id = choice
        save_agent_state(state, record)
        result[agent.agent_name] = choice
    return result


def redistribute_overcrowded(state: Any, agents: Sequence[AgentContext]) -> List[str]:
    """Unassign the farthest agents from any node holding more than the limit."""

    cap = max(1, state.config.max_agents_per_node)
    by_node: Dict[str, List[AgentContext]] = {}
    for agent in agents:
        record = get_agent_state(state, agent.agent_name)
        if record is None or record.assigned_node_id is None:
            continue
        by_node.setdefault(record.assigned_node_id, []).append(agent)

    evicted: List[str] = []
    for node_id, holders in sorted(by_node.items()):
        if len(holders) <= cap:
            continue
        ranked = sorted(holders, key=lambda a: (-a.distance_to(node_id), a.agent_name))
        for agent in ranked[: len(holders) - cap]:
            record = get_agent_state(state, agent.agent_name)
            if record is None:
                continue
            record.prev_node_id = node_id
            record.assigned_node_id = None
            if record.target_node_id == node_id:
                record.target_node_id = None
            save_agent_state(state, record)
            evicted.append(agent.agent_name)
            record_event(
                state,
                {
                    "type": "AGENT_REDISTRIBUTED",
                    "agent": agent.agent_name,
                    "node_id": node_id,
                    "distance": agent.distance_to(node_id),
                },
            )
    return evicted


def get_next_round_robin_target(state: Any, zone: str, role: str, targets: Sequence[str]) -> str | None:
    if not targets:
        return None
    key = round_robin_key(zone, role)
    last = state.store.get(key)
    ordered = list(targets)
    if last in ordered:
        index = (ordered.index(last) + 1) % len(ordered)
    else:
        index = 0
    chosen = ordered[index]
    state.store.set(key, chosen)
    return chosen


def assign_collection_targets(
    state: Any,
    haulers: Sequence[AgentContext],
    targets: Sequence[CollectionTarget],
) -> Dict[str, str | None]:
    cap = max(1, state.config.max_agents_per_node)
    ranked = sorted((t for t in targets if t.amount > 0), key=lambda t: (-t.amount, t.target_id))
    loads = _seed_counts(state, [t.target_id for t in ranked], {h.agent_name for h in haulers}, "collection_target_id")

    result: Dict[str, str | None] = {}
    for hauler in sorted(haulers, key=lambda h: (-int(h.capacity), h.agent_name)):
        record = ensure_agent_state(state, hauler)
        existing = record.collection_target_id
        choice: CollectionTarget | None = None
        if existing in loads and loads[existing] < cap:
            choice = next(t for t in ranked if t.target_id == existing)
        else:
            open_targets = [t for t in ranked if loads[t.target_id] < cap]
            if open_targets:
                choice = min(open_targets, key=lambda t: (-t.amount, loads[t.target_id], t.target_id))
        if choice is not None:
            loads[choice.target_id] += 1
            record.collection_target_id = choice.target_id
            record.collection_zone = choice.zone_name
        else:
            record.collection_target_id = None
        save_agent_state(state, record)
        result[hauler.agent_name] = record.collection_target_id
    return result


__all__ = [
    "CollectionTarget",
    "assign_collection_targets",
    "assign_targets",
    "get_next_round_robin_target",
    "redistribute_overcrowded",
]
