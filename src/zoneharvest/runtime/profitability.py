from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence

from zoneharvest.interfaces.contracts import AgentContext, ObservedNode
from zoneharvest.store import PROFIT_PREFIX, get_typed, profit_key

from .telemetry import ensure_metrics, guarded_call, record_cache_lookup


@dataclass(slots=True)
class ProfitabilityRecord:
    node_id: str
    home_zone: str
    score: int
    remaining_amount: int
    distance: int
    crowding_penalty: float
    last_updated_tick: int


def _zone_distance(state: Any, ctx: AgentContext, node: ObservedNode) -> int:
    if node.zone_name == ctx.home_zone:
        return 0
    fallback = state.config.max_collection_distance + 1
    distance = guarded_call(
        state,
        "router",
        "zone_distance",
        state.router.zone_distance,
        ctx.home_zone,
        node.zone_name,
        default=fallback,
        zone=node.zone_name,
    )
    return int(distance)


def _crowding(state: Any, node: ObservedNode) -> float:
    cfg = state.config
    return cfg.crowding_penalty * max(0, node.nearby_agents - cfg.max_agents_per_node)


def _replenish_bonus(state: Any, node: ObservedNode) -> float:
    cfg = state.config
    ticks = node.ticks_to_replenish
    if ticks is not None and 0 < ticks <= cfg.replenish_soon_ticks:
        return cfg.replenish_bonus
    return 0.0


def build_profitability_record(state: Any, node: ObservedNode, ctx: AgentContext) -> ProfitabilityRecord:
    cfg = state.config
    distance = _zone_distance(state, ctx, node)
    crowding = _crowding(state, node)
    raw = 100.0 * node.amount_ratio - cfg.distance_penalty * distance - crowding + _replenish_bonus(state, node)
    return ProfitabilityRecord(
        node_id=node.node_id,
        home_zone=ctx.home_zone,
        score=int(round(raw)),
        remaining_amount=node.amount,
        distance=distance,
        crowding_penalty=crowding,
        last_updated_tick=state.tick,
    )


def score_node(state: Any, node: ObservedNode, ctx: AgentContext) -> int:
    """Score how worthwhile ``node`` is for the agent described by ``ctx``.

    Fuller nodes score higher; every zone hop away from home, every agent
    beyond the per-node limit and a far-off replenish all cost points.
    """

    return build_profitability_record(state, node, ctx).score


def _fresh_score(state: Any, node_id: str, ctx: AgentContext) -> int | None:
    cfg = state.config
    cached = get_typed(state.store, profit_key(node_id, ctx.home_zone), ProfitabilityRecord)
    if cfg.use_cache("profitability") and cached is not None:
        if state.tick - cached.last_updated_tick < cfg.profitability_check_interval:
            record_cache_lookup(state, "profitability", hit=True)
            return cached.score
    record_cache_lookup(state, "profitability", hit=False)
    return None


def _store_score(state: Any, node: ObservedNode, ctx: AgentContext) -> int:
    record = build_profitability_record(state, node, ctx)
    state.store.set(profit_key(node.node_id, ctx.home_zone), record)
    ensure_metrics(state).topk_add("profitability.nodes", f"{node.node_id}@{ctx.home_zone}", record.score)
    return record.score


def node_profitability(state: Any, node: ObservedNode, ctx: AgentContext) -> int:
    """TTL-cached score for a node already in hand."""

    score = _fresh_score(state, node.node_id, ctx)
    if score is not None:
        return score
    return _store_score(state, node, ctx)


def best_alternative(
    state: Any,
    current: ObservedNode,
    alternatives: Sequence[ObservedNode],
    ctx: AgentContext,
) -> tuple[ObservedNode | None, int]:
    cfg = state.config
    best: ObservedNode | None = None
    best_score = 0
    for candidate in sorted(alternatives, key=lambda n: n.node_id):
        if candidate.node_id == current.node_id or candidate.amount < cfg.min_node_amount:
            continue
        score = node_profitability(state, candidate, ctx)
        if best is None or score > best_score:
            best, best_score = candidate, score
    return best, best_score


def should_migrate(
    state: Any,
    current: ObservedNode,
    alternatives: Sequence[ObservedNode],
    ctx: AgentContext,
) -> bool:
    cfg = state.config
    if current.amount >= cfg.migration_floor:
        return False
    best, best_score = best_alternative(state, current, alternatives, ctx)
    if best is None:
        return False
    return best_score - node_profitability(state, current, ctx) > cfg.migration_margin


def cached_node_profitability(state: Any, node_id: str, ctx: AgentContext) -> int:
    """TTL-cached score; 0 when the node cannot be seen or no longer exists."""

    score = _fresh_score(state, node_id, ctx)
    if score is not None:
        return score
    node = guarded_call(state, "observer", "lookup_node", state.observer.lookup_node, node_id, default=None)
    if node is None:
        state.store.delete(profit_key(node_id, ctx.home_zone))
        return 0
    return _store_score(state, node, ctx)


def cleanup_profitability_cache(state: Any) -> List[str]:
    cfg = state.config
    purged: List[str] = []
    for key in state.store.keys(PROFIT_PREFIX):
        record = get_typed(state.store, key, ProfitabilityRecord)
        if record is None:
            continue
        too_old = state.tick - record.last_updated_tick > cfg.profitability_max_age
        gone = (
            not too_old
            and guarded_call(state, "observer", "lookup_node", state.observer.lookup_node, record.node_id, default=None)
            is None
        )
        if too_old or gone:
            state.store.delete(key)
            purged.append(key)
    return purged


def clear_profitability_cache(state: Any, node_id: str | None = None) -> int:
    removed = 0
    for key in state.store.keys(PROFIT_PREFIX):
        if node_id is not None:
            record = get_typed(state.store, key, ProfitabilityRecord)
            if record is None or record.node_id != node_id:
                continue
        if state.store.delete(key):
            removed += 1
    return removed


__all__ = [
    "ProfitabilityRecord",
    "best_alternative",
    "build_profitability_record",
    "cached_node_profitability",
    "cleanup_profitability_cache",
    "clear_profitability_cache",
    "node_profitability",
    "score_node",
    "should_migrate",
]
