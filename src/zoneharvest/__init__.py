"""zoneharvest public façade: multi-zone resource coordination."""

from .interfaces.contracts import (
    AgentContext,
    MoveResult,
    ObservedNode,
    RouteResult,
    ZoneObservation,
    ZoneOwnership,
)
from .runtime.agent_state import AgentMultiZoneState, TransitionPhase, collect_garbage, validate_agent_states
from .runtime.assignment import (
    CollectionTarget,
    assign_collection_targets,
    assign_targets,
    get_next_round_robin_target,
    redistribute_overcrowded,
)
from .runtime.config import ConfigIssue, CoordinationConfig, validate_config
from .runtime.coordinator import (
    CoordinationStatus,
    StepReport,
    coordination_status,
    set_multi_zone_enabled,
    step_coordination,
)
from .runtime.exploration import ExplorationRecord, ExplorationStatus, ingest_exploration
from .runtime.failure_budget import FailureBudget
from .runtime.profitability import (
    ProfitabilityRecord,
    cached_node_profitability,
    cleanup_profitability_cache,
    score_node,
    should_migrate,
)
from .runtime.resource_discovery import ResourceNode, find_resource_nodes, update_resource_discovery_cache
from .runtime.zone_access import ZoneAccessibilityRecord, is_zone_accessible, zone_path_cost
from .runtime.zone_safety import ZoneSafetyRecord, ZoneSafetyStatus, cleanup_caches, is_zone_safe, update_safety_cache
from .runtime.zone_transition import (
    advance_transition,
    begin_transition,
    complete_task,
    report_node_invalid,
    select_target,
    should_use_multi_zone,
)
from .state import CoordinatorState, build_state
from .store import InMemoryStore, KeyValueStore
from .world.zone_map import ZoneMap

__all__ = [
    "AgentContext",
    "AgentMultiZoneState",
    "CollectionTarget",
    "ConfigIssue",
    "CoordinationConfig",
    "CoordinationStatus",
    "CoordinatorState",
    "ExplorationRecord",
    "ExplorationStatus",
    "FailureBudget",
    "InMemoryStore",
    "KeyValueStore",
    "MoveResult",
    "ObservedNode",
    "ProfitabilityRecord",
    "ResourceNode",
    "RouteResult",
    "StepReport",
    "TransitionPhase",
    "ZoneAccessibilityRecord",
    "ZoneMap",
    "ZoneObservation",
    "ZoneOwnership",
    "ZoneSafetyRecord",
    "ZoneSafetyStatus",
    "advance_transition",
    "assign_collection_targets",
    "assign_targets",
    "begin_transition",
    "build_state",
    "cached_node_profitability",
    "cleanup_caches",
    "cleanup_profitability_cache",
    "collect_garbage",
    "complete_task",
    "coordination_status",
    "find_resource_nodes",
    "get_next_round_robin_target",
    "ingest_exploration",
    "is_zone_accessible",
    "is_zone_safe",
    "redistribute_overcrowded",
    "report_node_invalid",
    "score_node",
    "select_target",
    "set_multi_zone_enabled",
    "should_migrate",
    "should_use_multi_zone",
    "step_coordination",
    "update_resource_discovery_cache",
    "update_safety_cache",
    "validate_agent_states",
    "validate_config",
    "zone_path_cost",
]
