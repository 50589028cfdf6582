"""Coordinator state shared by every component.

``CoordinatorState`` is the single object threaded through the runtime
helpers, the way a world object is threaded through a simulation step.  It
owns the tick, the configuration, the injected store, the three
world-facing collaborators and the telemetry sinks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .interfaces.contracts import MovementExecutor, ObservationProvider, RouteProvider
from .runtime.config import ConfigIssue, CoordinationConfig, validate_config
from .runtime.telemetry import DebugConfig, EventRing, Metrics, record_event
from .store import InMemoryStore, KeyValueStore


@dataclass(slots=True)
class CoordinatorState:
    observer: ObservationProvider
    router: RouteProvider
    mover: MovementExecutor | None = None
    config: CoordinationConfig = field(default_factory=CoordinationConfig)
    store: KeyValueStore = field(default_factory=InMemoryStore)
    tick: int = 0
    metrics: Metrics = field(default_factory=Metrics)
    debug_cfg: DebugConfig = field(default_factory=DebugConfig)
    event_ring: EventRing = field(default_factory=EventRing)
    config_issues: List[ConfigIssue] = field(default_factory=list)
    config_validated: bool = False

    def advance(self, tick: int | None = None) -> int:
        self.tick = self.tick + 1 if tick is None else int(tick)
        return self.tick


def ensure_config_validated(state: CoordinatorState) -> List[ConfigIssue]:
    if state.config_validated:
        return state.config_issues
    state.config_issues = validate_config(state.config)
    for issue in state.config_issues:
        record_event(
            state,
            {
                "type": "CONFIG_ISSUE",
                "setting": issue.setting,
                "message": issue.message,
                "severity": issue.severity,
            },
        )
    state.config_validated = True
    return state.config_issues


def build_state(
    observer: ObservationProvider,
    router: RouteProvider,
    mover: MovementExecutor | None = None,
    *,
    config: CoordinationConfig | None = None,
    store: KeyValueStore | None = None,
    tick: int = 0,
    debug_level: str = "standard",
) -> CoordinatorState:
    debug_cfg = DebugConfig(level=debug_level)
    state = CoordinatorState(
        observer=observer,
        router=router,
        mover=mover,
        config=config or CoordinationConfig(),
        store=store if store is not None else InMemoryStore(),
        tick=tick,
        debug_cfg=debug_cfg,
        event_ring=EventRing() if debug_cfg.has_event_ring() else EventRing(capacity=0),
    )
    ensure_config_validated(state)
    return state


__all__ = ["CoordinatorState", "build_state", "ensure_config_validated"]
