import pytest

from zoneharvest.interfaces.contracts import AgentContext
from zoneharvest.runtime.agent_state import (
    AgentMultiZoneState,
    TransitionPhase,
    collect_garbage,
    ensure_agent_state,
    get_agent_state,
    iter_agent_states,
    multi_zone_agents_by_role,
    save_agent_state,
    validate_agent_states,
)
from zoneharvest.state import build_state
from zoneharvest.store import agent_key
from zoneharvest.world.zone_map import ZoneMap


def _world():
    zones = ZoneMap()
    zones.add_zone("A")
    zones.connect("A", "B")
    zones.add_node("B", "node-b", amount=1000, capacity=2000)
    return zones, build_state(zones, zones, zones)


def _ctx(name, role="harvester", home="A"):
    return AgentContext(agent_name=name, home_zone=home, current_zone=home, capacity=500, role=role)


def test_plain_mapping_records_are_coerced():
    zones, state = _world()
    state.store.set(
        agent_key("h1"),
        {"home_zone": "A", "phase": "RETURNING", "target_zone": "B", "failure_count": 2, "last_attempt_tick": 40},
    )

    record = get_agent_state(state, "h1")

    assert isinstance(record, AgentMultiZoneState)
    assert record.phase is TransitionPhase.RETURNING
    assert record.is_returning_home
    assert record.failure_count == 2
    assert record.last_attempt_tick == 40


@pytest.mark.parametrize(
    "raw",
    [
        {"home_zone": "A", "phase": "EN_ROUTE", "target_zone": "B"},
        {"home_zone": "A", "phase": "IN_TARGET"},
        {"home_zone": "A", "phase": "WANDERING"},
    ],
)
def test_inconsistent_phases_fall_back_to_home(raw):
    zones, state = _world()
    state.store.set(agent_key("h1"), raw)

    assert get_agent_state(state, "h1").phase is TransitionPhase.AT_HOME


def test_foreign_record_type_is_rejected():
    zones, state = _world()
    state.store.set(agent_key("h1"), 42)

    with pytest.raises(TypeError):
        get_agent_state(state, "h1")
    assert validate_agent_states(state) == ["h1: unexpected record type int"]


def test_ensure_creates_once_and_tracks_role():
    zones, state = _world()

    first = ensure_agent_state(state, _ctx("h1"))
    first.assigned_node_id = "node-b"
    save_agent_state(state, first)
    again = ensure_agent_state(state, _ctx("h1", role="hauler"))

    assert again.assigned_node_id == "node-b"
    assert again.role == "hauler"
    assert [r.agent_name for r in iter_agent_states(state)] == ["h1"]


def test_agents_counted_by_role_only_while_in_flight():
    zones, state = _world()
    for name, role in (("h1", "harvester"), ("h2", "harvester"), ("c1", "hauler")):
        record = ensure_agent_state(state, _ctx(name, role=role))
        record.phase = TransitionPhase.RETURNING
        save_agent_state(state, record)
    ensure_agent_state(state, _ctx("idle"))

    assert multi_zone_agents_by_role(state) == {"harvester": 2, "hauler": 1}


def test_garbage_collection():
    zones, state = _world()
    keep = ensure_agent_state(state, _ctx("keep"))
    keep.assigned_node_id = "gone"
    keep.prev_node_id = "also-gone"
    save_agent_state(state, keep)
    busy = ensure_agent_state(state, _ctx("busy"))
    busy.assigned_node_id = "gone"
    busy.phase = TransitionPhase.RETURNING
    save_agent_state(state, busy)
    ensure_agent_state(state, _ctx("dead"))

    report = collect_garbage(state, ["keep", "busy"])

    assert report.removed_agents == ["dead"]
    assert report.cleared_nodes == ["gone"]
    kept = get_agent_state(state, "keep")
    assert kept.assigned_node_id is None
    assert kept.prev_node_id is None
    assert get_agent_state(state, "busy").assigned_node_id == "gone"
    assert get_agent_state(state, "dead") is None


def test_validation_reports_problems():
    zones, state = _world()
    record = ensure_agent_state(state, _ctx("h1"))
    record.phase = TransitionPhase.EN_ROUTE
    record.target_zone = "B"
    record.transition_start_tick = 0
    record.enabled = False
    record.budget.failure_count = 9
    record.assigned_node_id = "node-x"
    save_agent_state(state, record)
    state.tick = 151

    issues = validate_agent_states(state)

    assert issues == [
        "h1: transition to B past timeout",
        "h1: disabled but still EN_ROUTE",
        "h1: failure count 9 above limit 3",
        "h1: assigned node node-x no longer exists",
    ]
    assert validate_agent_states(build_state(zones, zones, zones)) == []
