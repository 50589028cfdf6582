from zoneharvest.interfaces.contracts import AgentContext, validate_event_payload
from zoneharvest.runtime.agent_state import TransitionPhase, ensure_agent_state, get_agent_state, save_agent_state
from zoneharvest.runtime.config import CACHE_KINDS, CoordinationConfig
from zoneharvest.runtime.coordinator import coordination_status, set_multi_zone_enabled, step_coordination
from zoneharvest.state import build_state
from zoneharvest.world.zone_map import ZoneMap


def _world(**overrides):
    zones = ZoneMap()
    zones.add_zone("A")
    zones.connect("A", "B", direction="east")
    zones.add_node("B", "node-b", amount=1000, capacity=2000)
    for name in ("h1", "h2"):
        zones.place_agent(name, "A")
    state = build_state(zones, zones, zones, config=CoordinationConfig(**overrides))
    return zones, state


def _agents(zones, names=("h1",)):
    return [
        AgentContext(agent_name=name, home_zone="A", current_zone=zones.zone_of(name, "A"), capacity=500)
        for name in names
    ]


def test_step_selects_and_moves_agent_to_target():
    zones, state = _world()

    first = step_coordination(state, _agents(zones), tick=1)

    assert first.selected == {"h1": "node-b"}
    assert first.phases["h1"] is TransitionPhase.EN_ROUTE
    assert first.safety_refreshed == ["A", "B"]
    assert zones.zone_of("h1") == "B"

    second = step_coordination(state, _agents(zones), tick=2)

    assert second.selected == {}
    assert second.phases["h1"] is TransitionPhase.IN_TARGET
    assert state.metrics.get("coordinator.steps") == 2


def test_disabled_coordinator_does_nothing():
    zones, state = _world(enabled=False)

    report = step_coordination(state, _agents(zones), tick=1)

    assert not report.enabled
    assert report.phases == {}
    assert get_agent_state(state, "h1") is None
    assert zones.zone_of("h1") == "A"


def test_global_switch_toggles_at_runtime():
    zones, state = _world()

    assert set_multi_zone_enabled(state, False)
    assert step_coordination(state, _agents(zones), tick=1).selected == {}

    set_multi_zone_enabled(state, True)
    assert step_coordination(state, _agents(zones), tick=2).selected == {"h1": "node-b"}


def test_per_agent_switch():
    zones, state = _world()
    step_coordination(state, _agents(zones), tick=1)

    assert set_multi_zone_enabled(state, False, "h1")
    record = get_agent_state(state, "h1")
    assert not record.enabled
    assert record.phase is TransitionPhase.AT_HOME
    assert step_coordination(state, _agents(zones), tick=2).selected == {}
    assert not set_multi_zone_enabled(state, False, "nobody")


def test_status_reports_caches_and_agents():
    zones, state = _world()
    step_coordination(state, _agents(zones), tick=1)
    state.tick = 4

    status = coordination_status(state)

    assert status.enabled
    assert status.multi_zone_agents == {"harvester": 1}
    assert status.cached_zones == 1
    assert status.cached_nodes == 1
    assert status.oldest_cache_age == 3
    assert set(status.cache_hit_rate) == set(CACHE_KINDS)
    assert status.average_transition_time == 3.0
    assert status.counters["coordinator.steps"] == 1


def test_cleanup_tick_drops_state_of_departed_agents():
    zones, state = _world()
    ensure_agent_state(state, AgentContext(agent_name="ghost", home_zone="A", current_zone="A", capacity=500))

    step_coordination(state, _agents(zones), tick=99)
    assert get_agent_state(state, "ghost") is not None

    report = step_coordination(state, _agents(zones), tick=100)

    assert report.garbage_agents == ["ghost"]
    assert get_agent_state(state, "ghost") is None


def test_invalid_config_is_reported_once():
    zones, state = _world(max_agents_per_node=0)

    step_coordination(state, _agents(zones), tick=1)
    step_coordination(state, _agents(zones), tick=2)

    issues = state.event_ring.of_type("CONFIG_ISSUE")
    assert [issue["setting"] for issue in issues] == ["max_agents_per_node"]
    assert issues[0]["severity"] == "error"


def test_hostile_arrival_sends_both_agents_home_and_events_are_well_formed():
    zones, state = _world()
    names = ("h1", "h2")

    for tick in range(1, 5):
        step_coordination(state, _agents(zones, names), tick=tick)
    assert {get_agent_state(state, n).phase for n in names} == {TransitionPhase.IN_TARGET}

    zones.set_hostiles("B", agents=1)
    for tick in range(5, 12):
        step_coordination(state, _agents(zones, names), tick=tick)

    assert len(state.event_ring.of_type("SAFETY_ABORT")) == 2
    assert len(state.event_ring.of_type("TRANSITION_HOME")) == 2
    for name in names:
        record = get_agent_state(state, name)
        assert record.phase is TransitionPhase.AT_HOME
        assert record.failure_count == 0
        assert zones.zone_of(name) == "A"

    for event in state.event_ring.events:
        validate_event_payload(str(event["type"]), event)


def _settle_pair(zones, state, names=("h1", "h2")):
    for tick in (1, 2):
        step_coordination(state, _agents(zones, names), tick=tick)
    assert {get_agent_state(state, n).phase for n in names} == {TransitionPhase.IN_TARGET}


def test_evicted_agent_takes_free_node_in_same_zone():
    zones, state = _world(max_agents_per_node=1)
    zones.add_node("B", "node-b2", amount=900, capacity=2000)
    _settle_pair(zones, state)
    crowded = get_agent_state(state, "h2")
    crowded.assigned_node_id = "node-b"
    crowded.target_node_id = "node-b"
    save_agent_state(state, crowded)

    report = step_coordination(state, _agents(zones, ("h1", "h2")), tick=10)

    assert report.redistributed == ["h1"]
    assert report.reassigned == {"h1": "node-b2"}
    moved = get_agent_state(state, "h1")
    assert moved.assigned_node_id == "node-b2"
    assert moved.target_node_id == "node-b2"
    assert moved.prev_node_id == "node-b"
    assert moved.phase is TransitionPhase.IN_TARGET
    assert get_agent_state(state, "h2").assigned_node_id == "node-b"


def test_evicted_agent_heads_home_when_zone_is_full():
    zones, state = _world()
    _settle_pair(zones, state)
    state.config.max_agents_per_node = 1

    report = step_coordination(state, _agents(zones, ("h1", "h2")), tick=10)

    assert report.redistributed == ["h1"]
    assert report.reassigned == {}
    assert get_agent_state(state, "h1").phase is TransitionPhase.RETURNING

    for tick in (11, 12):
        step_coordination(state, _agents(zones, ("h1", "h2")), tick=tick)

    evicted = get_agent_state(state, "h1")
    assert evicted.phase is TransitionPhase.AT_HOME
    assert evicted.assigned_node_id is None
    assert evicted.failure_count == 0
    assert zones.zone_of("h1") == "A"
    assert get_agent_state(state, "h2").phase is TransitionPhase.IN_TARGET
