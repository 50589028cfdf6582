import math

import pytest

from zoneharvest.interfaces.contracts import AgentContext
from zoneharvest.runtime.agent_state import TransitionPhase, get_agent_state
from zoneharvest.runtime.coordinator import step_coordination
from zoneharvest.runtime.snapshot import (
    dumps_snapshot,
    from_snapshot_dict,
    loads_snapshot,
    restore_store,
    snapshot_store,
    store_signature,
)
from zoneharvest.runtime.zone_access import ZoneAccessibilityRecord, is_zone_accessible
from zoneharvest.runtime.zone_safety import ZoneSafetyStatus, safety_record
from zoneharvest.state import build_state
from zoneharvest.store import access_key
from zoneharvest.world.zone_map import ZoneMap


def _busy_state():
    zones = ZoneMap()
    zones.add_zone("A")
    zones.connect("A", "B", direction="east")
    zones.add_zone("Z")
    zones.add_node("B", "node-b", amount=1000, capacity=2000)
    zones.place_agent("h1", "A")
    state = build_state(zones, zones, zones)
    ctx = AgentContext(agent_name="h1", home_zone="A", current_zone="A", capacity=500)
    step_coordination(state, [ctx], tick=1)
    is_zone_accessible(state, "A", "Z")
    return state


def test_snapshot_round_trips_through_json():
    state = _busy_state()

    raw = dumps_snapshot(snapshot_store(state.store, tick=state.tick))
    restored = restore_store(loads_snapshot(raw))

    assert store_signature(restored) == store_signature(state.store)
    assert restored.keys() == state.store.keys()


def test_restored_records_keep_their_types():
    state = _busy_state()
    restored = restore_store(loads_snapshot(dumps_snapshot(snapshot_store(state.store))))
    state.store = restored

    record = get_agent_state(state, "h1")
    assert record.phase is TransitionPhase.EN_ROUTE
    assert record.budget.last_attempt_tick == 1
    assert safety_record(state, "B").status is ZoneSafetyStatus.SAFE

    blocked = restored.get(access_key("A", "Z"))
    assert isinstance(blocked, ZoneAccessibilityRecord)
    assert math.isinf(blocked.path_cost)


def test_signature_tracks_content():
    state = _busy_state()
    before = store_signature(state.store)

    state.store.set("rr:A:hauler", "t1")

    assert store_signature(state.store) != before


def test_snapshot_header():
    state = _busy_state()

    payload = snapshot_store(state.store, tick=7)

    assert payload["schema_version"] == "zoneharvest_store_v1"
    assert payload["tick"] == 7
    with pytest.raises(ValueError):
        restore_store({**payload, "schema_version": "other_v9"})


def test_types_outside_package_are_refused():
    with pytest.raises(ValueError):
        from_snapshot_dict({"__type__": "os.system", "data": {}})
    with pytest.raises(ValueError):
        from_snapshot_dict({"__enum__": "subprocess.Popen", "value": "x"})
