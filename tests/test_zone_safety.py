import pytest

from zoneharvest.interfaces.contracts import ZoneObservation, ZoneOwnership
from zoneharvest.runtime.config import CoordinationConfig
from zoneharvest.runtime.exploration import ExplorationRecord, ExplorationStatus, ingest_exploration
from zoneharvest.runtime.zone_access import access_record
from zoneharvest.runtime.zone_safety import (
    ZoneSafetyStatus,
    cleanup_caches,
    is_zone_safe,
    safety_record,
    update_safety_cache,
    zone_resource_value,
    zone_safety_status,
)
from zoneharvest.state import build_state
from zoneharvest.world.zone_map import ZoneMap


def _world(**overrides):
    zones = ZoneMap()
    zones.add_zone("A", ownership=ZoneOwnership.OWNED, controller_level=3)
    zones.add_zone("B")
    zones.connect("A", "B", direction="east")
    state = build_state(zones, zones, zones, config=CoordinationConfig(**overrides))
    return zones, state


def test_visible_quiet_zone_is_safe_and_cached():
    zones, state = _world()
    state.tick = 7

    assert is_zone_safe(state, "B")
    record = safety_record(state, "B")
    assert record is not None
    assert record.status is ZoneSafetyStatus.SAFE
    assert record.last_checked_tick == 7


def test_invisible_zone_is_unknown_and_not_safe():
    zones, state = _world()
    zones.add_zone("C", visible=False)

    assert not is_zone_safe(state, "C")
    assert zone_safety_status(state, "C") is ZoneSafetyStatus.UNKNOWN


@pytest.mark.parametrize(
    "zone_kwargs, overrides",
    [
        ({"hostile_agents": 1}, {}),
        ({"hostile_structures": 1}, {}),
        ({"ownership": ZoneOwnership.HOSTILE}, {}),
        ({"controller_level": 1}, {"min_controller_level": 2}),
    ],
)
def test_unsafe_triggers(zone_kwargs, overrides):
    zones, state = _world(**overrides)
    zones.add_zone("C", **zone_kwargs)

    assert zone_safety_status(state, "C") is ZoneSafetyStatus.UNSAFE


def test_hostile_agents_over_threshold_never_safe():
    zones, state = _world(max_hostile_agents=2)
    zones.add_zone("C", ownership=ZoneOwnership.OWNED, controller_level=8, hostile_agents=3)

    for tick in (0, 50, 250):
        state.tick = tick
        assert not is_zone_safe(state, "C")
        assert not is_zone_safe(state, "C", force_refresh=True)


def test_repeat_query_within_ttl_does_not_rescan():
    zones, state = _world()

    first = is_zone_safe(state, "B")
    second = is_zone_safe(state, "B")

    assert first == second
    assert zones.observe_calls(["B"]) == 1
    assert state.metrics.get("cache.safety.hit") == 1


def test_ttl_boundaries():
    zones, state = _world(safety_cache_duration=200)
    is_zone_safe(state, "B")
    assert zones.observe_calls(["B"]) == 1

    state.tick = 199
    is_zone_safe(state, "B")
    assert zones.observe_calls(["B"]) == 1

    state.tick = 201
    is_zone_safe(state, "B")
    assert zones.observe_calls(["B"]) == 2


def test_cached_verdict_holds_until_forced():
    zones, state = _world()
    assert is_zone_safe(state, "B")

    zones.set_hostiles("B", agents=4)
    state.tick = 10
    assert is_zone_safe(state, "B")
    assert not is_zone_safe(state, "B", force_refresh=True)


def test_disabled_cache_always_recomputes():
    zones, state = _world()
    state.config.cache_enabled["safety"] = False

    is_zone_safe(state, "B")
    is_zone_safe(state, "B")

    assert zones.observe_calls(["B"]) == 2


def test_scout_data_annotates_unknown_without_upgrading():
    zones, state = _world()
    zones.add_zone("C", visible=False)
    ingest_exploration(
        state,
        ExplorationRecord(
            zone_name="C",
            safety_status=ExplorationStatus.SAFE,
            last_scanned_tick=0,
            hostile_count=2,
            controller_owner=ZoneOwnership.RESERVED,
            scout_agent_name="scout-1",
        ),
    )

    assert zone_safety_status(state, "C") is ZoneSafetyStatus.UNKNOWN
    record = safety_record(state, "C")
    assert record.hostile_agent_count == 2
    assert record.ownership is ZoneOwnership.RESERVED


def test_sweep_is_bounded_and_resumes():
    zones, state = _world(max_zones_scan_per_tick=2)
    zones.add_zone("C")
    zones.add_zone("D")

    assert update_safety_cache(state) == ["A", "B"]
    assert update_safety_cache(state) == ["C", "D"]
    assert update_safety_cache(state) == []
    assert len(state.event_ring.of_type("SAFETY_REFRESH")) == 4

    state.tick = 49
    assert update_safety_cache(state) == []
    state.tick = 50
    assert update_safety_cache(state) == ["A", "B"]


def test_cleanup_evicts_entries_older_than_twice_ttl():
    zones, state = _world(safety_cache_duration=200)
    is_zone_safe(state, "B")
    access_record(state, "A", "B")

    state.tick = 400
    assert cleanup_caches(state) == 0
    state.tick = 401
    assert cleanup_caches(state) == 2
    assert safety_record(state, "B") is None


def test_zone_resource_value_counts_only_worthwhile_piles():
    zones, state = _world()
    zones.add_node("B", "big", amount=600, capacity=3000)
    zones.add_node("B", "small", amount=400, capacity=3000)
    observation: ZoneObservation = zones.observations["B"]
    observation.loose_amounts = [60, 10]
    observation.salvage_amounts = [5, 0]

    assert zone_resource_value(state.config, observation) == 665
