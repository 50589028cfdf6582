import math

from zoneharvest.interfaces.contracts import (
    MoveResult,
    MovementExecutor,
    ObservationProvider,
    RouteProvider,
    ZoneOwnership,
)
from zoneharvest.world.zone_map import ZoneMap


def _map():
    zones = ZoneMap()
    zones.connect("A", "B", direction="east", cost=1.0)
    zones.connect("B", "C", direction="east", cost=1.0)
    zones.connect("A", "C", direction="north", cost=5.0)
    zones.add_zone("D")
    return zones


def test_zone_map_satisfies_world_contracts():
    zones = _map()

    assert isinstance(zones, ObservationProvider)
    assert isinstance(zones, RouteProvider)
    assert isinstance(zones, MovementExecutor)


def test_cheapest_route_wins_over_direct_exit():
    zones = _map()

    route = zones.find_route("A", "C")

    assert route.exists
    assert route.exit_direction == "east"
    assert route.path_cost == 2.0
    assert zones.find_route("C", "A").exit_direction == "west"


def test_unreachable_and_unknown_routes():
    zones = _map()

    assert not zones.find_route("A", "D").exists
    assert math.isinf(zones.find_route("A", "nowhere").path_cost)
    assert zones.zone_distance("A", "D") == len(zones.exits) + 1


def test_closed_exit_reroutes():
    zones = _map()
    zones.find_route("A", "C")

    zones.close_exit("B", "C")

    assert zones.find_route("A", "C").path_cost == 5.0
    assert zones.adjacent_zones("B") == ["A"]


def test_zone_distance_counts_hops():
    zones = _map()

    assert zones.zone_distance("A", "A") == 0
    assert zones.zone_distance("A", "C") == 1
    assert zones.zone_distance("D", "A") == len(zones.exits) + 1


def test_observation_requires_visibility():
    zones = _map()
    zones.add_node("B", "node-b", amount=700, capacity=1000)

    assert zones.observe("B").resource_nodes[0].node_id == "node-b"
    assert zones.lookup_node("node-b").amount_ratio == 0.7

    zones.set_visible("B", False)
    assert zones.observe("B") is None
    assert zones.lookup_node("node-b") is None
    assert "B" not in zones.visible_zones()
    assert zones.observe_calls(["B"]) == 2


def test_add_zone_updates_existing_observation():
    zones = _map()
    zones.add_zone("B", ownership=ZoneOwnership.RESERVED, controller_level=4, hostile_structures=1)

    observation = zones.observe("B")

    assert observation.ownership is ZoneOwnership.RESERVED
    assert observation.controller_level == 4
    assert observation.hostile_structures == 1


def test_move_toward_walks_one_hop_per_call():
    zones = _map()
    zones.place_agent("h1", "A")

    assert zones.move_toward("h1", "A", "C") is MoveResult.IN_PROGRESS
    assert zones.zone_of("h1") == "B"
    assert zones.move_toward("h1", "B", "C") is MoveResult.OK
    assert zones.move_toward("h1", "C", "C") is MoveResult.OK
    assert zones.zone_of("h1") == "C"


def test_move_failures():
    zones = _map()
    zones.place_agent("h1", "A")

    assert zones.move_toward("h1", "A", "nowhere") is MoveResult.INVALID_TARGET
    assert zones.move_toward("h1", "A", "D") is MoveResult.NO_PATH

    zones.stalled_agents.add("h1")
    assert zones.move_toward("h1", "A", "B") is MoveResult.BLOCKED
    assert zones.zone_of("h1") == "A"
