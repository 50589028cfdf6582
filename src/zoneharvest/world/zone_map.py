"""In-process zone graph implementing the observation, route and movement contracts.

``ZoneMap`` stands in for the live world in tests and local simulations.
Zones are joined by directed exits, each with a direction label and a travel
cost; ``connect`` adds both directions unless told otherwise, so one-way
closures can model asymmetric access.  Only zones in the visible set can be
observed.  ``move_toward`` advances an agent one zone along the cheapest
route per call.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
import heapq
import math
from typing import Dict, Iterable, List

from zoneharvest.interfaces.contracts import (
    MoveResult,
    ObservedNode,
    RouteResult,
    ZoneObservation,
    ZoneOwnership,
)


@dataclass(slots=True)
class ZoneExit:
    to_zone: str
    direction: str
    cost: float = 1.0
    closed: bool = False


@dataclass(slots=True)
class Route:
    zones: list[str]
    exit_direction: str | None
    total_cost: float


class _LRU:
    def __init__(self, capacity: int):
        self.capacity = max(1, capacity)
        self.order: list[str] = []
        self.data: Dict[str, Route | None] = {}

    def _touch(self, key: str) -> None:
        if key in self.order:
            self.order.remove(key)
        self.order.append(key)
        if len(self.order) > self.capacity:
            oldest = self.order.pop(0)
            self.data.pop(oldest, None)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def get(self, key: str) -> Route | None:
        if key not in self.data:
            return None
        self._touch(key)
        return self.data[key]

    def set(self, key: str, value: Route | None) -> None:
        self.data[key] = value
        self._touch(key)

    def clear(self) -> None:
        self.order.clear()
        self.data.clear()


_OPPOSITE = {"north": "south", "south": "north", "east": "west", "west": "east"}


@dataclass
class ZoneMap:
    exits: Dict[str, Dict[str, ZoneExit]] = field(default_factory=dict)
    observations: Dict[str, ZoneObservation] = field(default_factory=dict)
    visible: set[str] = field(default_factory=set)
    agent_positions: Dict[str, str] = field(default_factory=dict)
    stalled_agents: set[str] = field(default_factory=set)
    calls: Counter = field(default_factory=Counter)
    route_cache_size: int = 512

    def __post_init__(self) -> None:
        self._routes = _LRU(self.route_cache_size)

    # -- building ---------------------------------------------------------

    def add_zone(
        self,
        name: str,
        *,
        visible: bool = True,
        ownership: ZoneOwnership = ZoneOwnership.NEUTRAL,
        controller_level: int | None = None,
        hostile_agents: int = 0,
        hostile_structures: int = 0,
    ) -> ZoneObservation:
        self.exits.setdefault(name, {})
        observation = self.observations.get(name)
        if observation is None:
            observation = ZoneObservation(zone_name=name)
            self.observations[name] = observation
        observation.ownership = ownership
        observation.controller_level = controller_level
        observation.hostile_agents = hostile_agents
        observation.hostile_structures = hostile_structures
        self.set_visible(name, visible)
        self._routes.clear()
        return observation

    def connect(
        self,
        a: str,
        b: str,
        *,
        direction: str = "",
        cost: float = 1.0,
        both_ways: bool = True,
    ) -> None:
        for zone in (a, b):
            if zone not in self.exits:
                self.add_zone(zone)
        self.exits[a][b] = ZoneExit(to_zone=b, direction=direction or b, cost=float(cost))
        if both_ways:
            back = _OPPOSITE.get(direction, a)
            self.exits[b][a] = ZoneExit(to_zone=a, direction=back, cost=float(cost))
        self._routes.clear()

    def close_exit(self, a: str, b: str) -> None:
        exit_ = self.exits.get(a, {}).get(b)
        if exit_ is not None:
            exit_.closed = True
            self._routes.clear()

    def set_visible(self, zone: str, visible: bool = True) -> None:
        if visible:
            self.visible.add(zone)
        else:
            self.visible.discard(zone)

    def add_node(
        self,
        zone: str,
        node_id: str,
        *,
        amount: int,
        capacity: int,
        ticks_to_replenish: int | None = None,
        nearby_agents: int = 0,
    ) -> ObservedNode:
        if zone not in self.observations:
            self.add_zone(zone)
        node = ObservedNode(
            node_id=node_id,
            zone_name=zone,
            amount=int(amount),
            capacity=int(capacity),
            ticks_to_replenish=ticks_to_replenish,
            nearby_agents=int(nearby_agents),
        )
        nodes = [n for n in self.observations[zone].resource_nodes if n.node_id != node_id]
        nodes.append(node)
        self.observations[zone].resource_nodes = nodes
        return node

    def remove_node(self, node_id: str) -> bool:
        for observation in self.observations.values():
            kept = [n for n in observation.resource_nodes if n.node_id != node_id]
            if len(kept) != len(observation.resource_nodes):
                observation.resource_nodes = kept
                return True
        return False

    def set_hostiles(self, zone: str, *, agents: int = 0, structures: int = 0) -> None:
        observation = self.observations[zone]
        observation.hostile_agents = int(agents)
        observation.hostile_structures = int(structures)

    def place_agent(self, agent_name: str, zone: str) -> None:
        self.agent_positions[agent_name] = zone

    def zone_of(self, agent_name: str, default: str | None = None) -> str | None:
        return self.agent_positions.get(agent_name, default)

    # -- ObservationProvider ----------------------------------------------

    def observe(self, zone: str) -> ZoneObservation | None:
        self.calls[f"observe:{zone}"] += 1
        if zone not in self.visible:
            return None
        return self.observations.get(zone)

    def visible_zones(self) -> List[str]:
        return sorted(self.visible)

    def lookup_node(self, node_id: str) -> ObservedNode | None:
        for zone in sorted(self.visible):
            observation = self.observations.get(zone)
            if observation is None:
                continue
            for node in observation.resource_nodes:
                if node.node_id == node_id:
                    return node
        return None

    # -- RouteProvider ----------------------------------------------------

    def adjacent_zones(self, zone: str) -> List[str]:
        return sorted(to for to, exit_ in self.exits.get(zone, {}).items() if not exit_.closed)

    def _route(self, from_zone: str, to_zone: str) -> Route | None:
        cache_key = f"{from_zone}->{to_zone}"
        if cache_key in self._routes:
            return self._routes.get(cache_key)

        if from_zone not in self.exits or to_zone not in self.exits:
            self._routes.set(cache_key, None)
            return None
        if from_zone == to_zone:
            route = Route(zones=[from_zone], exit_direction=None, total_cost=0.0)
            self._routes.set(cache_key, route)
            return route

        frontier: list[tuple[float, str]] = [(0.0, from_zone)]
        costs: Dict[str, float] = {from_zone: 0.0}
        parents: Dict[str, str] = {}
        while frontier:
            cost, zone = heapq.heappop(frontier)
            if zone == to_zone:
                break
            if cost > costs.get(zone, math.inf):
                continue
            for nbr in self.adjacent_zones(zone):
                next_cost = cost + self.exits[zone][nbr].cost
                prev = costs.get(nbr)
                if prev is None or next_cost < prev:
                    costs[nbr] = next_cost
                    parents[nbr] = zone
                    heapq.heappush(frontier, (next_cost, nbr))

        if to_zone not in costs:
            self._routes.set(cache_key, None)
            return None

        path = [to_zone]
        while path[-1] != from_zone:
            path.append(parents[path[-1]])
        path.reverse()
        route = Route(
            zones=path,
            exit_direction=self.exits[from_zone][path[1]].direction,
            total_cost=costs[to_zone],
        )
        self._routes.set(cache_key, route)
        return route

    def find_route(self, from_zone: str, to_zone: str) -> RouteResult:
        self.calls[f"route:{from_zone}->{to_zone}"] += 1
        route = self._route(from_zone, to_zone)
        if route is None:
            return RouteResult.unreachable()
        return RouteResult(exists=True, exit_direction=route.exit_direction, path_cost=route.total_cost)

    def zone_distance(self, a: str, b: str) -> int:
        """Hop count between zones; unreachable pairs report one more than the zone count."""

        if a == b:
            return 0
        seen = {a}
        queue: deque[tuple[str, int]] = deque([(a, 0)])
        while queue:
            zone, hops = queue.popleft()
            for nbr in self.adjacent_zones(zone):
                if nbr == b:
                    return hops + 1
                if nbr not in seen:
                    seen.add(nbr)
                    queue.append((nbr, hops + 1))
        return len(self.exits) + 1

    # -- MovementExecutor -------------------------------------------------

    def move_toward(self, agent_name: str, from_zone: str, to_zone: str) -> MoveResult:
        if to_zone not in self.exits:
            return MoveResult.INVALID_TARGET
        position = self.agent_positions.get(agent_name, from_zone)
        if position == to_zone:
            return MoveResult.OK
        if agent_name in self.stalled_agents:
            return MoveResult.BLOCKED
        route = self._route(position, to_zone)
        if route is None:
            return MoveResult.NO_PATH
        next_zone = route.zones[1]
        self.agent_positions[agent_name] = next_zone
        return MoveResult.OK if next_zone == to_zone else MoveResult.IN_PROGRESS

    def observe_calls(self, zones: Iterable[str] | None = None) -> int:
        if zones is None:
            return sum(v for k, v in self.calls.items() if k.startswith("observe:"))
        return sum(self.calls[f"observe:{zone}"] for zone in zones)


__all__ = ["Route", "ZoneExit", "ZoneMap"]
