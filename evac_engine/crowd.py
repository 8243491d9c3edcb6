"""
Crowd Engine
Agent population, per-tick movement, replanning and density/flow aggregation
"""

import logging
import numpy as np
from collections import defaultdict
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence, Tuple

from .agent import Agent, AgentClass
from .config import SimulationSettings
from .environment import EvacuationPoint, GridEnvironment, OutOfBoundsError
from .hazard_manager import FireModel
from .pathfinding import Pathfinder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DensityCell:
    density: float
    flow: Tuple[float, float]
    occupants: Tuple[int, ...]


class DensityMap:
    """
    Per-cell agent count, mean heading and occupant ids.

    Rebuilt from scratch on every tick; after a rebuild the densities sum
    to the number of agents and each flow vector is zero or unit length.
    """

    def __init__(self, size: int):
        self.size = size
        self.density = np.zeros((size, size), dtype=float)
        self.flow = np.zeros((size, size, 2), dtype=float)
        self.occupants: Dict[Tuple[int, int], List[int]] = {}

    def rebuild(self, agents: Sequence[Agent]):
        self.density.fill(0.0)
        self.flow.fill(0.0)
        occupants = defaultdict(list)

        for agent in agents:
            x, z = agent.cell
            if not (0 <= x < self.size and 0 <= z < self.size):
                logger.warning("Agent %d outside grid at %s, skipped in density map", agent.id, agent.position)
                continue
            self.density[x, z] += 1.0
            occupants[(x, z)].append(agent.id)
            fx, fz = agent.flow_vector()
            self.flow[x, z, 0] += fx
            self.flow[x, z, 1] += fz

        norms = np.linalg.norm(self.flow, axis=2)
        moving = norms > 0
        self.flow[moving] /= norms[moving][:, np.newaxis]
        self.occupants = dict(occupants)

    def cell(self, x: int, z: int) -> DensityCell:
        if not (0 <= x < self.size and 0 <= z < self.size):
            raise OutOfBoundsError(x, z, self.size)
        return DensityCell(
            density=float(self.density[x, z]),
            flow=(float(self.flow[x, z, 0]), float(self.flow[x, z, 1])),
            occupants=tuple(self.occupants.get((x, z), ()))
        )

    def total(self) -> float:
        return float(self.density.sum())

    def mean(self) -> float:
        return float(self.density.mean())

    def overcrowded(self, threshold: float) -> List[Tuple[int, int]]:
        xs, zs = np.nonzero(self.density > threshold)
        return [(int(x), int(z)) for x, z in zip(xs, zs)]


@dataclass
class CrowdStatistics:
    """Aggregate figures exposed to the presentation layer."""
    total_agents: int
    evacuated: int
    evacuated_estimate: int
    average_density: float
    fire_sources: int
    spawned: int
    failed_replans: int

    def to_dict(self) -> dict:
        return asdict(self)


class CrowdEngine:
    """
    Owns the agent population and the density map.

    Per tick (see step): move agents, remove arrivals, replan agents inside
    a fire radius, maybe spawn, rebuild the density map, then replan the
    occupants of overcrowded cells with crowd feedback.
    """

    def __init__(
        self,
        grid: GridEnvironment,
        pathfinder: Pathfinder,
        fire_model: FireModel,
        settings: SimulationSettings,
        evacuation_points: Optional[List[EvacuationPoint]] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.grid = grid
        self.pathfinder = pathfinder
        self.fire_model = fire_model
        self.settings = settings
        self.agent_settings = settings.agents
        self.evacuation_points: List[EvacuationPoint] = list(evacuation_points or [])
        self.rng = rng if rng is not None else np.random.default_rng(settings.seed)

        self.agents: List[Agent] = []
        self.density_map = DensityMap(grid.size)

        self._next_id = 0
        self.spawned_count = 0
        self.evacuated_count = 0
        self.failed_replans = 0
        # Largest coordinate still floored into the grid
        self._max_coord = np.nextafter(float(grid.size), 0.0)

    def set_evacuation_points(self, points: List[EvacuationPoint]):
        self.evacuation_points = list(points)

    def nearest_evacuation_point(self, position) -> Optional[EvacuationPoint]:
        """Closest point by Euclidean distance; the first one listed wins ties."""
        nearest = None
        min_distance = float('inf')
        for point in self.evacuation_points:
            distance = point.distance_to(position)
            if distance < min_distance:
                min_distance = distance
                nearest = point
        return nearest

    # Population

    def add_agent(
        self,
        position: Tuple[float, float],
        speed: Optional[float] = None,
        agent_class: AgentClass = AgentClass.NORMAL,
        path: Optional[List[Tuple[int, int]]] = None,
        tick: int = 0
    ) -> Agent:
        """
        Place an agent and give it a route.

        Without an explicit path the agent is routed to its nearest
        evacuation point; if none is reachable it stays pathless.

        Raises:
            OutOfBoundsError: if the position lies outside the grid
        """
        ix, iz = int(np.floor(position[0])), int(np.floor(position[1]))
        if not self.grid.is_valid(ix, iz):
            raise OutOfBoundsError(ix, iz, self.grid.size)

        if speed is None:
            speed = self.agent_settings.speed
            if agent_class is AgentClass.MOBILITY_IMPAIRED:
                speed *= self.agent_settings.impaired_speed_factor

        agent = Agent(self._next_id, position, speed, agent_class)
        agent.spawn_tick = tick
        agent.last_plan_tick = tick
        self._next_id += 1
        self.agents.append(agent)
        self.spawned_count += 1

        if path is not None:
            agent.set_path(path)
        else:
            self.replan(agent, tick)
        return agent

    def spawn_agent(self, tick: int = 0) -> Optional[Agent]:
        """Create one agent at a uniformly random walkable position."""
        if len(self.agents) >= self.agent_settings.max_agents:
            return None

        cell = self.grid.random_walkable_cell(self.rng)
        if cell is None:
            logger.warning("No walkable cell found for spawning")
            return None

        position = (cell[0] + self.rng.random(), cell[1] + self.rng.random())
        if self.rng.random() < self.agent_settings.impaired_probability:
            agent_class = AgentClass.MOBILITY_IMPAIRED
        else:
            agent_class = AgentClass.NORMAL
        return self.add_agent(position, agent_class=agent_class, tick=tick)

    def spawn(self, tick: int = 0) -> Optional[Agent]:
        """Spawn with the configured per-tick probability."""
        if len(self.agents) >= self.agent_settings.max_agents:
            return None
        if self.rng.random() >= self.agent_settings.spawn_probability:
            return None
        return self.spawn_agent(tick)

    def populate(self, count: int, tick: int = 0) -> List[Agent]:
        """Spawn up to `count` agents immediately, bounded by max_agents."""
        created = []
        for _ in range(count):
            agent = self.spawn_agent(tick)
            if agent is None:
                break
            created.append(agent)
        logger.info("Created %d agents", len(created))
        return created

    def remove_agent(self, agent: Agent):
        self.agents.remove(agent)

    # Routing

    def replan(self, agent: Agent, tick: int = 0, crowd_feedback: bool = False) -> bool:
        """
        Compute a new route to the nearest evacuation point.

        On failure the agent keeps its previous route (or stays pathless)
        and will be retried later.

        Returns:
            True if a new path was assigned
        """
        agent.last_plan_tick = tick
        target = self.nearest_evacuation_point(agent.position)
        if target is None:
            return False

        start = self.grid.world_to_grid(agent.position)
        if crowd_feedback:
            result = self.pathfinder.replan_with_crowd_feedback(
                start, target.cell, self.grid, self.density_map,
                self.agent_settings.overcrowd_threshold
            )
        else:
            result = self.pathfinder.find_path(start, target.cell, self.grid, self.density_map)

        if result is None:
            self.failed_replans += 1
            logger.debug("No route for agent %d from %s to %s", agent.id, start, target.label)
            return False

        waypoints = result.waypoints
        # Drop the cell the agent already stands in
        if len(waypoints) > 1 and waypoints[0] == start:
            waypoints = waypoints[1:]
        agent.set_path(waypoints)
        agent.goal = target
        agent.replan_count += 1
        return True

    def _clamp(self, agent: Agent):
        x, z = agent.position
        agent.position = (
            min(max(x, 0.0), self._max_coord),
            min(max(z, 0.0), self._max_coord)
        )

    # Tick

    def step(self, tick: int) -> List[Agent]:
        """
        Advance the crowd by one tick.

        Returns:
            Agents that reached their destination this tick
        """
        dt = self.settings.tick_interval
        epsilon = self.agent_settings.arrival_epsilon
        tolerance = self.agent_settings.destination_tolerance

        # Movement and arrival removal
        evacuated = []
        for agent in list(self.agents):
            agent.advance(dt, epsilon)
            self._clamp(agent)
            if agent.has_reached_destination(tolerance):
                self.remove_agent(agent)
                self.evacuated_count += 1
                evacuated.append(agent)

        # Agents inside a fire radius need a new route
        for agent in self.fire_model.agents_within_fire(self.agents):
            self.replan(agent, tick)

        # Retry agents still waiting for a route
        retry_interval = self.agent_settings.retry_interval
        for agent in self.agents:
            if not agent.has_path and tick - agent.last_plan_tick >= retry_interval:
                self.replan(agent, tick)

        self.spawn(tick)

        self.density_map.rebuild(self.agents)

        self._replan_overcrowded(tick)

        return evacuated

    def _replan_overcrowded(self, tick: int):
        cells = self.density_map.overcrowded(self.agent_settings.overcrowd_threshold)
        if not cells:
            return

        by_id = {agent.id: agent for agent in self.agents}
        replanned = 0
        for cell in cells:
            for agent_id in self.density_map.occupants.get(cell, ()):
                if self.replan(by_id[agent_id], tick, crowd_feedback=True):
                    replanned += 1
        logger.debug("Tick %d: %d overcrowded cells, %d agents rerouted", tick, len(cells), replanned)

    # Reporting

    def get_statistics(self) -> CrowdStatistics:
        active = len(self.agents)
        return CrowdStatistics(
            total_agents=active,
            evacuated=self.evacuated_count,
            evacuated_estimate=max(0, self.agent_settings.max_agents - active),
            average_density=self.density_map.mean(),
            fire_sources=len(self.fire_model.sources),
            spawned=self.spawned_count,
            failed_replans=self.failed_replans
        )

    def get_paths(self) -> Dict[int, List[Tuple[int, int]]]:
        """Remaining route of every agent, for display."""
        return {agent.id: agent.path[agent.path_index:] for agent in self.agents if agent.path}
