"""
Simulation Engine
Fixed-interval tick driver coordinating fire, crowd and presentation updates
"""

import logging
import time
import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .building import BuildingModel
from .config import SimulationSettings
from .crowd import CrowdEngine, CrowdStatistics
from .environment import EvacuationPoint, GridEnvironment
from .hazard_manager import FireModel
from .pathfinding import Pathfinder

logger = logging.getLogger(__name__)


@dataclass
class SimulationSnapshot:
    """State pushed to presentation listeners."""
    tick: int
    time: float
    density: np.ndarray
    flow: np.ndarray
    fire_sources: List[dict]
    evacuation_points: List[dict]
    agent_positions: List[Tuple[float, float]]
    paths: Dict[int, List[Tuple[int, int]]]
    statistics: CrowdStatistics


SnapshotListener = Callable[[SimulationSnapshot], None]


class SimulationClock:
    """
    Drives the simulation in discrete ticks.

    Two cadences share one loop: every tick runs FireModel then CrowdEngine;
    every ticks_per_presentation ticks a snapshot goes to the listeners.
    Ticks are atomic: stop() only prevents the next one.
    """

    def __init__(
        self,
        settings: SimulationSettings,
        grid: GridEnvironment,
        fire_model: FireModel,
        crowd: CrowdEngine,
        analytics=None
    ):
        self.settings = settings
        self.grid = grid
        self.fire_model = fire_model
        self.crowd = crowd
        self.analytics = analytics

        self.tick_interval = settings.tick_interval
        self.ticks_per_presentation = max(1, int(round(settings.presentation_interval / settings.tick_interval)))

        self.tick_count = 0
        self.running = False
        self.listeners: List[SnapshotListener] = []

    @classmethod
    def from_settings(cls, settings: SimulationSettings, building: Optional[BuildingModel] = None,
                      analytics=None) -> "SimulationClock":
        """
        Wire grid, fire model, pathfinder and crowd from settings.

        Args:
            settings: Validated settings
            building: Building collaborator; a uniform grid is used without one
            analytics: Optional AnalyticsCollector
        """
        grid = None
        if building is not None:
            grid = building.build_navigation_grid(
                settings.floor, settings.grid_size,
                settings.pathfinding.base_cost, settings.circulation_cost
            )
        if grid is None:
            grid = GridEnvironment(settings.grid_size, settings.pathfinding.base_cost)

        rng = np.random.default_rng(settings.seed)
        fire_model = FireModel.from_settings(grid, settings.fire)
        pathfinder = Pathfinder(settings.pathfinding)
        evacuation_points = [EvacuationPoint(tuple(spec.position), spec.label)
                             for spec in settings.evacuation_points]
        crowd = CrowdEngine(grid, pathfinder, fire_model, settings, evacuation_points, rng)
        if settings.agents.initial_count:
            crowd.populate(settings.agents.initial_count)
            crowd.density_map.rebuild(crowd.agents)

        return cls(settings, grid, fire_model, crowd, analytics)

    @property
    def current_time(self) -> float:
        return self.tick_count * self.tick_interval

    def add_listener(self, listener: SnapshotListener):
        self.listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def start(self):
        """Mark the clock running; a no-op if it already is."""
        if self.running:
            return
        self.running = True
        logger.info("Simulation started at tick %d", self.tick_count)

    def stop(self):
        """Halt future ticks; a no-op if already stopped."""
        if not self.running:
            return
        self.running = False
        logger.info("Simulation stopped at tick %d (t=%.1fs)", self.tick_count, self.current_time)

    def tick(self) -> Optional[SimulationSnapshot]:
        """
        Execute one simulation tick.

        Returns:
            The snapshot if this tick was a presentation tick, else None
        """
        self.tick_count += 1

        self.fire_model.update()
        evacuated = self.crowd.step(self.tick_count)

        if self.analytics is not None:
            for agent in evacuated:
                self.analytics.record_evacuation(agent.id, self.current_time)

        if self.tick_count % self.ticks_per_presentation == 0:
            return self.present()
        return None

    def snapshot(self) -> SimulationSnapshot:
        density_map = self.crowd.density_map
        return SimulationSnapshot(
            tick=self.tick_count,
            time=self.current_time,
            density=density_map.density.copy(),
            flow=density_map.flow.copy(),
            fire_sources=self.fire_model.to_snapshot(),
            evacuation_points=[point.to_dict() for point in self.crowd.evacuation_points],
            agent_positions=[agent.position for agent in self.crowd.agents],
            paths=self.crowd.get_paths(),
            statistics=self.crowd.get_statistics()
        )

    def present(self) -> SimulationSnapshot:
        """Build a snapshot and push it to analytics and every listener."""
        snapshot = self.snapshot()
        if self.analytics is not None:
            self.analytics.update(snapshot)

        for listener in list(self.listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed at tick %d", listener, snapshot.tick)
        return snapshot

    def run(self, max_ticks: Optional[int] = None, realtime: bool = False) -> int:
        """
        Run ticks until stopped, max_ticks executed or the duration elapses.

        Args:
            max_ticks: Upper bound on ticks for this call
            realtime: Sleep between ticks to keep fixed-interval timing

        Returns:
            Number of ticks executed
        """
        if self.settings.duration is not None:
            remaining = int(round(self.settings.duration / self.tick_interval)) - self.tick_count
            max_ticks = remaining if max_ticks is None else min(max_ticks, remaining)

        self.start()
        executed = 0
        next_deadline = time.monotonic()

        while self.running:
            if max_ticks is not None and executed >= max_ticks:
                break

            self.tick()
            executed += 1

            if realtime:
                next_deadline += self.tick_interval
                delay = next_deadline - time.monotonic()
                if delay > 0:
                    time.sleep(delay)

        self.stop()
        return executed
