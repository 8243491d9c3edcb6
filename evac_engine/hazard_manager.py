"""
Hazard Management System
Fire sources with monotonic radius growth that turn grid cells into barriers
"""

import logging
import math
import numpy as np
from typing import List, Sequence, Tuple
from scipy.spatial import KDTree

from .environment import GridEnvironment, OutOfBoundsError

logger = logging.getLogger(__name__)


class FireSource:
    """A single fire hazard. Its radius only ever grows."""

    def __init__(self, position: Tuple[float, float], radius: float = 0.0, intensity: float = 50.0):
        self.position = (float(position[0]), float(position[1]))
        self.radius = max(0.0, float(radius))
        self.intensity = float(np.clip(intensity, 0.0, 100.0))

    def grow(self, growth_rate: float, max_radius: float):
        self.radius = min(self.radius + growth_rate, max_radius)

    def distance_to(self, position) -> float:
        return math.hypot(position[0] - self.position[0], position[1] - self.position[1])

    def contains(self, position) -> bool:
        """Strictly inside the radius (used as the replan trigger)."""
        return self.distance_to(position) < self.radius

    def to_dict(self) -> dict:
        return {
            'position': self.position,
            'radius': self.radius,
            'intensity': self.intensity
        }

    def __repr__(self) -> str:
        return f"FireSource(pos={self.position}, radius={self.radius:.2f}, intensity={self.intensity:.0f})"


class FireModel:
    """
    Grows fire sources every tick and marks covered cells as risk barriers.

    A covered cell gets risk=True and infinite cost; marking is idempotent
    and never undone for the rest of the run.
    """

    def __init__(self, grid: GridEnvironment, growth_rate: float = 0.1, max_radius: float = 50.0):
        self.grid = grid
        self.growth_rate = growth_rate
        self.max_radius = max_radius
        self.sources: List[FireSource] = []

        # Integer cell coordinates, reused by every marking pass
        xs = np.arange(grid.size, dtype=float)
        self._cx, self._cz = np.meshgrid(xs, xs, indexing='ij')

    @classmethod
    def from_settings(cls, grid: GridEnvironment, fire_settings) -> "FireModel":
        model = cls(grid, fire_settings.growth_rate, fire_settings.max_radius)
        for spec in fire_settings.sources:
            model.ignite(spec.position, spec.radius, spec.intensity)
        return model

    def ignite(self, position: Tuple[float, float], radius: float = 0.0,
               intensity: float = 50.0) -> FireSource:
        """
        Add a fire source and mark its initial footprint.

        Raises:
            OutOfBoundsError: if the centre lies outside the grid
        """
        ix, iz = int(math.floor(position[0])), int(math.floor(position[1]))
        if not self.grid.is_valid(ix, iz):
            raise OutOfBoundsError(ix, iz, self.grid.size)

        source = FireSource(position, min(radius, self.max_radius), intensity)
        self.sources.append(source)
        self._mark(source)
        logger.info("Fire ignited at (%.1f, %.1f), radius %.1f", source.position[0],
                    source.position[1], source.radius)
        return source

    def update(self):
        """Grow every source by one tick and mark the covered cells."""
        for source in self.sources:
            source.grow(self.growth_rate, self.max_radius)
            self._mark(source)

    def _mark(self, source: FireSource):
        r = source.radius
        cx, cz = source.position
        # Restrict the distance test to the bounding box
        x0 = max(0, int(math.floor(cx - r)))
        x1 = min(self.grid.size, int(math.floor(cx + r)) + 1)
        z0 = max(0, int(math.floor(cz - r)))
        z1 = min(self.grid.size, int(math.floor(cz + r)) + 1)
        if x0 >= x1 or z0 >= z1:
            return

        dx = self._cx[x0:x1, z0:z1] - cx
        dz = self._cz[x0:x1, z0:z1] - cz
        covered = dx * dx + dz * dz <= r * r

        self.grid.risk[x0:x1, z0:z1][covered] = True
        self.grid.cost[x0:x1, z0:z1][covered] = np.inf

    def is_within_fire(self, position) -> bool:
        return any(source.contains(position) for source in self.sources)

    def agents_within_fire(self, agents: Sequence) -> List:
        """
        Agents strictly inside any source's radius.

        Args:
            agents: Objects with a .position (x, z)

        Returns:
            Matching agents in their input order
        """
        if not agents or not self.sources:
            return []

        tree = KDTree(np.array([agent.position for agent in agents], dtype=float))
        hits = set()
        for source in self.sources:
            if source.radius <= 0:
                continue
            for i in tree.query_ball_point(source.position, source.radius):
                # query_ball_point is inclusive; the trigger is strict
                if source.contains(agents[i].position):
                    hits.add(i)
        return [agents[i] for i in sorted(hits)]

    def risk_cell_count(self) -> int:
        return int(self.grid.risk.sum())

    def to_snapshot(self) -> List[dict]:
        return [source.to_dict() for source in self.sources]
