"""
A* Pathfinding
Crowd- and hazard-aware route search over the evacuation grid
"""

import heapq
import logging
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .config import PathfindingWeights
from .environment import CostOverlay, INF

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]

# 8-connected: orthogonal first, then diagonal
NEIGHBOR_OFFSETS = (
    (0, 1), (1, 0), (0, -1), (-1, 0),
    (1, 1), (1, -1), (-1, 1), (-1, -1)
)


@dataclass
class PathResult:
    """A route from start to goal with its total cost."""
    waypoints: List[Cell]
    cost: float
    rank: int = 0
    length: int = field(init=False)

    def __post_init__(self):
        self.length = len(self.waypoints) - 1

    @property
    def start(self) -> Cell:
        return self.waypoints[0]

    @property
    def goal(self) -> Cell:
        return self.waypoints[-1]

    def __len__(self) -> int:
        return len(self.waypoints)


class Pathfinder:
    """
    A* search with a dynamic, crowd-aware cost function.

    The pathfinder holds only its weights; open/closed sets and score maps
    are allocated per call, so replanning many agents in one tick never
    shares search state.
    """

    def __init__(self, weights: Optional[PathfindingWeights] = None):
        self.weights = weights or PathfindingWeights()

    def heuristic(self, a: Cell, b: Cell) -> float:
        """Manhattan distance heuristic."""
        return abs(a[0] - b[0]) + abs(a[1] - b[1])

    def density_penalty(self, density: float) -> float:
        """Quadratic congestion penalty."""
        ratio = density / self.weights.max_density
        return self.weights.density_multiplier * ratio * ratio

    def get_edge_cost(self, grid, to_node: Cell, density: Optional[np.ndarray] = None) -> float:
        """
        Cost of stepping onto a cell.

        Args:
            grid: GridEnvironment or CostOverlay
            to_node: Destination cell
            density: Agent count per cell, indexed [x, z]

        Returns:
            Edge cost (inf if the cell is impassable)
        """
        x, z = to_node
        cost = grid.base_cost(x, z)
        if cost == INF:
            return INF

        if density is not None:
            d = density[x, z]
            if d > 0:
                cost += self.density_penalty(d)

        if grid.is_risk(x, z):
            cost += self.weights.risk_multiplier

        return float(cost)

    def get_neighbors(self, grid, node: Cell) -> List[Cell]:
        """Valid neighbour cells (8-connected, walkable, finite cost)."""
        x, z = node
        neighbors = []
        for dx, dz in NEIGHBOR_OFFSETS:
            nx, nz = x + dx, z + dz
            if grid.is_walkable(nx, nz):
                neighbors.append((nx, nz))
        return neighbors

    def find_path(self, start: Cell, goal: Cell, grid, density_map=None) -> Optional[PathResult]:
        """
        Find the cheapest route from start to goal using A*.

        Args:
            start: Start cell (x, z)
            goal: Goal cell (x, z)
            grid: GridEnvironment or CostOverlay
            density_map: Optional DensityMap for the congestion penalty

        Returns:
            PathResult, or None when no feasible route exists
        """
        start = (int(start[0]), int(start[1]))
        goal = (int(goal[0]), int(goal[1]))
        if not grid.is_valid(*start) or not grid.is_valid(*goal):
            return None

        density = density_map.density if density_map is not None else None
        size = grid.size
        max_expansions = self.weights.max_expansions

        start_key = start[0] * size + start[1]
        goal_key = goal[0] * size + goal[1]

        # Heap entries: (f, insertion order, g, cell). Insertion order keeps
        # ties first-in-first-out.
        open_set = [(self.heuristic(start, goal), 0, 0.0, start)]
        counter = 1
        came_from = {}
        g_score = {start_key: 0.0}
        closed = set()
        expansions = 0

        while open_set:
            _, _, current_g, current = heapq.heappop(open_set)
            current_key = current[0] * size + current[1]

            if current_key in closed:
                continue

            if current_key == goal_key:
                return PathResult(self._reconstruct(came_from, current, size), current_g)

            closed.add(current_key)
            expansions += 1
            if max_expansions is not None and expansions > max_expansions:
                logger.warning("A* gave up after %d expansions (%s -> %s)", max_expansions, start, goal)
                return None

            for neighbor in self.get_neighbors(grid, current):
                neighbor_key = neighbor[0] * size + neighbor[1]
                if neighbor_key in closed:
                    continue

                tentative_g = current_g + self.get_edge_cost(grid, neighbor, density)
                if tentative_g < g_score.get(neighbor_key, INF):
                    came_from[neighbor_key] = current
                    g_score[neighbor_key] = tentative_g
                    f = tentative_g + self.heuristic(neighbor, goal)
                    heapq.heappush(open_set, (f, counter, tentative_g, neighbor))
                    counter += 1

        return None

    @staticmethod
    def _reconstruct(came_from: dict, current: Cell, size: int) -> List[Cell]:
        path = [current]
        key = current[0] * size + current[1]
        while key in came_from:
            current = came_from[key]
            path.append(current)
            key = current[0] * size + current[1]
        path.reverse()
        return path

    def path_cost(self, waypoints: List[Cell], grid, density_map=None) -> float:
        """Sum of edge costs along a waypoint sequence (the start cell is free)."""
        density = density_map.density if density_map is not None else None
        return sum(self.get_edge_cost(grid, node, density) for node in waypoints[1:])

    def find_multiple_paths(self, start: Cell, goal: Cell, grid, density_map=None,
                            count: int = 3) -> List[PathResult]:
        """
        Find up to `count` alternative routes.

        After each route is found, every cell on it has its cost inflated by
        alternate_cost_multiplier on a private overlay, pushing the next
        search elsewhere. The caller's grid is left untouched.

        Returns:
            Routes sorted by ascending cost; rank records discovery order
        """
        overlay = CostOverlay(grid)
        multiplier = self.weights.alternate_cost_multiplier
        results = []

        for rank in range(count):
            result = self.find_path(start, goal, overlay, density_map)
            if result is None:
                break

            result.rank = rank
            results.append(result)

            for x, z in result.waypoints:
                overlay.scale_cost(x, z, multiplier)

        results.sort(key=lambda r: r.cost)
        return results

    def overcrowded_cells(self, density_map, max_density: float) -> List[Cell]:
        """Cells whose density exceeds max_density."""
        xs, zs = np.nonzero(density_map.density > max_density)
        return [(int(x), int(z)) for x, z in zip(xs, zs)]

    def replan_with_crowd_feedback(self, start: Cell, goal: Cell, grid, density_map,
                                   max_density: Optional[float] = None) -> Optional[PathResult]:
        """
        Re-run the search with overcrowded cells made more expensive.

        Args:
            start: Start cell
            goal: Goal cell
            grid: GridEnvironment (not modified)
            density_map: Current DensityMap
            max_density: Overcrowding threshold; defaults to crowd_feedback_threshold

        Returns:
            PathResult or None
        """
        if max_density is None:
            max_density = self.weights.crowd_feedback_threshold

        overlay = CostOverlay(grid)
        for x, z in self.overcrowded_cells(density_map, max_density):
            overlay.scale_cost(x, z, self.weights.density_multiplier)

        return self.find_path(start, goal, overlay, density_map)
