"""
Core Agent Class for Crowd Simulation
Each agent is one evacuee following a grid route toward an evacuation point
"""

import math
from enum import Enum
from typing import List, Optional, Tuple


class AgentClass(Enum):
    NORMAL = "normal"
    MOBILITY_IMPAIRED = "mobility-impaired"


class Agent:
    """
    Represents a simulated evacuee.

    Attributes:
        id: Unique identifier
        position: Current (x, z) position in grid units
        path: Waypoints (grid cells) of the current route
        path_index: Index of the waypoint being approached
        speed: Walking speed in grid units per second
        agent_class: NORMAL or MOBILITY_IMPAIRED
        goal: Evacuation point the current route leads to
    """

    def __init__(
        self,
        agent_id: int,
        position: Tuple[float, float],
        speed: float,
        agent_class: AgentClass = AgentClass.NORMAL
    ):
        if speed <= 0:
            raise ValueError(f"agent speed must be positive, got {speed}")
        self.id = agent_id
        self.position = (float(position[0]), float(position[1]))
        self.speed = speed
        self.agent_class = agent_class

        # Navigation
        self.goal = None
        self.path: List[Tuple[int, int]] = []
        self.path_index = 0
        self.replan_count = 0
        self.last_plan_tick = 0

        self.spawn_tick = 0

    @property
    def has_path(self) -> bool:
        return bool(self.path)

    @property
    def cell(self) -> Tuple[int, int]:
        return int(math.floor(self.position[0])), int(math.floor(self.position[1]))

    def set_path(self, path: List[Tuple[int, int]]):
        """Assign a new route and restart from its first waypoint."""
        self.path = [(int(x), int(z)) for x, z in path]
        self.path_index = 0

    def get_next_waypoint(self) -> Optional[Tuple[int, int]]:
        if self.path and self.path_index < len(self.path):
            return self.path[self.path_index]
        return None

    def final_waypoint(self) -> Optional[Tuple[int, int]]:
        return self.path[-1] if self.path else None

    def distance_to(self, point) -> float:
        return math.hypot(point[0] - self.position[0], point[1] - self.position[1])

    def advance(self, dt: float, arrival_epsilon: float = 0.1):
        """
        Move along the current path for one tick.

        When the current waypoint is within arrival_epsilon the index moves
        on (clamped at the last waypoint) instead of moving; otherwise the
        agent walks speed * dt toward it without overshooting.
        """
        if not self.path:
            return

        tx, tz = self.path[self.path_index]
        dx = tx - self.position[0]
        dz = tz - self.position[1]
        distance = math.hypot(dx, dz)

        if distance < arrival_epsilon:
            self.path_index = min(self.path_index + 1, len(self.path) - 1)
        else:
            step = min(self.speed * dt, distance)
            self.position = (
                self.position[0] + dx / distance * step,
                self.position[1] + dz / distance * step
            )

    def has_reached_destination(self, tolerance: float = 0.5) -> bool:
        """Within tolerance of the final waypoint of its path."""
        target = self.final_waypoint()
        if target is None:
            return False
        return self.distance_to(target) < tolerance

    def flow_vector(self) -> Tuple[float, float]:
        """Unnormalised heading toward the current waypoint."""
        waypoint = self.get_next_waypoint()
        if waypoint is None:
            return 0.0, 0.0
        return waypoint[0] - self.position[0], waypoint[1] - self.position[1]

    def __repr__(self) -> str:
        return (f"Agent({self.id}, pos=({self.position[0]:.2f}, {self.position[1]:.2f}), "
                f"{self.agent_class.value}, waypoint {self.path_index}/{len(self.path)})")
