"""
Environment and Grid System
Walkability/cost/risk surface, evacuation points and scratch cost overlays
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple


INF = float('inf')


class OutOfBoundsError(IndexError):
    """Raised when a grid coordinate lies outside [0, grid_size)."""

    def __init__(self, x: int, z: int, size: int):
        super().__init__(f"cell ({x}, {z}) is outside the {size}x{size} grid")
        self.x = x
        self.z = z
        self.size = size


@dataclass(frozen=True)
class GridCell:
    """Read-only view of one grid cell."""
    walkable: bool
    base_cost: float
    risk: bool

    @property
    def passable(self) -> bool:
        return self.walkable and math.isfinite(self.base_cost)


@dataclass(frozen=True)
class EvacuationPoint:
    """A designated safe destination."""
    position: Tuple[float, float]
    label: str = ""

    @property
    def cell(self) -> Tuple[int, int]:
        """Grid cell containing the point."""
        return int(math.floor(self.position[0])), int(math.floor(self.position[1]))

    def distance_to(self, position) -> float:
        return math.hypot(position[0] - self.position[0], position[1] - self.position[1])

    def to_dict(self) -> dict:
        return {'position': tuple(self.position), 'label': self.label}


class GridEnvironment:
    """
    Fixed-resolution square grid over one floor.

    Layers are numpy arrays indexed [x, z]. An infinite cost marks the cell
    impassable, as does walkable=False.
    """

    def __init__(self, size: int, base_cost: float = 1.0):
        if size <= 0:
            raise ValueError(f"grid size must be positive, got {size}")
        self.size = size
        self.default_cost = base_cost

        self.walkable = np.ones((size, size), dtype=bool)
        self.cost = np.full((size, size), float(base_cost), dtype=float)
        self.risk = np.zeros((size, size), dtype=bool)

    def is_valid(self, x: int, z: int) -> bool:
        """Check if grid indices are valid."""
        return 0 <= x < self.size and 0 <= z < self.size

    def _check(self, x: int, z: int):
        if not self.is_valid(x, z):
            raise OutOfBoundsError(x, z, self.size)

    def index(self, x: int, z: int) -> int:
        """Flattened cell index used as a search key."""
        return x * self.size + z

    def cell_at(self, x: int, z: int) -> GridCell:
        self._check(x, z)
        return GridCell(
            walkable=bool(self.walkable[x, z]),
            base_cost=float(self.cost[x, z]),
            risk=bool(self.risk[x, z])
        )

    def set_risk(self, x: int, z: int, flag: bool = True):
        self._check(x, z)
        self.risk[x, z] = flag

    def set_cost(self, x: int, z: int, cost: float):
        self._check(x, z)
        if cost < 0:
            raise ValueError(f"cell cost must be >= 0, got {cost}")
        self.cost[x, z] = cost

    def set_walkable(self, x: int, z: int, flag: bool):
        self._check(x, z)
        self.walkable[x, z] = flag

    # Read interface shared with CostOverlay

    def base_cost(self, x: int, z: int) -> float:
        return self.cost[x, z]

    def is_risk(self, x: int, z: int) -> bool:
        return self.risk[x, z]

    def is_walkable(self, x: int, z: int) -> bool:
        """In bounds, walkable and of finite cost."""
        if not self.is_valid(x, z):
            return False
        return bool(self.walkable[x, z]) and self.cost[x, z] != INF

    def world_to_grid(self, position) -> Tuple[int, int]:
        """Floor a continuous position into its cell, clipped to the grid."""
        ix = int(math.floor(position[0]))
        iz = int(math.floor(position[1]))
        return min(max(ix, 0), self.size - 1), min(max(iz, 0), self.size - 1)

    def mark_rectangle(self, x: float, z: float, width: float, depth: float,
                       cost: Optional[float] = None, walkable: Optional[bool] = None) -> int:
        """
        Stamp an axis-aligned footprint onto the grid, clipped to bounds.

        Args:
            x, z: Lower corner in grid units
            width, depth: Extent along x and z
            cost: Cost to assign, if given
            walkable: Walkability to assign, if given

        Returns:
            Number of cells touched
        """
        x_start = max(0, int(math.floor(x)))
        z_start = max(0, int(math.floor(z)))
        x_end = min(self.size, int(math.ceil(x + width)))
        z_end = min(self.size, int(math.ceil(z + depth)))
        if x_start >= x_end or z_start >= z_end:
            return 0

        if cost is not None:
            self.cost[x_start:x_end, z_start:z_end] = cost
        if walkable is not None:
            self.walkable[x_start:x_end, z_start:z_end] = walkable
        return (x_end - x_start) * (z_end - z_start)

    def random_walkable_cell(self, rng: np.random.Generator,
                             max_attempts: int = 100) -> Optional[Tuple[int, int]]:
        """Pick a uniformly random walkable cell, or None after max_attempts."""
        for _ in range(max_attempts):
            x = int(rng.integers(0, self.size))
            z = int(rng.integers(0, self.size))
            if self.is_walkable(x, z):
                return x, z
        return None

    def passable_mask(self) -> np.ndarray:
        return self.walkable & np.isfinite(self.cost)

    def cells(self) -> Iterator[Tuple[int, int]]:
        for x in range(self.size):
            for z in range(self.size):
                yield x, z

    def __repr__(self) -> str:
        blocked = int((~self.passable_mask()).sum())
        return f"GridEnvironment(size={self.size}, blocked={blocked}, risk={int(self.risk.sum())})"


class CostOverlay:
    """
    Scratch view over a GridEnvironment with private cost overrides.

    Overrides live in a sparse dict keyed by flat cell index, so an
    alternate-route search only pays for the cells it inflates. The
    underlying grid is never written.
    """

    def __init__(self, grid):
        self.grid = grid
        self.size = grid.size
        self.overrides: Dict[int, float] = {}

    def is_valid(self, x: int, z: int) -> bool:
        return self.grid.is_valid(x, z)

    def index(self, x: int, z: int) -> int:
        return x * self.size + z

    def base_cost(self, x: int, z: int) -> float:
        override = self.overrides.get(x * self.size + z)
        if override is not None:
            return override
        return self.grid.base_cost(x, z)

    def is_risk(self, x: int, z: int) -> bool:
        return self.grid.is_risk(x, z)

    def is_walkable(self, x: int, z: int) -> bool:
        if not self.grid.is_walkable(x, z):
            return False
        return self.base_cost(x, z) != INF

    def set_cost(self, x: int, z: int, cost: float):
        if not self.is_valid(x, z):
            raise OutOfBoundsError(x, z, self.size)
        self.overrides[x * self.size + z] = cost

    def scale_cost(self, x: int, z: int, factor: float):
        """Multiply a cell's cost on this overlay only; out-of-range cells are skipped."""
        if not self.is_valid(x, z):
            return
        self.overrides[x * self.size + z] = self.base_cost(x, z) * factor

    def cell_at(self, x: int, z: int) -> GridCell:
        cell = self.grid.cell_at(x, z)
        return GridCell(walkable=cell.walkable, base_cost=self.base_cost(x, z), risk=cell.risk)
