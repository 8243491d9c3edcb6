"""
Building Data
Floors, spaces, circulation paths and obstacles, and the navigation-grid factory
"""

import logging
import math
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .environment import GridEnvironment

logger = logging.getLogger(__name__)


@dataclass
class Floor:
    id: str
    name: str
    elevation: float = 0.0
    height: float = 3.0


@dataclass
class Space:
    id: str
    name: str
    floor_id: str
    area: float = 0.0
    volume: float = 0.0


@dataclass
class CirculationPath:
    """Corridor or stair footprint; cheaper to traverse than open floor."""
    id: str
    name: str
    kind: str  # "CORRIDOR" or "STAIR"
    x: float
    z: float
    width: float
    length: float
    axis: str = "x"  # direction the length runs along
    floor_id: Optional[str] = None  # None: present on every floor

    def footprint(self) -> Tuple[float, float, float, float]:
        """(x, z, extent along x, extent along z)"""
        if self.axis == "x":
            return self.x, self.z, self.length, self.width
        return self.x, self.z, self.width, self.length


@dataclass
class ObstacleSpec:
    """Wall or column footprint, impassable once on the grid."""
    id: str
    kind: str  # "WALL" or "COLUMN"
    name: str
    x: float
    z: float
    width: float
    depth: float
    floor_id: Optional[str] = None

    @classmethod
    def from_segment(cls, obstacle_id: str, name: str, start: Tuple[float, float],
                     end: Tuple[float, float], thickness: float = 0.2,
                     floor_id: Optional[str] = None) -> "ObstacleSpec":
        """Thin wall between two points, stored as its bounding box."""
        dx = end[0] - start[0]
        dz = end[1] - start[1]
        length = math.hypot(dx, dz)
        if length < 0.01:
            raise ValueError(f"wall segment {obstacle_id} has zero length")

        # Perpendicular offset for the wall thickness
        px, pz = -dz / length * thickness / 2, dx / length * thickness / 2
        xs = [start[0] + px, start[0] - px, end[0] + px, end[0] - px]
        zs = [start[1] + pz, start[1] - pz, end[1] + pz, end[1] - pz]
        return cls(obstacle_id, "WALL", name, min(xs), min(zs),
                   max(xs) - min(xs), max(zs) - min(zs), floor_id)


@dataclass
class BuildingData:
    floors: List[Floor] = field(default_factory=list)
    spaces: List[Space] = field(default_factory=list)
    paths: List[CirculationPath] = field(default_factory=list)
    obstacles: List[ObstacleSpec] = field(default_factory=list)


class BuildingModel:
    """
    Building-data collaborator: floor filtering and grid construction.

    Coordinates are grid units (one unit per cell). Footprints that fall
    partly outside the grid are clipped; entirely outside ones are skipped.
    """

    def __init__(self, data: BuildingData, name: str = "Building"):
        self.data = data
        self.name = name

    def get_floor(self, floor_id: str) -> Optional[Floor]:
        for floor in self.data.floors:
            if floor.id == floor_id:
                return floor
        return None

    def filter_by_floor(self, floor_id: str = "all") -> Optional[BuildingData]:
        """
        Subset of the building for one floor.

        Paths and obstacles without a floor are shared by every floor.

        Returns:
            BuildingData, or None for an unknown floor
        """
        if floor_id == "all":
            return self.data

        floor = self.get_floor(floor_id)
        if floor is None:
            return None

        return BuildingData(
            floors=[floor],
            spaces=[s for s in self.data.spaces if s.floor_id == floor_id],
            paths=[p for p in self.data.paths if p.floor_id in (None, floor_id)],
            obstacles=[o for o in self.data.obstacles if o.floor_id in (None, floor_id)]
        )

    def build_navigation_grid(self, floor_id: str = "all", grid_size: int = 100,
                              base_cost: float = 1.0,
                              circulation_cost: float = 0.5) -> Optional[GridEnvironment]:
        """
        Build the navigation grid for a floor.

        Circulation footprints get circulation_cost; obstacles are stamped
        last and become unwalkable with infinite cost.

        Returns:
            GridEnvironment, or None for an unknown floor
        """
        floor_data = self.filter_by_floor(floor_id)
        if floor_data is None:
            logger.warning("Unknown floor %r", floor_id)
            return None

        grid = GridEnvironment(grid_size, base_cost)

        for path in floor_data.paths:
            if grid.mark_rectangle(*path.footprint(), cost=circulation_cost) == 0:
                logger.warning("Circulation path %s lies outside the grid", path.id)

        for obstacle in floor_data.obstacles:
            touched = grid.mark_rectangle(obstacle.x, obstacle.z, obstacle.width, obstacle.depth,
                                          cost=float('inf'), walkable=False)
            if touched == 0:
                logger.warning("Obstacle %s lies outside the grid", obstacle.id)

        logger.info("Navigation grid for floor %s: %d paths, %d obstacles",
                    floor_id, len(floor_data.paths), len(floor_data.obstacles))
        return grid

    def spaces_by_floor(self, floor_id: str = "all") -> List[Space]:
        if floor_id == "all":
            return list(self.data.spaces)
        return [s for s in self.data.spaces if s.floor_id == floor_id]

    def building_info(self) -> dict:
        return {
            'name': self.name,
            'floors': len(self.data.floors),
            'total_area': sum(s.area for s in self.data.spaces),
            'total_volume': sum(s.volume for s in self.data.spaces)
        }


def building_from_dict(raw: dict) -> BuildingModel:
    """Build a BuildingModel from a parsed YAML mapping."""
    floors = [Floor(str(f['id']), f.get('name', str(f['id'])), float(f.get('elevation', 0.0)),
                    float(f.get('height', 3.0)))
              for f in raw.get('floors', [])]
    spaces = [Space(str(s['id']), s.get('name', str(s['id'])), str(s['floor_id']),
                    float(s.get('area', 0.0)), float(s.get('volume', 0.0)))
              for s in raw.get('spaces', [])]
    paths = [CirculationPath(str(p['id']), p.get('name', str(p['id'])), p.get('kind', 'CORRIDOR').upper(),
                             float(p['x']), float(p['z']), float(p['width']), float(p['length']),
                             p.get('axis', 'x'), p.get('floor_id'))
             for p in raw.get('paths', [])]

    obstacles = []
    for o in raw.get('obstacles', []):
        if 'start' in o:
            obstacles.append(ObstacleSpec.from_segment(
                str(o['id']), o.get('name', str(o['id'])), tuple(o['start']), tuple(o['end']),
                float(o.get('thickness', 0.2)), o.get('floor_id')))
        else:
            obstacles.append(ObstacleSpec(
                str(o['id']), o.get('kind', 'WALL').upper(), o.get('name', str(o['id'])),
                float(o['x']), float(o['z']), float(o['width']), float(o['depth']), o.get('floor_id')))

    return BuildingModel(BuildingData(floors, spaces, paths, obstacles), raw.get('name', 'Building'))


def load_building(path: str) -> BuildingModel:
    with open(Path(path), 'r') as f:
        raw = yaml.safe_load(f) or {}
    return building_from_dict(raw)


def sample_building() -> BuildingModel:
    """Three-floor office used when no building file is configured."""
    data = BuildingData(
        floors=[
            Floor('floor-1', 'Floor 1', 0.0, 3.0),
            Floor('floor-2', 'Floor 2', 3.0, 3.0),
            Floor('floor-3', 'Floor 3', 6.0, 3.0)
        ],
        spaces=[
            Space('space-1', 'Lobby', 'floor-1', 200, 600),
            Space('space-2', 'Meeting Room A', 'floor-2', 50, 150),
            Space('space-3', 'Office B', 'floor-2', 80, 240),
            Space('space-4', 'Meeting Room C', 'floor-3', 60, 180)
        ],
        paths=[
            CirculationPath('path-1', 'Main Stair', 'STAIR', 45, 5, 2.0, 10.0, axis='z'),
            CirculationPath('path-2', 'Service Stair', 'STAIR', 80, 80, 1.5, 8.0, axis='z'),
            CirculationPath('path-3', 'Corridor A', 'CORRIDOR', 10, 48, 3.0, 80.0, axis='x'),
            CirculationPath('path-4', 'Corridor B', 'CORRIDOR', 48, 10, 2.5, 75.0, axis='z')
        ],
        obstacles=[
            ObstacleSpec('wall-1', 'WALL', 'Outer Wall A', 20, 20, 25, 1),
            ObstacleSpec('wall-2', 'WALL', 'Inner Wall B', 60, 55, 1, 25),
            ObstacleSpec('column-1', 'COLUMN', 'Column A', 35, 65, 1, 1),
            ObstacleSpec('column-2', 'COLUMN', 'Column B', 70, 30, 1, 1)
        ]
    )
    return BuildingModel(data, "Sample Office")
