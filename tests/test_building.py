"""Tests for building data and navigation-grid construction."""

import math

import pytest
import yaml

from evac_engine.building import (
    BuildingData, BuildingModel, CirculationPath, Floor, ObstacleSpec, Space,
    building_from_dict, load_building, sample_building
)


@pytest.fixture
def two_floor_building():
    data = BuildingData(
        floors=[Floor('f1', 'Ground'), Floor('f2', 'Upper', 3.0)],
        spaces=[Space('s1', 'Hall', 'f1', 100, 300), Space('s2', 'Office', 'f2', 40, 120)],
        paths=[
            CirculationPath('c1', 'Corridor', 'CORRIDOR', 0, 4, 2, 10, axis='x'),
            CirculationPath('st', 'Stair', 'STAIR', 8, 0, 1, 3, axis='z', floor_id='f2'),
        ],
        obstacles=[
            ObstacleSpec('w1', 'WALL', 'Wall', 5, 0, 1, 6),
            ObstacleSpec('col', 'COLUMN', 'Column', 2, 8, 1, 1, floor_id='f1'),
        ]
    )
    return BuildingModel(data, "Test Block")


def test_filter_all_returns_everything(two_floor_building):
    assert two_floor_building.filter_by_floor("all") is two_floor_building.data


def test_filter_single_floor_keeps_shared_elements(two_floor_building):
    upper = two_floor_building.filter_by_floor('f2')

    assert [f.id for f in upper.floors] == ['f2']
    assert [s.id for s in upper.spaces] == ['s2']
    assert [p.id for p in upper.paths] == ['c1', 'st']
    assert [o.id for o in upper.obstacles] == ['w1']


def test_filter_unknown_floor(two_floor_building):
    assert two_floor_building.filter_by_floor('roof') is None
    assert two_floor_building.build_navigation_grid('roof', 10) is None


def test_navigation_grid_marks_paths_and_obstacles(two_floor_building):
    grid = two_floor_building.build_navigation_grid('f1', grid_size=10, circulation_cost=0.5)

    assert grid.size == 10
    assert grid.base_cost(0, 4) == 0.5
    assert grid.base_cost(9, 5) == 0.5
    assert grid.base_cost(0, 0) == 1.0
    assert not grid.is_walkable(2, 8)


def test_obstacles_override_circulation(two_floor_building):
    grid = two_floor_building.build_navigation_grid('f1', grid_size=10)

    # The wall crosses the corridor
    assert not grid.is_walkable(5, 4)
    assert grid.base_cost(5, 4) == math.inf
    assert grid.base_cost(4, 4) == 0.5


def test_footprints_clipped_to_grid(two_floor_building):
    grid = two_floor_building.build_navigation_grid('f1', grid_size=6)
    assert grid.base_cost(5, 5) == math.inf
    assert grid.base_cost(4, 4) == 0.5


def test_wall_segment_bounding_box():
    wall = ObstacleSpec.from_segment('w', 'Wall', (2.0, 3.0), (8.0, 3.0), thickness=0.4)
    assert wall.kind == 'WALL'
    assert wall.x == pytest.approx(2.0)
    assert wall.z == pytest.approx(2.8)
    assert wall.width == pytest.approx(6.0)
    assert wall.depth == pytest.approx(0.4)


def test_zero_length_wall_rejected():
    with pytest.raises(ValueError):
        ObstacleSpec.from_segment('w', 'Wall', (1.0, 1.0), (1.0, 1.0))


def test_sample_building_info():
    info = sample_building().building_info()
    assert info == {
        'name': "Sample Office",
        'floors': 3,
        'total_area': 390,
        'total_volume': 1170
    }


def test_spaces_by_floor():
    building = sample_building()
    assert len(building.spaces_by_floor()) == 4
    assert [s.name for s in building.spaces_by_floor('floor-2')] == ['Meeting Room A', 'Office B']


def test_load_building_from_yaml(tmp_path):
    raw = {
        'name': 'Depot',
        'floors': [{'id': 'g', 'name': 'Ground'}],
        'spaces': [{'id': 'bay', 'floor_id': 'g', 'area': 500, 'volume': 2500}],
        'paths': [{'id': 'aisle', 'kind': 'corridor', 'x': 0, 'z': 2, 'width': 1, 'length': 12}],
        'obstacles': [
            {'id': 'rack', 'kind': 'column', 'x': 4, 'z': 4, 'width': 2, 'depth': 2},
            {'id': 'partition', 'start': [1, 8], 'end': [1, 11]},
        ],
    }
    path = tmp_path / "depot.yaml"
    path.write_text(yaml.safe_dump(raw))

    building = load_building(str(path))

    assert building.name == 'Depot'
    assert building.data.paths[0].kind == 'CORRIDOR'
    assert building.data.obstacles[0].kind == 'COLUMN'
    assert building.data.obstacles[1].kind == 'WALL'

    grid = building.build_navigation_grid('g', grid_size=12, circulation_cost=0.25)
    assert grid.base_cost(11, 2) == 0.25
    assert not grid.is_walkable(5, 5)
    assert not grid.is_walkable(0, 9)


def test_building_from_dict_defaults():
    building = building_from_dict({})
    assert building.name == 'Building'
    assert building.building_info()['floors'] == 0
