"""Shared fixtures for the evacuation engine tests."""

import numpy as np
import pytest

from evac_engine.config import SimulationSettings, PathfindingWeights
from evac_engine.crowd import CrowdEngine
from evac_engine.environment import EvacuationPoint, GridEnvironment
from evac_engine.hazard_manager import FireModel
from evac_engine.pathfinding import Pathfinder


@pytest.fixture
def settings():
    """Small deterministic settings with spawning switched off."""
    s = SimulationSettings(grid_size=20, seed=7)
    s.agents.spawn_probability = 0.0
    return s


@pytest.fixture
def open_grid():
    return GridEnvironment(10)


@pytest.fixture
def pathfinder():
    return Pathfinder(PathfindingWeights())


@pytest.fixture
def crowd_factory():
    """Build a CrowdEngine over a fresh (or given) grid."""

    def _make(settings, points=(), grid=None, fire_model=None):
        grid = grid if grid is not None else GridEnvironment(settings.grid_size)
        fire_model = fire_model if fire_model is not None else FireModel(
            grid, settings.fire.growth_rate, settings.fire.max_radius)
        return CrowdEngine(
            grid,
            Pathfinder(settings.pathfinding),
            fire_model,
            settings,
            [EvacuationPoint(p[0], p[1]) for p in points],
            np.random.default_rng(settings.seed)
        )

    return _make
