"""Tests for the crowd engine and density map."""

import math

import numpy as np
import pytest

from evac_engine.agent import Agent, AgentClass
from evac_engine.crowd import DensityMap
from evac_engine.environment import EvacuationPoint, GridEnvironment, OutOfBoundsError


def test_agent_at_destination_is_evacuated(settings, crowd_factory):
    crowd = crowd_factory(settings)
    agent = crowd.add_agent((5.0, 5.0), path=[(5, 5)])

    evacuated = crowd.step(1)

    assert evacuated == [agent]
    assert crowd.agents == []
    stats = crowd.get_statistics()
    assert stats.evacuated == 1
    assert stats.total_agents == 0
    assert stats.evacuated_estimate == settings.agents.max_agents


def test_agent_spawned_on_exit_leaves_next_tick(settings, crowd_factory):
    crowd = crowd_factory(settings, points=[((5.2, 5.3), "A")])
    agent = crowd.add_agent((5.0, 5.0))

    assert agent.path == [(5, 5)]
    assert agent.goal.label == "A"
    assert crowd.step(1) == [agent]
    assert crowd.evacuated_count == 1


def test_agent_walks_path_without_overshooting(settings, crowd_factory):
    crowd = crowd_factory(settings)
    agent = crowd.add_agent((0.0, 0.0), path=[(0, 0), (3, 0)])

    removed_at = None
    last_index = 0
    for tick in range(1, 41):
        evacuated = crowd.step(tick)
        if evacuated:
            removed_at = tick
            break
        assert agent.path_index >= last_index
        last_index = agent.path_index
        assert agent.position[0] <= 3.0

    assert removed_at is not None
    assert 25 <= removed_at <= 30


def test_add_agent_outside_grid_raises(settings, crowd_factory):
    crowd = crowd_factory(settings)
    with pytest.raises(OutOfBoundsError):
        crowd.add_agent((25.0, 1.0))
    assert crowd.agents == []


def test_nearest_evacuation_point_first_listed_wins_ties(settings, crowd_factory):
    crowd = crowd_factory(settings, points=[((0, 0), "A"), ((10, 0), "B")])
    assert crowd.nearest_evacuation_point((5.0, 0.0)).label == "A"
    assert crowd.nearest_evacuation_point((6.0, 0.0)).label == "B"


def test_no_evacuation_points(settings, crowd_factory):
    crowd = crowd_factory(settings)
    assert crowd.nearest_evacuation_point((1.0, 1.0)) is None

    agent = crowd.add_agent((3.5, 3.5))
    for tick in range(1, 6):
        crowd.step(tick)

    assert not agent.has_path
    assert agent in crowd.agents
    assert agent.position == (3.5, 3.5)


def test_pathless_agents_retried_on_interval(settings, crowd_factory):
    crowd = crowd_factory(settings)
    agent = crowd.add_agent((3.5, 3.5))

    for tick in range(1, 5):
        crowd.step(tick)
        assert agent.last_plan_tick == 0
    crowd.step(5)
    assert agent.last_plan_tick == 5

    crowd.set_evacuation_points([EvacuationPoint((15.5, 3.5), "East")])
    for tick in range(6, 10):
        crowd.step(tick)
        assert not agent.has_path
    crowd.step(10)
    assert agent.has_path
    assert agent.final_waypoint() == (15, 3)


def test_failed_replan_keeps_previous_path(settings, crowd_factory):
    grid = GridEnvironment(settings.grid_size)
    for dx in (-1, 0, 1):
        for dz in (-1, 0, 1):
            if dx or dz:
                grid.set_walkable(15 + dx, 5 + dz, False)
    crowd = crowd_factory(settings, points=[((15.5, 5.5), "E")], grid=grid)
    agent = crowd.add_agent((2.5, 2.5), path=[(2, 2), (3, 3)])

    assert not crowd.replan(agent, 3)
    assert agent.path == [(2, 2), (3, 3)]
    assert agent.last_plan_tick == 3
    assert crowd.failed_replans == 1


def test_spawning_bounded_by_max_agents(settings, crowd_factory):
    settings.agents.max_agents = 3
    settings.agents.spawn_probability = 1.0
    crowd = crowd_factory(settings)

    for tick in range(1, 11):
        crowd.step(tick)
        assert len(crowd.agents) <= 3

    assert len(crowd.agents) == 3
    assert crowd.spawned_count == 3
    assert crowd.populate(5) == []


def test_mobility_impaired_agents_are_slower(settings, crowd_factory):
    settings.agents.impaired_probability = 1.0
    crowd = crowd_factory(settings)
    agent = crowd.spawn_agent()

    assert agent.agent_class is AgentClass.MOBILITY_IMPAIRED
    assert agent.speed == pytest.approx(settings.agents.speed * settings.agents.impaired_speed_factor)
    assert crowd.grid.is_walkable(*agent.cell)


def test_density_conserved_every_tick(crowd_factory):
    from evac_engine.config import SimulationSettings

    settings = SimulationSettings(grid_size=30, seed=11)
    settings.agents.spawn_probability = 0.5
    crowd = crowd_factory(settings, points=[((2, 2), "A"), ((27, 27), "B")])
    crowd.populate(40)

    for tick in range(1, 21):
        crowd.step(tick)
        density_map = crowd.density_map
        assert density_map.total() == len(crowd.agents)
        assert sum(len(ids) for ids in density_map.occupants.values()) == len(crowd.agents)

        norms = np.linalg.norm(density_map.flow, axis=2)
        assert np.all(np.isclose(norms, 0.0) | np.isclose(norms, 1.0))


def test_density_map_flow_cancels_and_normalises():
    density_map = DensityMap(10)
    a = Agent(0, (5.5, 5.5), 1.0)
    a.set_path([(8, 5)])
    b = Agent(1, (5.5, 5.5), 1.0)
    b.set_path([(3, 6)])
    c = Agent(2, (1.2, 1.7), 1.0)
    c.set_path([(1, 5)])

    density_map.rebuild([a, b, c])

    shared = density_map.cell(5, 5)
    assert shared.density == 2.0
    assert shared.flow == (0.0, 0.0)
    assert shared.occupants == (0, 1)

    single = density_map.cell(1, 1)
    assert math.hypot(*single.flow) == pytest.approx(1.0)
    assert density_map.total() == 3.0


def test_density_map_cell_bounds():
    with pytest.raises(OutOfBoundsError):
        DensityMap(4).cell(4, 0)


def test_agent_inside_fire_is_rerouted(crowd_factory):
    from evac_engine.config import SimulationSettings

    settings = SimulationSettings(grid_size=60, seed=1)
    settings.agents.spawn_probability = 0.0
    crowd = crowd_factory(settings, points=[((0.5, 30.5), "West")])
    agent = crowd.add_agent((36.5, 30.5))
    pre_fire_path = list(agent.path)
    assert (30, 30) in pre_fire_path

    fire = crowd.fire_model
    fire.ignite((30, 30), radius=5.0)

    rerouted_at = None
    for tick in range(1, 61):
        was_inside = fire.is_within_fire(agent.position)
        fire.update()
        crowd.step(tick)
        if agent.replan_count > 1:
            rerouted_at = tick
            break
        assert not was_inside

    assert rerouted_at is not None
    assert fire.is_within_fire(agent.position)
    assert agent.path != pre_fire_path
    assert agent.last_plan_tick == rerouted_at
    assert not any(crowd.grid.is_risk(x, z) for x, z in agent.path[1:])


def test_agent_on_rim_of_static_fire_escapes(crowd_factory):
    from evac_engine.config import SimulationSettings

    settings = SimulationSettings(grid_size=40, seed=1)
    settings.agents.spawn_probability = 0.0
    settings.fire.growth_rate = 0.0
    crowd = crowd_factory(settings, points=[((39.5, 20.5), "East")])
    fire = crowd.fire_model
    fire.ignite((20, 20), radius=5.0)

    agent = crowd.add_agent((24.6, 20.6))
    assert fire.is_within_fire(agent.position)
    assert agent.path[0] != agent.cell

    for tick in range(1, 41):
        fire.update()
        crowd.step(tick)

    assert not fire.is_within_fire(agent.position)
    assert agent.position[0] > 26.0


def test_replanned_path_skips_current_cell(settings, crowd_factory):
    crowd = crowd_factory(settings, points=[((10.5, 3.5), "East")])
    agent = crowd.add_agent((3.5, 3.5))

    assert agent.path[0] == (4, 3)
    assert agent.final_waypoint() == (10, 3)


def test_overcrowded_cell_occupants_rerouted(settings, crowd_factory):
    settings.agents.overcrowd_threshold = 2
    crowd = crowd_factory(settings, points=[((15.5, 5.5), "E")])
    agents = [crowd.add_agent((5.5, 5.5)) for _ in range(3)]
    loner = crowd.add_agent((5.5, 12.5))
    assert all(a.replan_count == 1 for a in agents)

    crowd.step(1)

    assert all(a.replan_count == 2 for a in agents)
    assert loner.replan_count == 1


def test_statistics_and_paths(settings, crowd_factory):
    settings.agents.max_agents = 10
    crowd = crowd_factory(settings, points=[((18.5, 18.5), "NE")])
    crowd.populate(4)
    crowd.density_map.rebuild(crowd.agents)

    stats = crowd.get_statistics()
    assert stats.total_agents == 4
    assert stats.evacuated_estimate == 6
    assert stats.spawned == 4
    assert stats.fire_sources == 0
    assert stats.average_density == pytest.approx(4 / 400)
    assert stats.to_dict()['total_agents'] == 4

    paths = crowd.get_paths()
    for agent in crowd.agents:
        if agent.has_path:
            assert paths[agent.id][-1] == (18, 18)
