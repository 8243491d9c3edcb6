"""Tests for frame and heatmap rendering."""

import numpy as np

from evac_engine.config import EvacuationPointSpec, FireSourceSpec, VisualizationSettings
from evac_engine.simulation_engine import SimulationClock
from evac_engine.visualizer import Visualizer


def make_clock(settings):
    settings.agents.initial_count = 5
    settings.fire.sources = [FireSourceSpec((10, 10), 2.0)]
    settings.evacuation_points = [EvacuationPointSpec((1.5, 1.5), "A")]
    return SimulationClock.from_settings(settings)


def test_disabled_visualizer_renders_nothing(settings, tmp_path):
    clock = make_clock(settings)
    viz = Visualizer(VisualizationSettings(enabled=False, frames_dir=str(tmp_path)), clock.grid)
    assert viz.render_frame(clock.snapshot()) is None
    assert viz.frame_count == 0
    assert list(tmp_path.iterdir()) == []


def test_frames_written_as_listener(settings, tmp_path):
    settings.presentation_interval = 0.5
    clock = make_clock(settings)
    frames = tmp_path / "frames"
    viz = Visualizer(VisualizationSettings(enabled=True, frames_dir=str(frames)), clock.grid)
    clock.add_listener(viz.render_frame)

    clock.run(max_ticks=10)

    assert viz.frame_count == 2
    assert sorted(p.name for p in frames.iterdir()) == ['frame_00000.png', 'frame_00001.png']


def test_frame_without_directory_is_counted_only(settings):
    clock = make_clock(settings)
    viz = Visualizer(VisualizationSettings(enabled=True), clock.grid)
    assert viz.render_frame(clock.snapshot()) is None
    assert viz.frame_count == 1


def test_export_heatmap(settings, tmp_path):
    clock = make_clock(settings)
    viz = Visualizer(None, clock.grid)
    data = np.random.default_rng(0).random((settings.grid_size, settings.grid_size))

    path = viz.export_heatmap(data, "Density", str(tmp_path / "maps" / "heat.png"),
                              clock.snapshot().evacuation_points)

    assert path.exists()
    assert viz.export_heatmap(None, "Density", str(tmp_path / "none.png")) is None
