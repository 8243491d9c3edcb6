"""
Visualization System
2D rendering of simulation snapshots and density heatmaps
"""

import logging
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Circle
from pathlib import Path
from typing import Optional

from .config import VisualizationSettings

logger = logging.getLogger(__name__)


class Visualizer:
    """
    Snapshot listener that renders frames to PNG files.

    Register render_frame with SimulationClock.add_listener.
    """

    def __init__(self, settings: Optional[VisualizationSettings], grid):
        settings = settings or VisualizationSettings()
        self.enabled = settings.enabled
        self.frames_dir = Path(settings.frames_dir) if settings.frames_dir else None
        self.show_paths = settings.show_paths
        self.grid = grid
        self.frame_count = 0

    def _draw_grid(self, ax):
        """Blocked cells in gray, risk cells in dark red."""
        blocked = ~self.grid.passable_mask() & ~self.grid.risk
        overlay = np.zeros((self.grid.size, self.grid.size, 4))
        overlay[blocked] = (0.5, 0.5, 0.5, 0.8)
        overlay[self.grid.risk] = (0.5, 0.0, 0.0, 0.35)
        ax.imshow(overlay.transpose(1, 0, 2), origin='lower',
                  extent=[0, self.grid.size, 0, self.grid.size], interpolation='nearest')

    def _draw_evacuation_points(self, ax, points):
        for point in points:
            x, z = point['position']
            ax.add_patch(Circle((x, z), 1.5, facecolor='lime', edgecolor='darkgreen',
                                alpha=0.8, linewidth=2))
            ax.text(x, z + 2.0, point['label'], ha='center', fontsize=8, fontweight='bold')

    def render_frame(self, snapshot):
        """
        Render a single snapshot.

        Args:
            snapshot: SimulationSnapshot
        """
        if not self.enabled:
            return None

        fig, ax = plt.subplots(figsize=(10, 10))
        size = self.grid.size

        im = ax.imshow(snapshot.density.T, origin='lower', extent=[0, size, 0, size],
                       cmap='hot_r', interpolation='nearest', alpha=0.7)
        self._draw_grid(ax)

        # Fire
        for fire in snapshot.fire_sources:
            ax.add_patch(Circle(fire['position'], fire['radius'], facecolor='red',
                                edgecolor='darkred', alpha=0.3))

        self._draw_evacuation_points(ax, snapshot.evacuation_points)

        if self.show_paths:
            for waypoints in snapshot.paths.values():
                if len(waypoints) > 1:
                    arr = np.array(waypoints, dtype=float)
                    ax.plot(arr[:, 0], arr[:, 1], color='steelblue', linewidth=0.5, alpha=0.4)

        if snapshot.agent_positions:
            positions = np.array(snapshot.agent_positions)
            ax.scatter(positions[:, 0], positions[:, 1], s=6, c='blue')

        stats = snapshot.statistics
        ax.set_xlim(0, size)
        ax.set_ylim(0, size)
        ax.set_aspect('equal')
        ax.set_xlabel('X (cells)')
        ax.set_ylabel('Z (cells)')
        ax.set_title(f"t={snapshot.time:.1f}s  active={stats.total_agents}  "
                     f"evacuated={stats.evacuated}  fires={stats.fire_sources}")
        plt.colorbar(im, ax=ax, label='Agents per cell')

        path = None
        if self.frames_dir is not None:
            self.frames_dir.mkdir(parents=True, exist_ok=True)
            path = self.frames_dir / f"frame_{self.frame_count:05d}.png"
            fig.savefig(path, dpi=80, bbox_inches='tight')
        self.frame_count += 1
        plt.close(fig)
        return path

    def export_heatmap(self, heatmap_data: np.ndarray, title: str, filename: str,
                       evacuation_points=None) -> Optional[Path]:
        """
        Export heatmap as image.

        Args:
            heatmap_data: 2D array indexed [x, z]
            title: Plot title
            filename: Output filename
            evacuation_points: Optional list of point dicts to overlay
        """
        if heatmap_data is None:
            return None

        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)

        fig, ax = plt.subplots(figsize=(10, 8))
        size = self.grid.size
        im = ax.imshow(
            heatmap_data.T,
            origin='lower',
            extent=[0, size, 0, size],
            cmap='hot',
            aspect='auto',
            interpolation='bilinear'
        )
        self._draw_grid(ax)
        if evacuation_points:
            self._draw_evacuation_points(ax, evacuation_points)

        ax.set_xlabel('X (cells)')
        ax.set_ylabel('Z (cells)')
        ax.set_title(title)

        cbar = plt.colorbar(im, ax=ax)
        cbar.set_label('Mean agents per cell')

        fig.savefig(path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info("Heatmap saved to %s", path)
        return path
