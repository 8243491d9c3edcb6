"""
Analytics Collection and Computation
Tracks crowd statistics, computes evacuation KPIs, detects bottlenecks
"""

import csv
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import AnalyticsSettings

PERCENTILES = (50, 80, 90, 95)
CSV_COLUMNS = ['Time', 'Active_Agents', 'Evacuated', 'Avg_Density', 'Peak_Density', 'Fire_Sources']


class AnalyticsCollector:
    """
    Collects snapshots on the presentation cadence and summarises the run.
    """

    def __init__(self, settings: Optional[AnalyticsSettings] = None):
        settings = settings or AnalyticsSettings()
        self.enabled = settings.enabled
        self.export_csv = settings.export_csv
        self.csv_path = settings.csv_path
        self.compute_heatmaps = settings.compute_heatmaps
        self.bottleneck_threshold = settings.bottleneck_threshold

        # Time series data
        self.timestamps = []
        self.agent_counts = []
        self.evacuated_counts = []
        self.avg_densities = []
        self.peak_densities = []
        self.fire_counts = []

        # Evacuation time per agent id
        self.evacuation_times: Dict[int, float] = {}

        # Spatial data for heatmaps
        self.density_history = []

        # KPIs
        self.kpis = {}

    def update(self, snapshot):
        """
        Record one presentation snapshot.

        Args:
            snapshot: SimulationSnapshot
        """
        if not self.enabled:
            return

        stats = snapshot.statistics
        self.timestamps.append(snapshot.time)
        self.agent_counts.append(stats.total_agents)
        self.evacuated_counts.append(stats.evacuated)
        self.avg_densities.append(stats.average_density)
        self.peak_densities.append(float(snapshot.density.max()) if snapshot.density.size else 0.0)
        self.fire_counts.append(stats.fire_sources)

        if self.compute_heatmaps:
            self.density_history.append(snapshot.density.copy())

    def record_evacuation(self, agent_id: int, time: float):
        """Record when an agent got out; the first time recorded for an id stands."""
        self.evacuation_times.setdefault(agent_id, time)

    def compute_kpis(self, total_agents: int, total_time: float) -> Dict:
        """
        Summarise the run.

        Args:
            total_agents: Agents spawned over the run
            total_time: Simulated time in seconds

        Returns:
            KPI dict; time KPIs are None when nobody evacuated
        """
        times = sorted(self.evacuation_times.values())
        kpis = {
            'total_agents': total_agents,
            'total_evacuated': len(times),
            'evacuation_rate': len(times) / total_agents if total_agents > 0 else 0,
            'simulation_time': total_time
        }

        # T<p>: time by which p% of the evacuees were out
        for pct in PERCENTILES:
            kpis[f'T{pct}'] = times[min(len(times) - 1, int(len(times) * pct / 100))] if times else None
        kpis['mean_evacuation_time'] = float(np.mean(times)) if times else None
        kpis['max_evacuation_time'] = times[-1] if times else None

        if self.avg_densities:
            kpis['mean_density'] = float(np.mean(self.avg_densities))
            kpis['peak_density'] = max(self.peak_densities)

        self.kpis = kpis
        return kpis

    def detect_bottlenecks(self) -> List[Dict]:
        """
        Cells whose time-averaged density exceeds the bottleneck threshold.

        Returns:
            Bottleneck dicts sorted by severity, most severe first
        """
        avg_density = self.generate_heatmap()
        if avg_density is None:
            return []

        xs, zs = np.nonzero(avg_density > self.bottleneck_threshold)

        bottlenecks = [
            {
                'cell': (int(x), int(z)),
                'density': float(avg_density[x, z]),
                'severity': float(avg_density[x, z] / self.bottleneck_threshold)
            }
            for x, z in zip(xs, zs)
        ]
        bottlenecks.sort(key=lambda b: b['severity'], reverse=True)
        return bottlenecks

    def generate_heatmap(self) -> Optional[np.ndarray]:
        """Time-averaged density, or None before any sample."""
        if not self.density_history:
            return None
        return np.mean(np.array(self.density_history), axis=0)

    def export_to_csv(self, csv_path: Optional[str] = None) -> Optional[Path]:
        """Write the presentation-tick time series; None when disabled or empty."""
        if not self.export_csv or not self.timestamps:
            return None

        path = Path(csv_path or self.csv_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        series = zip(self.timestamps, self.agent_counts, self.evacuated_counts,
                     self.avg_densities, self.peak_densities, self.fire_counts)
        with open(path, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for t, active, evacuated, avg, peak, fires in series:
                writer.writerow([f"{t:.2f}", active, evacuated, f"{avg:.4f}", f"{peak:.1f}", fires])
        return path

    def generate_summary_report(self) -> str:
        """Text report of the last compute_kpis() result."""
        if not self.kpis:
            return "No analytics data available."

        k = self.kpis
        rule = "=" * 60
        lines = [rule, "EVACUATION RUN SUMMARY", rule, ""]

        lines += _section("Population", [
            ("Agents spawned", f"{k['total_agents']}"),
            ("Evacuated", f"{k['total_evacuated']} ({k['evacuation_rate']:.1%})"),
            ("Simulated time", f"{k['simulation_time']:.1f}s"),
        ])

        if k['T50'] is not None:
            rows = [(f"T{pct}", f"{k[f'T{pct}']:.1f}s") for pct in PERCENTILES]
            rows.append(("Mean", f"{k['mean_evacuation_time']:.1f}s"))
            rows.append(("Max", f"{k['max_evacuation_time']:.1f}s"))
            lines += _section("Evacuation times", rows)

        if 'mean_density' in k:
            lines += _section("Density (agents/cell)", [
                ("Mean", f"{k['mean_density']:.4f}"),
                ("Peak", f"{k['peak_density']:.0f}"),
            ])

        lines.append(rule)
        return "\n".join(lines)


def _section(title: str, rows: List[Tuple[str, str]]) -> List[str]:
    width = max(len(label) for label, _ in rows)
    return [f"{title}:"] + [f"  {label.ljust(width)}  {value}" for label, value in rows] + [""]
