"""
Main Application Entry Point
Command-line interface for running evacuation simulations
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from evac_engine.analytics import AnalyticsCollector
from evac_engine.building import load_building, sample_building
from evac_engine.config import ConfigError, load_config
from evac_engine.simulation_engine import SimulationClock


def progress_printer(interval: float):
    """Snapshot listener printing a progress line every `interval` simulated seconds."""
    state = {'next': interval}

    def _print(snapshot):
        if snapshot.time + 1e-9 < state['next']:
            return
        state['next'] += interval
        stats = snapshot.statistics
        print(f"Time: {snapshot.time:.1f}s | Active: {stats.total_agents} | "
              f"Evacuated: {stats.evacuated} | Fires: {stats.fire_sources} | "
              f"Avg density: {stats.average_density:.4f}")

    return _print


def main():
    """Main application entry point."""
    parser = argparse.ArgumentParser(
        description='Crowd Evacuation Pathfinding Engine',
        epilog='Examples:\n'
               '  python main.py\n'
               '  python main.py --config config.yaml --agents 100 --duration 60\n'
               '  python main.py --floor floor-2 --no-viz',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--agents',
        type=int,
        help='Maximum number of agents'
    )
    parser.add_argument(
        '--duration',
        type=float,
        help='Simulation duration in seconds'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Random seed'
    )
    parser.add_argument(
        '--floor',
        type=str,
        help="Floor id to build the navigation grid for ('all' for every floor)"
    )
    parser.add_argument(
        '--realtime',
        action='store_true',
        help='Pace ticks at wall-clock speed'
    )
    parser.add_argument(
        '--no-viz',
        action='store_true',
        help='Disable visualization (faster)'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Debug logging'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Load configuration
    print("Loading configuration...")
    try:
        settings = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # Apply command-line overrides
    if args.agents is not None:
        settings.agents.max_agents = args.agents
    if args.duration is not None:
        settings.duration = args.duration
    if args.seed is not None:
        settings.seed = args.seed
    if args.floor:
        settings.floor = args.floor
    if args.no_viz:
        settings.visualization.enabled = False

    try:
        settings.validate()
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if settings.duration is None:
        settings.duration = 60.0

    output_dir = Path(settings.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if settings.building_path:
        building = load_building(settings.building_path)
    else:
        building = sample_building()

    analytics = AnalyticsCollector(settings.analytics)
    clock = SimulationClock.from_settings(settings, building, analytics)

    visualizer = None
    if settings.visualization.enabled:
        from evac_engine.visualizer import Visualizer
        visualizer = Visualizer(settings.visualization, clock.grid)
        clock.add_listener(visualizer.render_frame)
    clock.add_listener(progress_printer(5.0))

    info = building.building_info()
    print("=" * 60)
    print("Starting Crowd Evacuation Simulation")
    print("=" * 60)
    print(f"Building: {info['name']} ({info['floors']} floors, {info['total_area']:.0f} m²)")
    print(f"Floor: {settings.floor}, Grid: {settings.grid_size}x{settings.grid_size}")
    print(f"Duration: {settings.duration}s, Tick: {settings.tick_interval}s")
    print(f"Max agents: {settings.agents.max_agents}")
    print(f"Evacuation points: {len(clock.crowd.evacuation_points)}")
    print(f"Fire sources: {len(clock.fire_model.sources)}")
    print("=" * 60)

    start_time = time.time()
    try:
        clock.run(realtime=args.realtime)
    except KeyboardInterrupt:
        clock.stop()
        print("\n\nSimulation interrupted by user.")
    elapsed_time = time.time() - start_time

    print("\n" + "=" * 60)
    print("Simulation Complete")
    print("=" * 60)
    print(f"Simulated time: {clock.current_time:.1f}s")
    print(f"Real time: {elapsed_time:.1f}s")
    if elapsed_time > 0:
        print(f"Speed: {clock.current_time / elapsed_time:.1f}x realtime")

    stats = clock.crowd.get_statistics()
    analytics.compute_kpis(stats.spawned, clock.current_time)
    print(analytics.generate_summary_report())

    bottlenecks = analytics.detect_bottlenecks()
    if bottlenecks:
        print(f"\nDetected {len(bottlenecks)} bottleneck cells:")
        for i, bn in enumerate(bottlenecks[:5]):
            print(f"  {i+1}. Cell {bn['cell']}, Density: {bn['density']:.2f} agents/cell")

    csv_path = analytics.export_to_csv()
    if csv_path is not None:
        print(f"\nTime series data exported to {csv_path}")

    if visualizer is not None and analytics.compute_heatmaps:
        visualizer.export_heatmap(
            analytics.generate_heatmap(),
            'Agent Density Heatmap',
            settings.visualization.heatmap_path,
            clock.snapshot().evacuation_points
        )


if __name__ == '__main__':
    main()
