"""
Simulation Configuration
Settings dataclasses and YAML loader for the evacuation engine
"""

import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Dict, Any


class ConfigError(ValueError):
    """Raised when a configuration value is missing or out of range."""


@dataclass
class AgentSettings:
    max_agents: int = 500
    speed: float = 1.0  # m/s
    spawn_probability: float = 0.1
    impaired_probability: float = 0.1
    impaired_speed_factor: float = 0.5
    arrival_epsilon: float = 0.1
    destination_tolerance: float = 0.5
    overcrowd_threshold: float = 20.0
    retry_interval: int = 5  # ticks between retries for pathless agents
    initial_count: int = 0


@dataclass
class PathfindingWeights:
    base_cost: float = 1.0
    density_multiplier: float = 2.0
    risk_multiplier: float = 10.0
    max_density: float = 100.0
    alternate_cost_multiplier: float = 2.0
    crowd_feedback_threshold: float = 50.0
    max_expansions: Optional[int] = None


@dataclass
class FireSourceSpec:
    position: Tuple[float, float]
    radius: float = 0.0
    intensity: float = 50.0


@dataclass
class FireSettings:
    growth_rate: float = 0.1  # radius units per tick
    max_radius: float = 50.0
    sources: List[FireSourceSpec] = field(default_factory=list)


@dataclass
class EvacuationPointSpec:
    position: Tuple[float, float]
    label: str = ""


@dataclass
class AnalyticsSettings:
    enabled: bool = True
    export_csv: bool = True
    csv_path: str = "output/analytics.csv"
    compute_heatmaps: bool = True
    bottleneck_threshold: float = 4.0


@dataclass
class VisualizationSettings:
    enabled: bool = False
    frames_dir: Optional[str] = None
    heatmap_path: str = "output/heatmaps/density_heatmap.png"
    show_paths: bool = True


@dataclass
class SimulationSettings:
    """
    Complete settings for one simulation run.

    Passed explicitly into SimulationClock and CrowdEngine; nothing here is
    process-wide state.
    """
    grid_size: int = 100
    tick_interval: float = 0.1  # seconds
    presentation_interval: float = 1.0  # seconds
    duration: Optional[float] = None
    seed: Optional[int] = None
    floor: str = "all"
    building_path: Optional[str] = None
    circulation_cost: float = 0.5
    output_dir: str = "output"
    agents: AgentSettings = field(default_factory=AgentSettings)
    pathfinding: PathfindingWeights = field(default_factory=PathfindingWeights)
    fire: FireSettings = field(default_factory=FireSettings)
    evacuation_points: List[EvacuationPointSpec] = field(default_factory=list)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    visualization: VisualizationSettings = field(default_factory=VisualizationSettings)

    def validate(self) -> "SimulationSettings":
        """Check value ranges, raising ConfigError on the first violation."""
        if self.grid_size <= 0:
            raise ConfigError(f"grid.size must be positive, got {self.grid_size}")
        if self.tick_interval <= 0:
            raise ConfigError(f"simulation.tick_interval must be positive, got {self.tick_interval}")
        if self.presentation_interval < self.tick_interval:
            raise ConfigError("simulation.presentation_interval must be >= tick_interval")
        if self.duration is not None and self.duration < 0:
            raise ConfigError(f"simulation.duration must be >= 0, got {self.duration}")

        agents = self.agents
        if agents.max_agents < 0:
            raise ConfigError(f"agents.max_agents must be >= 0, got {agents.max_agents}")
        if agents.speed <= 0:
            raise ConfigError(f"agents.speed must be positive, got {agents.speed}")
        for name in ('spawn_probability', 'impaired_probability'):
            value = getattr(agents, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"agents.{name} must be in [0, 1], got {value}")
        if agents.impaired_speed_factor <= 0:
            raise ConfigError("agents.impaired_speed_factor must be positive")
        if agents.retry_interval < 1:
            raise ConfigError("agents.retry_interval must be >= 1")

        weights = self.pathfinding
        if weights.base_cost < 0:
            raise ConfigError("pathfinding.base_cost must be >= 0")
        if weights.max_density <= 0:
            raise ConfigError("pathfinding.max_density must be positive")
        if weights.max_expansions is not None and weights.max_expansions <= 0:
            raise ConfigError("pathfinding.max_expansions must be positive when set")

        if self.fire.growth_rate < 0:
            raise ConfigError("fire.growth_rate must be >= 0")
        if self.fire.max_radius < 0:
            raise ConfigError("fire.max_radius must be >= 0")
        for source in self.fire.sources:
            if source.radius < 0:
                raise ConfigError(f"fire source radius must be >= 0, got {source.radius}")
            if not 0.0 <= source.intensity <= 100.0:
                raise ConfigError(f"fire source intensity must be in [0, 100], got {source.intensity}")
            self._check_on_grid(source.position, 'fire source position')
        for point in self.evacuation_points:
            self._check_on_grid(point.position, f"evacuation point {point.label!r} position")
        return self

    def _check_on_grid(self, position: Tuple[float, float], what: str):
        x, z = position
        if not (0.0 <= x < self.grid_size and 0.0 <= z < self.grid_size):
            raise ConfigError(f"{what} {tuple(position)} lies outside the "
                              f"{self.grid_size}x{self.grid_size} grid")


def _pair(value: Any, what: str) -> Tuple[float, float]:
    try:
        x, z = value
        return float(x), float(z)
    except (TypeError, ValueError):
        raise ConfigError(f"{what} must be an [x, z] pair, got {value!r}")


def settings_from_dict(raw: Dict[str, Any]) -> SimulationSettings:
    """
    Build SimulationSettings from a parsed YAML mapping.

    Missing sections and keys fall back to the dataclass defaults.

    Args:
        raw: Mapping as produced by yaml.safe_load

    Returns:
        Validated settings
    """
    raw = raw or {}
    sim = raw.get('simulation') or {}
    grid = raw.get('grid') or {}
    agents_raw = raw.get('agents') or {}
    path_raw = raw.get('pathfinding') or {}
    fire_raw = raw.get('fire') or {}
    analytics_raw = raw.get('analytics') or {}
    viz_raw = raw.get('visualization') or {}
    building_raw = raw.get('building') or {}

    defaults = AgentSettings()
    agents = AgentSettings(
        max_agents=int(agents_raw.get('max_agents', defaults.max_agents)),
        speed=float(agents_raw.get('speed', defaults.speed)),
        spawn_probability=float(agents_raw.get('spawn_probability', defaults.spawn_probability)),
        impaired_probability=float(agents_raw.get('impaired_probability', defaults.impaired_probability)),
        impaired_speed_factor=float(agents_raw.get('impaired_speed_factor', defaults.impaired_speed_factor)),
        arrival_epsilon=float(agents_raw.get('arrival_epsilon', defaults.arrival_epsilon)),
        destination_tolerance=float(agents_raw.get('destination_tolerance', defaults.destination_tolerance)),
        overcrowd_threshold=float(agents_raw.get('overcrowd_threshold', defaults.overcrowd_threshold)),
        retry_interval=int(agents_raw.get('retry_interval', defaults.retry_interval)),
        initial_count=int(agents_raw.get('initial_count', defaults.initial_count))
    )

    weights_defaults = PathfindingWeights()
    max_expansions = path_raw.get('max_expansions', weights_defaults.max_expansions)
    weights = PathfindingWeights(
        base_cost=float(path_raw.get('base_cost', weights_defaults.base_cost)),
        density_multiplier=float(path_raw.get('density_multiplier', weights_defaults.density_multiplier)),
        risk_multiplier=float(path_raw.get('risk_multiplier', weights_defaults.risk_multiplier)),
        max_density=float(path_raw.get('max_density', weights_defaults.max_density)),
        alternate_cost_multiplier=float(path_raw.get('alternate_cost_multiplier',
                                                     weights_defaults.alternate_cost_multiplier)),
        crowd_feedback_threshold=float(path_raw.get('crowd_feedback_threshold',
                                                    weights_defaults.crowd_feedback_threshold)),
        max_expansions=int(max_expansions) if max_expansions is not None else None
    )

    fire = FireSettings(
        growth_rate=float(fire_raw.get('growth_rate', FireSettings.growth_rate)),
        max_radius=float(fire_raw.get('max_radius', FireSettings.max_radius)),
        sources=[
            FireSourceSpec(
                position=_pair(src.get('position'), 'fire source position'),
                radius=float(src.get('radius', 0.0)),
                intensity=float(src.get('intensity', 50.0))
            )
            for src in fire_raw.get('sources') or []
        ]
    )

    evacuation_points = [
        EvacuationPointSpec(
            position=_pair(point.get('position'), 'evacuation point position'),
            label=str(point.get('label', f"Exit {i}"))
        )
        for i, point in enumerate(raw.get('evacuation_points') or [])
    ]

    analytics = AnalyticsSettings(
        enabled=bool(analytics_raw.get('enabled', True)),
        export_csv=bool(analytics_raw.get('export_csv', True)),
        csv_path=str(analytics_raw.get('csv_path', AnalyticsSettings.csv_path)),
        compute_heatmaps=bool(analytics_raw.get('compute_heatmaps', True)),
        bottleneck_threshold=float(analytics_raw.get('bottleneck_threshold',
                                                     AnalyticsSettings.bottleneck_threshold))
    )

    visualization = VisualizationSettings(
        enabled=bool(viz_raw.get('enabled', False)),
        frames_dir=viz_raw.get('frames_dir'),
        heatmap_path=str(viz_raw.get('heatmap_path', VisualizationSettings.heatmap_path)),
        show_paths=bool(viz_raw.get('show_paths', True))
    )

    duration = sim.get('duration')
    settings = SimulationSettings(
        grid_size=int(grid.get('size', SimulationSettings.grid_size)),
        tick_interval=float(sim.get('tick_interval', SimulationSettings.tick_interval)),
        presentation_interval=float(sim.get('presentation_interval',
                                            SimulationSettings.presentation_interval)),
        duration=float(duration) if duration is not None else None,
        seed=sim.get('seed'),
        floor=str(building_raw.get('floor', 'all')),
        building_path=building_raw.get('path'),
        circulation_cost=float(grid.get('circulation_cost', SimulationSettings.circulation_cost)),
        output_dir=str((raw.get('output') or {}).get('directory', 'output')),
        agents=agents,
        pathfinding=weights,
        fire=fire,
        evacuation_points=evacuation_points,
        analytics=analytics,
        visualization=visualization
    )
    return settings.validate()


def load_config(config_path: str) -> SimulationSettings:
    """Load settings from a YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' not found")
    with open(path, 'r') as f:
        raw = yaml.safe_load(f)
    if raw is not None and not isinstance(raw, dict):
        raise ConfigError(f"Configuration file '{path}' must contain a mapping")
    return settings_from_dict(raw)
