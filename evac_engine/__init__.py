"""
Crowd Evacuation Pathfinding Engine
Grid-based A* routing and replanning for evacuating crowds under spreading fire
"""

__version__ = "1.0.0"

from .config import SimulationSettings, ConfigError, load_config, settings_from_dict
from .environment import GridEnvironment, GridCell, CostOverlay, EvacuationPoint, OutOfBoundsError
from .hazard_manager import FireModel, FireSource
from .pathfinding import Pathfinder, PathResult
from .agent import Agent, AgentClass
from .crowd import CrowdEngine, CrowdStatistics, DensityMap, DensityCell
from .building import BuildingModel, load_building, sample_building
from .analytics import AnalyticsCollector
from .simulation_engine import SimulationClock, SimulationSnapshot

__all__ = [
    'SimulationSettings',
    'ConfigError',
    'load_config',
    'settings_from_dict',
    'GridEnvironment',
    'GridCell',
    'CostOverlay',
    'EvacuationPoint',
    'OutOfBoundsError',
    'FireModel',
    'FireSource',
    'Pathfinder',
    'PathResult',
    'Agent',
    'AgentClass',
    'CrowdEngine',
    'CrowdStatistics',
    'DensityMap',
    'DensityCell',
    'BuildingModel',
    'load_building',
    'sample_building',
    'AnalyticsCollector',
    'SimulationClock',
    'SimulationSnapshot'
]
