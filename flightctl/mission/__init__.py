"""
Mission module

Mission item models, QGroundControl plan import and formation plan generation.
"""

from .models import (
    MissionItem,
    MissionPlan,
    MissionProgress,
    Position,
)
from .importer import PlanImporter, QgcPlanImporter, PlanImportError
from .generate import (
    ShapeMission,
    CircleMission,
    SquareMission,
    LineMission,
    Waypoint,
)

__all__ = [
    # Models
    'MissionItem',
    'MissionPlan',
    'MissionProgress',
    'Position',
    # Import
    'PlanImporter',
    'QgcPlanImporter',
    'PlanImportError',
    # Generation
    'ShapeMission',
    'CircleMission',
    'SquareMission',
    'LineMission',
    'Waypoint',
]
