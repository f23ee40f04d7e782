"""
Time-blocking scheduler engine
"""

from .availability import compute_availability
from .conflict_manager import overlaps
from .preview import SchedulingService
from .prioritizer import order
from .splitter import split
from .status import is_valid_transition, sweep_missed
from .time_block_planner import TimeBlockPlanner, place

__all__ = [
    "compute_availability",
    "overlaps",
    "order",
    "place",
    "split",
    "is_valid_transition",
    "sweep_missed",
    "TimeBlockPlanner",
    "SchedulingService",
]
