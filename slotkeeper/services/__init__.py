"""
Services layer - Orchestration of the scheduling engine and storage.
"""

from .schedule_engine import NEXT_SLOT_HORIZON_DAYS, ScheduleEngine, ScheduleRepository, system_clock
from .schedule_service import ScheduleService, ScheduleStore

__all__ = [
    "NEXT_SLOT_HORIZON_DAYS",
    "ScheduleEngine",
    "ScheduleRepository",
    "ScheduleService",
    "ScheduleStore",
    "system_clock",
]
