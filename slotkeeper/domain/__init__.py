"""
Domain layer - Pure scheduling logic without storage or I/O.
"""

from .conflict_detector import ConflictDetector
from .exceptions import (
    InvalidScheduleError,
    ScheduleConflictError,
    ScheduleNotFoundError,
    SchedulingError,
)
from .models import (
    ExpandedPeriodInstance,
    Frequency,
    FrequencyConfig,
    PeriodDefinition,
    ScheduleDefinition,
    ScheduleType,
    Slot,
    SubjectRef,
    parse_date,
)
from .recurrence import RecurrenceExpander
from .slot_generator import SlotGenerator
from .validator import ScheduleValidator, ValidationOutcome

__all__ = [
    "ConflictDetector",
    "ExpandedPeriodInstance",
    "Frequency",
    "FrequencyConfig",
    "InvalidScheduleError",
    "PeriodDefinition",
    "RecurrenceExpander",
    "ScheduleConflictError",
    "ScheduleDefinition",
    "ScheduleNotFoundError",
    "ScheduleType",
    "ScheduleValidator",
    "SchedulingError",
    "Slot",
    "SlotGenerator",
    "SubjectRef",
    "ValidationOutcome",
    "parse_date",
]
