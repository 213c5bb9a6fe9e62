"""
Domain-specific exception hierarchy for the scheduling engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from .models import ScheduleDefinition


class SchedulingError(Exception):
    """Base class for all engine-level errors."""


class InvalidScheduleError(SchedulingError):
    """
    Raised when a proposed schedule fails structural or rule validation.

    ``errors`` maps a field key (``start_date``, ``periods.0.end_time``, ...)
    to a human-readable message. All failures of one validation pass are
    collected before this is raised.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__(self._build_message(self.errors))

    @staticmethod
    def _build_message(errors: Dict[str, str]) -> str:
        count = len(errors)
        summary = (
            "Schedule validation failed with 1 error:"
            if count == 1
            else f"Schedule validation failed with {count} errors:"
        )
        lines = [f"• {field}: {message}" for field, message in errors.items()]
        return "\n".join([summary, *lines])


class ScheduleConflictError(SchedulingError):
    """
    Raised when a schedule overlaps one or more existing exclusive schedules.

    Carries the full conflict set so callers can render or inspect it.
    """

    def __init__(
        self,
        conflicts: Sequence["ScheduleDefinition"],
        schedule_name: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.conflicts: List["ScheduleDefinition"] = list(conflicts)
        self.schedule_name = schedule_name or "New schedule"
        super().__init__(message or self._build_message())

    def _build_message(self) -> str:
        if len(self.conflicts) == 1:
            conflict = self.conflicts[0]
            message = (
                f"Schedule conflict detected! '{self.schedule_name}' conflicts with "
                f"existing schedule '{conflict.display_name()}'."
            )
            recurrence = _describe_recurrence(conflict, separator=" on ")
            if recurrence:
                message += f" The conflicting schedule is a {recurrence} schedule."
            return message

        lines = [
            f"Multiple schedule conflicts detected! '{self.schedule_name}' conflicts "
            f"with {len(self.conflicts)} existing schedules:"
        ]
        for conflict in self.conflicts:
            line = f"• {conflict.display_name()}"
            recurrence = _describe_recurrence(conflict, separator=" - ")
            if recurrence:
                line += f" ({recurrence})"
            lines.append(line)
        return "\n".join(lines)


class ScheduleNotFoundError(SchedulingError):
    """Raised when a schedule id is unknown to the store."""


def _describe_recurrence(schedule: "ScheduleDefinition", separator: str) -> str:
    if not schedule.is_recurring:
        return ""

    frequency = schedule.frequency.value
    description = "Recurring" if frequency == "none" else frequency.capitalize()
    days = schedule.frequency_config.days
    if frequency == "weekly" and days:
        description += separator + ", ".join(day.capitalize() for day in days)
    return description
