"""
Domain models for schedules, periods and derived slots.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pendulum
from pendulum import Date

from .intervals import duration_minutes, is_valid_time, normalize_time

WEEKDAY_NUMBERS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


def parse_date(value: Any) -> Date:
    """
    Coerce a date-like value into a ``pendulum.Date``.

    Accepts ``pendulum.Date``, ``datetime.date``, ``datetime.datetime`` and
    ``YYYY-MM-DD`` strings.

    Raises:
        ValueError: If the value cannot be interpreted as a date
    """
    if isinstance(value, datetime):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
        except ValueError as exc:
            raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc
    raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")


class ScheduleType(str, Enum):
    """Kinds of schedule a subject can own."""
    AVAILABILITY = "availability"
    APPOINTMENT = "appointment"
    BLOCKED = "blocked"
    CUSTOM = "custom"

    def prevents_overlaps(self) -> bool:
        """Appointments and blocked time claim exclusive use of their periods."""
        return self in (ScheduleType.APPOINTMENT, ScheduleType.BLOCKED)

    def allows_overlaps(self) -> bool:
        """Availability is additive capacity and never excludes anything."""
        return self is ScheduleType.AVAILABILITY


class Frequency(str, Enum):
    """Recurrence frequencies."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class SubjectRef:
    """Explicit identity of the entity owning schedules."""
    type: str
    id: Any

    def __str__(self) -> str:
        return f"{self.type}#{self.id}"


@dataclass(frozen=True)
class FrequencyConfig:
    """
    Recurrence parameters.

    ``days`` holds lower-case weekday names for weekly schedules; ``None``
    means "not configured" and falls back to Monday. ``day_of_month`` is used
    by monthly schedules and falls back to the schedule's start day.
    """
    days: Optional[Tuple[str, ...]] = None
    day_of_month: Optional[int] = None

    def weekday_numbers(self) -> frozenset:
        """Allowed weekdays as ``date.weekday()`` numbers (Monday=0)."""
        days = self.days if self.days is not None else ("monday",)
        return frozenset(WEEKDAY_NUMBERS.get(day.lower(), 0) for day in days)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FrequencyConfig":
        """
        Build from a plain mapping.

        Raises:
            ValueError: If the mapping, its day list or its day of month is malformed
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("Frequency config must be a mapping")

        days = data.get("days")
        if days is not None and not isinstance(days, (list, tuple)):
            raise ValueError(
                f"Frequency config 'days' must be a list of weekday names, got {days!r}"
            )

        day_of_month = data.get("day_of_month")
        if day_of_month is not None:
            try:
                day_of_month = int(day_of_month)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid day of month {day_of_month!r}") from None

        return cls(
            days=tuple(str(day).lower() for day in days) if days is not None else None,
            day_of_month=day_of_month,
        )


@dataclass(frozen=True)
class PeriodDefinition:
    """
    A start/end time pair belonging to one schedule.

    Recurring schedules carry dateless template periods; the date is supplied
    when the recurrence is expanded.

    Invariant: end_time must be after start_time.
    """
    start_time: str
    end_time: str
    date: Optional[Date] = None
    is_available: bool = True
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not is_valid_time(self.start_time) or not is_valid_time(self.end_time):
            raise ValueError(
                f"Period times must use HH:MM format, got {self.start_time}-{self.end_time}"
            )
        object.__setattr__(self, "start_time", normalize_time(self.start_time))
        object.__setattr__(self, "end_time", normalize_time(self.end_time))
        if self.date is not None:
            object.__setattr__(self, "date", parse_date(self.date))
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Start time {self.start_time} must be before end time {self.end_time}"
            )

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return duration_minutes(self.start_time, self.end_time)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PeriodDefinition":
        return cls(
            start_time=coerce_time(data["start_time"]),
            end_time=coerce_time(data["end_time"]),
            date=data.get("date"),
            is_available=bool(data.get("is_available", True)),
            metadata=data.get("metadata"),
        )

    def __str__(self) -> str:
        prefix = self.date.to_date_string() if self.date else "template"
        return f"{prefix} from {self.start_time} to {self.end_time}"


@dataclass(frozen=True)
class ExpandedPeriodInstance:
    """A concrete, dated occurrence of a period."""
    date: Date
    start_time: str
    end_time: str


@dataclass(frozen=True)
class ScheduleDefinition:
    """
    A date-ranged schedule owned by a subject, with its periods eagerly loaded.

    Instances are immutable; updates produce a new value via
    ``dataclasses.replace``. ``id`` is ``None`` for hypothetical schedules
    that have not been persisted.
    """
    subject: SubjectRef
    schedule_type: ScheduleType
    start_date: Date
    end_date: Optional[Date] = None
    is_recurring: bool = False
    frequency: Frequency = Frequency.NONE
    frequency_config: FrequencyConfig = field(default_factory=FrequencyConfig)
    periods: Tuple[PeriodDefinition, ...] = ()
    id: Optional[Any] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        object.__setattr__(self, "start_date", parse_date(self.start_date))
        if self.end_date is not None:
            object.__setattr__(self, "end_date", parse_date(self.end_date))
            if self.end_date < self.start_date:
                raise ValueError(
                    f"End date {self.end_date} must not be before start date {self.start_date}"
                )
        object.__setattr__(self, "periods", tuple(self.periods))

    def display_name(self) -> str:
        """Name used in messages; falls back to the id."""
        if self.name:
            return self.name
        return f"Schedule #{self.id}" if self.id is not None else "Unsaved schedule"

    def is_active_on(self, on_date: Any) -> bool:
        """True if the schedule is active and its date range covers ``on_date``."""
        if not self.is_active:
            return False
        check = parse_date(on_date)
        return self.start_date <= check and (self.end_date is None or check <= self.end_date)

    def prevents_overlaps(self) -> bool:
        return self.schedule_type.prevents_overlaps()

    def allows_overlaps(self) -> bool:
        return self.schedule_type.allows_overlaps()

    def total_duration_minutes(self) -> int:
        """Sum of the durations of all periods."""
        return sum(period.duration_minutes() for period in self.periods)

    def periods_on(self, on_date: Date) -> List[PeriodDefinition]:
        """Concrete periods dated on ``on_date``; dateless ones count as ``start_date``."""
        return [
            period for period in self.periods
            if (period.date or self.start_date) == on_date
        ]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScheduleDefinition":
        """
        Build a schedule from a plain mapping (as loaded from YAML/JSON).

        Raises:
            KeyError: If a required key is missing
            ValueError: If a value is invalid
        """
        subject = data["subject"]
        return cls(
            id=data.get("id"),
            subject=SubjectRef(type=str(subject["type"]), id=subject["id"]),
            schedule_type=ScheduleType(data.get("schedule_type", ScheduleType.CUSTOM.value)),
            start_date=data["start_date"],
            end_date=data.get("end_date"),
            is_recurring=bool(data.get("is_recurring", False)),
            frequency=Frequency(data.get("frequency") or Frequency.NONE.value),
            frequency_config=FrequencyConfig.from_mapping(data.get("frequency_config")),
            periods=tuple(PeriodDefinition.from_mapping(p) for p in data.get("periods", [])),
            name=data.get("name"),
            description=data.get("description"),
            is_active=bool(data.get("is_active", True)),
            metadata=data.get("metadata"),
        )


@dataclass(frozen=True)
class Slot:
    """
    A candidate booking window derived from availability.
    """
    start_time: str
    end_time: str
    is_available: bool
    buffer_minutes: int = 0

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return duration_minutes(self.start_time, self.end_time)

    def format_display(self, on_date: Optional[Date] = None) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:MM - HH:MM (N min)
        """
        time_str = f"{self.start_time} - {self.end_time} ({self.duration_minutes()} min)"
        if on_date is None:
            return time_str
        return f"{on_date.format('dddd, YYYY-MM-DD')} | {time_str}"


def coerce_time(value: Any) -> str:
    """Return a time value as a string, undoing YAML sexagesimal integers."""
    # YAML 1.1 loads unquoted 10:30 as the sexagesimal integer 630
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value // 60:02d}:{value % 60:02d}"
    return str(value)
