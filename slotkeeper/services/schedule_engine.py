"""
Application service exposing the scheduling engine.

The engine reads schedules through a repository protocol and delegates the
actual work to the domain-level detector, slot generator and validator. Keeping
storage behind a protocol lets tests plug in the in-memory repository or a
simple stub.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import Date

from ..config import EngineConfig
from ..domain.conflict_detector import ConflictDetector
from ..domain.models import (
    ExpandedPeriodInstance,
    ScheduleDefinition,
    ScheduleType,
    Slot,
    SubjectRef,
    parse_date,
)
from ..domain.recurrence import RecurrenceExpander
from ..domain.slot_generator import SlotGenerator
from ..domain.validator import ScheduleValidator, ValidationOutcome

logger = logging.getLogger(__name__)

# Days scanned by get_next_bookable_slot before giving up.
NEXT_SLOT_HORIZON_DAYS = 30

Clock = Callable[[], Date]


class ScheduleRepository(Protocol):
    """Protocol describing the read access the engine needs."""

    def other_active_schedules(
        self,
        subject: SubjectRef,
        exclude_id: Optional[Any] = None,
    ) -> List[ScheduleDefinition]:
        """Active schedules of ``subject`` except ``exclude_id``, periods included."""

    def schedules_for_subject_on_date(
        self,
        subject: SubjectRef,
        on_date: Date,
        types: Optional[Iterable[ScheduleType]] = None,
    ) -> List[ScheduleDefinition]:
        """Active schedules of ``subject`` whose range and recurrence cover ``on_date``."""


def system_clock() -> Date:
    """Today's date from the local system clock."""
    return pendulum.today().date()


class ScheduleEngine:
    """
    Facade over conflict detection, slot generation and validation.

    Args:
        repository: Read access to persisted schedules
        config: Engine configuration; built-in defaults when omitted
        clock: Returns today's date; injected so rule evaluation is deterministic
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repository = repository
        self._config = config or EngineConfig()
        self._clock = clock or system_clock

        self._expander = RecurrenceExpander()
        self._detector = ConflictDetector(self._config, self._expander)
        self._slot_generator = SlotGenerator(
            self._expander,
            conflict_buffer_minutes=self._config.conflict_detection.buffer_minutes,
        )
        self._validator = ScheduleValidator(self._config, self._detector)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def detector(self) -> ConflictDetector:
        return self._detector

    @property
    def validator(self) -> ScheduleValidator:
        return self._validator

    def today(self) -> Date:
        return self._clock()

    # -- validation --------------------------------------------------------

    def validate(
        self,
        subject: SubjectRef,
        attributes: Mapping[str, Any],
        periods: Sequence[Mapping[str, Any]],
        rules: Optional[Mapping[str, Any]] = None,
        *,
        exclude_id: Optional[Any] = None,
        today: Optional[Date] = None,
    ) -> ValidationOutcome:
        """
        Validate a schedule creation or update request.

        Args:
            subject: Owner of the proposed schedule
            attributes: Proposed schedule attributes
            periods: Proposed periods
            rules: Explicit rule configuration for this call
            exclude_id: Schedule id to leave out of the overlap check (updates)
            today: Overrides the injected clock

        Returns:
            ValidationOutcome distinguishing field errors from conflicts
        """
        return self._validator.evaluate(
            subject,
            attributes,
            periods,
            today or self.today(),
            rules=rules,
            load_others=lambda: self._repository.other_active_schedules(subject, exclude_id),
        )

    # -- conflicts ---------------------------------------------------------

    def find_conflicts(self, schedule: ScheduleDefinition) -> List[ScheduleDefinition]:
        """Existing schedules of the same subject that conflict with ``schedule``."""
        if not self._config.conflict_detection.enabled:
            return []

        others = self._repository.other_active_schedules(schedule.subject, schedule.id)
        return self._detector.find_conflicts(schedule, others)

    def has_conflicts(self, schedule: ScheduleDefinition) -> bool:
        """Check if ``schedule`` conflicts with any existing schedule."""
        return bool(self.find_conflicts(schedule))

    def schedules_overlap(
        self,
        first: ScheduleDefinition,
        second: ScheduleDefinition,
        buffer_minutes: int = 0,
    ) -> bool:
        """Check if two schedules have overlapping periods, ignoring type policy."""
        return self._detector.schedules_overlap(first, second, buffer_minutes)

    def find_period_conflicts(
        self,
        subject: SubjectRef,
        on_date: Any,
        start_time: str,
        end_time: str,
    ) -> List[ScheduleDefinition]:
        """Schedules of ``subject`` with a period overlapping the given time on ``on_date``."""
        check_date = parse_date(on_date)
        schedules = self._repository.schedules_for_subject_on_date(subject, check_date)
        return self._detector.find_period_conflicts(schedules, check_date, start_time, end_time)

    def is_time_slot_available(
        self,
        subject: SubjectRef,
        on_date: Any,
        start_time: str,
        end_time: str,
    ) -> bool:
        """True if no schedule of ``subject`` occupies the given time."""
        return not self.find_period_conflicts(subject, on_date, start_time, end_time)

    def generate_recurring_instances(
        self,
        schedule: ScheduleDefinition,
        start: Any,
        end: Any,
    ) -> List[ExpandedPeriodInstance]:
        """Dated period instances of ``schedule`` within ``[start, end]``."""
        return self._expander.expand_range(
            schedule,
            window_start=parse_date(start),
            window_end=parse_date(end),
        )

    # -- bookable slots ----------------------------------------------------

    def get_bookable_slots(
        self,
        subject: SubjectRef,
        on_date: Any,
        slot_duration: int = 60,
        buffer_minutes: Optional[int] = None,
    ) -> List[Slot]:
        """
        Bookable slots of ``slot_duration`` minutes inside the subject's
        availability on ``on_date``.

        Args:
            subject: Subject to generate slots for
            on_date: Date to inspect
            slot_duration: Slot length in minutes; non-positive yields no slots
            buffer_minutes: Gap between slots; defaults to ``time_slots.buffer_minutes``
        """
        if slot_duration <= 0:
            return []

        check_date = parse_date(on_date)
        if buffer_minutes is None:
            buffer_minutes = self._config.time_slots.buffer_minutes

        schedules = self._repository.schedules_for_subject_on_date(subject, check_date)
        return self._slot_generator.generate(
            check_date,
            schedules,
            slot_duration=slot_duration,
            buffer_minutes=max(0, buffer_minutes),
        )

    def is_bookable_at(
        self,
        subject: SubjectRef,
        on_date: Any,
        slot_duration: int = 60,
        buffer_minutes: Optional[int] = None,
    ) -> bool:
        """True if at least one slot on ``on_date`` is available."""
        slots = self.get_bookable_slots(subject, on_date, slot_duration, buffer_minutes)
        return any(slot.is_available for slot in slots)

    def get_next_bookable_slot(
        self,
        subject: SubjectRef,
        after_date: Any = None,
        duration: int = 60,
        buffer_minutes: Optional[int] = None,
    ) -> Optional[Tuple[Slot, Date]]:
        """
        First available slot on or after ``after_date`` (default: today).

        Scans at most ``NEXT_SLOT_HORIZON_DAYS`` days. Returns None when
        nothing is bookable in that horizon.
        """
        if duration <= 0:
            return None

        check_date = parse_date(after_date) if after_date is not None else self.today()

        for _ in range(NEXT_SLOT_HORIZON_DAYS):
            for slot in self.get_bookable_slots(subject, check_date, duration, buffer_minutes):
                if slot.is_available:
                    return slot, check_date
            check_date = check_date.add(days=1)

        logger.debug("No bookable slot for %s within %d days", subject, NEXT_SLOT_HORIZON_DAYS)
        return None
