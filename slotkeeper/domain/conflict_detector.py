"""
Conflict detection between schedules.

Two schedules conflict when the type policy requires exclusivity and, after
recurrence expansion, some pair of their periods on the same calendar date
overlaps (with an optional buffer tolerance).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence

import pendulum
from pendulum import Date

from .intervals import buffered_overlaps, overlaps
from .models import ExpandedPeriodInstance, ScheduleDefinition, ScheduleType
from .recurrence import RecurrenceExpander

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger(__name__)

# Stand-in end date for open-ended schedules in the coarse range test.
FAR_FUTURE = pendulum.date(2099, 12, 31)


class ConflictDetector:
    """
    Decides whether schedules conflict.

    The detector never mutates schedules and never touches storage; callers
    supply the counterpart schedules as a snapshot.
    """

    def __init__(self, config: "EngineConfig", expander: Optional[RecurrenceExpander] = None):
        self._config = config
        self._expander = expander or RecurrenceExpander()

    @property
    def expander(self) -> RecurrenceExpander:
        return self._expander

    def should_compare(
        self,
        first: ScheduleDefinition,
        second: ScheduleDefinition,
        applies_to: Optional[Iterable[ScheduleType]] = None,
    ) -> bool:
        """
        Policy gate deciding whether two schedules are checked at all.

        Availability never conflicts. Otherwise both types must be covered by
        an enabled no-overlap rule.
        """
        if first.allows_overlaps() or second.allows_overlaps():
            return False

        no_overlap = self._config.default_rules.no_overlap
        if not no_overlap.enabled:
            return False

        covered = set(applies_to if applies_to is not None else no_overlap.applies_to)
        return first.schedule_type in covered and second.schedule_type in covered

    def schedules_overlap(
        self,
        first: ScheduleDefinition,
        second: ScheduleDefinition,
        buffer_minutes: int = 0,
    ) -> bool:
        """
        Check if two schedules have overlapping periods on a shared date.

        Args:
            first: Schedule whose periods receive the buffer
            second: Counterpart schedule
            buffer_minutes: Tolerance added around ``first``'s periods

        Returns:
            True on the first overlapping period pair found
        """
        # Step 1: coarse date-range test
        if not self._date_ranges_overlap(first, second):
            return False

        # Step 2: fine period test within the shared window
        window_start = min(first.start_date, second.start_date)
        window_end = max(self._expander.effective_end(first), self._expander.effective_end(second))

        first_by_date = self._instances_by_date(first, window_start, window_end)
        if not first_by_date:
            return False

        for instance in self._materialize(second, window_start, window_end):
            for candidate in first_by_date.get(instance.date, ()):
                if buffered_overlaps(
                    candidate.start_time,
                    candidate.end_time,
                    instance.start_time,
                    instance.end_time,
                    buffer_minutes,
                ):
                    return True

        return False

    def find_conflicts(
        self,
        candidate: ScheduleDefinition,
        others: Iterable[ScheduleDefinition],
        buffer_minutes: Optional[int] = None,
        applies_to: Optional[Iterable[ScheduleType]] = None,
        compare_all_exclusive: bool = False,
    ) -> List[ScheduleDefinition]:
        """
        Return the schedules in ``others`` that conflict with ``candidate``.

        ``candidate`` may be hypothetical (no id). Each conflicting schedule
        is reported once, in input order.

        Args:
            candidate: Schedule being checked
            others: Snapshot of the subject's other active schedules
            buffer_minutes: Tolerance; defaults to ``conflict_detection.buffer_minutes``
            applies_to: Override of the no-overlap type set
            compare_all_exclusive: Compare against every non-Availability
                schedule regardless of the type set
        """
        detection = self._config.conflict_detection
        if not detection.enabled:
            return []

        if buffer_minutes is None:
            buffer_minutes = detection.buffer_minutes
        applies_to = list(applies_to) if applies_to is not None else None

        conflicts: List[ScheduleDefinition] = []
        seen = set()

        for other in others:
            if candidate.id is not None and other.id == candidate.id:
                continue

            key = other.id if other.id is not None else id(other)
            if key in seen:
                continue

            if compare_all_exclusive:
                should_check = not (candidate.allows_overlaps() or other.allows_overlaps())
            else:
                should_check = self.should_compare(candidate, other, applies_to)

            if should_check and self.schedules_overlap(candidate, other, buffer_minutes):
                seen.add(key)
                conflicts.append(other)

        logger.debug(
            "Found %d conflict(s) for %s among counterpart schedules",
            len(conflicts),
            candidate.display_name(),
        )
        return conflicts

    def has_conflicts(self, candidate: ScheduleDefinition, others: Iterable[ScheduleDefinition]) -> bool:
        """Check if ``candidate`` conflicts with any of ``others``."""
        return bool(self.find_conflicts(candidate, others))

    def find_period_conflicts(
        self,
        schedules: Sequence[ScheduleDefinition],
        on_date: Date,
        start_time: str,
        end_time: str,
    ) -> List[ScheduleDefinition]:
        """
        Schedules with a period on ``on_date`` overlapping ``[start_time, end_time)``.

        Recurring schedules contribute their template periods when the
        recurrence selects the date.
        """
        matches: List[ScheduleDefinition] = []
        for schedule in schedules:
            if not schedule.is_active_on(on_date):
                continue
            if schedule.is_recurring:
                if not self._expander.matches_date(schedule, on_date):
                    continue
                periods = schedule.periods
            else:
                periods = schedule.periods_on(on_date)

            if any(overlaps(p.start_time, p.end_time, start_time, end_time) for p in periods):
                matches.append(schedule)
        return matches

    @staticmethod
    def _date_ranges_overlap(first: ScheduleDefinition, second: ScheduleDefinition) -> bool:
        first_end = first.end_date or FAR_FUTURE
        second_end = second.end_date or FAR_FUTURE
        return first.start_date <= second_end and first_end >= second.start_date

    def _instances_by_date(
        self,
        schedule: ScheduleDefinition,
        window_start: Date,
        window_end: Date,
    ) -> Dict[Date, List[ExpandedPeriodInstance]]:
        grouped: Dict[Date, List[ExpandedPeriodInstance]] = defaultdict(list)
        for instance in self._materialize(schedule, window_start, window_end):
            grouped[instance.date].append(instance)
        return grouped

    def _materialize(
        self,
        schedule: ScheduleDefinition,
        window_start: Date,
        window_end: Date,
    ) -> List[ExpandedPeriodInstance]:
        # Concrete periods are compared as dated, only recurrences are bounded
        if not schedule.is_recurring:
            return self._expander.expand_range(schedule)
        return self._expander.expand_range(schedule, window_start=window_start, window_end=window_end)
