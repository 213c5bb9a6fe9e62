"""
Recurrence expansion for daily, weekly and monthly schedules.
"""

from typing import Iterable, List, Optional

import pendulum
from pendulum import Date

from .models import ExpandedPeriodInstance, Frequency, PeriodDefinition, ScheduleDefinition

# Expansion never looks further than one year past a schedule's start.
EXPANSION_HORIZON_YEARS = 1

# Hard ceiling on walk steps; one year of daily stepping fits comfortably.
MAX_EXPANSION_STEPS = 400

# Weekly stepping inspects at most one week ahead.
MAX_WEEKLY_LOOKAHEAD = 7


class RecurrenceExpander:
    """
    Decides which dates a recurring schedule applies to and materializes its
    template periods onto those dates.
    """

    def matches_date(self, schedule: ScheduleDefinition, on_date: Date) -> bool:
        """Return True if ``schedule``'s recurrence rule selects ``on_date``."""
        frequency = schedule.frequency

        if frequency is Frequency.DAILY:
            return True

        if frequency is Frequency.WEEKLY:
            return on_date.weekday() in schedule.frequency_config.weekday_numbers()

        if frequency is Frequency.MONTHLY:
            return on_date.day == self._day_of_month(schedule)

        return False

    def next_candidate(self, schedule: ScheduleDefinition, current: Date) -> Date:
        """
        Return the next date worth testing after ``current``.

        The result is always strictly later than ``current``.
        """
        frequency = schedule.frequency

        if frequency is Frequency.WEEKLY:
            allowed = schedule.frequency_config.weekday_numbers()
            candidate = current.add(days=1)
            for _ in range(MAX_WEEKLY_LOOKAHEAD):
                if candidate.weekday() in allowed:
                    return candidate
                candidate = candidate.add(days=1)
            # No weekday allowed at all
            return current.add(days=1)

        if frequency is Frequency.MONTHLY:
            day_of_month = self._day_of_month(schedule)
            if current.day < day_of_month <= current.days_in_month:
                return pendulum.date(current.year, current.month, day_of_month)

            next_month = current.add(months=1)
            return pendulum.date(
                next_month.year,
                next_month.month,
                min(max(day_of_month, 1), next_month.days_in_month),
            )

        return current.add(days=1)

    def effective_end(self, schedule: ScheduleDefinition) -> Date:
        """Last date expansion will consider for ``schedule``."""
        horizon = schedule.start_date.add(years=EXPANSION_HORIZON_YEARS)
        if schedule.end_date is None:
            return horizon
        return min(schedule.end_date, horizon)

    def generate_instances(
        self,
        schedule: ScheduleDefinition,
        window_start: Optional[Date] = None,
        window_end: Optional[Date] = None,
    ) -> List[Date]:
        """
        Dates on which a recurring schedule occurs.

        The walk starts at the schedule's start date and stops at the earliest
        of its end date, one year after its start, and ``window_end``. Dates
        before ``window_start`` are walked but not returned.
        """
        if not schedule.is_recurring:
            return []

        last = self.effective_end(schedule)
        if window_end is not None:
            last = min(last, window_end)

        dates: List[Date] = []
        current = schedule.start_date
        steps = 0

        while current <= last and steps < MAX_EXPANSION_STEPS:
            if (window_start is None or current >= window_start) and self.matches_date(schedule, current):
                dates.append(current)
            current = self.next_candidate(schedule, current)
            steps += 1

        return dates

    def expand_range(
        self,
        schedule: ScheduleDefinition,
        periods: Optional[Iterable[PeriodDefinition]] = None,
        window_start: Optional[Date] = None,
        window_end: Optional[Date] = None,
    ) -> List[ExpandedPeriodInstance]:
        """
        Materialize a schedule's periods as dated instances.

        Recurring schedules emit one instance per base period on every
        matching date. Non-recurring schedules return their concrete periods
        (dateless ones land on the start date) that fall inside the window.

        Args:
            schedule: Schedule to expand
            periods: Base periods; defaults to ``schedule.periods``
            window_start: Optional first date of interest
            window_end: Optional last date of interest

        Returns:
            Instances ordered by date, then by period order
        """
        base_periods = list(schedule.periods if periods is None else periods)
        if not base_periods:
            return []

        if not schedule.is_recurring:
            instances = [
                ExpandedPeriodInstance(
                    date=period.date or schedule.start_date,
                    start_time=period.start_time,
                    end_time=period.end_time,
                )
                for period in base_periods
            ]
            return [
                instance for instance in instances
                if (window_start is None or instance.date >= window_start)
                and (window_end is None or instance.date <= window_end)
            ]

        return [
            ExpandedPeriodInstance(
                date=occurrence,
                start_time=period.start_time,
                end_time=period.end_time,
            )
            for occurrence in self.generate_instances(schedule, window_start, window_end)
            for period in base_periods
        ]

    @staticmethod
    def _day_of_month(schedule: ScheduleDefinition) -> int:
        day_of_month = schedule.frequency_config.day_of_month
        return day_of_month if day_of_month is not None else schedule.start_date.day
