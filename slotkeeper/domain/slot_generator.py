"""
Core logic for generating bookable time slots.

Pure domain logic: the caller supplies the subject's schedules for the day,
no storage is touched here.
"""

from typing import Dict, Iterable, List, Tuple

import pendulum
from pendulum import Date, DateTime

from .intervals import buffered_overlaps
from .models import PeriodDefinition, ScheduleDefinition, ScheduleType, Slot
from .recurrence import RecurrenceExpander

MINUTES_PER_DAY = 1440

BLOCKING_TYPES = (ScheduleType.APPOINTMENT, ScheduleType.BLOCKED, ScheduleType.CUSTOM)


class SlotGenerator:
    """
    Generates fixed-length bookable slots inside availability windows.

    Algorithm:
    1. Collect availability windows for the date
    2. Collect blocking schedules active on the date
    3. Walk each window in steps of duration + buffer, marking each
       candidate available unless a blocking period overlaps it
    4. Merge, deduplicate by (start, end) and sort by start time
    """

    def __init__(self, expander: RecurrenceExpander, conflict_buffer_minutes: int = 0):
        self.expander = expander
        self.conflict_buffer_minutes = max(0, conflict_buffer_minutes)

    def generate(
        self,
        on_date: Date,
        schedules: Iterable[ScheduleDefinition],
        slot_duration: int = 60,
        buffer_minutes: int = 0,
    ) -> List[Slot]:
        """
        Generate bookable slots for one date.

        Args:
            on_date: Date to generate slots for
            schedules: The subject's schedules (any type) relevant to the date
            slot_duration: Length of each slot in minutes
            buffer_minutes: Gap inserted between consecutive slots

        Returns:
            Slots sorted by start time, each (start, end) pair listed once
        """
        if slot_duration <= 0:
            return []

        buffer_minutes = max(0, buffer_minutes)
        schedules = list(schedules)

        # Step 1: availability windows
        windows = self.availability_windows(on_date, schedules)
        if not windows:
            return []

        # Step 2: blocking schedules
        blocking = [
            schedule for schedule in schedules
            if schedule.schedule_type in BLOCKING_TYPES and schedule.is_active_on(on_date)
        ]

        # Step 3: candidates per window
        slots: Dict[Tuple[str, str], Slot] = {}
        for window in windows:
            for slot in self._slots_for_window(on_date, window, blocking, slot_duration, buffer_minutes):
                slots.setdefault((slot.start_time, slot.end_time), slot)

        # Step 4: sort
        return sorted(slots.values(), key=lambda s: (s.start_time, s.end_time))

    def availability_windows(
        self,
        on_date: Date,
        schedules: Iterable[ScheduleDefinition],
    ) -> List[PeriodDefinition]:
        """
        Availability periods that apply on ``on_date``.

        Recurring availability contributes its template periods when the
        recurrence selects the date; one-off availability contributes the
        periods dated on it.
        """
        windows: List[PeriodDefinition] = []

        for schedule in schedules:
            if schedule.schedule_type is not ScheduleType.AVAILABILITY:
                continue
            if not schedule.is_active_on(on_date):
                continue

            if schedule.is_recurring:
                if self.expander.matches_date(schedule, on_date):
                    windows.extend(schedule.periods)
            else:
                windows.extend(schedule.periods_on(on_date))

        return windows

    def blocks_time(
        self,
        schedule: ScheduleDefinition,
        on_date: Date,
        start_time: str,
        end_time: str,
    ) -> bool:
        """
        Check if ``schedule`` occupies any part of ``[start_time, end_time)``
        on ``on_date``, widening its periods by the conflict buffer.
        """
        if not schedule.is_active_on(on_date):
            return False

        if schedule.is_recurring:
            if not self.expander.matches_date(schedule, on_date):
                return False
            periods = schedule.periods
        else:
            periods = schedule.periods_on(on_date)

        return any(
            buffered_overlaps(
                period.start_time,
                period.end_time,
                start_time,
                end_time,
                self.conflict_buffer_minutes,
            )
            for period in periods
        )

    def is_slot_available(
        self,
        on_date: Date,
        start_time: str,
        end_time: str,
        blocking: Iterable[ScheduleDefinition],
    ) -> bool:
        """True if no blocking schedule occupies the slot."""
        for schedule in blocking:
            if schedule.schedule_type in BLOCKING_TYPES and self.blocks_time(
                schedule, on_date, start_time, end_time
            ):
                return False
        return True

    def _slots_for_window(
        self,
        on_date: Date,
        window: PeriodDefinition,
        blocking: List[ScheduleDefinition],
        slot_duration: int,
        buffer_minutes: int,
    ) -> List[Slot]:
        slots: List[Slot] = []
        slot_interval = slot_duration + buffer_minutes
        max_iterations = MINUTES_PER_DAY // slot_interval + 1

        current = self._at(on_date, window.start_time)
        window_end = self._at(on_date, window.end_time)
        iterations = 0

        while current < window_end and iterations < max_iterations:
            slot_end = current.add(minutes=slot_duration)
            if slot_end > window_end:
                break

            start_time = current.format("HH:mm")
            end_time = slot_end.format("HH:mm")
            slots.append(
                Slot(
                    start_time=start_time,
                    end_time=end_time,
                    is_available=self.is_slot_available(on_date, start_time, end_time, blocking),
                    buffer_minutes=buffer_minutes,
                )
            )

            current = current.add(minutes=slot_interval)
            iterations += 1

        return slots

    @staticmethod
    def _at(on_date: Date, time_of_day: str) -> DateTime:
        hours, minutes = time_of_day.split(":")
        return pendulum.datetime(on_date.year, on_date.month, on_date.day, int(hours), int(minutes))
