"""
Tests for conflict detection between schedules.
"""

from typing import Any, Optional, Sequence, Tuple

import pendulum

from slotkeeper.config import EngineConfig
from slotkeeper.domain.conflict_detector import ConflictDetector
from slotkeeper.domain.models import (
    Frequency,
    FrequencyConfig,
    PeriodDefinition,
    ScheduleDefinition,
    ScheduleType,
    SubjectRef,
)

DOCTOR = SubjectRef(type="doctor", id=1)


def _schedule(
    schedule_type: ScheduleType,
    start_date: str,
    periods: Sequence[Tuple[str, str]],
    id: Optional[Any] = None,
    end_date: Optional[str] = None,
    weekly_days: Optional[Sequence[str]] = None,
) -> ScheduleDefinition:
    recurring = weekly_days is not None
    return ScheduleDefinition(
        id=id,
        subject=DOCTOR,
        schedule_type=schedule_type,
        start_date=start_date,
        end_date=end_date,
        is_recurring=recurring,
        frequency=Frequency.WEEKLY if recurring else Frequency.NONE,
        frequency_config=FrequencyConfig(days=tuple(weekly_days) if recurring else None),
        periods=tuple(PeriodDefinition(start_time=s, end_time=e) for s, e in periods),
    )


def _detector(**config: Any) -> ConflictDetector:
    return ConflictDetector(EngineConfig.from_mapping(config))


class TestTypePolicy:
    """Tests for the pairwise comparison gate."""

    def test_availability_never_compared(self):
        detector = _detector()
        availability = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("08:00", "18:00")])
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")])

        assert not detector.should_compare(availability, appointment)
        assert not detector.should_compare(appointment, availability)

    def test_exclusive_types_compared(self):
        detector = _detector()
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")])
        blocked = _schedule(ScheduleType.BLOCKED, "2025-01-06", [("09:30", "10:30")])

        assert detector.should_compare(appointment, blocked)

    def test_custom_outside_default_type_set(self):
        detector = _detector()
        custom = _schedule(ScheduleType.CUSTOM, "2025-01-06", [("09:00", "10:00")])
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")])

        assert not detector.should_compare(custom, appointment)
        assert detector.should_compare(
            custom, appointment, applies_to=[ScheduleType.CUSTOM, ScheduleType.APPOINTMENT]
        )

    def test_disabled_no_overlap_rule_stops_comparison(self):
        detector = _detector(default_rules={"no_overlap": False})
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")])
        blocked = _schedule(ScheduleType.BLOCKED, "2025-01-06", [("09:30", "10:30")])

        assert not detector.should_compare(appointment, blocked)


class TestFindConflicts:
    """Tests for ConflictDetector.find_conflicts."""

    def test_appointment_and_blocked_conflict(self):
        """Overlapping exclusive schedules on the same date conflict."""
        detector = _detector()
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        blocked = _schedule(ScheduleType.BLOCKED, "2025-01-06", [("09:30", "10:30")], id=2)
        availability = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("08:00", "18:00")], id=3)

        assert detector.find_conflicts(appointment, [blocked, availability]) == [blocked]
        assert detector.find_conflicts(blocked, [appointment, availability]) == [appointment]
        assert detector.find_conflicts(availability, [appointment, blocked]) == []

    def test_two_availability_schedules_never_conflict(self):
        detector = _detector()
        first = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("08:00", "18:00")], id=1)
        second = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("08:00", "18:00")], id=2)

        assert detector.find_conflicts(first, [second]) == []

    def test_different_dates_do_not_conflict(self):
        detector = _detector()
        monday = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        tuesday = _schedule(ScheduleType.APPOINTMENT, "2025-01-07", [("09:00", "10:00")], id=2)

        assert detector.find_conflicts(monday, [tuesday]) == []

    def test_touching_periods_do_not_conflict(self):
        detector = _detector()
        first = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        second = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("10:00", "11:00")], id=2)

        assert detector.find_conflicts(first, [second]) == []

    def test_recurring_schedule_conflicts_on_matching_weekday(self):
        """A weekly Monday appointment clashes with a one-off on a later Monday."""
        detector = _detector()
        weekly = _schedule(
            ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1, weekly_days=["monday"]
        )
        later_monday = _schedule(ScheduleType.BLOCKED, "2025-01-13", [("09:30", "09:45")], id=2)
        tuesday = _schedule(ScheduleType.BLOCKED, "2025-01-14", [("09:30", "09:45")], id=3)

        assert detector.find_conflicts(weekly, [later_monday, tuesday]) == [later_monday]
        assert detector.find_conflicts(later_monday, [weekly]) == [weekly]

    def test_custom_candidate_checked_against_all_exclusive(self):
        detector = _detector()
        custom = _schedule(ScheduleType.CUSTOM, "2025-01-06", [("09:00", "10:00")])
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:30", "10:30")], id=1)
        availability = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("08:00", "18:00")], id=2)

        assert detector.find_conflicts(custom, [appointment, availability]) == []
        assert detector.find_conflicts(
            custom, [appointment, availability], compare_all_exclusive=True
        ) == [appointment]

    def test_buffer_from_config(self):
        """The configured buffer turns a short gap into a conflict."""
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        blocked = _schedule(ScheduleType.BLOCKED, "2025-01-06", [("10:10", "11:00")], id=2)

        assert _detector().find_conflicts(appointment, [blocked]) == []
        assert _detector(conflict_detection={"buffer_minutes": 15}).find_conflicts(
            appointment, [blocked]
        ) == [blocked]
        assert _detector().find_conflicts(appointment, [blocked], buffer_minutes=15) == [blocked]

    def test_detection_disabled(self):
        detector = _detector(conflict_detection={"enabled": False})
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        blocked = _schedule(ScheduleType.BLOCKED, "2025-01-06", [("09:30", "10:30")], id=2)

        assert detector.find_conflicts(appointment, [blocked]) == []
        assert not detector.has_conflicts(appointment, [blocked])

    def test_candidate_skips_itself_and_reports_each_conflict_once(self):
        detector = _detector()
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        blocked = _schedule(ScheduleType.BLOCKED, "2025-01-06", [("09:30", "10:30")], id=2)

        assert detector.find_conflicts(appointment, [appointment, blocked, blocked]) == [blocked]

    def test_find_conflicts_is_idempotent(self):
        detector = _detector()
        appointment = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        others = [_schedule(ScheduleType.BLOCKED, "2025-01-06", [("09:30", "10:30")], id=2)]

        assert detector.find_conflicts(appointment, others) == detector.find_conflicts(appointment, others)


class TestSchedulesOverlap:
    """Tests for the type-agnostic overlap test."""

    def test_ignores_type_policy(self):
        detector = _detector()
        first = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("08:00", "18:00")])
        second = _schedule(ScheduleType.AVAILABILITY, "2025-01-06", [("09:00", "10:00")])

        assert detector.schedules_overlap(first, second)

    def test_disjoint_date_ranges(self):
        detector = _detector()
        first = _schedule(
            ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], end_date="2025-01-10",
            weekly_days=["monday"],
        )
        second = _schedule(ScheduleType.APPOINTMENT, "2025-02-03", [("09:00", "10:00")])

        assert not detector.schedules_overlap(first, second)


class TestFindPeriodConflicts:
    """Tests for point-in-time period checks."""

    def test_matches_one_off_and_recurring(self):
        detector = _detector()
        one_off = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("09:00", "10:00")], id=1)
        weekly = _schedule(
            ScheduleType.BLOCKED, "2025-01-01", [("09:30", "11:00")], id=2, weekly_days=["monday"]
        )
        elsewhere = _schedule(ScheduleType.APPOINTMENT, "2025-01-06", [("14:00", "15:00")], id=3)

        found = detector.find_period_conflicts(
            [one_off, weekly, elsewhere], pendulum.date(2025, 1, 6), "09:45", "10:15"
        )

        assert found == [one_off, weekly]

    def test_recurring_schedule_off_day(self):
        detector = _detector()
        weekly = _schedule(
            ScheduleType.BLOCKED, "2025-01-01", [("09:30", "11:00")], id=2, weekly_days=["monday"]
        )

        assert detector.find_period_conflicts([weekly], pendulum.date(2025, 1, 7), "09:45", "10:15") == []
