"""
Validation of schedule creation and update requests.

Structural checks and configurable business rules run over the raw request
(attribute and period mappings). Field errors are collected and raised
together as ``InvalidScheduleError``; a confirmed overlap with an existing
exclusive schedule aborts immediately with ``ScheduleConflictError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

from pendulum import Date

from .conflict_detector import ConflictDetector
from .exceptions import InvalidScheduleError, ScheduleConflictError
from .intervals import duration_minutes, is_valid_time, overlaps
from .models import (
    Frequency,
    FrequencyConfig,
    PeriodDefinition,
    ScheduleDefinition,
    ScheduleType,
    SubjectRef,
    parse_date,
)
from .rules import (
    MaxDurationRule,
    NoOverlapRule,
    NoWeekendsRule,
    RuleConfig,
    WorkingHoursRule,
    coerce_rule,
)

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger(__name__)

OtherSchedulesLoader = Callable[[], Sequence[ScheduleDefinition]]


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of a validation pass.

    Exactly one of ``errors`` / ``conflicts`` is non-empty on failure; both
    are empty when the request is valid.
    """
    errors: Dict[str, str] = field(default_factory=dict)
    conflicts: List[ScheduleDefinition] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.conflicts

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def raise_for_failure(self) -> None:
        """Re-raise the failure this outcome describes, if any."""
        if self.conflicts:
            raise ScheduleConflictError(self.conflicts, message=self.message)
        if self.errors:
            raise InvalidScheduleError(self.errors)


@dataclass
class _ValidationContext:
    subject: SubjectRef
    attributes: Mapping[str, Any]
    periods: Sequence[Mapping[str, Any]]
    load_others: OtherSchedulesLoader
    today: Date
    schedule_type: Optional[ScheduleType] = None
    start_date: Optional[Date] = None
    end_date: Optional[Date] = None
    no_overlap_checked: bool = False


class ScheduleValidator:
    """
    Validates proposed schedules against structural constraints and rules.
    """

    def __init__(self, config: "EngineConfig", detector: ConflictDetector):
        self._config = config
        self._detector = detector

    def validate(
        self,
        subject: SubjectRef,
        attributes: Mapping[str, Any],
        periods: Sequence[Mapping[str, Any]],
        today: Date,
        rules: Optional[Mapping[str, Any]] = None,
        load_others: Optional[OtherSchedulesLoader] = None,
    ) -> None:
        """
        Validate a schedule request.

        Args:
            subject: Owner of the proposed schedule
            attributes: Schedule attributes (start_date, end_date, schedule_type, ...)
            periods: Period mappings (start_time, end_time, optional date)
            today: Current date, used by the future-dates check
            rules: Explicit per-call rule configuration, overriding defaults
            load_others: Returns the subject's other active schedules; only
                called when an overlap check runs

        Raises:
            InvalidScheduleError: With every collected field error
            ScheduleConflictError: As soon as an overlap is confirmed
        """
        rules = dict(rules or {})
        ctx = _ValidationContext(
            subject=subject,
            attributes=attributes,
            periods=list(periods or []),
            load_others=load_others or (lambda: []),
            today=today,
        )

        errors: Dict[str, str] = {}
        errors.update(self._validate_attributes(ctx))
        errors.update(self._validate_periods(ctx))
        errors.update(self._validate_rules(ctx, rules))

        if errors:
            logger.debug("Schedule for %s failed validation: %s", subject, sorted(errors))
            raise InvalidScheduleError(errors)

    def evaluate(
        self,
        subject: SubjectRef,
        attributes: Mapping[str, Any],
        periods: Sequence[Mapping[str, Any]],
        today: Date,
        rules: Optional[Mapping[str, Any]] = None,
        load_others: Optional[OtherSchedulesLoader] = None,
    ) -> ValidationOutcome:
        """Like ``validate`` but returns the failure as a ``ValidationOutcome``."""
        try:
            self.validate(subject, attributes, periods, today, rules=rules, load_others=load_others)
        except ScheduleConflictError as exc:
            return ValidationOutcome(conflicts=exc.conflicts, message=str(exc))
        except InvalidScheduleError as exc:
            return ValidationOutcome(errors=exc.errors, message=str(exc))
        return ValidationOutcome()

    def build_schedule(
        self,
        subject: SubjectRef,
        attributes: Mapping[str, Any],
        periods: Sequence[Mapping[str, Any]],
    ) -> ScheduleDefinition:
        """
        Build a hypothetical schedule from request data.

        Dateless periods of a one-off schedule are placed on its start date.
        Periods with unusable times are left out.

        Raises:
            ValueError: If the schedule attributes are unusable
        """
        start_date = parse_date(attributes["start_date"])
        end_date = attributes.get("end_date")
        is_recurring = bool(attributes.get("is_recurring", False))

        built_periods = []
        for period in periods:
            start_time, end_time = period.get("start_time"), period.get("end_time")
            if not is_valid_time(start_time) or not is_valid_time(end_time):
                continue
            if duration_minutes(start_time, end_time) <= 0:
                continue
            period_date = period.get("date")
            if period_date is None and not is_recurring:
                period_date = start_date
            built_periods.append(
                PeriodDefinition(
                    start_time=start_time,
                    end_time=end_time,
                    date=period_date,
                    is_available=bool(period.get("is_available", True)),
                    metadata=period.get("metadata"),
                )
            )

        frequency_config = attributes.get("frequency_config")
        if not isinstance(frequency_config, FrequencyConfig):
            frequency_config = FrequencyConfig.from_mapping(frequency_config)

        return ScheduleDefinition(
            id=attributes.get("id"),
            subject=subject,
            schedule_type=ScheduleType(attributes.get("schedule_type") or ScheduleType.CUSTOM),
            start_date=start_date,
            end_date=parse_date(end_date) if end_date else None,
            is_recurring=is_recurring,
            frequency=Frequency(attributes.get("frequency") or Frequency.NONE),
            frequency_config=frequency_config,
            periods=tuple(built_periods),
            name=attributes.get("name"),
            description=attributes.get("description"),
            is_active=True,
            metadata=attributes.get("metadata"),
        )

    # -- structural checks -------------------------------------------------

    def _validate_attributes(self, ctx: _ValidationContext) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        attributes = ctx.attributes
        validation = self._config.validation

        raw_type = attributes.get("schedule_type") or ScheduleType.CUSTOM
        try:
            ctx.schedule_type = ScheduleType(raw_type)
        except ValueError:
            allowed = ", ".join(t.value for t in ScheduleType)
            errors["schedule_type"] = f"Unknown schedule type '{raw_type}'. Use one of: {allowed}"

        if not attributes.get("start_date"):
            errors["start_date"] = "A start date is required for the schedule"
        else:
            try:
                ctx.start_date = parse_date(attributes["start_date"])
            except ValueError as exc:
                errors["start_date"] = str(exc)

        if attributes.get("end_date"):
            try:
                ctx.end_date = parse_date(attributes["end_date"])
            except ValueError as exc:
                errors["end_date"] = str(exc)

        if ctx.start_date is not None and ctx.end_date is not None:
            if ctx.end_date <= ctx.start_date:
                errors["end_date"] = "The end date must be after the start date"
            elif ctx.start_date.diff(ctx.end_date).in_days() > validation.max_date_range:
                errors["end_date"] = (
                    f"The schedule duration cannot exceed {validation.max_date_range} days"
                )

        if validation.require_future_dates and ctx.start_date is not None:
            if ctx.start_date < ctx.today:
                errors["start_date"] = (
                    "The schedule cannot be created in the past. Please choose a future date"
                )

        frequency = attributes.get("frequency")
        if frequency:
            try:
                Frequency(frequency)
            except ValueError:
                errors["frequency"] = f"Unsupported frequency '{frequency}'"

        frequency_config = attributes.get("frequency_config")
        if frequency_config is not None and not isinstance(frequency_config, FrequencyConfig):
            try:
                FrequencyConfig.from_mapping(frequency_config)
            except ValueError as exc:
                errors["frequency_config"] = str(exc)

        return errors

    def _validate_periods(self, ctx: _ValidationContext) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        periods = ctx.periods
        validation = self._config.validation

        if not periods:
            errors["periods"] = "At least one time period must be defined for the schedule"
            return errors

        if len(periods) > validation.max_periods_per_schedule:
            errors["periods"] = (
                "Too many time periods. A schedule cannot have more than "
                f"{validation.max_periods_per_schedule} periods"
            )

        for index, period in enumerate(periods):
            errors.update(self._validate_single_period(period, index, validation.min_period_duration))

        if not validation.allow_overlapping_periods:
            errors.update(self._check_period_overlaps(periods))

        return errors

    @staticmethod
    def _validate_single_period(period: Mapping[str, Any], index: int, min_minutes: int) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        prefix = f"periods.{index}"
        start_time = period.get("start_time")
        end_time = period.get("end_time")

        if not start_time:
            errors[f"{prefix}.start_time"] = "A start time is required for this period"
        elif not is_valid_time(start_time):
            errors[f"{prefix}.start_time"] = (
                f"Invalid start time format '{start_time}'. Please use HH:MM format (e.g., 09:30)"
            )

        if not end_time:
            errors[f"{prefix}.end_time"] = "An end time is required for this period"
        elif not is_valid_time(end_time):
            errors[f"{prefix}.end_time"] = (
                f"Invalid end time format '{end_time}'. Please use HH:MM format (e.g., 17:30)"
            )

        if is_valid_time(start_time) and is_valid_time(end_time):
            duration = duration_minutes(start_time, end_time)
            if duration <= 0:
                errors[f"{prefix}.end_time"] = (
                    f"End time ({end_time}) must be after start time ({start_time})"
                )
            elif duration < min_minutes:
                errors[f"{prefix}.duration"] = (
                    f"Period is too short ({duration} minutes). "
                    f"Minimum duration is {min_minutes} minutes"
                )

        if period.get("date"):
            try:
                parse_date(period["date"])
            except ValueError as exc:
                errors[f"{prefix}.date"] = str(exc)

        return errors

    @staticmethod
    def _check_period_overlaps(periods: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        for i, first in enumerate(periods):
            for j in range(i + 1, len(periods)):
                second = periods[j]

                # Only periods on the same date (or both dateless) can clash
                if _date_key(first) != _date_key(second):
                    continue

                times = (first.get("start_time"), first.get("end_time"),
                         second.get("start_time"), second.get("end_time"))
                if not all(is_valid_time(t) for t in times):
                    continue

                if overlaps(*times):
                    errors[f"periods.{i}.overlap"] = (
                        f"Period {i} ({times[0]}-{times[1]}) overlaps with "
                        f"period {j} ({times[2]}-{times[3]})"
                    )

        return errors

    # -- business rules ----------------------------------------------------

    def _validate_rules(self, ctx: _ValidationContext, rules: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        defaults = self._config.default_rules

        # Rules given for this call
        for name, raw in rules.items():
            rule = coerce_rule(name, raw, fallback=defaults.get(name))
            if rule is None or not rule.enabled:
                continue
            errors.update(self._apply_rule(name, rule, ctx))

        # Enabled defaults the caller did not mention
        for name, rule in defaults.items():
            if name in rules or not rule.enabled:
                continue
            errors.update(self._apply_rule(name, rule, ctx))

        # Exclusive schedule types always get the overlap check
        if self._forces_no_overlap(ctx, rules):
            self._validate_no_overlap(defaults.no_overlap, ctx)

        return errors

    def _apply_rule(self, name: str, rule: RuleConfig, ctx: _ValidationContext) -> Dict[str, str]:
        logger.debug("Applying rule '%s' to schedule for %s", name, ctx.subject)

        if isinstance(rule, WorkingHoursRule):
            return self._validate_working_hours(rule, ctx.periods)
        if isinstance(rule, MaxDurationRule):
            return self._validate_max_duration(rule, ctx.periods)
        if isinstance(rule, NoWeekendsRule):
            return self._validate_no_weekends(rule, ctx)
        if isinstance(rule, NoOverlapRule):
            self._validate_no_overlap(rule, ctx)
        return {}

    def _forces_no_overlap(self, ctx: _ValidationContext, rules: Dict[str, Any]) -> bool:
        default_rule = self._config.default_rules.no_overlap

        if "no_overlap" in rules:
            explicit = coerce_rule("no_overlap", rules["no_overlap"], fallback=default_rule)
            if explicit is not None and not explicit.enabled:
                return False

        if not default_rule.enabled or ctx.schedule_type is None:
            return False

        return ctx.schedule_type in default_rule.applies_to

    @staticmethod
    def _validate_working_hours(rule: WorkingHoursRule, periods: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        window = rule.window()
        if window is None:
            return {}

        work_start, work_end = window
        errors: Dict[str, str] = {}

        for index, period in enumerate(periods):
            start_time, end_time = period.get("start_time"), period.get("end_time")
            if not is_valid_time(start_time) or not is_valid_time(end_time):
                continue

            if duration_minutes(work_start, start_time) < 0 or duration_minutes(end_time, work_end) < 0:
                errors[f"periods.{index}.working_hours"] = (
                    f"Period {start_time}-{end_time} is outside working hours ({work_start}-{work_end})"
                )

        return errors

    @staticmethod
    def _validate_max_duration(rule: MaxDurationRule, periods: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        if not rule.minutes or rule.minutes <= 0:
            return {}

        errors: Dict[str, str] = {}

        for index, period in enumerate(periods):
            start_time, end_time = period.get("start_time"), period.get("end_time")
            if not is_valid_time(start_time) or not is_valid_time(end_time):
                continue

            duration = duration_minutes(start_time, end_time)
            if duration > rule.minutes:
                hours = round(duration / 60, 1)
                max_hours = round(rule.minutes / 60, 1)
                errors[f"periods.{index}.max_duration"] = (
                    f"Period {start_time}-{end_time} is too long ({hours} hours). "
                    f"Maximum allowed is {max_hours} hours"
                )

        return errors

    @staticmethod
    def _validate_no_weekends(rule: NoWeekendsRule, ctx: _ValidationContext) -> Dict[str, str]:
        blocked_days = set()
        if rule.saturday:
            blocked_days.add(5)
        if rule.sunday:
            blocked_days.add(6)
        if not blocked_days:
            return {}

        errors: Dict[str, str] = {}

        if ctx.start_date is not None and ctx.start_date.weekday() in blocked_days:
            errors["start_date"] = (
                f"Schedule cannot start on {ctx.start_date.format('dddd')}. "
                "Weekend schedules are not allowed"
            )

        for index, period in enumerate(ctx.periods):
            if not period.get("date"):
                continue
            try:
                period_date = parse_date(period["date"])
            except ValueError:
                continue
            if period_date.weekday() in blocked_days:
                errors[f"periods.{index}.date"] = (
                    f"Period cannot be scheduled on {period_date.format('dddd')}. "
                    "Weekend periods are not allowed"
                )

        return errors

    def _validate_no_overlap(self, rule: NoOverlapRule, ctx: _ValidationContext) -> None:
        # Both the rule loop and the type-driven step can get here
        if ctx.no_overlap_checked:
            return
        ctx.no_overlap_checked = True

        if not self._config.conflict_detection.enabled:
            return

        if ctx.start_date is None or ctx.schedule_type is None:
            return

        try:
            candidate = self.build_schedule(ctx.subject, ctx.attributes, ctx.periods)
        except ValueError as exc:
            logger.debug("Skipping overlap check, schedule cannot be built: %s", exc)
            return

        others = ctx.load_others()
        if candidate.schedule_type is ScheduleType.CUSTOM:
            conflicts = self._detector.find_conflicts(candidate, others, compare_all_exclusive=True)
        else:
            conflicts = self._detector.find_conflicts(candidate, others, applies_to=rule.applies_to)

        if conflicts:
            logger.info(
                "Schedule for %s conflicts with %d existing schedule(s)", ctx.subject, len(conflicts)
            )
            raise ScheduleConflictError(conflicts, schedule_name=candidate.name)


def _date_key(period: Mapping[str, Any]) -> Any:
    raw = period.get("date")
    if not raw:
        return None
    try:
        return parse_date(raw)
    except ValueError:
        return raw
