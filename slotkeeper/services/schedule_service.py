"""
Write-side service for schedules.

Creation validates the request through the engine before anything is stored;
updates are re-checked for conflicts after the write and rolled back by the
store's transaction when one is found.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from ..domain.exceptions import ScheduleConflictError
from ..domain.models import (
    Frequency,
    FrequencyConfig,
    PeriodDefinition,
    ScheduleDefinition,
    ScheduleType,
    SubjectRef,
)
from .schedule_engine import ScheduleEngine

logger = logging.getLogger(__name__)


class ScheduleStore(Protocol):
    """Protocol describing the write access the service needs."""

    def get(self, schedule_id: Any) -> ScheduleDefinition:
        """Return the schedule or raise ``ScheduleNotFoundError``."""

    def save(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        """Persist the schedule and return it with its id."""

    def delete(self, schedule_id: Any) -> bool:
        """Remove the schedule; False if it did not exist."""

    def transaction(self) -> AbstractContextManager:
        """Context manager undoing writes when its block raises."""


class ScheduleService:
    """
    Creates, updates and deletes schedules.

    Args:
        engine: Engine used for validation and conflict checks
        store: Persistence for schedules
    """

    def __init__(self, engine: ScheduleEngine, store: ScheduleStore) -> None:
        self._engine = engine
        self._store = store

    def create(
        self,
        subject: SubjectRef,
        attributes: Mapping[str, Any],
        periods: Sequence[Mapping[str, Any]] = (),
        rules: Optional[Mapping[str, Any]] = None,
    ) -> ScheduleDefinition:
        """
        Validate and store a new schedule.

        Raises:
            InvalidScheduleError: If the request has field errors
            ScheduleConflictError: If it overlaps an existing exclusive schedule
        """
        data: Dict[str, Any] = dict(attributes)
        data.setdefault("is_active", True)
        data.setdefault("is_recurring", False)
        data.pop("id", None)

        with self._store.transaction():
            self._engine.validate(subject, data, periods, rules).raise_for_failure()
            schedule = self._engine.validator.build_schedule(subject, data, periods)
            schedule = self._store.save(schedule)

        logger.info("Created schedule %s for %s", schedule.id, subject)
        return schedule

    def update(
        self,
        schedule_id: Any,
        attributes: Mapping[str, Any],
        periods: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> ScheduleDefinition:
        """
        Apply attribute changes and, when given, replace the periods.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
            ScheduleConflictError: If the updated schedule conflicts; the
                write is rolled back
        """
        with self._store.transaction():
            current = self._store.get(schedule_id)
            updated = self._apply_changes(current, attributes, periods)
            updated = self._store.save(updated)

            conflicts = self._engine.find_conflicts(updated)
            if conflicts:
                logger.info(
                    "Update of schedule %s conflicts with %d schedule(s)",
                    schedule_id,
                    len(conflicts),
                )
                raise ScheduleConflictError(
                    conflicts,
                    schedule_name=updated.name,
                    message="Updated schedule conflicts with existing schedules",
                )

        return updated

    def delete(self, schedule_id: Any) -> bool:
        """Delete a schedule together with its periods."""
        with self._store.transaction():
            deleted = self._store.delete(schedule_id)
        if deleted:
            logger.info("Deleted schedule %s", schedule_id)
        return deleted

    @staticmethod
    def _apply_changes(
        schedule: ScheduleDefinition,
        attributes: Mapping[str, Any],
        periods: Optional[Sequence[Mapping[str, Any]]],
    ) -> ScheduleDefinition:
        changes: Dict[str, Any] = {}
        for key in ("name", "description", "start_date", "end_date", "is_active",
                    "is_recurring", "frequency", "schedule_type", "metadata"):
            if key in attributes:
                changes[key] = attributes[key]

        if "frequency_config" in attributes:
            raw = attributes["frequency_config"]
            changes["frequency_config"] = (
                raw if isinstance(raw, FrequencyConfig) else FrequencyConfig.from_mapping(raw)
            )

        if periods is not None:
            changes["periods"] = tuple(PeriodDefinition.from_mapping(p) for p in periods)

        if "schedule_type" in changes:
            changes["schedule_type"] = ScheduleType(changes["schedule_type"])
        if "frequency" in changes:
            changes["frequency"] = Frequency(changes["frequency"] or Frequency.NONE)

        return replace(schedule, **changes)
