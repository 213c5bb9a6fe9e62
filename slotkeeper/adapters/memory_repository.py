"""
In-memory schedule repository.

Backs the CLI (loaded from a YAML data file) and the test-suite. Writes can be
grouped in ``transaction()``, which restores the previous state if the block
raises.
"""

import itertools
import logging
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import yaml
from pendulum import Date

from ..domain.exceptions import ScheduleNotFoundError
from ..domain.models import ScheduleDefinition, ScheduleType, SubjectRef
from ..domain.recurrence import RecurrenceExpander

logger = logging.getLogger(__name__)


class InMemoryScheduleRepository:
    """
    Keeps schedules in a dict keyed by id.

    Schedules without an id receive the next integer id when saved.
    """

    def __init__(self, schedules: Iterable[ScheduleDefinition] = ()):
        self._schedules: Dict[Any, ScheduleDefinition] = {}
        self._ids = itertools.count(1)
        self._expander = RecurrenceExpander()

        for schedule in schedules:
            self.save(schedule)

    def __len__(self) -> int:
        return len(self._schedules)

    def all(self) -> List[ScheduleDefinition]:
        return list(self._schedules.values())

    def get(self, schedule_id: Any) -> ScheduleDefinition:
        """
        Raises:
            ScheduleNotFoundError: If no schedule has ``schedule_id``
        """
        try:
            return self._schedules[schedule_id]
        except KeyError:
            raise ScheduleNotFoundError(f"Schedule {schedule_id!r} does not exist") from None

    def save(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        """Insert or replace a schedule, assigning an id when it has none."""
        if schedule.id is None:
            schedule = replace(schedule, id=self._next_id())
        self._schedules[schedule.id] = schedule
        return schedule

    def delete(self, schedule_id: Any) -> bool:
        """Remove a schedule; returns False if it did not exist."""
        return self._schedules.pop(schedule_id, None) is not None

    @contextmanager
    def transaction(self) -> Iterator["InMemoryScheduleRepository"]:
        """Group writes; any exception restores the state from before the block."""
        snapshot = dict(self._schedules)
        try:
            yield self
        except Exception:
            logger.debug("Rolling back schedule repository transaction")
            self._schedules = snapshot
            raise

    def other_active_schedules(
        self,
        subject: SubjectRef,
        exclude_id: Optional[Any] = None,
    ) -> List[ScheduleDefinition]:
        """Active schedules of ``subject`` other than ``exclude_id``."""
        return [
            schedule for schedule in self._schedules.values()
            if schedule.subject == subject
            and schedule.is_active
            and (exclude_id is None or schedule.id != exclude_id)
        ]

    def schedules_for_subject_on_date(
        self,
        subject: SubjectRef,
        on_date: Date,
        types: Optional[Iterable[ScheduleType]] = None,
    ) -> List[ScheduleDefinition]:
        """Active schedules of ``subject`` covering ``on_date``, optionally filtered by type."""
        wanted = set(types) if types is not None else None
        matches: List[ScheduleDefinition] = []

        for schedule in self._schedules.values():
            if schedule.subject != subject or not schedule.is_active_on(on_date):
                continue
            if wanted is not None and schedule.schedule_type not in wanted:
                continue
            if schedule.is_recurring and not self._expander.matches_date(schedule, on_date):
                continue
            matches.append(schedule)

        return matches

    @classmethod
    def load_from_yaml(cls, data_path: Path) -> "InMemoryScheduleRepository":
        """
        Load schedules from a YAML file with a top-level ``schedules`` list.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file or one of its schedules is invalid
        """
        if not data_path.exists():
            raise FileNotFoundError(f"Schedule data file not found: {data_path}")

        try:
            with open(data_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {data_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Schedule data file must contain a mapping at the root level.")

        schedules: List[ScheduleDefinition] = []
        for index, entry in enumerate(data.get("schedules") or []):
            try:
                schedules.append(ScheduleDefinition.from_mapping(entry))
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Invalid schedule at index {index} in {data_path}: {exc}") from exc

        logger.debug("Loaded %d schedule(s) from %s", len(schedules), data_path)
        return cls(schedules)

    def _next_id(self) -> int:
        candidate = next(self._ids)
        while candidate in self._schedules:
            candidate = next(self._ids)
        return candidate
