"""
Business rule configuration shapes.

Every rule is one Pydantic model carrying a mandatory ``enabled`` flag plus
its own parameters. Raw rule values (booleans, partial mappings, model
instances) are coerced through ``coerce_rule``; anything malformed turns the
rule off rather than raising.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .intervals import is_valid_time
from .models import ScheduleType

logger = logging.getLogger(__name__)


class RuleConfig(BaseModel):
    """Common base for all rule variants."""
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    enabled: bool


class NoOverlapRule(RuleConfig):
    """Reject schedules whose periods overlap other exclusive schedules."""
    applies_to: List[ScheduleType] = Field(
        default_factory=lambda: [ScheduleType.APPOINTMENT, ScheduleType.BLOCKED]
    )


class WorkingHoursRule(RuleConfig):
    """Every period must lie within the working-hours window."""
    start: Optional[str] = Field(default=None, validation_alias=AliasChoices("start", "start_time"))
    end: Optional[str] = Field(default=None, validation_alias=AliasChoices("end", "end_time"))

    def window(self) -> Optional[tuple]:
        """The ``(start, end)`` window, or None if it is incomplete or malformed."""
        if not is_valid_time(self.start) or not is_valid_time(self.end):
            return None
        return self.start, self.end


class MaxDurationRule(RuleConfig):
    """Every period must not exceed ``minutes``."""
    minutes: Optional[int] = None


class NoWeekendsRule(RuleConfig):
    """Schedules must not start, nor have dated periods, on flagged weekend days."""
    saturday: bool = True
    sunday: bool = True


AnyRule = Union[NoOverlapRule, WorkingHoursRule, MaxDurationRule, NoWeekendsRule]

RULE_TYPES: Dict[str, Type[RuleConfig]] = {
    "no_overlap": NoOverlapRule,
    "working_hours": WorkingHoursRule,
    "max_duration": MaxDurationRule,
    "no_weekends": NoWeekendsRule,
}


def coerce_rule(
    name: str,
    raw: Any,
    fallback: Optional[RuleConfig] = None,
) -> Optional[RuleConfig]:
    """
    Turn a raw rule value into its rule model.

    Args:
        name: Rule name (``working_hours``, ``max_duration``, ...)
        raw: Boolean toggle, mapping of parameters, or a rule model
        fallback: Default rule used for booleans and empty mappings

    Returns:
        The rule model, or None for unknown rule names. Malformed values
        produce a disabled rule.
    """
    model = RULE_TYPES.get(name)
    if model is None:
        logger.debug("Ignoring unknown rule '%s'", name)
        return None

    if isinstance(raw, model):
        return raw

    base = fallback if isinstance(fallback, model) else model(enabled=True)

    if isinstance(raw, bool):
        return base.model_copy(update={"enabled": raw})

    if raw is None:
        return base.model_copy(update={"enabled": False})

    if isinstance(raw, Mapping):
        if not raw:
            return base
        data = dict(raw)
        data.setdefault("enabled", True)
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.warning("Rule '%s' has invalid configuration, disabling it: %s", name, exc)
            return model(enabled=False)

    logger.warning("Rule '%s' has unsupported configuration %r, disabling it", name, raw)
    return model(enabled=False)


def rule_names() -> List[str]:
    """Known rule names in evaluation order."""
    return list(RULE_TYPES)
