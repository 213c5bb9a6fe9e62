"""
Engine configuration using Pydantic models, loaded from YAML.
"""

from pathlib import Path
from typing import Any, Dict, Iterator, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .domain.models import ScheduleType
from .domain.rules import (
    MaxDurationRule,
    NoOverlapRule,
    NoWeekendsRule,
    RuleConfig,
    WorkingHoursRule,
    coerce_rule,
)


class DefaultRulesConfig(BaseModel):
    """Rules applied to every schedule unless overridden per call."""
    model_config = ConfigDict(frozen=True)

    no_overlap: NoOverlapRule = Field(
        default_factory=lambda: NoOverlapRule(
            enabled=True,
            applies_to=[ScheduleType.APPOINTMENT, ScheduleType.BLOCKED],
        )
    )
    working_hours: WorkingHoursRule = Field(
        default_factory=lambda: WorkingHoursRule(enabled=False, start="09:00", end="17:00")
    )
    max_duration: MaxDurationRule = Field(
        default_factory=lambda: MaxDurationRule(enabled=False, minutes=480)
    )
    no_weekends: NoWeekendsRule = Field(
        default_factory=lambda: NoWeekendsRule(enabled=False, saturday=True, sunday=True)
    )

    @model_validator(mode="before")
    @classmethod
    def coerce_rules(cls, data: Any) -> Any:
        """Accept booleans and partial mappings for each rule, leniently."""
        if not isinstance(data, dict):
            return data
        coerced = dict(data)
        for name, raw in data.items():
            field = cls.model_fields.get(name)
            fallback = field.default_factory() if field is not None else None
            rule = coerce_rule(name, raw, fallback=fallback)
            if rule is None:
                coerced.pop(name)
            else:
                coerced[name] = rule
        return coerced

    def get(self, name: str) -> RuleConfig | None:
        """Look up a rule by name."""
        return getattr(self, name, None) if name in type(self).model_fields else None

    def items(self) -> Iterator[Tuple[str, RuleConfig]]:
        """Iterate ``(name, rule)`` pairs in evaluation order."""
        for name in type(self).model_fields:
            yield name, getattr(self, name)


class ConflictDetectionConfig(BaseModel):
    """Global switch and tolerance for conflict checks."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    buffer_minutes: int = 0

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        """Negative tolerances behave like no tolerance."""
        return max(0, value)


class TimeSlotsConfig(BaseModel):
    """Defaults for bookable slot generation."""
    model_config = ConfigDict(frozen=True)

    buffer_minutes: int = 0

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        """Negative spacing behaves like no spacing."""
        return max(0, value)


class ValidationConfig(BaseModel):
    """Structural validation limits."""
    model_config = ConfigDict(frozen=True)

    require_future_dates: bool = True
    max_date_range: int = 365
    min_period_duration: int = 15
    max_periods_per_schedule: int = 50
    allow_overlapping_periods: bool = False

    @field_validator("max_date_range", "max_periods_per_schedule")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure limits are usable."""
        if value <= 0:
            raise ValueError(f"Limit must be greater than zero, got {value}")
        return value

    @field_validator("min_period_duration")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        """Ensure the minimum duration is not negative."""
        if value < 0:
            raise ValueError(f"min_period_duration must not be negative, got {value}")
        return value


class EngineConfig(BaseModel):
    """Immutable engine configuration."""
    model_config = ConfigDict(frozen=True)

    default_rules: DefaultRulesConfig = Field(default_factory=DefaultRulesConfig)
    conflict_detection: ConflictDetectionConfig = Field(default_factory=ConflictDetectionConfig)
    time_slots: TimeSlotsConfig = Field(default_factory=TimeSlotsConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build a config from a plain mapping, ignoring ``None`` sections."""
        return cls(**{key: value for key, value in data.items() if value is not None})

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            EngineConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls.from_mapping(data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for slotkeeper.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "slotkeeper.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "slotkeeper.yaml"

    return config_path


def load_config(config_path: Path | None = None) -> EngineConfig:
    """
    Load the engine configuration, falling back to built-in defaults when no
    file was requested and none exists at the default location.
    """
    if config_path is not None:
        return EngineConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return EngineConfig.load_from_yaml(default_path)
    return EngineConfig()
