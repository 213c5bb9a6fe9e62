"""
Tests for engine configuration loading.
"""

import pydantic
import pytest

from slotkeeper.config import EngineConfig, load_config
from slotkeeper.domain.models import ScheduleType

CONFIG_YAML = """
default_rules:
  no_overlap:
    applies_to: [appointment, blocked, custom]
  working_hours: true
  max_duration:
    minutes: 240
  no_weekends: "weekdays only"
  lunch_break: true
conflict_detection:
  buffer_minutes: 10
time_slots:
  buffer_minutes: -5
validation:
  require_future_dates: false
  max_periods_per_schedule: 10
"""


class TestEngineConfigDefaults:
    """Tests for the built-in defaults."""

    def test_defaults(self):
        config = EngineConfig()

        assert config.default_rules.no_overlap.enabled
        assert config.default_rules.no_overlap.applies_to == [
            ScheduleType.APPOINTMENT,
            ScheduleType.BLOCKED,
        ]
        assert not config.default_rules.working_hours.enabled
        assert config.default_rules.working_hours.window() == ("09:00", "17:00")
        assert config.default_rules.max_duration.minutes == 480
        assert config.conflict_detection.enabled
        assert config.conflict_detection.buffer_minutes == 0
        assert config.time_slots.buffer_minutes == 0
        assert config.validation.require_future_dates
        assert config.validation.max_date_range == 365
        assert config.validation.min_period_duration == 15
        assert config.validation.max_periods_per_schedule == 50
        assert not config.validation.allow_overlapping_periods

    def test_rules_iterate_in_evaluation_order(self):
        names = [name for name, _ in EngineConfig().default_rules.items()]

        assert names == ["no_overlap", "working_hours", "max_duration", "no_weekends"]
        assert EngineConfig().default_rules.get("unknown") is None

    def test_none_sections_use_defaults(self):
        config = EngineConfig.from_mapping({"validation": None})

        assert config.validation.max_date_range == 365


class TestLoadFromYaml:
    """Tests for EngineConfig.load_from_yaml."""

    def test_load_and_coerce(self, tmp_path):
        """Rule values are coerced leniently while loading."""
        path = tmp_path / "slotkeeper.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")

        config = EngineConfig.load_from_yaml(path)
        rules = config.default_rules

        assert ScheduleType.CUSTOM in rules.no_overlap.applies_to
        assert rules.working_hours.enabled
        assert rules.working_hours.window() == ("09:00", "17:00")
        assert rules.max_duration.enabled
        assert rules.max_duration.minutes == 240
        assert not rules.no_weekends.enabled
        assert config.conflict_detection.buffer_minutes == 10
        assert config.time_slots.buffer_minutes == 0
        assert not config.validation.require_future_dates
        assert config.validation.max_periods_per_schedule == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            EngineConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("default_rules: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            EngineConfig.load_from_yaml(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping at the root"):
            EngineConfig.load_from_yaml(path)

    def test_invalid_limits_rejected(self, tmp_path):
        path = tmp_path / "limits.yaml"
        path.write_text("validation:\n  max_date_range: 0\n", encoding="utf-8")

        with pytest.raises(pydantic.ValidationError):
            EngineConfig.load_from_yaml(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert EngineConfig.load_from_yaml(path) == EngineConfig()


class TestLoadConfig:
    """Tests for load_config."""

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("conflict_detection:\n  enabled: false\n", encoding="utf-8")

        assert not load_config(path).conflict_detection.enabled

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert load_config() == EngineConfig()

    def test_picks_up_file_in_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "slotkeeper.yaml").write_text("time_slots:\n  buffer_minutes: 5\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        assert load_config().time_slots.buffer_minutes == 5
