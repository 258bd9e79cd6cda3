"""Tests for config loading and environment overrides."""

from pathlib import Path

import pytest

from kakama_events.config.loader import ConfigError, ConfigLoader
from kakama_events.config.schema import SchedulerSettings


class TestConfigLoader:
    def test_load_valid(self, fixtures_dir: Path) -> None:
        events_file = ConfigLoader(fixtures_dir / "valid_events.yaml").load()
        assert events_file.scheduler.name == "test-scheduler"
        assert events_file.scheduler.default_time_zone == "America/New_York"
        assert events_file.scheduler.log_level == "DEBUG"
        assert [e.name for e in events_file.events] == ["heartbeat", "weekday_report"]
        assert events_file.events[0].params == {"message": "still alive"}

    def test_load_invalid_cron(self, fixtures_dir: Path) -> None:
        with pytest.raises(ConfigError, match="Validation error"):
            ConfigLoader(fixtures_dir / "invalid_cron.yaml").load()

    def test_load_invalid_time_zone(self, fixtures_dir: Path) -> None:
        with pytest.raises(ConfigError, match="unknown time zone"):
            ConfigLoader(fixtures_dir / "invalid_time_zone.yaml").load()

    def test_load_duplicate_names(self, fixtures_dir: Path) -> None:
        with pytest.raises(ConfigError, match="duplicate event name 'twin'"):
            ConfigLoader(fixtures_dir / "duplicate_names.yaml").load()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="does not exist"):
            ConfigLoader(tmp_path / "missing.yaml").load()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("events: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            ConfigLoader(path).load()

    def test_top_level_not_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            ConfigLoader(path).load()

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        events_file = ConfigLoader(path).load()
        assert events_file.events == []
        assert events_file.scheduler == SchedulerSettings()

    def test_error_includes_path(self, tmp_path: Path) -> None:
        path = tmp_path / "missing.yaml"
        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader(path).load()
        assert exc_info.value.path == path
        assert str(path) in str(exc_info.value)


class TestEnvOverrides:
    def test_no_overrides_returns_same(self, tmp_path: Path) -> None:
        settings = SchedulerSettings()
        assert ConfigLoader(tmp_path / "x.yaml").apply_env(settings, {}) is settings

    def test_overrides_applied(self, tmp_path: Path) -> None:
        environ = {
            "KAKAMA_EVENTS_ENABLED": "false",
            "KAKAMA_EVENTS_TIME_ZONE": "Europe/Paris",
            "KAKAMA_EVENTS_LOG_LEVEL": "warning",
            "KAKAMA_EVENTS_MAX_IDLE_SECONDS": "5",
        }
        settings = ConfigLoader(tmp_path / "x.yaml").apply_env(SchedulerSettings(), environ)
        assert not settings.enabled
        assert settings.default_time_zone == "Europe/Paris"
        assert settings.log_level == "WARNING"
        assert settings.max_idle_seconds == 5.0

    def test_blank_values_ignored(self, tmp_path: Path) -> None:
        settings = ConfigLoader(tmp_path / "x.yaml").apply_env(
            SchedulerSettings(), {"KAKAMA_EVENTS_TIME_ZONE": "  "}
        )
        assert settings.default_time_zone == "UTC"

    def test_invalid_override(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid environment override"):
            ConfigLoader(tmp_path / "x.yaml").apply_env(
                SchedulerSettings(), {"KAKAMA_EVENTS_ENABLED": "maybe"}
            )

    def test_load_settings(self, fixtures_dir: Path) -> None:
        settings = ConfigLoader(fixtures_dir / "valid_events.yaml").load_settings(
            {"KAKAMA_EVENTS_LOG_LEVEL": "error"}
        )
        assert settings.name == "test-scheduler"
        assert settings.log_level == "ERROR"

    def test_load_with_env_applies_time_zone(self, fixtures_dir: Path) -> None:
        events_file = ConfigLoader(fixtures_dir / "valid_events.yaml").load_with_env(
            {"KAKAMA_EVENTS_TIME_ZONE": "Asia/Tokyo"}
        )
        assert events_file.scheduler.default_time_zone == "Asia/Tokyo"
        assert events_file.scheduler.name == "test-scheduler"
        assert events_file.time_zone_for(events_file.events[0]) == "Asia/Tokyo"
        assert events_file.events[0].params == {"message": "still alive"}

    def test_load_with_env_without_overrides(self, fixtures_dir: Path) -> None:
        events_file = ConfigLoader(fixtures_dir / "valid_events.yaml").load_with_env({})
        assert events_file.scheduler.default_time_zone == "America/New_York"

    def test_load_with_env_invalid_override(self, fixtures_dir: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid environment override"):
            ConfigLoader(fixtures_dir / "valid_events.yaml").load_with_env(
                {"KAKAMA_EVENTS_TIME_ZONE": "Nowhere/Land"}
            )

    def test_reads_process_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("KAKAMA_EVENTS_ENABLED", "0")
        settings = ConfigLoader(tmp_path / "x.yaml").apply_env(SchedulerSettings())
        assert not settings.enabled
