"""Tests for sync_config.yaml loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from stepsync.fitness.base import ErrorKind
from stepsync.fitness.config_loader import (
    ConfigValidationError,
    SyncConfig,
    _validate_and_build,
    get_sync_config,
    load_sync_config,
    reload_sync_config,
)

MINIMAL = {
    "version": "1.0",
    "source": {"data_source_id": "derived:com.google.step_count.delta:test"},
}


class TestConfigLoading:
    """Tests for loading the bundled sync_config.yaml."""

    def test_load_default_config(self, sync_config: SyncConfig) -> None:
        assert sync_config.version == "1.0"
        assert sync_config.granularity == "hour"

    def test_window_constants(self, sync_config: SyncConfig) -> None:
        assert sync_config.window.offset_ns == 1_000_000
        assert sync_config.window.horizon_ns == 2_025_716_200_000_000_000

    def test_source_settings(self, sync_config: SyncConfig) -> None:
        src = sync_config.source
        assert src.source_id == "google_fit"
        assert src.data_source_id.endswith(":estimated_steps")
        assert not src.api_base.endswith("/")
        assert all(scope.startswith("https://www.googleapis.com/auth/fitness.") for scope in src.scopes)

    def test_error_codes(self, sync_config: SyncConfig) -> None:
        """Each error kind maps to its downstream code."""
        assert sync_config.events.error_code(ErrorKind.AUTH) == 401
        assert sync_config.events.error_code(ErrorKind.TRANSIENT) == 503
        assert sync_config.events.error_code(ErrorKind.FORWARD_FAILURE) == 500

    def test_event_tags(self, sync_config: SyncConfig) -> None:
        ev = sync_config.events
        assert ev.lifecycle_object_tags == ["1self", "integration", "sync"]
        assert ev.data_object_tags == ["steps"]
        assert ev.data_action_tags == ["walked"]
        assert ev.data_property == "numberOfSteps"

    def test_cached_instance(self) -> None:
        assert get_sync_config() is get_sync_config()


class TestConfigValidation:
    """Tests for config validation logic."""

    def test_valid_minimal_config(self) -> None:
        """Everything except the data source id has a default."""
        config = _validate_and_build(dict(MINIMAL))
        assert config.granularity == "hour"
        assert config.window.offset_ns == 1_000_000
        assert config.events.error_code(ErrorKind.AUTH) == 401

    def test_day_granularity(self) -> None:
        config = _validate_and_build({**MINIMAL, "granularity": "day"})
        assert config.granularity == "day"

    def test_unknown_granularity_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="granularity"):
            _validate_and_build({**MINIMAL, "granularity": "week"})

    def test_non_positive_offset_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="offset_ns"):
            _validate_and_build({**MINIMAL, "window": {"offset_ns": 0}})

    def test_non_integer_window_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="integers"):
            _validate_and_build({**MINIMAL, "window": {"offset_ns": "soon"}})

    def test_missing_data_source_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="data_source_id"):
            _validate_and_build({"version": "1.0"})

    def test_unknown_error_kind_raises(self) -> None:
        raw = {**MINIMAL, "events": {"error_codes": {"throttled": 429}}}
        with pytest.raises(ConfigValidationError, match="throttled"):
            _validate_and_build(raw)

    def test_errors_collected_together(self) -> None:
        raw = {"granularity": "minute", "window": {"offset_ns": -1}}
        with pytest.raises(ConfigValidationError, match="3 validation error"):
            _validate_and_build(raw)

    def test_yaml_parse_error(self, tmp_path: Path) -> None:
        bad = tmp_path / "sync_config.yaml"
        bad.write_text("window: [unclosed\n")
        with pytest.raises(ConfigValidationError, match="YAML parse error"):
            load_sync_config(path=bad)

    def test_load_nonexistent_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_sync_config(path=Path("/nonexistent/path/config.yaml"))


class TestReload:
    @pytest.fixture(autouse=True)
    def _restore_default(self):
        yield
        reload_sync_config()

    def test_hot_reload(self, tmp_path: Path) -> None:
        """reload_sync_config() should replace the cached instance."""
        config_file = tmp_path / "sync_config.yaml"
        config_file.write_text(
            'version: "2.0-test"\n'
            "granularity: day\n"
            "source:\n"
            "  data_source_id: derived:com.google.step_count.delta:test\n"
        )

        new_config = reload_sync_config(path=config_file)

        assert new_config.version == "2.0-test"
        assert get_sync_config() is new_config

    def test_failed_reload_keeps_old_config(self, tmp_path: Path) -> None:
        before = get_sync_config()
        config_file = tmp_path / "sync_config.yaml"
        config_file.write_text("granularity: fortnight\n")

        with pytest.raises(ConfigValidationError):
            reload_sync_config(path=config_file)

        assert get_sync_config() is before
