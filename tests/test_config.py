"""
Tests for configuration loading and validation.
"""

from pathlib import Path

import pytest

from fleet_telemetry import DEFAULT_CONFIG, get_log_level
from fleet_telemetry.core import config as config_module
from fleet_telemetry.core.config import (
    AppConfig,
    ConfigError,
    ExportConfig,
    build_config,
    get_config,
    load_config_file,
    load_hosts_file,
    reload_config,
)


class TestDefaults:

    def test_default_values(self):
        config = build_config()

        assert config.adapter == "agent"
        assert config.hosts == []
        assert config.thresholds.disk_percent == 80.0
        assert config.thresholds.memory_percent == 90.0
        assert config.thresholds.stale_boot_days == 30.0
        assert config.query.hours_back == 24.0
        assert config.query.log_names == ["System", "Application"]
        assert config.query.levels == ["Critical", "Error", "Warning"]
        assert config.query.event_ids is None
        assert config.query.max_records == 1000
        assert config.query.message_cap == 500
        assert config.query.max_concurrency == 1
        assert config.query.deadline is None
        assert config.retry.max_attempts == 1
        assert config.export.dedup is False
        assert config.export.html_report is False

    def test_thresholds_and_policy(self):
        config = build_config()

        thresholds = config.thresholds.to_thresholds()
        assert thresholds.disk_percent == 80.0
        assert config.retry.to_policy().max_attempts == 1


class TestPrecedence:

    def test_environment_overrides_default(self, monkeypatch):
        monkeypatch.setenv("FLEET_THRESHOLD_DISK_PERCENT", "85")
        assert build_config().thresholds.disk_percent == 85.0

    def test_explicit_override_beats_environment(self, monkeypatch):
        monkeypatch.setenv("FLEET_THRESHOLD_DISK_PERCENT", "85")
        config = build_config(overrides={"thresholds": {"disk_percent": 70}})
        assert config.thresholds.disk_percent == 70.0

    def test_override_beats_file(self, tmp_path):
        path = tmp_path / "fleet.yaml"
        path.write_text(
            "hosts: [web-01, web-02]\n"
            "thresholds:\n"
            "  disk_percent: 85\n"
            "  memory_percent: 95\n"
            "query:\n"
            "  log_names: [System]\n",
            encoding="utf-8",
        )

        config = build_config(
            overrides={"thresholds": {"disk_percent": 75}},
            config_file=path,
        )

        assert config.hosts == ["web-01", "web-02"]
        assert config.thresholds.disk_percent == 75.0
        assert config.thresholds.memory_percent == 95.0
        assert config.query.log_names == ["System"]


class TestValidation:

    def test_threshold_out_of_range(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"thresholds": {"disk_percent": 150}})

    def test_unknown_level(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"query": {"levels": ["Fatal"]}})

    def test_levels_are_canonicalized(self):
        config = build_config(overrides={"query": {"levels": ["error", "INFO"]}})
        assert config.query.levels == ["Error", "Information"]

    def test_unknown_top_level_key(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"colour": "blue"})

    def test_unknown_section_key(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"query": {"hourz": 3}})

    def test_invalid_adapter(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"adapter": "ssh"})

    def test_zero_concurrency(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"query": {"max_concurrency": 0}})

    def test_hosts_are_deduplicated(self):
        config = build_config(overrides={"hosts": ["A", " B ", "A", ""]})
        assert config.hosts == ["A", "B"]


class TestRunValidation:

    def test_empty_host_list(self, tmp_path):
        config = build_config(overrides={"export": {"output_path": str(tmp_path / "out.csv")}})
        with pytest.raises(ConfigError, match="No hosts"):
            config.validate_for_run()

    def test_snapshot_adapter_needs_directory(self, tmp_path):
        config = build_config(overrides={
            "hosts": ["A"],
            "adapter": "snapshot",
            "snapshot_dir": str(tmp_path / "missing"),
            "export": {"output_path": str(tmp_path / "out.csv")},
        })
        with pytest.raises(ConfigError, match="Snapshot directory"):
            config.validate_for_run()

    def test_missing_output_directory(self, tmp_path):
        config = build_config(overrides={
            "hosts": ["A"],
            "export": {"output_path": str(tmp_path / "nope" / "out.csv")},
        })
        with pytest.raises(ConfigError, match="does not exist"):
            config.validate_for_run()

    def test_valid_run_configuration(self, tmp_path):
        config = build_config(overrides={
            "hosts": ["A"],
            "export": {"output_path": str(tmp_path / "out.csv")},
        })
        config.validate_for_run()

    def test_html_path(self):
        export = ExportConfig(output_path="reports/fleet.csv")
        assert export.html_path.name == "fleet.html"
        assert export.html_path.parent.name == "reports"

    def test_html_path_never_equals_export_path(self):
        export = ExportConfig(output_path="reports/fleet.HTML")
        assert export.html_path.name == "fleet.report.html"
        assert export.html_path != Path(export.output_path)


class TestFiles:

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config_file(tmp_path / "absent.yaml")

    def test_config_file_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_empty_config_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_hosts_file(self, tmp_path):
        path = tmp_path / "hosts.txt"
        path.write_text("# fleet\nweb-01\n\nweb-02  # rack 4\n", encoding="utf-8")
        assert load_hosts_file(path) == ["web-01", "web-02"]

    def test_missing_hosts_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_hosts_file(tmp_path / "absent.txt")


class TestGlobalConfig:

    def test_package_log_level_default(self, monkeypatch):
        monkeypatch.delenv("FLEET_LOG_LEVEL", raising=False)
        assert DEFAULT_CONFIG == {"log_level": "INFO"}
        assert get_log_level() == "INFO"

    def test_package_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("FLEET_LOG_LEVEL", "debug")
        assert get_log_level() == "DEBUG"

    def test_get_config_is_cached(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        assert get_config() is get_config()

    def test_reload_config_reads_environment(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        first = get_config()
        monkeypatch.setenv("FLEET_QUERY_HOURS_BACK", "6")

        reloaded = reload_config()

        assert reloaded is not first
        assert isinstance(reloaded, AppConfig)
        assert reloaded.query.hours_back == 6.0
