"""Unit tests for configuration system."""

from pathlib import Path

import pytest
import yaml

from scanwarden.utils.config import Config, init_config
from scanwarden.utils.exceptions import ConfigError, InvalidConfigError, MissingConfigError


def test_default_config():
    """Test default configuration values."""
    config = Config()

    assert config.scan.timeout == 600
    assert config.scan.max_concurrency == 4
    assert config.scan.fail_on == "HIGH"
    assert config.scan.no_repeat is False
    assert config.baseline.path == ".scanwarden/baseline.json"
    assert config.enabled_detectors() == ["gitleaks", "semgrep"]


def test_config_validation():
    """Test configuration validation."""
    config = Config()

    # Valid config should pass
    config.validate()

    # Invalid timeout should fail
    config.scan.timeout = -1
    with pytest.raises(InvalidConfigError):
        config.validate()


def test_validation_lists_every_problem():
    config = Config()
    config.scan.fail_on = "SEVERE"
    config.detectors["semgrep"].timeout = 0

    with pytest.raises(InvalidConfigError) as exc_info:
        config.validate()

    errors = exc_info.value.details["errors"]
    assert "Invalid scan.fail_on: SEVERE" in errors
    assert "detectors.semgrep.timeout must be >= 1" in errors


def test_validation_checks_pattern_rule_ids():
    config = Config(load_files=False)
    config.detectors["patterns"].rules = ["aws-access-key-id", "high-entropy-string"]
    config.validate()

    config.detectors["patterns"].rules = ["aws-access-key-id", "p/secrets"]
    with pytest.raises(InvalidConfigError) as exc_info:
        config.validate()
    assert "Unknown detectors.patterns.rules: p/secrets" in exc_info.value.details["errors"]


def test_validation_rejects_unknown_detector():
    config = Config()
    config.enable_only(["trufflehog"])

    with pytest.raises(InvalidConfigError) as exc_info:
        config.validate()
    assert "Unknown detector: trufflehog" in exc_info.value.details["errors"]


def test_config_from_file(tmp_path):
    """Test loading configuration from file."""
    config_file = tmp_path / "scan.yml"
    config_file.write_text(yaml.dump({
        "scan": {"timeout": 180, "no_repeat": True},
        "detectors": {"patterns": {"enabled": True}, "semgrep": {"rules": "p/python"}},
    }))

    config = init_config(config_file)
    assert config.scan.timeout == 180
    assert config.scan.no_repeat is True
    assert config.detectors["semgrep"].rules == ["p/python"]
    assert config.enabled_detectors() == ["gitleaks", "semgrep", "patterns"]


def test_missing_config_file(tmp_path):
    with pytest.raises(MissingConfigError):
        init_config(tmp_path / "nope.yml")


def test_project_config_is_found_in_parent(tmp_path, monkeypatch):
    (tmp_path / ".scanwarden.yml").write_text(yaml.dump({"scan": {"fail_on": "critical"}}))
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert Config().scan.fail_on == "CRITICAL"


def test_env_overrides_files(tmp_path, monkeypatch):
    (tmp_path / ".scanwarden.yml").write_text(yaml.dump({"scan": {"timeout": 100}}))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SCANWARDEN_TIMEOUT", "42")
    monkeypatch.setenv("SCANWARDEN_NO_REPEAT", "yes")
    monkeypatch.setenv("SCANWARDEN_DETECTORS", "patterns")

    config = Config()
    assert config.scan.timeout == 42
    assert config.scan.no_repeat is True
    assert config.enabled_detectors() == ["patterns"]


def test_env_overrides_explicit_file(tmp_path, monkeypatch):
    config_file = tmp_path / "explicit.yml"
    config_file.write_text(yaml.dump({"scan": {"max_concurrency": 2}}))
    monkeypatch.setenv("SCANWARDEN_MAX_CONCURRENCY", "8")

    assert init_config(config_file).scan.max_concurrency == 8


def test_invalid_env_value_is_ignored(monkeypatch):
    monkeypatch.setenv("SCANWARDEN_TIMEOUT", "soon")
    assert Config().scan.timeout == 600


def test_config_get():
    """Test configuration get method."""
    config = Config()

    assert config.get("scan.timeout") == 600
    assert config.get("detectors.semgrep.rules") == ["p/secrets", "p/security-audit"]
    assert config.get("invalid.key", "default") == "default"

    with pytest.raises(InvalidConfigError):
        config.get("timeout")


def test_config_to_dict():
    """Test configuration export to dictionary."""
    config_dict = Config().to_dict()

    assert set(config_dict) == {"scan", "detectors", "baseline", "output"}
    assert config_dict["scan"]["timeout"] == 600
    assert config_dict["detectors"]["patterns"]["enabled"] is False


def test_create_user_config(isolated_config):
    path = Config.create_user_config()

    assert path == isolated_config / ".scanwarden" / "config.yml"
    assert yaml.safe_load(path.read_text())["scan"]["fail_on"] == "HIGH"

    with pytest.raises(ConfigError):
        Config.create_user_config()
    assert Config.create_user_config(overwrite=True) == path


def test_user_config_is_loaded(isolated_config):
    user_file = isolated_config / ".scanwarden" / "config.yml"
    user_file.parent.mkdir(parents=True)
    user_file.write_text(yaml.dump({"baseline": {"path": "custom.json"}}))

    assert Config().baseline.path == "custom.json"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
