"""Unit tests for exception handling."""

import pytest

from scanwarden.utils.exceptions import (
    AllDetectorsFailedError,
    ConfigError,
    DetectorError,
    DetectorTimeoutError,
    DetectorUnavailableError,
    InvalidConfigError,
    ResolutionError,
    ScanError,
    ScanWardenError,
    StoreCorruptError,
    StoreError,
)


def test_base_exception():
    """Test base exception."""
    error = ScanWardenError(
        "Test error",
        details={"key": "value"},
        suggestion="Try this fix"
    )

    message = str(error)
    assert "Test error" in message
    assert "key: value" in message
    assert "Try this fix" in message


def test_fatal_errors_share_a_base():
    assert issubclass(ResolutionError, ScanError)
    assert issubclass(AllDetectorsFailedError, ScanError)
    assert issubclass(StoreCorruptError, StoreError)
    assert issubclass(StoreError, ScanWardenError)


def test_detector_errors_carry_detector_name():
    error = DetectorTimeoutError("semgrep", "semgrep timed out after 5s")

    assert isinstance(error, DetectorError)
    assert error.detector == "semgrep"
    assert error.message == "semgrep timed out after 5s"
    assert isinstance(DetectorUnavailableError("gitleaks", "missing"), DetectorError)


def test_config_error():
    """Test config error."""
    error = InvalidConfigError(
        "Invalid timeout",
        suggestion="Set timeout >= 1"
    )

    assert isinstance(error, ConfigError)
    assert "Invalid timeout" in str(error)
    assert "Set timeout >= 1" in str(error)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
