"""Exception hierarchy with detailed error context."""

from typing import Optional, Dict, Any


class ScanWardenError(Exception):
    """Base exception for all ScanWarden errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ):
        """
        Initialize exception with context.

        Args:
            message: Error message
            details: Additional error details
            suggestion: Suggested fix for the user
        """
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format complete error message."""
        parts = [self.message]

        if self.details:
            parts.append("\nDetails:")
            for key, value in self.details.items():
                parts.append(f"  {key}: {value}")

        if self.suggestion:
            parts.append(f"\n💡 Suggestion: {self.suggestion}")

        return "\n".join(parts)


# Scan errors
class ScanError(ScanWardenError):
    """Error during a scan cycle."""
    pass


class ResolutionError(ScanError):
    """A revision could not be resolved in the repository history."""
    pass


class AllDetectorsFailedError(ScanError):
    """Every enabled detector failed; there is nothing to report."""
    pass


# Detector errors (recoverable at orchestrator level)
class DetectorError(ScanWardenError):
    """Detector backend failed while scanning."""

    def __init__(self, detector: str, message: str, **kwargs):
        self.detector = detector
        super().__init__(message, **kwargs)


class DetectorUnavailableError(DetectorError):
    """Detector backend could not be started."""
    pass


class DetectorTimeoutError(DetectorError):
    """Detector exceeded its deadline."""
    pass


# Baseline store errors
class StoreError(ScanWardenError):
    """Baseline store error."""
    pass


class StoreCorruptError(StoreError):
    """Persisted baseline cannot be parsed."""
    pass


class StoreLockError(StoreError):
    """Baseline lock could not be acquired in time."""
    pass


# Configuration errors
class ConfigError(ScanWardenError):
    """Configuration-related error."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration value."""
    pass


class MissingConfigError(ConfigError):
    """Required configuration is missing."""
    pass


# Output errors
class OutputError(ScanWardenError):
    """Output generation error."""
    pass


class SARIFError(OutputError):
    """SARIF generation error."""
    pass


class ReportError(OutputError):
    """Report generation error."""
    pass
