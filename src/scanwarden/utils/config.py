"""Configuration management with multiple sources."""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, List
from dataclasses import dataclass, field

from .logger import get_logger
from .exceptions import ConfigError, InvalidConfigError, MissingConfigError

logger = get_logger(__name__)

SEVERITY_LEVELS = ("CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO")
OUTPUT_FORMATS = ("console", "text", "github", "json", "sarif", "markdown")


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


@dataclass
class ScanConfig:
    """Orchestration options."""
    timeout: int = 600
    max_concurrency: int = 4
    no_repeat: bool = False
    fail_on: str = "HIGH"
    ignore_patterns: List[str] = field(default_factory=lambda: [
        "node_modules", "vendor", ".git", "*.min.js"
    ])


@dataclass
class DetectorSettings:
    """Per-detector options."""
    enabled: bool = True
    timeout: int = 300
    binary: Optional[str] = None
    rules: List[str] = field(default_factory=list)
    severity: Optional[str] = None


def _default_detectors() -> Dict[str, DetectorSettings]:
    return {
        "gitleaks": DetectorSettings(),
        "semgrep": DetectorSettings(rules=["p/secrets", "p/security-audit"]),
        "patterns": DetectorSettings(enabled=False, timeout=120),
    }


@dataclass
class BaselineConfig:
    """Baseline store options."""
    path: str = ".scanwarden/baseline.json"
    lock_timeout: float = 30.0


@dataclass
class OutputConfig:
    """Output configuration."""
    format: str = "console"
    verbose: bool = False
    max_findings: int = 50


class Config:
    """
    Configuration manager.

    Priority (highest to lowest):
    1. Environment variables
    2. CLI arguments (passed directly)
    3. Project config (.scanwarden.yml)
    4. User config (~/.scanwarden/config.yml)
    5. Default values
    """

    CONFIG_FILENAME = ".scanwarden.yml"
    USER_CONFIG_DIR = Path.home() / ".scanwarden"
    USER_CONFIG_FILE = USER_CONFIG_DIR / "config.yml"

    def __init__(self, load_files: bool = True):
        """Initialize configuration manager."""
        self.scan = ScanConfig()
        self.detectors: Dict[str, DetectorSettings] = _default_detectors()
        self.baseline = BaselineConfig()
        self.output = OutputConfig()

        if load_files:
            self._load_user_config()
            self._load_project_config()
        self._load_env_config()

        logger.debug("Configuration initialized")

    def _load_user_config(self) -> None:
        """Load user-level configuration."""
        if not self.USER_CONFIG_FILE.exists():
            logger.debug("No user config found")
            return

        try:
            with open(self.USER_CONFIG_FILE) as f:
                config = yaml.safe_load(f)

            if config:
                self._apply_config(config)
                logger.info(f"Loaded user config: {self.USER_CONFIG_FILE}")

        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load user config: {e}")

    def _load_project_config(self) -> None:
        """Load project-level configuration from cwd or a parent."""
        current = Path.cwd()

        for parent in [current] + list(current.parents):
            config_file = parent / self.CONFIG_FILENAME

            if config_file.exists():
                try:
                    with open(config_file) as f:
                        config = yaml.safe_load(f)

                    if config:
                        self._apply_config(config)
                        logger.info(f"Loaded project config: {config_file}")
                    return

                except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
                    logger.warning(f"Failed to load project config: {e}")
                    return

        logger.debug("No project config found")

    def _load_env_config(self) -> None:
        """Load configuration from environment variables."""
        env_mappings = {
            "SCANWARDEN_TIMEOUT": ("scan", "timeout", int),
            "SCANWARDEN_MAX_CONCURRENCY": ("scan", "max_concurrency", int),
            "SCANWARDEN_NO_REPEAT": ("scan", "no_repeat", _to_bool),
            "SCANWARDEN_FAIL_ON": ("scan", "fail_on", str.upper),
            "SCANWARDEN_BASELINE": ("baseline", "path", str),
            "SCANWARDEN_OUTPUT_FORMAT": ("output", "format", str),
            "SCANWARDEN_VERBOSE": ("output", "verbose", _to_bool),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                try:
                    converted = converter(value)
                    setattr(getattr(self, section), key, converted)
                    logger.debug(f"Loaded from env: {env_var}={converted}")
                except ValueError as e:
                    logger.warning(f"Invalid env var {env_var}={value}: {e}")

        enabled = os.getenv("SCANWARDEN_DETECTORS")
        if enabled:
            self.enable_only([name.strip() for name in enabled.split(",") if name.strip()])

    def _apply_config(self, config: Dict[str, Any]) -> None:
        """Apply configuration dictionary."""
        if "scan" in config:
            scan_conf = config["scan"] or {}
            if "timeout" in scan_conf:
                self.scan.timeout = int(scan_conf["timeout"])
            if "max_concurrency" in scan_conf:
                self.scan.max_concurrency = int(scan_conf["max_concurrency"])
            if "no_repeat" in scan_conf:
                self.scan.no_repeat = bool(scan_conf["no_repeat"])
            if "fail_on" in scan_conf:
                self.scan.fail_on = str(scan_conf["fail_on"]).upper()
            if "ignore_patterns" in scan_conf:
                self.scan.ignore_patterns = list(scan_conf["ignore_patterns"] or [])

        if "detectors" in config:
            for name, det_conf in (config["detectors"] or {}).items():
                settings = self.detectors.setdefault(name, DetectorSettings())
                det_conf = det_conf or {}
                if "enabled" in det_conf:
                    settings.enabled = bool(det_conf["enabled"])
                if "timeout" in det_conf:
                    settings.timeout = int(det_conf["timeout"])
                if "binary" in det_conf:
                    settings.binary = det_conf["binary"]
                if "rules" in det_conf:
                    rules = det_conf["rules"] or []
                    settings.rules = [rules] if isinstance(rules, str) else list(rules)
                if "severity" in det_conf:
                    settings.severity = str(det_conf["severity"]).upper()

        if "baseline" in config:
            base_conf = config["baseline"] or {}
            if "path" in base_conf:
                self.baseline.path = str(base_conf["path"])
            if "lock_timeout" in base_conf:
                self.baseline.lock_timeout = float(base_conf["lock_timeout"])

        if "output" in config:
            out_conf = config["output"] or {}
            if "format" in out_conf:
                self.output.format = out_conf["format"]
            if "verbose" in out_conf:
                self.output.verbose = bool(out_conf["verbose"])
            if "max_findings" in out_conf:
                self.output.max_findings = int(out_conf["max_findings"])

    def enable_only(self, names: List[str]) -> None:
        """Enable exactly the named detectors."""
        for name in names:
            self.detectors.setdefault(name, DetectorSettings())
        for name, settings in self.detectors.items():
            settings.enabled = name in names

    def enabled_detectors(self) -> List[str]:
        """Names of enabled detectors, in configuration order."""
        return [name for name, settings in self.detectors.items() if settings.enabled]

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        parts = key.split(".")

        if parts[0] == "detectors" and len(parts) == 3:
            settings = self.detectors.get(parts[1])
            return getattr(settings, parts[2], default) if settings else default

        if len(parts) != 2:
            raise InvalidConfigError(
                f"Invalid config key: {key}",
                suggestion="Use format: section.key (e.g., scan.timeout)"
            )

        section, attr = parts

        if section == "detectors" or not hasattr(self, section):
            return default

        section_obj = getattr(self, section)
        return getattr(section_obj, attr, default)

    def validate(self) -> None:
        """Validate configuration values."""
        from ..core import available_detectors

        errors = []

        if self.scan.timeout < 1:
            errors.append("scan.timeout must be >= 1")

        if self.scan.max_concurrency < 1:
            errors.append("scan.max_concurrency must be >= 1")

        if self.scan.fail_on not in SEVERITY_LEVELS + ("NONE",):
            errors.append(f"Invalid scan.fail_on: {self.scan.fail_on}")

        known = available_detectors()
        for name, settings in self.detectors.items():
            if name not in known:
                errors.append(f"Unknown detector: {name}")
            if settings.timeout < 1:
                errors.append(f"detectors.{name}.timeout must be >= 1")
            if settings.severity and settings.severity not in SEVERITY_LEVELS:
                errors.append(f"Invalid detectors.{name}.severity: {settings.severity}")

        # Semgrep and gitleaks resolve rule names themselves; patterns has a fixed set
        patterns = self.detectors.get("patterns")
        if patterns is not None and patterns.rules:
            from ..core.secrets_detector import PatternSecretDetector

            unknown = sorted(set(patterns.rules) - set(PatternSecretDetector.rule_ids()))
            if unknown:
                errors.append(f"Unknown detectors.patterns.rules: {', '.join(unknown)}")

        if not self.enabled_detectors():
            errors.append("At least one detector must be enabled")

        if self.baseline.lock_timeout <= 0:
            errors.append("baseline.lock_timeout must be > 0")

        if self.output.format not in OUTPUT_FORMATS:
            errors.append(f"Invalid output.format: {self.output.format}")

        if errors:
            raise InvalidConfigError(
                "Configuration validation failed",
                details={"errors": errors},
                suggestion=f"Check your {self.CONFIG_FILENAME} file"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "scan": {
                "timeout": self.scan.timeout,
                "max_concurrency": self.scan.max_concurrency,
                "no_repeat": self.scan.no_repeat,
                "fail_on": self.scan.fail_on,
                "ignore_patterns": self.scan.ignore_patterns,
            },
            "detectors": {
                name: {
                    "enabled": settings.enabled,
                    "timeout": settings.timeout,
                    "binary": settings.binary,
                    "rules": settings.rules,
                    "severity": settings.severity,
                }
                for name, settings in self.detectors.items()
            },
            "baseline": {
                "path": self.baseline.path,
                "lock_timeout": self.baseline.lock_timeout,
            },
            "output": {
                "format": self.output.format,
                "verbose": self.output.verbose,
                "max_findings": self.output.max_findings,
            },
        }

    @classmethod
    def create_user_config(cls, overwrite: bool = False) -> Path:
        """Create default user configuration file."""
        if cls.USER_CONFIG_FILE.exists() and not overwrite:
            raise ConfigError(
                f"User config already exists: {cls.USER_CONFIG_FILE}",
                suggestion="Use --overwrite to replace it"
            )

        cls.USER_CONFIG_DIR.mkdir(parents=True, exist_ok=True)

        default_config = Config(load_files=False)

        with open(cls.USER_CONFIG_FILE, "w") as f:
            yaml.dump(default_config.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Created user config: {cls.USER_CONFIG_FILE}")
        return cls.USER_CONFIG_FILE


def init_config(config_path: Optional[Path] = None) -> Config:
    """
    Initialize configuration.

    Args:
        config_path: Optional explicit config file path

    Returns:
        Validated Config object
    """
    config = Config()

    if config_path:
        if not config_path.exists():
            raise MissingConfigError(
                f"Config file not found: {config_path}",
                suggestion="Check the file path or run 'scanwarden config init'"
            )

        try:
            with open(config_path) as f:
                explicit_config = yaml.safe_load(f)

            if explicit_config:
                config._apply_config(explicit_config)
                logger.info(f"Loaded explicit config: {config_path}")

        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            raise ConfigError(
                f"Failed to load config: {config_path}",
                details={"error": str(e)}
            )

        # Environment still wins over the explicit file
        config._load_env_config()

    config.validate()

    return config
