"""Uniform contract for scanning backends."""

import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Type

from .models import ChangeSet, Finding, Severity
from ..utils.logger import get_logger
from ..utils.exceptions import (
    DetectorError,
    DetectorTimeoutError,
    DetectorUnavailableError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class RuleConfig:
    """Per-detector rule configuration handed to scan()."""
    rules: Tuple[str, ...] = ()
    severity: Optional[Severity] = None
    binary: Optional[str] = None
    options: Mapping[str, object] = field(default_factory=dict)


class Detector(ABC):
    """
    Base class for detector adapters.

    Each adapter wraps one backend and returns findings in the common
    shape, sorted by file then line, so identical inputs always give
    identical output.
    """

    name: str = "base"
    default_binary: Optional[str] = None
    # Secret names forwarded to the backend process
    passthrough_env: Tuple[str, ...] = ()

    def binary(self, rule_config: RuleConfig) -> Optional[str]:
        return rule_config.binary or self.default_binary

    def check_available(self, rule_config: Optional[RuleConfig] = None) -> None:
        """
        Raise DetectorUnavailableError when the backend cannot start.

        In-process detectors are always available.
        """
        binary = self.binary(rule_config or RuleConfig())
        if binary and not shutil.which(binary):
            raise DetectorUnavailableError(
                self.name,
                f"{self.name}: executable not found: {binary}",
                suggestion=f"Install {binary} or set detectors.{self.name}.binary",
            )

    @abstractmethod
    def scan(
        self,
        change_set: ChangeSet,
        rule_config: RuleConfig,
        repo_path: Path,
        timeout: Optional[float] = None,
    ) -> List[Finding]:
        """
        Scan the change set.

        Raises:
            DetectorUnavailableError: Backend could not start
            DetectorTimeoutError: Deadline exceeded
            DetectorError: Backend ran but failed
        """
        raise NotImplementedError

    def finalize(self, findings: Sequence[Finding]) -> List[Finding]:
        """Deterministic per-detector order: file, line, column, rule."""
        return sorted(findings, key=lambda f: (f.file, f.start_line, f.column, f.rule_id))

    def run_process(
        self,
        cmd: List[str],
        timeout: Optional[float],
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        """Run the backend, mapping spawn and deadline failures to detector errors."""
        env = dict(os.environ)
        for name in self.passthrough_env:
            if not env.get(name):
                env.pop(name, None)

        logger.debug(f"{self.name} command: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=str(cwd) if cwd else None,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise DetectorTimeoutError(self.name, f"{self.name} timed out after {timeout:.0f}s")
        except OSError as e:
            raise DetectorUnavailableError(self.name, f"{self.name} could not start: {e}")

    def failed(self, result: subprocess.CompletedProcess) -> DetectorError:
        logger.error(f"{self.name} stderr: {result.stderr[:500]}")
        return DetectorError(
            self.name,
            f"{self.name} failed with exit code {result.returncode}",
            details={"stderr": result.stderr.strip()[:500]},
        )


_REGISTRY: Dict[str, Type[Detector]] = {}


def register_detector(cls: Type[Detector]) -> Type[Detector]:
    """Class decorator adding a detector to the registry."""
    _REGISTRY[cls.name] = cls
    return cls


def create_detector(name: str) -> Detector:
    try:
        return _REGISTRY[name]()
    except KeyError:
        raise DetectorUnavailableError(
            name,
            f"Unknown detector: {name}",
            suggestion=f"Choose one of: {', '.join(available_detectors())}",
        )


def available_detectors() -> List[str]:
    return sorted(_REGISTRY)


def read_text(path: Path, max_bytes: int = 1_000_000) -> Optional[str]:
    """Read a source file for matching; None for large, binary or unreadable files."""
    try:
        if path.stat().st_size > max_bytes:
            logger.debug(f"Skipping large file: {path}")
            return None
        data = path.read_bytes()
    except OSError as e:
        logger.debug(f"Failed to read {path}: {e}")
        return None
    if b"\0" in data[:8192]:
        return None
    return data.decode("utf-8", errors="replace")


def redact(line: str, secret: str) -> str:
    if not secret:
        return line
    return line.replace(secret, "[REDACTED]")


