"""Gitleaks subprocess adapter for secret detection."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from .detector import Detector, RuleConfig, register_detector, redact
from .models import ChangeSet, Finding, Severity, content_hash
from ..utils.logger import get_logger
from ..utils.exceptions import DetectorError

logger = get_logger(__name__)

# gitleaks reports leaks with this exit code; anything else non-zero is a crash
LEAKS_EXIT_CODE = 2


@register_detector
class GitleaksDetector(Detector):
    """
    Run gitleaks over the working tree and keep results in the change set.

    Exit codes (with ``--exit-code 2``):
    0 = no leaks, 2 = leaks found, anything else = execution failure
    """

    name = "gitleaks"
    default_binary = "gitleaks"
    passthrough_env = ("GITLEAKS_LICENSE",)

    DEFAULT_SEVERITY = Severity.HIGH

    def scan(
        self,
        change_set: ChangeSet,
        rule_config: RuleConfig,
        repo_path: Path,
        timeout: Optional[float] = None,
    ) -> List[Finding]:
        repo_path = Path(repo_path).resolve()
        scan_paths = set(change_set.scan_paths())
        if not scan_paths:
            return []

        self.check_available(rule_config)

        fd, report_name = tempfile.mkstemp(prefix="gitleaks-", suffix=".json")
        os.close(fd)
        report_path = Path(report_name)

        try:
            cmd = self._build_command(repo_path, report_path, rule_config)
            result = self.run_process(cmd, timeout, cwd=repo_path)

            if result.returncode not in (0, LEAKS_EXIT_CODE):
                raise self.failed(result)

            leaks = self._read_report(report_path)
        finally:
            # The raw report holds unredacted secrets
            report_path.unlink(missing_ok=True)

        logger.info(f"gitleaks reported {len(leaks)} leaks")

        severity = rule_config.severity or self.DEFAULT_SEVERITY
        findings = []
        for leak in leaks:
            finding = self._convert(leak, repo_path, severity)
            if finding is None or finding.file not in scan_paths:
                continue
            findings.append(finding)

        return self.finalize(findings)

    def _build_command(self, repo_path: Path, report_path: Path, rule_config: RuleConfig) -> List[str]:
        cmd = [
            self.binary(rule_config),
            "detect",
            "--no-git",
            "--no-banner",
            "--source", str(repo_path),
            "--report-format", "json",
            "--report-path", str(report_path),
            "--exit-code", str(LEAKS_EXIT_CODE),
            "--log-level", "error",
        ]
        # First rule entry is a gitleaks TOML config; default ruleset otherwise
        if rule_config.rules:
            cmd.extend(["--config", rule_config.rules[0]])
        return cmd

    def _read_report(self, report_path: Path) -> List[Dict[str, Any]]:
        text = report_path.read_text() if report_path.exists() else ""
        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DetectorError(self.name, f"Failed to parse gitleaks report: {e}")
        if not isinstance(data, list):
            raise DetectorError(self.name, "Unexpected gitleaks report shape")
        return data

    def _convert(self, leak: Dict[str, Any], repo_path: Path, severity: Severity) -> Optional[Finding]:
        file_path = leak.get("File") or ""
        if not file_path:
            return None
        file_path = self._relative(file_path, repo_path)

        secret = leak.get("Secret") or ""
        match = leak.get("Match") or secret
        start_line = int(leak.get("StartLine") or 0)
        rule_id = leak.get("RuleID") or "unknown"

        return Finding(
            detector=self.name,
            rule_id=rule_id,
            file=file_path,
            start_line=start_line,
            end_line=int(leak.get("EndLine") or start_line),
            column=int(leak.get("StartColumn") or 0),
            content_hash=content_hash(match),
            severity=severity,
            message=leak.get("Description") or f"Secret matched rule {rule_id}",
            snippet=redact(match, secret),
            metadata={
                "entropy": leak.get("Entropy"),
                "tags": leak.get("Tags") or [],
            },
        )

    def _relative(self, file_path: str, repo_path: Path) -> str:
        path = Path(file_path)
        if path.is_absolute():
            try:
                return path.resolve().relative_to(repo_path).as_posix()
            except ValueError:
                return path.as_posix()
        text = path.as_posix()
        return text[2:] if text.startswith("./") else text
