"""Semgrep subprocess adapter for static-analysis rules."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .detector import Detector, RuleConfig, register_detector
from .models import ChangeSet, Finding, Severity, content_hash
from ..utils.logger import get_logger
from ..utils.exceptions import DetectorError

logger = get_logger(__name__)


@register_detector
class SemgrepDetector(Detector):
    """
    Run Semgrep on the change set's paths.

    Exit codes:
    0 = success (no findings), 1 = success (findings), 2+ = error
    """

    name = "semgrep"
    default_binary = "semgrep"
    passthrough_env = ("SEMGREP_APP_TOKEN",)

    DEFAULT_CONFIGS = ("p/secrets", "p/security-audit")

    SEVERITY_MAP = {
        "ERROR": Severity.HIGH,
        "WARNING": Severity.MEDIUM,
        "INFO": Severity.LOW,
    }

    def scan(
        self,
        change_set: ChangeSet,
        rule_config: RuleConfig,
        repo_path: Path,
        timeout: Optional[float] = None,
    ) -> List[Finding]:
        repo_path = Path(repo_path).resolve()
        targets = [p for p in change_set.scan_paths() if (repo_path / p).is_file()]
        if not targets:
            logger.debug("semgrep: no existing files in change set")
            return []

        self.check_available(rule_config)

        cmd = self._build_command(targets, rule_config)
        result = self.run_process(cmd, timeout, cwd=repo_path)

        if result.returncode >= 2:
            raise self.failed(result)

        try:
            output = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            logger.error(f"Semgrep stdout: {result.stdout[:500]}")
            raise DetectorError(self.name, f"Failed to parse Semgrep JSON output: {e}")

        for error in output.get("errors", []):
            logger.warning(f"semgrep: {error.get('message', error)}")

        findings = self.convert_findings(output, repo_path, rule_config)
        logger.info(f"Semgrep found {len(findings)} findings")
        return self.finalize(findings)

    def _build_command(self, targets: List[str], rule_config: RuleConfig) -> List[str]:
        cmd = [
            self.binary(rule_config),
            "scan",
            "--json",
            "--metrics=off",
            "--disable-version-check",
        ]
        for config in rule_config.rules or self.DEFAULT_CONFIGS:
            cmd.extend(["--config", config])

        cmd.append("--")
        cmd.extend(targets)
        return cmd

    def convert_findings(
        self,
        semgrep_output: Dict[str, Any],
        repo_path: Path,
        rule_config: RuleConfig,
    ) -> List[Finding]:
        """Convert Semgrep JSON output to common findings."""
        findings = []
        sources: Dict[str, Optional[bytes]] = {}

        for result in semgrep_output.get("results", []):
            try:
                path = result["path"]
                start = result.get("start", {})
                end = result.get("end", {})
                extra = result.get("extra", {})

                matched = self._matched_span(repo_path, path, start, end, sources)
                if matched is None:
                    matched = extra.get("lines", "")

                severity = rule_config.severity or self.SEVERITY_MAP.get(
                    str(extra.get("severity", "WARNING")).upper(), Severity.MEDIUM
                )
                metadata = extra.get("metadata", {})

                findings.append(Finding(
                    detector=self.name,
                    rule_id=result.get("check_id", "unknown"),
                    file=Path(path).as_posix(),
                    start_line=int(start.get("line", 0)),
                    end_line=int(end.get("line", start.get("line", 0))),
                    column=int(start.get("col", 0)),
                    content_hash=content_hash(matched),
                    severity=severity,
                    message=extra.get("message", "") or "No description",
                    snippet=matched.strip()[:200],
                    metadata={
                        "cwe": self._extract_cwe(metadata),
                        "category": metadata.get("category", "security"),
                        "confidence": metadata.get("confidence", "MEDIUM"),
                        "references": metadata.get("references", []),
                        "fix": extra.get("fix"),
                    },
                ))

            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse Semgrep finding: {e}")
                continue

        return findings

    def _matched_span(
        self,
        repo_path: Path,
        path: str,
        start: Dict[str, Any],
        end: Dict[str, Any],
        sources: Dict[str, Optional[bytes]],
    ) -> Optional[str]:
        """Exact matched bytes via offsets; independent of surrounding lines."""
        if "offset" not in start or "offset" not in end:
            return None
        if path not in sources:
            try:
                sources[path] = (repo_path / path).read_bytes()
            except OSError:
                sources[path] = None
        data = sources[path]
        if data is None:
            return None
        return data[start["offset"]:end["offset"]].decode("utf-8", errors="replace")

    def _extract_cwe(self, metadata: Dict[str, Any]) -> Optional[str]:
        """Extract CWE ID from Semgrep rule metadata."""
        cwe = metadata.get("cwe")

        if cwe:
            if isinstance(cwe, list):
                return cwe[0] if cwe else None
            return str(cwe)

        return None
