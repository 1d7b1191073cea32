"""SARIF format generator for GitHub Code Scanning."""

import json
from pathlib import Path
from typing import Any, Dict, List

from ..core.models import Finding, ScanReport, Severity
from ..utils.logger import get_logger
from ..utils.exceptions import SARIFError
from ..version import VERSION

logger = get_logger(__name__)


class SARIFGenerator:
    """Generate SARIF 2.1.0 documents, one run per detector."""

    SARIF_VERSION = "2.1.0"
    SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
    TOOL_NAME = "ScanWarden"
    # Key GitHub uses to track alerts across runs
    FINGERPRINT_KEY = "scanwarden/v1"

    def build(self, report: ScanReport) -> Dict[str, Any]:
        """Build the SARIF document for a report's new findings."""
        by_detector: Dict[str, List[Finding]] = {}
        for name in report.detectors_run:
            by_detector[name] = []
        for finding in report.new_findings:
            by_detector.setdefault(finding.detector, []).append(finding)

        return {
            "version": self.SARIF_VERSION,
            "$schema": self.SCHEMA,
            "runs": [
                self._build_run(detector, findings)
                for detector, findings in sorted(by_detector.items())
            ],
        }

    def generate(self, report: ScanReport, output_file: Path) -> Path:
        """Write the SARIF document to a file."""
        output_file = Path(output_file)
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(output_file, "w", encoding="utf-8") as f:
                json.dump(self.build(report), f, indent=2)
        except OSError as e:
            raise SARIFError(
                f"Failed to write SARIF report: {output_file}",
                details={"error": str(e)},
            )

        logger.info(f"SARIF report saved to {output_file}")
        return output_file

    def _build_run(self, detector: str, findings: List[Finding]) -> Dict[str, Any]:
        return {
            "tool": {
                "driver": {
                    "name": f"{self.TOOL_NAME}/{detector}",
                    "version": VERSION,
                    "rules": self._build_rules(findings),
                }
            },
            "results": [self._build_result(f) for f in findings],
            "columnKind": "utf16CodeUnits",
        }

    def _build_rules(self, findings: List[Finding]) -> List[Dict[str, Any]]:
        rules = {}
        for finding in findings:
            if finding.rule_id in rules:
                continue
            rule = {
                "id": finding.rule_id,
                "shortDescription": {"text": finding.message[:120] or finding.rule_id},
                "defaultConfiguration": {"level": self._map_severity(finding.severity)},
            }
            cwe = finding.metadata.get("cwe")
            if cwe:
                rule["properties"] = {"tags": ["security", str(cwe)]}
            rules[finding.rule_id] = rule
        return [rules[rule_id] for rule_id in sorted(rules)]

    def _build_result(self, finding: Finding) -> Dict[str, Any]:
        region = {
            "startLine": max(finding.start_line, 1),
            "endLine": max(finding.end_line, finding.start_line, 1),
        }
        if finding.column:
            region["startColumn"] = finding.column

        return {
            "ruleId": finding.rule_id,
            "level": self._map_severity(finding.severity),
            "message": {"text": finding.message or "Security issue detected"},
            "locations": [{
                "physicalLocation": {
                    "artifactLocation": {
                        "uri": finding.file,
                        "uriBaseId": "%SRCROOT%",
                    },
                    "region": region,
                }
            }],
            "partialFingerprints": {self.FINGERPRINT_KEY: finding.fingerprint},
            "properties": {"severity": finding.severity.value},
        }

    def _map_severity(self, severity: Severity) -> str:
        mapping = {
            Severity.CRITICAL: "error",
            Severity.HIGH: "error",
            Severity.MEDIUM: "warning",
            Severity.LOW: "note",
            Severity.INFO: "none",
        }
        return mapping[severity]
