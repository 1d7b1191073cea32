"""Render scan reports for logs, GitHub Actions and machine consumers."""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from ..core.models import Finding, ScanReport, Severity
from ..utils.logger import get_logger
from ..utils.exceptions import ReportError

logger = get_logger(__name__)

SEVERITY_EMOJI = {
    "CRITICAL": "🔴",
    "HIGH": "🟠",
    "MEDIUM": "🟡",
    "LOW": "🔵",
    "INFO": "⚪",
}


def _escape_data(value: str) -> str:
    # Workflow command message encoding
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(value: str) -> str:
    return _escape_data(value).replace(":", "%3A").replace(",", "%2C")


class Reporter:
    """
    Turn a ScanReport into text.

    Rendering is pure: the same report always gives the same output and
    nothing is written anywhere. Formats:
    - text: one line per finding plus a summary
    - github: workflow command annotations plus a summary
    - markdown: step summary / PR comment body
    - json: the report as a JSON document
    """

    FORMATS = ("text", "github", "markdown", "json")

    def __init__(self, max_findings: int = 50):
        self.max_findings = max_findings

    def render(self, report: ScanReport, fmt: str = "text") -> str:
        fmt = fmt.lower()
        if fmt == "text":
            return self._render_text(report)
        if fmt == "github":
            return self._render_github(report)
        if fmt == "markdown":
            return self._render_markdown(report)
        if fmt == "json":
            return json.dumps(report.to_dict(), indent=2)
        raise ReportError(
            f"Unknown report format: {fmt}",
            suggestion=f"Use one of: {', '.join(self.FORMATS)}",
        )

    @staticmethod
    def exit_code(report: ScanReport) -> int:
        """0 when the scan passed, 1 when it failed."""
        return 0 if report.passed else 1

    def write_step_summary(self, report: ScanReport, summary_file: Optional[str] = None) -> bool:
        """
        Append the markdown summary to the Actions step summary file.

        Returns:
            False when no summary file is configured
        """
        summary_file = summary_file or os.environ.get("GITHUB_STEP_SUMMARY")
        if not summary_file:
            logger.debug("GITHUB_STEP_SUMMARY not set, skipping step summary")
            return False

        try:
            with open(summary_file, "a", encoding="utf-8") as f:
                f.write(self._render_markdown(report) + "\n")
        except OSError as e:
            raise ReportError(
                f"Failed to write step summary: {summary_file}",
                details={"error": str(e)},
            )

        logger.info(f"Step summary written to {summary_file}")
        return True

    def write(self, report: ScanReport, fmt: str, output_file: Path) -> Path:
        """Render to a file."""
        content = self.render(report, fmt)
        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(content + "\n", encoding="utf-8")
        logger.info(f"{fmt} report written to {output_file}")
        return output_file

    def _summary_line(self, report: ScanReport) -> str:
        return (
            f"Scan {report.verdict.value.upper()}: {len(report.new_findings)} new, "
            f"{report.suppressed_count} suppressed, {report.files_scanned} files, "
            f"{report.duration_seconds:.1f}s (fail on {report.fail_on})"
        )

    def _is_failing(self, finding: Finding, report: ScanReport) -> bool:
        if report.fail_on == "NONE":
            return False
        return finding.severity >= Severity.from_string(report.fail_on)

    def _render_text(self, report: ScanReport) -> str:
        lines = []
        for finding in report.new_findings:
            lines.append(
                f"{finding.severity.value:<8} {finding.file}:{finding.start_line} "
                f"[{finding.detector}/{finding.rule_id}] {finding.message}"
            )
        for warning in report.warnings:
            lines.append(f"WARNING  {warning.detector} ({warning.kind}): {warning.message}")
        lines.append(self._summary_line(report))
        return "\n".join(lines)

    def _render_github(self, report: ScanReport) -> str:
        lines = []
        for finding in report.new_findings:
            level = "error" if self._is_failing(finding, report) else "warning"
            params = [
                f"file={_escape_property(finding.file)}",
                f"line={finding.start_line}",
            ]
            if finding.end_line and finding.end_line != finding.start_line:
                params.append(f"endLine={finding.end_line}")
            if finding.column:
                params.append(f"col={finding.column}")
            params.append(f"title={_escape_property(f'{finding.detector}: {finding.rule_id}')}")
            lines.append(f"::{level} {','.join(params)}::{_escape_data(finding.message)}")

        for warning in report.warnings:
            title = _escape_property(f"{warning.detector} {warning.kind}")
            lines.append(f"::warning title={title}::{_escape_data(warning.message)}")

        lines.append(self._summary_line(report))
        return "\n".join(lines)

    def _render_markdown(self, report: ScanReport) -> str:
        lines = ["## 🔒 ScanWarden Security Scan", ""]

        if report.passed:
            lines.append("### ✅ Passed")
        else:
            lines.append(f"### ❌ Failed: new findings at or above {report.fail_on}")
        lines.append("")

        lines.append(f"- **Range:** `{report.revision_pair.describe()}`")
        lines.append(f"- **Files scanned:** {report.files_scanned}")
        lines.append(f"- **New findings:** {len(report.new_findings)}")
        lines.append(f"- **Suppressed (already known):** {report.suppressed_count}")
        lines.append(f"- **Detectors:** {', '.join(report.detectors_run) or 'none'}")
        lines.append(f"- **Duration:** {report.duration_seconds:.1f}s")
        lines.append("")

        if report.new_findings:
            lines.append("| Severity | Count |")
            lines.append("|----------|-------|")
            for severity, count in report.findings_by_severity().items():
                if count:
                    lines.append(f"| {SEVERITY_EMOJI[severity]} {severity} | {count} |")
            lines.append("")

            lines.append("<details><summary>New findings</summary>")
            lines.append("")
            lines.append("| Severity | Location | Rule | Message |")
            lines.append("|----------|----------|------|---------|")
            for finding in self._ranked(report.new_findings)[: self.max_findings]:
                message = finding.message.replace("|", "\\|").replace("\n", " ")
                lines.append(
                    f"| {finding.severity.value} | `{finding.file}:{finding.start_line}` "
                    f"| `{finding.detector}/{finding.rule_id}` | {message} |"
                )
            hidden = len(report.new_findings) - self.max_findings
            if hidden > 0:
                lines.append("")
                lines.append(f"*... and {hidden} more*")
            lines.append("")
            lines.append("</details>")
            lines.append("")

        if report.warnings:
            lines.append("### ⚠️ Detector warnings")
            lines.append("")
            for warning in report.warnings:
                lines.append(f"- **{warning.detector}** ({warning.kind}): {warning.message}")
            lines.append("")

        return "\n".join(lines)

    def _ranked(self, findings) -> List[Finding]:
        # Highest severity first, merge order within a severity
        return sorted(findings, key=lambda f: -f.severity.rank)


def severity_outputs(report: ScanReport) -> Dict[str, int]:
    """Counts exposed as Action outputs."""
    counts = report.findings_by_severity()
    return {
        "findings-count": len(report.new_findings),
        "suppressed-count": report.suppressed_count,
        "critical-count": counts["CRITICAL"],
        "high-count": counts["HIGH"],
        "medium-count": counts["MEDIUM"],
        "low-count": counts["LOW"],
    }
