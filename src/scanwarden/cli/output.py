"""Rich console rendering for interactive use."""

from typing import Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ..core.baseline import Baseline
from ..core.models import ScanReport

SEVERITY_COLORS = {
    "CRITICAL": "bold red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "blue",
    "INFO": "dim",
}

SEVERITY_ICONS = {
    "CRITICAL": "🔴",
    "HIGH": "🟠",
    "MEDIUM": "🟡",
    "LOW": "🔵",
    "INFO": "⚪",
}


def format_findings_tree(report: ScanReport, max_display: int = 50) -> Tree:
    """New findings grouped by severity."""
    tree = Tree("🔍 New findings")
    by_severity = {}
    for finding in report.new_findings:
        by_severity.setdefault(finding.severity.value, []).append(finding)

    shown = 0
    for severity in SEVERITY_COLORS:
        findings = by_severity.get(severity)
        if not findings:
            continue
        color = SEVERITY_COLORS[severity]
        branch = tree.add(f"{SEVERITY_ICONS[severity]} [{color}]{severity}[/{color}] ({len(findings)})")
        for finding in findings:
            if shown >= max_display:
                break
            shown += 1
            branch.add(
                f"{finding.message[:80]}\n"
                f"[dim]{finding.file}:{finding.start_line}  "
                f"{finding.detector}/{finding.rule_id}  {finding.fingerprint[:12]}[/dim]"
            )

    hidden = len(report.new_findings) - shown
    if hidden > 0:
        tree.add(f"[dim]... and {hidden} more[/dim]")
    return tree


def format_summary_panel(report: ScanReport) -> Panel:
    lines = [
        f"[bold]Scan ID:[/bold] {report.scan_id}",
        f"[bold]Range:[/bold] {report.revision_pair.describe()}",
        f"[bold]Duration:[/bold] {report.duration_seconds:.2f}s",
        f"[bold]Files:[/bold] {report.files_scanned}",
        f"[bold]Detectors:[/bold] {', '.join(report.detectors_run) or 'none'}",
        f"[bold]New findings:[/bold] {len(report.new_findings)}",
        f"[bold]Suppressed:[/bold] {report.suppressed_count}",
    ]
    if report.pruned_count:
        lines.append(f"[bold]Resolved since last scan:[/bold] {report.pruned_count}")
    if report.warnings:
        lines.append("")
        lines.append("[bold yellow]Detector warnings:[/bold yellow]")
        for warning in report.warnings:
            lines.append(f"  {warning.detector} ({warning.kind}): {warning.message}")

    summary = "\n".join(lines)
    if report.passed:
        return Panel(summary, title="✅ Passed", border_style="green")
    return Panel(summary, title=f"❌ Failed (fail on {report.fail_on})", border_style="red")


def format_scan_results(report: ScanReport, max_findings: int = 50) -> Group:
    """Full console rendering of a report."""
    parts = []
    if report.new_findings:
        parts.append(format_findings_tree(report, max_findings))
    parts.append(format_summary_panel(report))
    return Group(*parts)


def format_baseline_table(baseline: Baseline, limit: Optional[int] = None) -> Table:
    table = Table(title=f"Baseline ({len(baseline)} entries)")
    table.add_column("Fingerprint", style="cyan", no_wrap=True)
    table.add_column("Detector")
    table.add_column("Rule")
    table.add_column("File")
    table.add_column("First seen", style="dim")
    table.add_column("Last seen", style="dim")
    table.add_column("Suppressed", justify="center")

    items = sorted(baseline.entries.items(), key=lambda item: (item[1].file, item[1].rule_id, item[0]))
    for fp, entry in items[:limit]:
        table.add_row(
            fp[:12],
            entry.detector,
            entry.rule_id,
            entry.file,
            entry.first_seen[:12],
            entry.last_seen[:12],
            "✅" if entry.suppressed else "",
        )
    return table


def print_report(console: Console, report: ScanReport, max_findings: int = 50) -> None:
    console.print()
    console.print(format_scan_results(report, max_findings))
    console.print()
