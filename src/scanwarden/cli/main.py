"""CLI entry point for ScanWarden."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel

from .config_cmd import config
from .output import format_baseline_table, print_report
from .setup import setup
from ..core import (
    BaselineStore,
    RevisionPair,
    ScanOrchestrator,
    TriggerContext,
    TriggerEvent,
    available_detectors,
)
from ..github.reporter import Reporter
from ..github.sarif_generator import SARIFGenerator
from ..utils.config import OUTPUT_FORMATS, SEVERITY_LEVELS, Config, init_config
from ..utils.env_loader import load_env
from ..utils.exceptions import ConfigError, ScanWardenError, StoreError
from ..utils.logger import get_logger, setup_logging
from ..version import VERSION

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_ERROR = 3
EXIT_INTERRUPTED = 130

EVENT_CHOICES = [event.value for event in TriggerEvent] + ["auto"]


@click.group()
@click.version_option(version=VERSION, prog_name="ScanWarden")
@click.option("--config", "config_file", type=click.Path(exists=True), help="Configuration file path")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--log-file", type=click.Path(), help="Write logs to file")
@click.pass_context
def cli(ctx, config_file, verbose, log_file):
    """
    ScanWarden - incremental secret and static-analysis scans

    Runs gitleaks and semgrep on what changed between two revisions and
    reports only findings that were not reported before.

    \b
    Examples:
        # Scan changes since main
        scanwarden scan . --base main

        # Full scan
        scanwarden scan . --full

        # Inside GitHub Actions
        scanwarden scan . --event auto --output github

        # Acknowledge a finding
        scanwarden baseline suppress 3f9a2c
    """
    ctx.ensure_object(dict)
    verbose = verbose or ctx.obj.get("verbose", False)
    log_level = "DEBUG" if verbose else "WARNING"

    try:
        setup_logging(level=log_level, log_file=Path(log_file) if log_file else None, verbose=verbose)
    except OSError as e:
        err_console.print(f"[red]❌ Logging setup failed:[/red] {e}")
        sys.exit(EXIT_ERROR)

    load_env()

    try:
        if config_file:
            logger.info(f"Loading config from: {config_file}")
            cfg = init_config(Path(config_file))
        else:
            cfg = Config()
    except ConfigError as e:
        err_console.print(f"[red]❌ Configuration Error:[/red]\n{e}")
        sys.exit(EXIT_ERROR)

    ctx.obj["config"] = cfg
    ctx.obj["verbose"] = verbose
    logger.debug("Configuration loaded successfully")


def _apply_overrides(cfg: Config, detector, fail_on, no_repeat, baseline, timeout, max_concurrency, ignore):
    if detector:
        cfg.enable_only(list(detector))
    if fail_on:
        cfg.scan.fail_on = fail_on.upper()
    if no_repeat is not None:
        cfg.scan.no_repeat = no_repeat
    if baseline:
        cfg.baseline.path = baseline
    if timeout:
        cfg.scan.timeout = timeout
    if max_concurrency:
        cfg.scan.max_concurrency = max_concurrency
    if ignore:
        cfg.scan.ignore_patterns = cfg.scan.ignore_patterns + list(ignore)


def _revision_pair(base, head, full, event):
    """Map CLI options to (RevisionPair, TriggerContext or None)."""
    trigger = None
    if event == "auto":
        trigger = TriggerContext.from_github_env()
    elif event:
        trigger = TriggerContext(TriggerEvent(event), head=head, base=base)

    if full:
        return RevisionPair.full(trigger.head if trigger else head), trigger
    if trigger:
        return trigger.revision_pair(), trigger
    if base:
        return RevisionPair.incremental(base, head), None
    return RevisionPair.full(head), None


def _emit(content: str, output_file, fmt: str) -> None:
    if output_file:
        Path(output_file).parent.mkdir(parents=True, exist_ok=True)
        Path(output_file).write_text(content + "\n", encoding="utf-8")
        err_console.print(f"[green]✅ {fmt} report written to {output_file}[/green]")
    else:
        click.echo(content)


@cli.command()
@click.argument("target", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--base", help="Base revision (scan changes from base to head)")
@click.option("--head", default="HEAD", show_default=True, help="Head revision")
@click.option("--full", is_flag=True, help="Scan every tracked file at head")
@click.option("--event", type=click.Choice(EVENT_CHOICES), help="Trigger event; 'auto' reads the GitHub Actions environment")
@click.option("--detector", "-d", multiple=True, help="Run only these detectors (repeatable)")
@click.option("--fail-on", type=click.Choice(list(SEVERITY_LEVELS) + ["NONE"], case_sensitive=False), help="Fail on this severity or higher")
@click.option("--no-repeat/--repeat", default=None, help="Suppress findings already in the baseline")
@click.option("--baseline", type=click.Path(dir_okay=False), help="Baseline file path")
@click.option("--timeout", type=click.IntRange(min=1), help="Global scan timeout in seconds")
@click.option("--max-concurrency", type=click.IntRange(min=1), help="Maximum detectors run in parallel")
@click.option("--ignore", multiple=True, help="Extra ignore pattern (repeatable)")
@click.option("--output", "-o", type=click.Choice(OUTPUT_FORMATS, case_sensitive=False), help="Output format")
@click.option("--output-file", "-f", type=click.Path(dir_okay=False), help="Write output to file")
@click.option("--sarif-file", type=click.Path(dir_okay=False), help="Also write a SARIF report")
@click.pass_context
def scan(ctx, target, base, head, full, event, detector, fail_on, no_repeat, baseline,
         timeout, max_concurrency, ignore, output, output_file, sarif_file):
    """
    Scan a repository for new secrets and security issues.

    \b
    Examples:
        scanwarden scan . --base origin/main
        scanwarden scan . --full --detector patterns
        scanwarden scan . --base HEAD~1 --output json -f report.json

    \b
    Exit Codes:
        0 - Passed
        1 - New findings at or above the fail-on severity
        3 - Scan error (unknown revision, corrupt baseline, all detectors failed)
        130 - Interrupted
    """
    cfg: Config = ctx.obj.get("config") or Config()
    verbose = ctx.obj.get("verbose", False)
    repo_path = Path(target).resolve()

    _apply_overrides(cfg, detector, fail_on, no_repeat, baseline, timeout, max_concurrency, ignore)
    fmt = (output or cfg.output.format).lower()

    try:
        cfg.validate()
        revision_pair, trigger = _revision_pair(base, head, full, event)
        orchestrator = ScanOrchestrator.from_config(repo_path, cfg)

        if fmt == "console":
            console.print()
            console.print(Panel.fit(
                f"[bold cyan]ScanWarden v{VERSION}[/bold cyan]\n"
                f"Target: [yellow]{repo_path}[/yellow]\n"
                f"Range: [yellow]{revision_pair.describe()}[/yellow]\n"
                f"Detectors: [green]{', '.join(cfg.enabled_detectors())}[/green]",
                border_style="cyan",
            ))
            with console.status("🔍 Scanning..."):
                report = orchestrator.run(revision_pair, trigger)
        else:
            report = orchestrator.run(revision_pair, trigger)

        reporter = Reporter(max_findings=cfg.output.max_findings)
        if fmt == "console":
            print_report(console, report, cfg.output.max_findings)
            if output_file:
                reporter.write(report, "json", Path(output_file))
        elif fmt == "sarif":
            _emit(json.dumps(SARIFGenerator().build(report), indent=2), output_file, fmt)
        else:
            _emit(reporter.render(report, fmt), output_file, fmt)

        if sarif_file:
            SARIFGenerator().generate(report, Path(sarif_file))
        if fmt == "github":
            reporter.write_step_summary(report)

    except (ScanWardenError, ValueError) as e:
        err_console.print(f"\n[bold red]❌ Error:[/bold red]\n{e}")
        logger.error(f"Scan failed: {e}", exc_info=verbose)
        sys.exit(EXIT_ERROR)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]⚠️  Scan interrupted[/yellow]")
        sys.exit(EXIT_INTERRUPTED)

    exit_code = Reporter.exit_code(report)
    if exit_code != EXIT_PASS:
        logger.warning(f"Scan failed with exit code {exit_code}")
    sys.exit(exit_code)


def _store(ctx, repo) -> BaselineStore:
    cfg: Config = ctx.obj.get("config") or Config()
    path = Path(cfg.baseline.path)
    if not path.is_absolute():
        path = Path(repo).resolve() / path
    return BaselineStore(path, lock_timeout=cfg.baseline.lock_timeout)


@cli.group()
def baseline():
    """Inspect and acknowledge baseline entries."""
    pass


@baseline.command("show")
@click.option("--repo", type=click.Path(exists=True, file_okay=False), default=".", help="Repository root")
@click.option("--limit", type=int, help="Show at most this many entries")
@click.option("--json", "as_json", is_flag=True, help="Print the raw baseline document")
@click.pass_context
def baseline_show(ctx, repo, limit, as_json):
    """Show baseline entries."""
    store = _store(ctx, repo)
    try:
        data = store.load()
    except StoreError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        sys.exit(EXIT_ERROR)

    if as_json:
        click.echo(json.dumps(data.to_dict(), indent=2))
        return
    if not len(data):
        console.print(f"\n[dim]Baseline is empty: {store.path}[/dim]\n")
        return
    console.print(format_baseline_table(data, limit))
    console.print(f"[dim]{data.suppressed_count()} suppressed[/dim]")


def _set_suppressed(ctx, repo, fingerprint, suppressed: bool) -> None:
    store = _store(ctx, repo)
    try:
        if suppressed:
            store.suppress(fingerprint)
        else:
            store.unsuppress(fingerprint)
    except KeyError as e:
        err_console.print(f"[red]❌ No unique baseline entry for {e.args[0]}[/red]")
        sys.exit(EXIT_FAIL)
    except StoreError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        sys.exit(EXIT_ERROR)

    verb = "Suppressed" if suppressed else "Unsuppressed"
    console.print(f"[green]✅ {verb} {fingerprint}[/green]")


@baseline.command("suppress")
@click.argument("fingerprint")
@click.option("--repo", type=click.Path(exists=True, file_okay=False), default=".", help="Repository root")
@click.pass_context
def baseline_suppress(ctx, fingerprint, repo):
    """Acknowledge a finding (fingerprint or unique prefix)."""
    _set_suppressed(ctx, repo, fingerprint, True)


@baseline.command("unsuppress")
@click.argument("fingerprint")
@click.option("--repo", type=click.Path(exists=True, file_okay=False), default=".", help="Repository root")
@click.pass_context
def baseline_unsuppress(ctx, fingerprint, repo):
    """Report a previously acknowledged finding again."""
    _set_suppressed(ctx, repo, fingerprint, False)


@baseline.command("clear")
@click.option("--repo", type=click.Path(exists=True, file_okay=False), default=".", help="Repository root")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def baseline_clear(ctx, repo, yes):
    """Forget every baseline entry."""
    store = _store(ctx, repo)
    if not yes and not click.confirm(f"Clear {store.path}?", default=False):
        return
    try:
        removed = store.clear()
    except StoreError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        sys.exit(EXIT_ERROR)
    console.print(f"[green]✅ Removed {removed} entries[/green]")


@cli.group()
def workflows():
    """Manage the GitHub Actions workflow files."""
    pass


@workflows.command("init")
@click.option("--repo", type=click.Path(exists=True, file_okay=False), default=".", help="Repository root")
@click.option("--overwrite", is_flag=True, help="Replace existing workflow files")
@click.option("--cron", help="Schedule for the scheduled scan (default: daily 04:00 UTC)")
def workflows_init(repo, overwrite, cron):
    """Write .github/workflows/gitleaks.yml and semgrep.yml."""
    from ..workflows import DEFAULT_CRON, write_workflows

    try:
        written = write_workflows(Path(repo), overwrite=overwrite, cron=cron or DEFAULT_CRON)
    except ConfigError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        sys.exit(EXIT_FAIL)

    for path in written:
        console.print(f"[green]✅ Wrote {path}[/green]")
    console.print("[dim]Add GITLEAKS_LICENSE and SEMGREP_APP_TOKEN as repository secrets if you use them.[/dim]")


@cli.command()
def version():
    """Show version information."""
    console.print(f"\n[bold cyan]ScanWarden[/bold cyan] v[yellow]{VERSION}[/yellow]")
    console.print(f"[dim]Detectors: {', '.join(available_detectors())}[/dim]\n")


cli.add_command(config)
cli.add_command(setup)


if __name__ == "__main__":
    cli(obj={})
