"""Configuration management CLI commands."""

import sys
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from ..utils.config import Config, init_config
from ..utils.env_loader import secret_status
from ..utils.exceptions import ConfigError
from ..utils.logger import get_logger

console = Console()
logger = get_logger(__name__)


def _current_config(ctx) -> Config:
    obj = ctx.obj or {}
    return obj.get("config") or Config()


def _settings_table() -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="yellow")
    return table


@click.group()
def config():
    """Manage ScanWarden configuration."""
    pass


@config.command()
@click.pass_context
def show(ctx):
    """Show current configuration."""
    cfg = _current_config(ctx)
    console.print("\n[bold cyan]📋 Current Configuration[/bold cyan]\n")

    console.print("[bold]Scan Settings:[/bold]")
    table = _settings_table()
    table.add_row("Timeout", f"{cfg.scan.timeout}s")
    table.add_row("Max Concurrency", str(cfg.scan.max_concurrency))
    table.add_row("Fail On", cfg.scan.fail_on)
    table.add_row("No Repeat", "✅" if cfg.scan.no_repeat else "❌")
    table.add_row("Ignore Patterns", ", ".join(cfg.scan.ignore_patterns) or "-")
    console.print(table)
    console.print()

    console.print("[bold]Detectors:[/bold]")
    table = Table(box=None)
    table.add_column("Name", style="cyan")
    table.add_column("Enabled")
    table.add_column("Timeout", justify="right")
    table.add_column("Rules", style="yellow")
    for name, settings in cfg.detectors.items():
        table.add_row(
            name,
            "✅" if settings.enabled else "❌",
            f"{settings.timeout}s",
            ", ".join(settings.rules) or "default",
        )
    console.print(table)
    console.print()

    console.print("[bold]Baseline:[/bold]")
    table = _settings_table()
    table.add_row("Path", cfg.baseline.path)
    table.add_row("Lock Timeout", f"{cfg.baseline.lock_timeout}s")
    console.print(table)
    console.print()

    console.print("[bold]Credentials:[/bold]")
    table = _settings_table()
    for name, present in secret_status().items():
        table.add_row(name, "✅ set" if present else "❌ not set")
    console.print(table)
    console.print()


@config.command()
@click.option("--overwrite", is_flag=True, help="Overwrite existing config")
def init(overwrite):
    """Initialize user configuration file."""
    try:
        config_file = Config.create_user_config(overwrite=overwrite)
    except ConfigError as e:
        console.print(f"\n[red]❌ Error:[/red] {e}\n")
        sys.exit(1)

    console.print(f"\n[green]✅ Created configuration file:[/green] {config_file}")
    console.print("\n[dim]Edit this file to customize your settings.[/dim]\n")


@config.command()
@click.argument("config_file", type=click.Path(exists=True))
def validate(config_file):
    """Validate configuration file."""
    console.print(f"\n[bold]🔍 Validating:[/bold] {config_file}\n")

    try:
        cfg = init_config(Path(config_file))
    except ConfigError as e:
        console.print(f"[red]❌ Validation failed:[/red]\n{e}\n")
        sys.exit(1)

    console.print("[green]✅ Configuration is valid![/green]\n")
    console.print("[bold]Loaded configuration:[/bold]")
    config_yaml = yaml.dump(cfg.to_dict(), default_flow_style=False, sort_keys=False)
    console.print(Syntax(config_yaml, "yaml", theme="monokai", line_numbers=True))


@config.command()
@click.argument("key")
@click.pass_context
def get(ctx, key):
    """Get configuration value (e.g. scan.timeout, detectors.semgrep.rules)."""
    cfg = _current_config(ctx)
    try:
        value = cfg.get(key)
    except ConfigError as e:
        console.print(f"\n[red]❌ {e}[/red]\n")
        sys.exit(1)

    if value is None:
        console.print(f"\n[yellow]⚠️  Key not found:[/yellow] {key}\n")
        sys.exit(1)
    console.print(f"\n[cyan]{key}:[/cyan] [yellow]{value}[/yellow]\n")
