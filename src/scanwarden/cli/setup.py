"""Interactive setup wizard for ScanWarden."""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Optional

import click
from dotenv import dotenv_values
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from ..utils.env_loader import USER_ENV_FILE

console = Console()

BACKENDS = {
    "semgrep": {
        "version_args": ["--version"],
        "install": ["pipx", "install", "semgrep"],
        "hint": "pipx install semgrep",
    },
    "gitleaks": {
        "version_args": ["version"],
        "install": None,
        "hint": "https://github.com/gitleaks/gitleaks#installing",
    },
}

SECRETS = {
    "SEMGREP_APP_TOKEN": "Semgrep App token (optional, enables registry rules and the Semgrep dashboard)",
    "GITLEAKS_LICENSE": "Gitleaks license key (only needed for organization accounts)",
}


def check_backend(name: str) -> Optional[str]:
    """Return the backend's version string, or None if it is not installed."""
    binary = shutil.which(name)
    if not binary:
        return None
    try:
        result = subprocess.run(
            [binary, *BACKENDS[name]["version_args"]],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    output = (result.stdout or result.stderr).strip()
    return output.splitlines()[0] if output else "unknown"


def install_backend(name: str) -> bool:
    command = BACKENDS[name]["install"]
    if not command:
        console.print(f"[yellow]Install {name} manually: {BACKENDS[name]['hint']}[/yellow]")
        return False

    console.print(f"\n[yellow]Installing {name}...[/yellow]")
    try:
        subprocess.run(command, check=True)
    except subprocess.CalledProcessError:
        console.print(f"[red]❌ Failed to install {name}[/red]")
        console.print(f"[yellow]Please install manually: {BACKENDS[name]['hint']}[/yellow]")
        return False
    except FileNotFoundError:
        console.print(f"[red]❌ {command[0]} not found[/red]")
        console.print(f"[yellow]Please install manually: {BACKENDS[name]['hint']}[/yellow]")
        return False

    console.print(f"[green]✅ {name} installed[/green]")
    return True


def save_secrets(values: Dict[str, str], env_file: Path = USER_ENV_FILE) -> Path:
    """Merge secrets into the user .env file, keeping unrelated entries."""
    env_file.parent.mkdir(parents=True, exist_ok=True)
    merged = {k: v for k, v in dotenv_values(env_file).items() if v is not None} if env_file.exists() else {}
    merged.update(values)

    env_file.write_text("".join(f"{key}={value}\n" for key, value in sorted(merged.items())))
    env_file.chmod(0o600)
    return env_file


def setup_secrets() -> Dict[str, str]:
    console.print("\n[bold cyan]Detector credentials[/bold cyan]")
    console.print("Skip any value and set it later via environment variables\n")

    values = {}
    for name, description in SECRETS.items():
        if os.getenv(name):
            console.print(f"[green]✅ {name} already set[/green]")
            if not Confirm.ask("Update it?", default=False):
                continue
        console.print(f"\n[bold]{name}[/bold]: {description}")
        value = Prompt.ask(f"Enter {name} (or press Enter to skip)", default="", password=True)
        if value:
            values[name] = value

    if values:
        env_file = save_secrets(values)
        console.print(f"\n[green]✅ Saved to: {env_file}[/green]")
    return values


@click.command()
def setup():
    """Interactive setup wizard: check backends and store credentials."""
    console.print(Panel.fit(
        "[bold cyan]ScanWarden - Setup Wizard[/bold cyan]\n"
        "Checks detector backends and stores their credentials",
        border_style="cyan",
    ))

    console.print("\n[bold]1️⃣  Checking detector backends...[/bold]")
    for name in BACKENDS:
        version = check_backend(name)
        if version:
            console.print(f"[green]✅ {name}: {version}[/green]")
            continue
        console.print(f"[yellow]⚠️  {name} not found[/yellow]")
        if BACKENDS[name]["install"] and Confirm.ask(f"Install {name} now?", default=True):
            install_backend(name)
        elif not BACKENDS[name]["install"]:
            console.print(f"[dim]   Install: {BACKENDS[name]['hint']}[/dim]")

    console.print("\n[bold]2️⃣  Credentials[/bold]")
    setup_secrets()

    console.print()
    console.print(Panel.fit(
        "[bold green]✅ Setup Complete![/bold green]\n\n"
        "[bold]Quick Start:[/bold]\n"
        "  # Scan what changed since main\n"
        "  scanwarden scan . --base main\n\n"
        "  # Full scan of the working tree\n"
        "  scanwarden scan . --full\n\n"
        "  # Add the GitHub workflows\n"
        "  scanwarden workflows init\n",
        border_style="green",
    ))
