"""Render the gitleaks and semgrep workflow files."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from ..core.models import TriggerEvent
from ..utils.logger import get_logger
from ..utils.exceptions import ConfigError

logger = get_logger(__name__)

# Daily at 04:00 UTC
DEFAULT_CRON = "0 4 * * *"

GITLEAKS_VERSION = "8.18.4"

WORKFLOW_DIR = Path(".github") / "workflows"

# Detector name -> (secret passed to the scan step, install step)
WORKFLOW_DETECTORS: Dict[str, Dict[str, Any]] = {
    "gitleaks": {
        "secret": "GITLEAKS_LICENSE",
        "install": {
            "name": "Install gitleaks",
            "run": (
                "curl -sSfL https://github.com/gitleaks/gitleaks/releases/download/"
                f"v{GITLEAKS_VERSION}/gitleaks_{GITLEAKS_VERSION}_linux_x64.tar.gz \\\n"
                "  | sudo tar -xz -C /usr/local/bin gitleaks\n"
                "gitleaks version\n"
            ),
        },
    },
    "semgrep": {
        "secret": "SEMGREP_APP_TOKEN",
        "install": {
            "name": "Install semgrep",
            "run": "pip install semgrep\nsemgrep --version\n",
        },
    },
}


class _WorkflowDumper(yaml.SafeDumper):
    """Block style for multi-line run scripts."""


def _str_representer(dumper: yaml.SafeDumper, data: str):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_WorkflowDumper.add_representer(str, _str_representer)


def _triggers(triggers: Sequence[TriggerEvent], cron: str) -> Dict[str, Any]:
    on: Dict[str, Any] = {}
    for event in triggers:
        if event is TriggerEvent.SCHEDULE:
            on["schedule"] = [{"cron": cron}]
        else:
            on[event.value] = {}
    return on


def build_workflow(
    detector: str,
    triggers: Optional[Sequence[TriggerEvent]] = None,
    cron: str = DEFAULT_CRON,
) -> Dict[str, Any]:
    """Workflow document as a mapping."""
    if detector not in WORKFLOW_DETECTORS:
        raise ConfigError(
            f"No workflow template for detector: {detector}",
            suggestion=f"Choose one of: {', '.join(sorted(WORKFLOW_DETECTORS))}",
        )
    triggers = list(triggers or TriggerEvent)
    template = WORKFLOW_DETECTORS[detector]
    secret = template["secret"]
    sarif_file = f"scanwarden-{detector}.sarif"

    return {
        "name": detector,
        "on": _triggers(triggers, cron),
        "permissions": {
            "contents": "read",
            "pull-requests": "write",
            "security-events": "write",
            "statuses": "write",
        },
        "concurrency": {
            "group": f"{detector}-${{{{ github.ref }}}}",
            "cancel-in-progress": False,
        },
        "jobs": {
            "scan": {
                "runs-on": "ubuntu-latest",
                "steps": [
                    {
                        "uses": "actions/checkout@v4",
                        # Incremental scans diff against the event's base revision
                        "with": {"fetch-depth": 0},
                    },
                    {
                        "uses": "actions/setup-python@v5",
                        "with": {"python-version": "3.11"},
                    },
                    {"name": "Install scanwarden", "run": "pip install scanwarden"},
                    dict(template["install"]),
                    {
                        "name": "Restore baseline",
                        "uses": "actions/cache@v4",
                        "with": {
                            "path": ".scanwarden/baseline.json",
                            "key": f"scanwarden-{detector}-${{{{ github.ref }}}}-${{{{ github.run_id }}}}",
                            "restore-keys": f"scanwarden-{detector}-${{{{ github.ref }}}}-",
                        },
                    },
                    {
                        "name": f"Run {detector}",
                        "run": (
                            f"scanwarden scan . --event auto --detector {detector} "
                            f"--output github --sarif-file {sarif_file}"
                        ),
                        "env": {
                            "GITHUB_TOKEN": "${{ secrets.GITHUB_TOKEN }}",
                            secret: f"${{{{ secrets.{secret} }}}}",
                        },
                    },
                    {
                        "name": "Upload SARIF",
                        "if": "always() && hashFiles('" + sarif_file + "') != ''",
                        "uses": "github/codeql-action/upload-sarif@v3",
                        "with": {"sarif_file": sarif_file, "category": detector},
                    },
                ],
            }
        },
    }


def render_workflow(
    detector: str,
    triggers: Optional[Sequence[TriggerEvent]] = None,
    cron: str = DEFAULT_CRON,
) -> str:
    """
    Render the workflow YAML for one detector.

    Args:
        detector: "gitleaks" or "semgrep"
        triggers: Events that start the workflow (default: all four)
        cron: Schedule for the scheduled trigger

    Returns:
        YAML text
    """
    return yaml.dump(
        build_workflow(detector, triggers, cron),
        Dumper=_WorkflowDumper,
        default_flow_style=False,
        sort_keys=False,
    )


def write_workflows(
    repo_path: Path,
    overwrite: bool = False,
    triggers: Optional[Sequence[TriggerEvent]] = None,
    cron: str = DEFAULT_CRON,
) -> List[Path]:
    """
    Write .github/workflows/gitleaks.yml and semgrep.yml.

    Raises:
        ConfigError: If a workflow file exists and overwrite is False
    """
    workflow_dir = Path(repo_path) / WORKFLOW_DIR
    targets = [workflow_dir / f"{detector}.yml" for detector in sorted(WORKFLOW_DETECTORS)]

    existing = [path for path in targets if path.exists()]
    if existing and not overwrite:
        raise ConfigError(
            f"Workflow already exists: {existing[0]}",
            suggestion="Use --overwrite to replace it",
        )

    workflow_dir.mkdir(parents=True, exist_ok=True)
    for path in targets:
        path.write_text(render_workflow(path.stem, triggers, cron), encoding="utf-8")
        logger.info(f"Wrote workflow: {path}")
    return targets
