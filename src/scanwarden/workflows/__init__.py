"""GitHub Actions workflow definitions for the scan triggers."""

from .templates import DEFAULT_CRON, WORKFLOW_DETECTORS, render_workflow, write_workflows

__all__ = [
    "DEFAULT_CRON",
    "WORKFLOW_DETECTORS",
    "render_workflow",
    "write_workflows",
]
