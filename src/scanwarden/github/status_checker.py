"""GitHub commit status reflecting the scan verdict."""

import os
from typing import Mapping, Optional

import requests

from ..core.models import ScanReport
from ..utils.logger import get_logger

logger = get_logger(__name__)


class StatusChecker:
    """Update the commit status for the scanned head revision."""

    CONTEXT = "ScanWarden"

    def __init__(
        self,
        github_token: str,
        repository: Optional[str] = None,
        sha: Optional[str] = None,
        api_url: str = "https://api.github.com",
        environ: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
    ):
        environ = os.environ if environ is None else environ
        self.token = github_token
        self.api_url = api_url.rstrip("/")
        self.repo = repository or environ.get("GITHUB_REPOSITORY")
        self.sha = sha or environ.get("GITHUB_SHA")
        self.run_id = environ.get("GITHUB_RUN_ID")
        self.timeout = timeout

    def update_status(self, report: ScanReport) -> bool:
        """
        Post the commit status.

        Returns:
            True if the scan passed. Posting failures are logged, not raised,
            so they never change the verdict.
        """
        state = "success" if report.passed else "failure"
        if not self.repo or not self.sha:
            logger.warning("Repository or commit unknown, skipping status update")
            return report.passed

        url = f"{self.api_url}/repos/{self.repo}/statuses/{self.sha}"
        headers = {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
        }
        target_url = f"https://github.com/{self.repo}/actions"
        if self.run_id:
            target_url += f"/runs/{self.run_id}"

        payload = {
            "state": state,
            "description": self.build_description(report),
            "context": self.CONTEXT,
            "target_url": target_url,
        }

        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
            logger.info(f"Updated commit status: {state}")
        except requests.RequestException as e:
            logger.error(f"Failed to update commit status: {e}")

        return report.passed

    def build_description(self, report: ScanReport) -> str:
        """Short status text (GitHub truncates at 140 characters)."""
        if not report.new_findings:
            text = f"No new findings ({report.suppressed_count} known)"
        else:
            counts = report.findings_by_severity()
            parts = [f"{count} {sev.lower()}" for sev, count in counts.items() if count]
            text = f"{len(report.new_findings)} new findings ({', '.join(parts)})"

        if report.warnings:
            text += f", {len(report.warnings)} detector warnings"
        return text[:140]
