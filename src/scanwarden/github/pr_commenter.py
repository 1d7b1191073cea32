"""Post scan summaries to pull requests."""

import json
import os
from typing import Mapping, Optional

import requests

from .reporter import Reporter
from ..core.models import ScanReport
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Marker used to find and update our own comment instead of adding new ones
COMMENT_MARKER = "<!-- scanwarden-report -->"


class PRCommenter:
    """Create or update the ScanWarden comment on a pull request."""

    def __init__(
        self,
        github_token: str,
        repository: Optional[str] = None,
        pr_number: Optional[int] = None,
        api_url: str = "https://api.github.com",
        environ: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
    ):
        environ = os.environ if environ is None else environ
        self.token = github_token
        self.api_url = api_url.rstrip("/")
        self.repo = repository or environ.get("GITHUB_REPOSITORY")
        self.pr_number = pr_number or self._get_pr_number(environ)
        self.timeout = timeout
        self.reporter = Reporter()

    def _get_pr_number(self, environ: Mapping[str, str]) -> Optional[int]:
        """Extract the PR number from the GitHub event payload."""
        event_path = environ.get("GITHUB_EVENT_PATH")
        if not event_path:
            return None

        try:
            with open(event_path) as f:
                event = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read event payload: {e}")
            return None
        return event.get("pull_request", {}).get("number")

    @property
    def _headers(self):
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
        }

    def build_comment(self, report: ScanReport) -> str:
        return f"{COMMENT_MARKER}\n{self.reporter.render(report, 'markdown')}"

    def post_comment(self, report: ScanReport) -> bool:
        """
        Post (or update) the scan comment.

        Returns:
            False when not running for a pull request
        """
        if not self.pr_number or not self.repo:
            logger.warning("Not a PR event, skipping comment")
            return False

        body = self.build_comment(report)
        comments_url = f"{self.api_url}/repos/{self.repo}/issues/{self.pr_number}/comments"

        existing = self._find_existing(comments_url)
        if existing:
            url = f"{self.api_url}/repos/{self.repo}/issues/comments/{existing}"
            response = requests.patch(url, headers=self._headers, json={"body": body}, timeout=self.timeout)
        else:
            response = requests.post(comments_url, headers=self._headers, json={"body": body}, timeout=self.timeout)

        response.raise_for_status()
        logger.info(f"{'Updated' if existing else 'Posted'} comment on PR #{self.pr_number}")
        return True

    def _find_existing(self, comments_url: str) -> Optional[int]:
        response = requests.get(comments_url, headers=self._headers, timeout=self.timeout)
        response.raise_for_status()
        for comment in response.json():
            if COMMENT_MARKER in (comment.get("body") or ""):
                return comment.get("id")
        return None
