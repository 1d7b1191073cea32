"""Shared fixtures: isolated configuration and throwaway git repositories."""

import logging
import os
import shutil
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from scanwarden.core.models import (
    Finding,
    RevisionPair,
    ScanReport,
    Severity,
    Verdict,
    content_hash,
)
from scanwarden.utils import config as config_module
from scanwarden.utils import env_loader
from scanwarden.utils.logger import ROOT_LOGGER


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's home config, .env files and SCANWARDEN_* variables out of tests."""
    home = tmp_path / "home"
    monkeypatch.setattr(config_module.Config, "USER_CONFIG_DIR", home / ".scanwarden")
    monkeypatch.setattr(config_module.Config, "USER_CONFIG_FILE", home / ".scanwarden" / "config.yml")
    monkeypatch.setattr(env_loader, "USER_ENV_FILE", home / ".scanwarden" / ".env")

    for name in list(os.environ):
        if name.startswith("SCANWARDEN_"):
            monkeypatch.delenv(name, raising=False)

    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return home


class GitRepo:
    """Minimal git driver for building test histories."""

    def __init__(self, path: Path):
        self.path = path
        self.git("init", "-q")

    def git(self, *args: str) -> str:
        result = subprocess.run(
            [
                "git",
                "-c", "user.name=Test",
                "-c", "user.email=test@example.com",
                "-c", "commit.gpgsign=false",
                "-C", str(self.path),
                *args,
            ],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()

    def write(self, files: Dict[str, str]) -> None:
        for rel, content in files.items():
            target = self.path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)

    def commit(self, files: Optional[Dict[str, str]] = None, message: str = "change") -> str:
        if files:
            self.write(files)
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.head()

    def remove(self, *paths: str) -> None:
        self.git("rm", "-q", *paths)

    def move(self, old: str, new: str) -> None:
        self.git("mv", old, new)

    def head(self) -> str:
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path):
    """An empty git repository; skipped when git is not installed."""
    if not shutil.which("git"):
        pytest.skip("git is not installed")
    path = tmp_path / "repo"
    path.mkdir()
    return GitRepo(path)


def _make_finding(
    file: str = "config.yaml",
    rule_id: str = "hardcoded-secret",
    detector: str = "fake",
    line: int = 1,
    matched: str = "s3cr3t",
    severity: Severity = Severity.HIGH,
    message: str = "Hardcoded secret",
) -> Finding:
    return Finding(
        detector=detector,
        rule_id=rule_id,
        file=file,
        start_line=line,
        end_line=line,
        content_hash=content_hash(matched),
        severity=severity,
        message=message,
    )


def _make_report(findings=(), verdict: Verdict = Verdict.FAIL, **kwargs) -> ScanReport:
    defaults = dict(
        scan_id="abc12345",
        revision_pair=RevisionPair.incremental("base", "head"),
        new_findings=tuple(findings),
        suppressed_count=0,
        verdict=verdict,
        duration_seconds=1.5,
        started_at=datetime(2024, 1, 1, 12, 0, 0),
        fail_on="HIGH",
        total_findings=len(findings),
        files_scanned=3,
        detectors_run=("fake",),
    )
    defaults.update(kwargs)
    return ScanReport(**defaults)


@pytest.fixture
def make_finding():
    return _make_finding


@pytest.fixture
def make_report():
    return _make_report


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI runs attach handlers to captured streams; drop them after each test."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
