"""Resolve the set of files a scan has to look at."""

import fnmatch
import os
import shutil
import subprocess
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional

from .models import ChangedFile, ChangeSet, ChangeType, RevisionPair
from ..utils.logger import get_logger
from ..utils.exceptions import ResolutionError

logger = get_logger(__name__)

# Holds the baseline; never part of a directory scan
STATE_DIR = ".scanwarden"

_STATUS_MAP = {
    "A": ChangeType.ADDED,
    "C": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    "T": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
}


def is_ignored(path: str, patterns: Iterable[str]) -> bool:
    """
    Match a repo-relative path against ignore patterns.

    A pattern matches the whole path, or any leading directory of it, so
    ``vendor`` and ``vendor/`` both exclude everything under ``vendor/``.
    """
    parts = PurePosixPath(path).parts
    prefixes = ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]

    for pattern in patterns:
        pattern = pattern.strip().rstrip("/")
        if not pattern:
            continue
        if fnmatch.fnmatch(path, pattern):
            return True
        for prefix in prefixes:
            if fnmatch.fnmatch(prefix, pattern):
                return True
        # Bare names match at any depth (e.g. "node_modules", "*.min.js")
        if "/" not in pattern and any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


class ChangeSetResolver:
    """
    Compute the files to scan for a revision pair using git history.

    Resolution is a pure read: nothing in the working tree or refs changes.
    """

    def __init__(
        self,
        repo_path: Path,
        ignore: Optional[List[str]] = None,
        git_binary: str = "git",
        timeout: int = 60,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.ignore = list(ignore or [])
        self.git_binary = git_binary
        self.timeout = timeout

    def resolve(self, revision_pair: RevisionPair) -> ChangeSet:
        """
        Resolve a revision pair into a change set.

        Raises:
            ResolutionError: If git is unavailable or a revision is unknown
        """
        head = self.verify(revision_pair.head)

        if revision_pair.full_scan:
            files = self._tracked_files(head)
        else:
            base = self.verify(revision_pair.base)
            files = self._diff(self.merge_base(base, head), head)

        kept = [changed for changed in files if not is_ignored(changed.path, self.ignore)]
        skipped = len(files) - len(kept)
        if skipped:
            logger.debug(f"Ignored {skipped} paths matching ignore list")

        change_set = ChangeSet(kept)
        logger.info(
            f"Resolved {revision_pair.describe()}: {len(change_set)} paths "
            f"({len(change_set.scan_paths())} to scan)"
        )
        return change_set

    def resolve_paths(self, paths: Iterable[str], change_type: ChangeType = ChangeType.ADDED) -> ChangeSet:
        """Build a change set from explicit repo-relative paths."""
        seen = set()
        files = []
        for path in paths:
            path = PurePosixPath(path).as_posix()
            if path in seen or is_ignored(path, self.ignore):
                continue
            seen.add(path)
            files.append(ChangedFile(path, change_type))
        return ChangeSet(files)

    def resolve_directory(self) -> ChangeSet:
        """Full scan of a plain directory that is not a git repository."""
        paths = []
        for root, dirs, filenames in os.walk(self.repo_path):
            rel_root = Path(root).relative_to(self.repo_path).as_posix()
            rel_root = "" if rel_root == "." else rel_root
            dirs[:] = sorted(
                d for d in dirs
                if d not in (".git", STATE_DIR) and not is_ignored(f"{rel_root}/{d}".lstrip("/"), self.ignore)
            )
            for filename in sorted(filenames):
                paths.append(f"{rel_root}/{filename}".lstrip("/"))
        return self.resolve_paths(paths)

    def is_repository(self) -> bool:
        try:
            output = self._git("rev-parse", "--is-inside-work-tree")
        except ResolutionError:
            return False
        return output.strip() == "true"

    def verify(self, revision: str) -> str:
        """Resolve a revision to a commit id or raise ResolutionError."""
        try:
            return self._git("rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}").strip()
        except ResolutionError as e:
            raise ResolutionError(
                f"Unknown or unreachable revision: {revision}",
                details={"repository": str(self.repo_path), "git": e.details.get("stderr", "")},
                suggestion="Fetch enough history (e.g. actions/checkout with fetch-depth: 0)",
            )

    def merge_base(self, base: str, head: str) -> str:
        """
        Common ancestor of base and head.

        Diffing from here keeps commits that only landed on the base branch
        out of the change set.
        """
        try:
            fork_point = self._git("merge-base", base, head).strip()
        except ResolutionError as e:
            raise ResolutionError(
                f"No common history between {base[:12]} and {head[:12]}",
                details={"repository": str(self.repo_path), "git": e.details.get("stderr", "")},
                suggestion="Fetch enough history (e.g. actions/checkout with fetch-depth: 0)",
            )
        if fork_point != base:
            logger.debug(f"Base {base[:12]} has diverged; diffing from merge base {fork_point[:12]}")
        return fork_point

    def _tracked_files(self, head: str) -> List[ChangedFile]:
        output = self._git("ls-tree", "-r", "--name-only", "-z", head)
        paths = [p for p in output.split("\0") if p]
        # ls-tree output is already unique, keep it ordered for stable reports
        return [ChangedFile(path, ChangeType.ADDED) for path in sorted(set(paths))]

    def _diff(self, base: str, head: str) -> List[ChangedFile]:
        output = self._git("diff", "--name-status", "-z", "-M", base, head)
        tokens = [t for t in output.split("\0") if t]

        files = {}
        i = 0
        while i < len(tokens):
            status = tokens[i]
            letter = status[0]
            change_type = _STATUS_MAP.get(letter, ChangeType.MODIFIED)
            if letter in ("R", "C"):
                old_path, new_path = tokens[i + 1], tokens[i + 2]
                i += 3
                previous = old_path if letter == "R" else None
                files[new_path] = ChangedFile(new_path, change_type, previous)
            else:
                path = tokens[i + 1]
                i += 2
                files[path] = ChangedFile(path, change_type)

        return [files[path] for path in sorted(files)]

    def _git(self, *args: str) -> str:
        if not shutil.which(self.git_binary):
            raise ResolutionError(
                f"git executable not found: {self.git_binary}",
                suggestion="Install git or put it on PATH",
            )

        cmd = [self.git_binary, "-C", str(self.repo_path), *args]
        logger.debug(f"Command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ResolutionError(f"git {args[0]} timed out after {self.timeout}s")
        except OSError as e:
            raise ResolutionError(f"Failed to run git: {e}")

        if result.returncode != 0:
            raise ResolutionError(
                f"git {args[0]} failed with exit code {result.returncode}",
                details={"stderr": result.stderr.strip()[:500]},
            )

        return result.stdout
