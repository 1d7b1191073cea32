"""Persistent baseline of previously reported findings."""

import errno
import json
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .models import Finding, sort_findings
from ..utils.logger import get_logger
from ..utils.exceptions import StoreCorruptError, StoreLockError

logger = get_logger(__name__)

BASELINE_VERSION = 1


@dataclass(frozen=True)
class BaselineEntry:
    """What the store remembers about one fingerprint."""
    first_seen: str
    last_seen: str
    suppressed: bool = False
    detector: str = ""
    rule_id: str = ""
    file: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "suppressed": self.suppressed,
            "detector": self.detector,
            "rule_id": self.rule_id,
            "file": self.file,
        }


@dataclass
class Baseline:
    """Mapping of fingerprint to entry."""
    entries: Dict[str, BaselineEntry] = field(default_factory=dict)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, fingerprint: str) -> Optional[BaselineEntry]:
        return self.entries.get(fingerprint)

    def copy(self) -> "Baseline":
        return Baseline(dict(self.entries))

    def suppressed_count(self) -> int:
        return sum(1 for entry in self.entries.values() if entry.suppressed)

    def find(self, prefix: str) -> List[str]:
        """Fingerprints starting with a (short) prefix."""
        return sorted(fp for fp in self.entries if fp.startswith(prefix))

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": BASELINE_VERSION,
            "entries": {fp: entry.to_dict() for fp, entry in sorted(self.entries.items())},
        }

    @classmethod
    def from_dict(cls, data: object) -> "Baseline":
        if not isinstance(data, dict):
            raise ValueError("baseline root must be an object")
        version = data.get("version")
        if version != BASELINE_VERSION:
            raise ValueError(f"unsupported baseline version: {version!r}")
        raw_entries = data.get("entries")
        if not isinstance(raw_entries, dict):
            raise ValueError("baseline 'entries' must be an object")

        entries = {}
        for fp, raw in raw_entries.items():
            if not isinstance(raw, dict):
                raise ValueError(f"entry {fp} must be an object")
            entries[fp] = BaselineEntry(
                first_seen=str(raw["first_seen"]),
                last_seen=str(raw["last_seen"]),
                suppressed=bool(raw.get("suppressed", False)),
                detector=str(raw.get("detector", "")),
                rule_id=str(raw.get("rule_id", "")),
                file=str(raw.get("file", "")),
            )
        return cls(entries)


@dataclass(frozen=True)
class ReconcileResult:
    new_findings: Tuple[Finding, ...]
    suppressed_count: int
    baseline: Baseline
    pruned: Tuple[str, ...] = ()


# Lock objects shared by every store pointing at the same file in this process
_PROCESS_LOCKS: Dict[str, threading.Lock] = {}
_PROCESS_LOCKS_GUARD = threading.Lock()


def _process_lock(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _PROCESS_LOCKS_GUARD:
        lock = _PROCESS_LOCKS.get(key)
        if lock is None:
            lock = _PROCESS_LOCKS[key] = threading.Lock()
        return lock


class BaselineStore:
    """
    JSON-file baseline with a single-writer critical section.

    Features:
    - Fingerprint-keyed entries with first/last seen revisions
    - Order-independent reconcile with optional no-repeat policy
    - Atomic writes (temp file + rename)
    - In-process and cross-process locking around load/reconcile/persist
    """

    def __init__(
        self,
        path: Path,
        lock_timeout: float = 30.0,
        poll_interval: float = 0.05,
    ):
        """
        Initialize baseline store.

        Args:
            path: Baseline JSON file
            lock_timeout: Seconds to wait for the writer lock
            poll_interval: Sleep between lock-file attempts
        """
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def load(self) -> Baseline:
        """
        Load the persisted baseline.

        Returns:
            Empty baseline if nothing was persisted yet

        Raises:
            StoreCorruptError: If the file cannot be parsed
        """
        if not self.path.exists():
            logger.debug(f"No baseline at {self.path}, starting empty")
            return Baseline()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            baseline = Baseline.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            raise StoreCorruptError(
                f"Baseline cannot be parsed: {self.path}",
                details={"error": str(e)},
                suggestion="Restore the file from a previous run or delete it to start fresh",
            )

        logger.debug(f"Loaded baseline with {len(baseline)} entries")
        return baseline

    def reconcile(
        self,
        baseline: Baseline,
        findings: Iterable[Finding],
        revision: str,
        scanned_paths: Optional[Iterable[str]] = None,
        deleted_paths: Iterable[str] = (),
        detectors: Optional[Iterable[str]] = None,
        no_repeat: bool = False,
    ) -> ReconcileResult:
        """
        Partition findings into new and suppressed, and update the baseline.

        Args:
            baseline: Baseline as loaded (not modified)
            findings: Findings from this run, any order
            revision: Revision recorded as first/last seen
            scanned_paths: Files the run covered; None means the whole tree
            deleted_paths: Files removed by the change
            detectors: Detectors that completed; None means all of them
            no_repeat: Fold already-known findings into the suppressed count

        Returns:
            ReconcileResult with new findings in stable order
        """
        unique: Dict[str, Finding] = {}
        for finding in sort_findings(findings):
            unique.setdefault(finding.fingerprint, finding)

        entries = dict(baseline.entries)
        new_findings = []
        suppressed = 0

        for fp, finding in unique.items():
            entry = entries.get(fp)
            if entry is None:
                entries[fp] = BaselineEntry(
                    first_seen=revision,
                    last_seen=revision,
                    detector=finding.detector,
                    rule_id=finding.rule_id,
                    file=finding.file,
                )
                new_findings.append(finding)
                continue

            entries[fp] = replace(entry, last_seen=revision)
            if entry.suppressed or no_repeat:
                suppressed += 1
            else:
                new_findings.append(finding)

        scope = None if scanned_paths is None else set(scanned_paths) | set(deleted_paths)
        ran = None if detectors is None else set(detectors)
        pruned = []
        for fp, entry in baseline.entries.items():
            if fp in unique:
                continue
            if scope is not None and entry.file not in scope:
                continue
            if ran is not None and entry.detector not in ran:
                continue
            pruned.append(fp)
            del entries[fp]

        if pruned:
            logger.info(f"Pruned {len(pruned)} resolved findings from baseline")

        return ReconcileResult(
            new_findings=tuple(new_findings),
            suppressed_count=suppressed,
            baseline=Baseline(entries),
            pruned=tuple(sorted(pruned)),
        )

    def persist(self, baseline: Baseline) -> None:
        """Write the baseline atomically; readers never see a partial file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(baseline.to_dict(), f, indent=2, sort_keys=True)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        logger.debug(f"Persisted baseline with {len(baseline)} entries to {self.path}")

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold the single-writer lock for this baseline.

        Raises:
            StoreLockError: If the lock is not acquired within lock_timeout
        """
        thread_lock = _process_lock(self.path)
        deadline = time.monotonic() + self.lock_timeout

        if not thread_lock.acquire(timeout=self.lock_timeout):
            raise StoreLockError(
                f"Timed out waiting for baseline lock: {self.path}",
                details={"timeout": self.lock_timeout},
            )
        try:
            self._acquire_lock_file(deadline)
            try:
                yield
            finally:
                self._release_lock_file()
        finally:
            thread_lock.release()

    def cycle(
        self,
        findings: Iterable[Finding],
        revision: str,
        scanned_paths: Optional[Iterable[str]] = None,
        deleted_paths: Iterable[str] = (),
        detectors: Optional[Iterable[str]] = None,
        no_repeat: bool = False,
    ) -> ReconcileResult:
        """Load, reconcile and persist as one critical section."""
        findings = list(findings)
        with self.lock():
            baseline = self.load()
            result = self.reconcile(
                baseline,
                findings,
                revision,
                scanned_paths=scanned_paths,
                deleted_paths=deleted_paths,
                detectors=detectors,
                no_repeat=no_repeat,
            )
            self.persist(result.baseline)
        return result

    def suppress(self, fingerprint: str) -> BaselineEntry:
        """Mark a fingerprint as acknowledged."""
        return self._set_suppressed(fingerprint, True)

    def unsuppress(self, fingerprint: str) -> BaselineEntry:
        return self._set_suppressed(fingerprint, False)

    def clear(self) -> int:
        """Drop every entry; returns how many were removed."""
        with self.lock():
            baseline = self.load()
            count = len(baseline)
            self.persist(Baseline())
        return count

    def _set_suppressed(self, fingerprint: str, suppressed: bool) -> BaselineEntry:
        with self.lock():
            baseline = self.load()
            matches = baseline.find(fingerprint)
            if len(matches) != 1:
                raise KeyError(fingerprint if not matches else f"ambiguous prefix: {fingerprint}")
            fp = matches[0]
            entry = replace(baseline.entries[fp], suppressed=suppressed)
            baseline.entries[fp] = entry
            self.persist(baseline)

        logger.info(f"{'Suppressed' if suppressed else 'Unsuppressed'} {fp[:12]}")
        return entry

    def _acquire_lock_file(self, deadline: float) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        while True:
            try:
                fd = os.open(str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except OSError as e:
                if e.errno != errno.EEXIST:
                    raise
                if time.monotonic() >= deadline:
                    raise StoreLockError(
                        f"Baseline is locked by another process: {self.lock_path}",
                        details={"timeout": self.lock_timeout},
                        suggestion="Wait for the other scan to finish or remove a stale lock file",
                    )
                time.sleep(self.poll_interval)
                continue

            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            return

    def _release_lock_file(self) -> None:
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            logger.warning(f"Baseline lock file vanished: {self.lock_path}")
