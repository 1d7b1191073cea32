"""Shared data model: revisions, change sets, findings and reports."""

import hashlib
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


class Severity(Enum):
    """Finding severity, ordered by rank."""
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        """Parse a severity (case-insensitive)."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value}")

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __ge__(self, other: "Severity") -> bool:
        return self.rank >= other.rank

    def __gt__(self, other: "Severity") -> bool:
        return self.rank > other.rank

    def __le__(self, other: "Severity") -> bool:
        return self.rank <= other.rank

    def __lt__(self, other: "Severity") -> bool:
        return self.rank < other.rank


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class TriggerEvent(Enum):
    """Repository events that start a scan."""
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    WORKFLOW_DISPATCH = "workflow_dispatch"
    SCHEDULE = "schedule"


# A push that creates a branch reports this as its "before" sha
NULL_SHA = "0" * 40


@dataclass(frozen=True)
class RevisionPair:
    """Range of history to scan; full scans only need head."""
    head: str
    base: Optional[str] = None
    full_scan: bool = False

    def __post_init__(self):
        if not self.head:
            raise ValueError("Revision pair requires a head revision")
        if not self.full_scan and not self.base:
            raise ValueError("Incremental revision pair requires a base revision")

    @classmethod
    def full(cls, head: str = "HEAD") -> "RevisionPair":
        return cls(head=head, base=None, full_scan=True)

    @classmethod
    def incremental(cls, base: str, head: str = "HEAD") -> "RevisionPair":
        return cls(head=head, base=base, full_scan=False)

    def describe(self) -> str:
        if self.full_scan:
            return f"full@{self.head}"
        return f"{self.base}..{self.head}"

    def to_dict(self) -> Dict[str, Any]:
        return {"base": self.base, "head": self.head, "full_scan": self.full_scan}


@dataclass(frozen=True)
class TriggerContext:
    """The event that started a scan, reduced to what the scan needs."""
    event: TriggerEvent
    head: str = "HEAD"
    base: Optional[str] = None
    ref: Optional[str] = None

    def revision_pair(self) -> RevisionPair:
        """Map the event to the revision range to scan."""
        if self.event in (TriggerEvent.SCHEDULE, TriggerEvent.WORKFLOW_DISPATCH):
            return RevisionPair.full(self.head)
        if not self.base or self.base == NULL_SHA:
            return RevisionPair.full(self.head)
        return RevisionPair.incremental(self.base, self.head)

    @classmethod
    def from_github_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TriggerContext":
        """Build a trigger context from the GitHub Actions environment."""
        environ = os.environ if environ is None else environ
        name = environ.get("GITHUB_EVENT_NAME", "workflow_dispatch")
        try:
            event = TriggerEvent(name)
        except ValueError:
            event = TriggerEvent.WORKFLOW_DISPATCH

        payload: Dict[str, Any] = {}
        event_path = environ.get("GITHUB_EVENT_PATH")
        if event_path and Path(event_path).exists():
            with open(event_path) as f:
                payload = json.load(f)

        head = environ.get("GITHUB_SHA") or "HEAD"
        base = None
        if event is TriggerEvent.PULL_REQUEST:
            pr = payload.get("pull_request", {})
            base = pr.get("base", {}).get("sha")
            head = pr.get("head", {}).get("sha") or head
        elif event is TriggerEvent.PUSH:
            base = payload.get("before")
            head = payload.get("after") or head

        return cls(event=event, head=head, base=base, ref=environ.get("GITHUB_REF"))


class ChangeType(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangedFile:
    path: str
    change_type: ChangeType
    previous_path: Optional[str] = None


class ChangeSet:
    """Ordered, duplicate-free set of changed files."""

    def __init__(self, files: Iterable[ChangedFile] = ()):
        self._files: Tuple[ChangedFile, ...] = tuple(files)
        seen = set()
        for changed in self._files:
            if changed.path in seen:
                raise ValueError(f"Duplicate path in change set: {changed.path}")
            seen.add(changed.path)

    def __iter__(self):
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: str) -> bool:
        return any(changed.path == path for changed in self._files)

    @property
    def files(self) -> Tuple[ChangedFile, ...]:
        return self._files

    def paths(self) -> List[str]:
        return [changed.path for changed in self._files]

    def scan_paths(self) -> List[str]:
        """Paths to hand to detectors (deletions excluded)."""
        return [c.path for c in self._files if c.change_type is not ChangeType.DELETED]

    def deleted_paths(self) -> List[str]:
        """Paths removed by the change; used for baseline pruning."""
        deleted = [c.path for c in self._files if c.change_type is ChangeType.DELETED]
        # The old side of a rename no longer exists either
        deleted.extend(
            c.previous_path for c in self._files
            if c.change_type is ChangeType.RENAMED and c.previous_path
        )
        return deleted

    def is_empty(self) -> bool:
        return not self._files

    def __repr__(self) -> str:
        return f"ChangeSet({len(self._files)} files)"


def content_hash(matched: str) -> str:
    """Hash of the matched span's bytes; stable when surrounding lines move."""
    return hashlib.sha256(matched.encode("utf-8", errors="replace")).hexdigest()


def compute_fingerprint(detector: str, rule_id: str, file: str, matched_hash: str) -> str:
    """Identity of a finding across runs."""
    key = "\x1f".join([detector, rule_id, file, matched_hash])
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Finding:
    """A single detector result in the common shape."""
    detector: str
    rule_id: str
    file: str
    start_line: int
    end_line: int
    content_hash: str
    severity: Severity
    message: str
    column: int = 0
    snippet: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(self.detector, self.rule_id, self.file, self.content_hash)

    def sort_key(self) -> Tuple[str, str, int, int, str]:
        return (self.detector, self.file, self.start_line, self.column, self.rule_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "detector": self.detector,
            "rule_id": self.rule_id,
            "file": self.file,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "column": self.column,
            "content_hash": self.content_hash,
            "severity": self.severity.value,
            "message": self.message,
            "snippet": self.snippet,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        return cls(
            detector=data["detector"],
            rule_id=data["rule_id"],
            file=data["file"],
            start_line=int(data["start_line"]),
            end_line=int(data.get("end_line", data["start_line"])),
            content_hash=data["content_hash"],
            severity=Severity.from_string(data["severity"]),
            message=data.get("message", ""),
            column=int(data.get("column", 0)),
            snippet=data.get("snippet", ""),
            metadata=dict(data.get("metadata") or {}),
        )


def sort_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Deterministic merge order: detector, file, line."""
    return sorted(findings, key=Finding.sort_key)


@dataclass(frozen=True)
class DetectorWarning:
    detector: str
    kind: str  # unavailable | timeout | error
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"detector": self.detector, "kind": self.kind, "message": self.message}


class Verdict(Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class ScanReport:
    """Outcome of one orchestrator run; immutable once built."""
    scan_id: str
    revision_pair: RevisionPair
    new_findings: Tuple[Finding, ...]
    suppressed_count: int
    verdict: Verdict
    duration_seconds: float
    started_at: datetime
    fail_on: str = "HIGH"
    total_findings: int = 0
    pruned_count: int = 0
    files_scanned: int = 0
    detectors_run: Tuple[str, ...] = ()
    detectors_failed: Tuple[str, ...] = ()
    warnings: Tuple[DetectorWarning, ...] = ()
    trigger: Optional[TriggerEvent] = None

    @property
    def passed(self) -> bool:
        return self.verdict is Verdict.PASS

    def findings_by_severity(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in sorted(Severity, reverse=True)}
        for finding in self.new_findings:
            counts[finding.severity.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "revision_pair": self.revision_pair.to_dict(),
            "trigger": self.trigger.value if self.trigger else None,
            "verdict": self.verdict.value,
            "fail_on": self.fail_on,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "files_scanned": self.files_scanned,
            "total_findings": self.total_findings,
            "new_findings_count": len(self.new_findings),
            "suppressed_count": self.suppressed_count,
            "pruned_count": self.pruned_count,
            "findings_by_severity": self.findings_by_severity(),
            "detectors_run": list(self.detectors_run),
            "detectors_failed": list(self.detectors_failed),
            "warnings": [w.to_dict() for w in self.warnings],
            "new_findings": [f.to_dict() for f in self.new_findings],
        }
