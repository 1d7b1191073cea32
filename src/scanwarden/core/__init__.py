
"""Core scanning engine."""

from .models import (
    ChangedFile,
    ChangeSet,
    ChangeType,
    DetectorWarning,
    Finding,
    RevisionPair,
    ScanReport,
    Severity,
    TriggerContext,
    TriggerEvent,
    Verdict,
    compute_fingerprint,
    content_hash,
    sort_findings,
)
from .changeset import ChangeSetResolver, is_ignored
from .baseline import Baseline, BaselineEntry, BaselineStore, ReconcileResult
from .detector import (
    Detector,
    RuleConfig,
    available_detectors,
    create_detector,
    register_detector,
)
# Importing the adapters registers them
from .gitleaks_runner import GitleaksDetector
from .semgrep_runner import SemgrepDetector
from .secrets_detector import PatternSecretDetector
from .orchestrator import DetectorSpec, ScanOptions, ScanOrchestrator, verdict_for

__all__ = [
    "ChangedFile",
    "ChangeSet",
    "ChangeType",
    "DetectorWarning",
    "Finding",
    "RevisionPair",
    "ScanReport",
    "Severity",
    "TriggerContext",
    "TriggerEvent",
    "Verdict",
    "compute_fingerprint",
    "content_hash",
    "sort_findings",
    "ChangeSetResolver",
    "is_ignored",
    "Baseline",
    "BaselineEntry",
    "BaselineStore",
    "ReconcileResult",
    "Detector",
    "RuleConfig",
    "available_detectors",
    "create_detector",
    "register_detector",
    "GitleaksDetector",
    "SemgrepDetector",
    "PatternSecretDetector",
    "DetectorSpec",
    "ScanOptions",
    "ScanOrchestrator",
    "verdict_for",
]
