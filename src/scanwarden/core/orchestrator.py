"""Scan orchestrator: one end-to-end scan cycle."""

import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .baseline import BaselineStore
from .changeset import ChangeSetResolver
from .detector import Detector, RuleConfig, create_detector
from .models import (
    ChangeSet,
    DetectorWarning,
    Finding,
    RevisionPair,
    ScanReport,
    Severity,
    TriggerContext,
    Verdict,
    sort_findings,
)
from ..utils.logger import get_logger, PerformanceLogger
from ..utils.config import Config
from ..utils.exceptions import (
    AllDetectorsFailedError,
    DetectorError,
    DetectorTimeoutError,
    DetectorUnavailableError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetectorSpec:
    """An enabled detector with its rule configuration and deadline."""
    detector: Detector
    rule_config: RuleConfig = field(default_factory=RuleConfig)
    timeout: float = 300.0

    @property
    def name(self) -> str:
        return self.detector.name


@dataclass(frozen=True)
class ScanOptions:
    timeout: float = 600.0
    max_concurrency: int = 4
    concurrency: Optional[int] = None
    ignore: Tuple[str, ...] = ()
    no_repeat: bool = False
    fail_on: str = "HIGH"

    def worker_count(self, enabled: int) -> int:
        """Default one worker per detector, capped by the operator maximum."""
        requested = self.concurrency or enabled
        return max(1, min(requested, self.max_concurrency, enabled))


def verdict_for(findings: Sequence[Finding], fail_on: str) -> Verdict:
    """Fail when any new finding meets the severity threshold."""
    if fail_on.upper() == "NONE":
        return Verdict.PASS
    threshold = Severity.from_string(fail_on)
    if any(f.severity >= threshold for f in findings):
        return Verdict.FAIL
    return Verdict.PASS


class ScanOrchestrator:
    """
    Drive a scan: resolve changes, run detectors, dedupe, judge.

    Pipeline:
    1. Resolve the change set (empty incremental -> passing report)
    2. Run detectors concurrently, each time-boxed
    3. Degrade failed detectors to warnings
    4. Merge findings in deterministic order
    5. Reconcile with the baseline under its writer lock
    6. Compute verdict and build the report
    """

    def __init__(
        self,
        repo_path: Path,
        store: BaselineStore,
        detectors: Sequence[DetectorSpec],
        options: Optional[ScanOptions] = None,
        resolver: Optional[ChangeSetResolver] = None,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.store = store
        self.detectors = list(detectors)
        self.options = options or ScanOptions()
        self.resolver = resolver or ChangeSetResolver(self.repo_path, ignore=list(self.options.ignore))

        names = [spec.name for spec in self.detectors]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate detectors: {names}")

    @classmethod
    def from_config(
        cls,
        repo_path: Path,
        config: Config,
        store: Optional[BaselineStore] = None,
    ) -> "ScanOrchestrator":
        """Build an orchestrator from configuration."""
        repo_path = Path(repo_path).resolve()
        specs = []
        for name in config.enabled_detectors():
            settings = config.detectors[name]
            specs.append(DetectorSpec(
                detector=create_detector(name),
                rule_config=RuleConfig(
                    rules=tuple(settings.rules),
                    severity=Severity.from_string(settings.severity) if settings.severity else None,
                    binary=settings.binary,
                ),
                timeout=float(settings.timeout),
            ))

        if store is None:
            baseline_path = Path(config.baseline.path)
            if not baseline_path.is_absolute():
                baseline_path = repo_path / baseline_path
            store = BaselineStore(baseline_path, lock_timeout=config.baseline.lock_timeout)

        options = ScanOptions(
            timeout=float(config.scan.timeout),
            max_concurrency=config.scan.max_concurrency,
            ignore=tuple(config.scan.ignore_patterns),
            no_repeat=config.scan.no_repeat,
            fail_on=config.scan.fail_on,
        )
        return cls(repo_path, store, specs, options=options)

    def run(
        self,
        revision_pair: RevisionPair,
        trigger: Optional[TriggerContext] = None,
    ) -> ScanReport:
        """
        Run one scan cycle.

        Raises:
            ResolutionError: A revision could not be resolved
            AllDetectorsFailedError: No detector produced a result
            StoreCorruptError: The baseline could not be read
        """
        if not self.detectors:
            raise AllDetectorsFailedError(
                "No detectors are enabled",
                suggestion="Enable at least one detector in the configuration",
            )

        scan_id = uuid.uuid4().hex[:8]
        started_at = datetime.now()
        start = time.monotonic()
        deadline = start + self.options.timeout

        logger.info(f"Starting scan {scan_id} on {self.repo_path} ({revision_pair.describe()})")

        with PerformanceLogger(logger, "resolve change set"):
            change_set, revision = self._resolve(revision_pair)

        if change_set.is_empty() and not revision_pair.full_scan:
            logger.info("No changes to scan")
            return self._report(
                scan_id, revision_pair, trigger, started_at, start,
                new_findings=(), suppressed=0, total=0, pruned=0,
                files_scanned=0, ran=(), failed=(), warnings=(),
            )

        with PerformanceLogger(logger, "run detectors"):
            results, warnings = self._run_detectors(change_set, deadline)

        failed = tuple(w.detector for w in warnings)
        if len(failed) == len(self.detectors):
            raise AllDetectorsFailedError(
                "All detectors failed; no findings can be reported",
                details={w.detector: f"{w.kind}: {w.message}" for w in warnings},
            )
        merged = sort_findings(f for findings in results.values() for f in findings)
        logger.info(f"Merged {len(merged)} findings from {len(results)} detectors")

        # Prune only what the completed detectors actually looked at
        scanned_paths = None if revision_pair.full_scan else change_set.scan_paths()
        with PerformanceLogger(logger, "reconcile baseline"):
            outcome = self.store.cycle(
                merged,
                revision,
                scanned_paths=scanned_paths,
                deleted_paths=change_set.deleted_paths(),
                detectors=results.keys(),
                no_repeat=self.options.no_repeat,
            )

        return self._report(
            scan_id, revision_pair, trigger, started_at, start,
            new_findings=outcome.new_findings,
            suppressed=outcome.suppressed_count,
            total=len(merged),
            pruned=len(outcome.pruned),
            files_scanned=len(change_set.scan_paths()),
            ran=tuple(sorted(results)),
            failed=tuple(sorted(failed)),
            warnings=tuple(sorted(warnings, key=lambda w: w.detector)),
        )

    def _resolve(self, revision_pair: RevisionPair) -> Tuple[ChangeSet, str]:
        if revision_pair.full_scan and not self.resolver.is_repository():
            logger.info("Target is not a git repository; scanning directory contents")
            return self.resolver.resolve_directory(), revision_pair.head
        change_set = self.resolver.resolve(revision_pair)
        return change_set, self.resolver.verify(revision_pair.head)

    def _run_detectors(
        self,
        change_set: ChangeSet,
        deadline: float,
    ) -> Tuple[Dict[str, List[Finding]], List[DetectorWarning]]:
        results: Dict[str, List[Finding]] = {}
        warnings: List[DetectorWarning] = []
        if not self.detectors:
            return results, warnings

        workers = self.options.worker_count(len(self.detectors))
        logger.debug(f"Running {len(self.detectors)} detectors with {workers} workers")

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="detector")
        try:
            futures: Dict[Future, DetectorSpec] = {
                executor.submit(self._invoke, spec, change_set, deadline): spec
                for spec in self.detectors
            }
            pending = set(futures)

            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    spec = futures[future]
                    warning = self._collect(spec, future, results)
                    if warning:
                        warnings.append(warning)

            for future in pending:
                spec = futures[future]
                future.cancel()
                logger.warning(f"{spec.name}: cancelled at global timeout")
                warnings.append(DetectorWarning(
                    spec.name, "timeout",
                    f"cancelled after global timeout of {self.options.timeout:.0f}s",
                ))
        finally:
            # Do not block on detectors that overran; their results are discarded
            executor.shutdown(wait=False, cancel_futures=True)

        return results, warnings

    def _invoke(self, spec: DetectorSpec, change_set: ChangeSet, deadline: float) -> List[Finding]:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise DetectorTimeoutError(spec.name, f"{spec.name}: no time left before global timeout")
        timeout = min(spec.timeout, remaining)
        return spec.detector.scan(change_set, spec.rule_config, self.repo_path, timeout=timeout)

    def _collect(
        self,
        spec: DetectorSpec,
        future: Future,
        results: Dict[str, List[Finding]],
    ) -> Optional[DetectorWarning]:
        try:
            findings = future.result()
        except DetectorUnavailableError as e:
            logger.warning(f"{spec.name} unavailable: {e.message}")
            return DetectorWarning(spec.name, "unavailable", e.message)
        except DetectorTimeoutError as e:
            logger.warning(f"{spec.name} timed out: {e.message}")
            return DetectorWarning(spec.name, "timeout", e.message)
        except DetectorError as e:
            logger.warning(f"{spec.name} failed: {e.message}")
            return DetectorWarning(spec.name, "error", e.message)
        except Exception as e:
            # Adapter bug or unexpected backend output; keep the other detectors' results
            logger.warning(f"{spec.name} crashed: {e}", exc_info=True)
            return DetectorWarning(spec.name, "error", f"{type(e).__name__}: {e}")

        logger.info(f"{spec.name} reported {len(findings)} findings")
        results[spec.name] = list(findings)
        return None

    def _report(
        self,
        scan_id: str,
        revision_pair: RevisionPair,
        trigger: Optional[TriggerContext],
        started_at: datetime,
        start: float,
        new_findings: Sequence[Finding],
        suppressed: int,
        total: int,
        pruned: int,
        files_scanned: int,
        ran: Tuple[str, ...],
        failed: Tuple[str, ...],
        warnings: Tuple[DetectorWarning, ...],
    ) -> ScanReport:
        verdict = verdict_for(new_findings, self.options.fail_on)
        report = ScanReport(
            scan_id=scan_id,
            revision_pair=revision_pair,
            new_findings=tuple(new_findings),
            suppressed_count=suppressed,
            verdict=verdict,
            duration_seconds=time.monotonic() - start,
            started_at=started_at,
            fail_on=self.options.fail_on.upper(),
            total_findings=total,
            pruned_count=pruned,
            files_scanned=files_scanned,
            detectors_run=ran,
            detectors_failed=failed,
            warnings=warnings,
            trigger=trigger.event if trigger else None,
        )
        logger.info(
            f"Scan {scan_id} {verdict.value}: {len(new_findings)} new, "
            f"{suppressed} suppressed, {len(warnings)} warnings"
        )
        return report
