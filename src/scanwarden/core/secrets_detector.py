"""In-process secret pattern matcher with entropy analysis."""

import math
import re
import time
from collections import Counter
from pathlib import Path
from typing import List, Optional, Pattern, Sequence, Tuple

from .detector import Detector, RuleConfig, read_text, redact, register_detector
from .models import ChangeSet, Finding, Severity, content_hash
from ..utils.logger import get_logger
from ..utils.exceptions import DetectorTimeoutError

logger = get_logger(__name__)


def _rule(rule_id: str, title: str, pattern: str, severity: Severity) -> Tuple[str, str, Pattern, Severity]:
    return rule_id, title, re.compile(pattern), severity


@register_detector
class PatternSecretDetector(Detector):
    """
    Detect secrets with regex rules and Shannon entropy.

    Always available: no external backend. Useful as a fallback when the
    gitleaks binary is missing on the runner.
    """

    name = "patterns"

    RULES = [
        # Cloud providers
        _rule("aws-access-key-id", "AWS Access Key ID",
              r"(A3T[A-Z0-9]|AKIA|AGPA|AIDA|AROA|AIPA|ANPA|ANVA|ASIA)[0-9A-Z]{16}", Severity.CRITICAL),
        _rule("aws-secret-access-key", "AWS Secret Access Key",
              r"(?i)aws(.{0,20})?(?:secret|password)(.{0,20})?['\"][0-9a-zA-Z/+=]{40}['\"]", Severity.CRITICAL),
        _rule("gcp-api-key", "Google Cloud API Key",
              r"AIza[0-9A-Za-z\-_]{35}", Severity.CRITICAL),
        # Tokens
        _rule("github-pat", "GitHub Personal Access Token",
              r"ghp_[0-9a-zA-Z]{36}", Severity.HIGH),
        _rule("github-oauth", "GitHub OAuth Token",
              r"gho_[0-9a-zA-Z]{36}", Severity.HIGH),
        _rule("github-app-token", "GitHub App Token",
              r"(ghu|ghs)_[0-9a-zA-Z]{36}", Severity.HIGH),
        _rule("gitlab-pat", "GitLab Personal Access Token",
              r"glpat-[0-9a-zA-Z\-_]{20}", Severity.HIGH),
        _rule("slack-token", "Slack Token",
              r"xox[baprs]-[0-9]{10,13}-[0-9]{10,13}-[a-zA-Z0-9]{24,}", Severity.HIGH),
        _rule("slack-webhook", "Slack Webhook",
              r"https://hooks\.slack\.com/services/T[a-zA-Z0-9_]{8,}/B[a-zA-Z0-9_]{8,}/[a-zA-Z0-9_]{24,}",
              Severity.MEDIUM),
        _rule("stripe-key", "Stripe API Key",
              r"(sk|pk)_(test|live)_[0-9a-zA-Z]{24,}", Severity.CRITICAL),
        _rule("sendgrid-api-key", "SendGrid API Key",
              r"SG\.[a-zA-Z0-9_\-]{22}\.[a-zA-Z0-9_\-]{43}", Severity.HIGH),
        _rule("generic-api-key", "Generic API Key",
              r"(?i)(api[_-]?key|apikey|api[_-]?token)\s*[:=]\s*['\"]([a-zA-Z0-9_\-]{32,})['\"]", Severity.HIGH),
        # Credentials
        _rule("hardcoded-password", "Hardcoded Password",
              r"(?i)(password|passwd|pwd)\s*[:=]\s*['\"]([^'\"]{8,})['\"]", Severity.MEDIUM),
        _rule("database-url", "Database Connection String",
              r"(?i)(mongodb|mysql|postgresql|postgres|redis)://[^\s:@/]+:[^\s@]+@[^\s]+", Severity.HIGH),
        # Private keys
        _rule("private-key", "Private Key",
              r"-----BEGIN (RSA |OPENSSH |EC |DSA |PGP )?PRIVATE KEY( BLOCK)?-----", Severity.CRITICAL),
        _rule("jwt", "JSON Web Token",
              r"eyJ[A-Za-z0-9_\-]+\.eyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+", Severity.MEDIUM),
    ]

    ENTROPY_RULE = "high-entropy-string"
    DEFAULT_ENTROPY_THRESHOLD = 4.5
    MIN_ENTROPY_LENGTH = 20
    MAX_ENTROPY_LENGTH = 100  # longer runs are usually embedded data
    ENTROPY_TOKEN = re.compile(r"[A-Za-z0-9_/+=\-]{20,100}")

    FALSE_POSITIVE_PATTERNS = [
        re.compile(p) for p in (
            r"^[0-9]+$",
            r"^[a-f0-9]{32}$",  # MD5
            r"^[a-f0-9]{40}$",  # SHA1 / git object ids
            r"^[a-f0-9]{64}$",  # SHA256
            r"^(true|false|null|undefined)$",
            r"^example",
            r"^dummy",
        )
    ]

    def scan(
        self,
        change_set: ChangeSet,
        rule_config: RuleConfig,
        repo_path: Path,
        timeout: Optional[float] = None,
    ) -> List[Finding]:
        repo_path = Path(repo_path).resolve()
        deadline = time.monotonic() + timeout if timeout else None
        threshold = float(rule_config.options.get("entropy_threshold", self.DEFAULT_ENTROPY_THRESHOLD))
        enable_entropy = bool(rule_config.options.get("entropy", True))

        findings: List[Finding] = []
        file_count = 0
        for rel_path in change_set.scan_paths():
            if deadline is not None and time.monotonic() > deadline:
                raise DetectorTimeoutError(self.name, f"{self.name} timed out after {timeout:.0f}s")

            content = read_text(repo_path / rel_path)
            if content is None:
                continue
            file_count += 1
            findings.extend(self.scan_text(rel_path, content, rule_config, threshold, enable_entropy))

        logger.info(f"Pattern detector scanned {file_count} files, found {len(findings)} findings")
        return self.finalize(findings)

    def scan_text(
        self,
        rel_path: str,
        content: str,
        rule_config: RuleConfig = RuleConfig(),
        entropy_threshold: float = DEFAULT_ENTROPY_THRESHOLD,
        enable_entropy: bool = True,
    ) -> List[Finding]:
        """Scan one file's text; one finding per rule and matched span."""
        rules = self.select_rules(rule_config.rules)
        enable_entropy = enable_entropy and (not rule_config.rules or self.ENTROPY_RULE in rule_config.rules)
        findings = []
        seen = set()

        for linenum, line in enumerate(content.splitlines(), 1):
            claimed = []
            for rule_id, title, pattern, severity in rules:
                for match in pattern.finditer(line):
                    matched = match.group(0)
                    if self._is_false_positive(matched):
                        continue
                    claimed.append(match.span())
                    key = (rule_id, linenum, match.start())
                    if key in seen:
                        continue
                    seen.add(key)
                    findings.append(self._build_finding(
                        rel_path, linenum, match.start() + 1, line, matched,
                        rule_id, f"Possible {title}", rule_config.severity or severity,
                    ))

            if not enable_entropy:
                continue

            for match in self.ENTROPY_TOKEN.finditer(line):
                token = match.group(0)
                # Already reported by a named rule
                if any(s <= match.start() < e for s, e in claimed):
                    continue
                if self._is_false_positive(token):
                    continue
                entropy = self._calculate_entropy(token)
                if entropy >= entropy_threshold:
                    findings.append(self._build_finding(
                        rel_path, linenum, match.start() + 1, line, token,
                        self.ENTROPY_RULE,
                        f"High-entropy string (entropy: {entropy:.2f}); review manually",
                        rule_config.severity or Severity.MEDIUM,
                    ))

        return findings

    @classmethod
    def rule_ids(cls) -> List[str]:
        return [rule[0] for rule in cls.RULES] + [cls.ENTROPY_RULE]

    def select_rules(self, rule_ids: Sequence[str]) -> List[Tuple[str, str, Pattern, Severity]]:
        """Named rules to run; an empty selection means all of them."""
        if not rule_ids:
            return list(self.RULES)
        wanted = set(rule_ids)
        return [rule for rule in self.RULES if rule[0] in wanted]

    def _is_false_positive(self, text: str) -> bool:
        text_lower = text.lower()
        return any(p.match(text_lower) for p in self.FALSE_POSITIVE_PATTERNS)

    def _calculate_entropy(self, data: str) -> float:
        """Shannon entropy in bits per character."""
        if not data:
            return 0.0

        counter = Counter(data)
        length = len(data)
        entropy = 0.0

        for count in counter.values():
            p = count / length
            entropy -= p * math.log2(p)

        return entropy

    def _build_finding(
        self,
        rel_path: str,
        linenum: int,
        column: int,
        line: str,
        matched: str,
        rule_id: str,
        message: str,
        severity: Severity,
    ) -> Finding:
        return Finding(
            detector=self.name,
            rule_id=rule_id,
            file=rel_path,
            start_line=linenum,
            end_line=linenum,
            column=column,
            content_hash=content_hash(matched),
            severity=severity,
            message=message,
            snippet=redact(line.strip(), matched),
            metadata={"cwe": "CWE-798"},
        )
