#!/usr/bin/env python3
"""GitHub Action runner script."""

import argparse
import os
import sys
from pathlib import Path

import requests

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from scanwarden.core import ScanOrchestrator, TriggerContext
from scanwarden.github.pr_commenter import PRCommenter
from scanwarden.github.reporter import Reporter, severity_outputs
from scanwarden.github.sarif_generator import SARIFGenerator
from scanwarden.github.status_checker import StatusChecker
from scanwarden.utils.config import Config
from scanwarden.utils.env_loader import load_env
from scanwarden.utils.exceptions import ScanWardenError
from scanwarden.utils.logger import setup_logging


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser()
    parser.add_argument("--target", default=".")
    parser.add_argument("--detectors", default="", help="Comma-separated detector names")
    parser.add_argument("--fail-on", default="")
    parser.add_argument("--no-repeat", default="")
    parser.add_argument("--baseline", default="")
    parser.add_argument("--timeout", default="")
    parser.add_argument("--output-sarif", default="true")
    parser.add_argument("--sarif-file", default="scanwarden-results.sarif")
    parser.add_argument("--comment-pr", default="true")
    parser.add_argument("--update-status", default="true")
    return parser.parse_args(argv)


def str_to_bool(value: str) -> bool:
    """Convert string to boolean."""
    return value.lower() in ("true", "yes", "1", "on")


def write_outputs(values, github_output=None) -> None:
    github_output = github_output or os.getenv("GITHUB_OUTPUT")
    if not github_output:
        return
    with open(github_output, "a") as f:
        for key, value in values.items():
            f.write(f"{key}={value}\n")


def build_config(args) -> Config:
    cfg = Config()
    if args.detectors:
        cfg.enable_only([name.strip() for name in args.detectors.split(",") if name.strip()])
    if args.fail_on:
        cfg.scan.fail_on = args.fail_on.upper()
    if args.no_repeat:
        cfg.scan.no_repeat = str_to_bool(args.no_repeat)
    if args.baseline:
        cfg.baseline.path = args.baseline
    if args.timeout:
        cfg.scan.timeout = int(args.timeout)
    cfg.validate()
    return cfg


def fail(message: str, detail: str) -> int:
    """Report a fatal error as a workflow annotation; returns the exit code."""
    print(f"::error title=ScanWarden::{message}")
    print(detail, file=sys.stderr)
    write_outputs({"scan-passed": "false"})
    return 3


def main(argv=None) -> int:
    """Main entry point; returns the process exit code."""
    args = parse_args(argv)
    setup_logging(level="INFO")
    load_env()

    print("🔍 Starting ScanWarden")
    print(f"   Target: {args.target}")

    try:
        trigger = TriggerContext.from_github_env()
        revision_pair = trigger.revision_pair()
        print(f"   Event: {trigger.event.value}")
        print(f"   Range: {revision_pair.describe()}")
        print()

        cfg = build_config(args)
        orchestrator = ScanOrchestrator.from_config(Path(args.target), cfg)
        report = orchestrator.run(revision_pair, trigger)
    except ScanWardenError as e:
        return fail(e.message, str(e))
    except ValueError as e:
        # Malformed event payload or action input
        return fail(str(e), str(e))

    reporter = Reporter(max_findings=cfg.output.max_findings)
    print(reporter.render(report, "github"))
    reporter.write_step_summary(report)

    outputs = severity_outputs(report)
    outputs["scan-passed"] = str(report.passed).lower()

    if str_to_bool(args.output_sarif):
        sarif_file = SARIFGenerator().generate(report, Path(args.sarif_file))
        outputs["sarif-file"] = str(sarif_file)

    write_outputs(outputs)

    token = os.getenv("GITHUB_TOKEN")
    if token and str_to_bool(args.comment_pr) and trigger.event.value == "pull_request":
        print("\n💬 Posting PR comment...")
        try:
            PRCommenter(token).post_comment(report)
        except requests.RequestException as e:
            print(f"   ⚠️  Failed to post PR comment: {e}")

    if token and str_to_bool(args.update_status):
        StatusChecker(token, sha=revision_pair.head if revision_pair.head != "HEAD" else None).update_status(report)

    if report.passed:
        print("\n✅ Scan passed")
    else:
        print(f"\n❌ Scan failed: new findings at {report.fail_on} or above")
    return Reporter.exit_code(report)


if __name__ == "__main__":
    sys.exit(main())
