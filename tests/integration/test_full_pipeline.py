"""Integration tests for the complete scanning pipeline on real git histories."""

import json

import pytest

from scanwarden.core import RevisionPair, ScanOrchestrator, TriggerContext, TriggerEvent
from scanwarden.github.reporter import Reporter
from scanwarden.github.sarif_generator import SARIFGenerator
from scanwarden.utils.config import Config
from scanwarden.utils.exceptions import AllDetectorsFailedError

SECRET_CONFIG = "db:\n  host: localhost\n  password: 'correct-horse-battery'\n"


@pytest.fixture
def config():
    cfg = Config(load_files=False)
    cfg.enable_only(["patterns"])
    cfg.scan.no_repeat = True
    cfg.scan.fail_on = "MEDIUM"
    return cfg


def _orchestrator(repo, config):
    return ScanOrchestrator.from_config(repo.path, config)


def test_new_then_repeated_finding(git_repo, config):
    a = git_repo.commit({"README.md": "hello\n"})
    b = git_repo.commit({"config.yaml": SECRET_CONFIG})
    orchestrator = _orchestrator(git_repo, config)

    first = orchestrator.run(RevisionPair.incremental(a, b))

    assert not first.passed
    assert [(f.file, f.rule_id) for f in first.new_findings] == [("config.yaml", "hardcoded-password")]

    c = git_repo.commit({"config.yaml": "# database settings\n" + SECRET_CONFIG})
    second = orchestrator.run(RevisionPair.incremental(b, c))

    assert second.new_findings == ()
    assert second.suppressed_count == 1
    assert second.passed


def test_fixed_finding_is_pruned_and_reported_again_if_reintroduced(git_repo, config):
    a = git_repo.commit({"README.md": "hello\n"})
    b = git_repo.commit({"config.yaml": SECRET_CONFIG})
    orchestrator = _orchestrator(git_repo, config)
    orchestrator.run(RevisionPair.incremental(a, b))

    c = git_repo.commit({"config.yaml": "db:\n  host: localhost\n"})
    fixed = orchestrator.run(RevisionPair.incremental(b, c))
    assert fixed.pruned_count == 1
    assert len(orchestrator.store.load()) == 0

    d = git_repo.commit({"config.yaml": SECRET_CONFIG})
    again = orchestrator.run(RevisionPair.incremental(c, d))
    assert len(again.new_findings) == 1


def test_deleting_a_file_prunes_its_entries(git_repo, config):
    a = git_repo.commit({"README.md": "hello\n"})
    b = git_repo.commit({"config.yaml": SECRET_CONFIG})
    orchestrator = _orchestrator(git_repo, config)
    orchestrator.run(RevisionPair.incremental(a, b))

    git_repo.remove("config.yaml")
    c = git_repo.commit()
    report = orchestrator.run(RevisionPair.incremental(b, c))

    assert report.files_scanned == 0
    assert report.pruned_count == 1


def test_untouched_files_keep_their_entries(git_repo, config):
    a = git_repo.commit({"README.md": "hello\n"})
    b = git_repo.commit({"config.yaml": SECRET_CONFIG})
    orchestrator = _orchestrator(git_repo, config)
    orchestrator.run(RevisionPair.incremental(a, b))

    c = git_repo.commit({"app.py": "print('hi')\n"})
    report = orchestrator.run(RevisionPair.incremental(b, c))

    assert report.pruned_count == 0
    assert len(orchestrator.store.load()) == 1


def test_scheduled_full_scan_sees_everything(git_repo, config):
    git_repo.commit({"config.yaml": SECRET_CONFIG, "src/app.py": "pwd = 'hunter2hunter2'\n"})
    trigger = TriggerContext(TriggerEvent.SCHEDULE)

    report = _orchestrator(git_repo, config).run(trigger.revision_pair(), trigger)

    assert report.revision_pair.full_scan
    assert {f.file for f in report.new_findings} == {"config.yaml", "src/app.py"}


def test_ignored_paths_are_not_scanned(git_repo, config):
    git_repo.commit({"config.yaml": SECRET_CONFIG, "vendor/lib.yaml": SECRET_CONFIG})

    report = _orchestrator(git_repo, config).run(RevisionPair.full())

    assert {f.file for f in report.new_findings} == {"config.yaml"}


def test_missing_backends_degrade_to_warnings(git_repo, config):
    git_repo.commit({"config.yaml": SECRET_CONFIG})
    config.enable_only(["patterns", "gitleaks", "semgrep"])
    config.detectors["gitleaks"].binary = "gitleaks-not-installed"
    config.detectors["semgrep"].binary = "semgrep-not-installed"

    report = _orchestrator(git_repo, config).run(RevisionPair.full())

    assert report.detectors_run == ("patterns",)
    assert report.detectors_failed == ("gitleaks", "semgrep")
    assert {w.kind for w in report.warnings} == {"unavailable"}
    assert len(report.new_findings) == 1


def test_only_missing_backends_is_fatal(git_repo, config):
    git_repo.commit({"config.yaml": SECRET_CONFIG})
    config.enable_only(["gitleaks"])
    config.detectors["gitleaks"].binary = "gitleaks-not-installed"

    with pytest.raises(AllDetectorsFailedError):
        _orchestrator(git_repo, config).run(RevisionPair.full())


def test_reports_from_pipeline(git_repo, config, tmp_path):
    git_repo.commit({"config.yaml": SECRET_CONFIG})
    report = _orchestrator(git_repo, config).run(RevisionPair.full())

    github = Reporter().render(report, "github")
    assert "file=config.yaml,line=3" in github

    sarif = json.loads(SARIFGenerator().generate(report, tmp_path / "out.sarif").read_text())
    result = sarif["runs"][0]["results"][0]
    assert result["partialFingerprints"]["scanwarden/v1"] == report.new_findings[0].fingerprint
