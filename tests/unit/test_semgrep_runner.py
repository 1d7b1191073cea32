# tests/unit/test_semgrep_runner.py

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from scanwarden.core.detector import RuleConfig
from scanwarden.core.models import ChangedFile, ChangeSet, ChangeType, Severity, content_hash
from scanwarden.core.semgrep_runner import SemgrepDetector
from scanwarden.utils.exceptions import DetectorError, DetectorTimeoutError

SOURCE = "import os\npassword = 'hunter22'\n"


def _fake_semgrep_output():
    """
    Minimal Semgrep JSON output that matches the usual structure.
    """
    start = SOURCE.index("password")
    end = len(SOURCE) - 1
    return {
        "results": [
            {
                "check_id": "python.lang.security.hardcoded-password",
                "path": "a.py",
                "start": {"line": 2, "col": 1, "offset": start},
                "end": {"line": 2, "col": 22, "offset": end},
                "extra": {
                    "message": "Hardcoded password",
                    "severity": "ERROR",
                    "lines": "password = 'hunter22'",
                    "metadata": {"cwe": ["CWE-798: Use of Hard-coded Credentials"]},
                },
            }
        ],
        "errors": [],
    }


def _proc(returncode=1, stdout="", stderr=""):
    mock_proc = MagicMock()
    mock_proc.returncode = returncode
    mock_proc.stdout = stdout
    mock_proc.stderr = stderr
    return mock_proc


@pytest.fixture
def repo(tmp_path):
    (tmp_path / "a.py").write_text(SOURCE)
    return tmp_path


@pytest.fixture
def change_set():
    return ChangeSet([
        ChangedFile("a.py", ChangeType.MODIFIED),
        ChangedFile("missing.py", ChangeType.ADDED),
    ])


@pytest.fixture(autouse=True)
def semgrep_on_path():
    with patch("scanwarden.core.detector.shutil.which", return_value="/usr/bin/semgrep"):
        yield


@patch("scanwarden.core.detector.subprocess.run")
def test_semgrep_parses_basic_result(mock_run, repo, change_set):
    mock_run.return_value = _proc(1, json.dumps(_fake_semgrep_output()))

    findings = SemgrepDetector().scan(change_set, RuleConfig(), repo, timeout=60)

    assert len(findings) == 1
    finding = findings[0]
    assert finding.detector == "semgrep"
    assert finding.file == "a.py"
    assert finding.start_line == 2
    assert finding.severity is Severity.HIGH
    assert finding.content_hash == content_hash("password = 'hunter22'")
    assert finding.metadata["cwe"] == "CWE-798: Use of Hard-coded Credentials"


@patch("scanwarden.core.detector.subprocess.run")
def test_command_targets_only_existing_scan_paths(mock_run, repo, change_set, monkeypatch):
    monkeypatch.setenv("SEMGREP_APP_TOKEN", "tok")
    mock_run.return_value = _proc(0, json.dumps({"results": []}))

    SemgrepDetector().scan(change_set, RuleConfig(rules=("p/python",)), repo)

    cmd = mock_run.call_args[0][0]
    assert cmd[:3] == ["semgrep", "scan", "--json"]
    assert cmd[cmd.index("--config") + 1] == "p/python"
    assert cmd[cmd.index("--") + 1:] == ["a.py"]
    assert mock_run.call_args[1]["env"]["SEMGREP_APP_TOKEN"] == "tok"


@patch("scanwarden.core.detector.subprocess.run")
def test_default_rule_configs(mock_run, repo, change_set):
    mock_run.return_value = _proc(0, "{}")
    SemgrepDetector().scan(change_set, RuleConfig(), repo)

    cmd = mock_run.call_args[0][0]
    configs = [cmd[i + 1] for i, part in enumerate(cmd) if part == "--config"]
    assert configs == ["p/secrets", "p/security-audit"]


@patch("scanwarden.core.detector.subprocess.run")
def test_hash_survives_line_shift(mock_run, tmp_path, change_set):
    """The same match moved down the file keeps its fingerprint."""
    output = _fake_semgrep_output()
    (tmp_path / "a.py").write_text(SOURCE)
    mock_run.return_value = _proc(1, json.dumps(output))
    before = SemgrepDetector().scan(change_set, RuleConfig(), tmp_path)[0]

    shifted = "# header\n" + SOURCE
    (tmp_path / "a.py").write_text(shifted)
    result = output["results"][0]
    result["start"] = {"line": 3, "col": 1, "offset": result["start"]["offset"] + 9}
    result["end"] = {"line": 3, "col": 22, "offset": result["end"]["offset"] + 9}
    mock_run.return_value = _proc(1, json.dumps(output))
    after = SemgrepDetector().scan(change_set, RuleConfig(), tmp_path)[0]

    assert before.start_line != after.start_line
    assert before.fingerprint == after.fingerprint


@patch("scanwarden.core.detector.subprocess.run")
def test_semgrep_raises_on_error_exit(mock_run, repo, change_set):
    """
    Exit code 2 or above means Semgrep itself failed.
    """
    mock_run.return_value = _proc(2, "", "some error")

    with pytest.raises(DetectorError):
        SemgrepDetector().scan(change_set, RuleConfig(), repo)


@patch("scanwarden.core.detector.subprocess.run")
def test_invalid_json_is_an_error(mock_run, repo, change_set):
    mock_run.return_value = _proc(0, "not json")

    with pytest.raises(DetectorError):
        SemgrepDetector().scan(change_set, RuleConfig(), repo)


@patch("scanwarden.core.detector.subprocess.run",
       side_effect=subprocess.TimeoutExpired(cmd="semgrep", timeout=5))
def test_timeout(mock_run, repo, change_set):
    with pytest.raises(DetectorTimeoutError):
        SemgrepDetector().scan(change_set, RuleConfig(), repo, timeout=5)


@patch("scanwarden.core.detector.subprocess.run")
def test_no_existing_targets_skips_backend(mock_run, tmp_path):
    change_set = ChangeSet([ChangedFile("missing.py", ChangeType.ADDED)])
    assert SemgrepDetector().scan(change_set, RuleConfig(), tmp_path) == []
    mock_run.assert_not_called()


def test_malformed_results_are_skipped(repo):
    output = {"results": [{"no_path": True}, _fake_semgrep_output()["results"][0]]}
    findings = SemgrepDetector().convert_findings(output, repo, RuleConfig())
    assert len(findings) == 1
