"""Tests for packback.doctor module."""

import json
from unittest.mock import MagicMock, patch

from packback.config import BackupConfig
from packback.doctor import (
    EnvironmentCheckResult,
    check_bitwarden,
    check_python,
    check_rclone,
    check_sevenzip,
    display_environment_checks,
    run_doctor,
    run_environment_checks,
)

MOCK_WHICH = "packback.doctor.shutil.which"
MOCK_RUN = "packback.doctor.subprocess.run"


def test_check_python():
    """check_python should always succeed."""
    result = check_python()
    assert result.available is True
    assert result.name == "Python"
    assert result.version


def test_check_sevenzip_installed():
    with patch(MOCK_WHICH, return_value="/usr/bin/7z"):
        with patch(MOCK_RUN) as mock_run:
            mock_run.return_value = MagicMock(stdout="\n7-Zip 23.01 (x64)\n", stderr="")
            result = check_sevenzip()
    assert result.available is True
    assert "23.01" in result.version


def test_check_sevenzip_missing():
    with patch(MOCK_WHICH, return_value=None):
        result = check_sevenzip()
    assert result.available is False
    assert result.required is True
    assert "archive_format" in result.message


def test_check_rclone_missing_is_optional():
    with patch(MOCK_WHICH, return_value=None):
        result = check_rclone()
    assert result.available is False
    assert result.required is False


def test_check_bitwarden_installed():
    with patch(MOCK_WHICH, return_value="/usr/local/bin/bw"):
        with patch(MOCK_RUN) as mock_run:
            mock_run.return_value = MagicMock(stdout="2024.6.0\n", stderr="")
            result = check_bitwarden()
    assert result.available is True
    assert result.version == "2024.6.0"


def test_run_environment_checks_uses_configured_executables():
    config = BackupConfig(tools={"sevenzip": "/opt/7zz"})
    with patch(MOCK_WHICH, return_value=None) as mock_which:
        checks = run_environment_checks(config)
    assert len(checks) == 4
    assert all(isinstance(check, EnvironmentCheckResult) for check in checks)
    assert any(call.args[0] == "/opt/7zz" for call in mock_which.call_args_list)


def test_display_optional_missing_still_passes():
    checks = [
        EnvironmentCheckResult(name="Python", available=True, version="3.12", message=""),
        EnvironmentCheckResult(
            name="rclone", available=False, version="", message="", required=False
        ),
    ]
    assert display_environment_checks(checks) is True


def test_display_required_missing_fails():
    checks = [EnvironmentCheckResult(name="7-Zip", available=False, version="", message="")]
    assert display_environment_checks(checks) is False


def test_run_doctor_without_config(tmp_path):
    with patch(MOCK_WHICH, return_value="/usr/bin/tool"):
        with patch(MOCK_RUN, return_value=MagicMock(stdout="v1\n", stderr="")):
            assert run_doctor(tmp_path / "config.json") is True


def test_run_doctor_malformed_config(tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text("{")
    with patch(MOCK_WHICH, return_value="/usr/bin/tool"):
        with patch(MOCK_RUN, return_value=MagicMock(stdout="v1\n", stderr="")):
            assert run_doctor(config_file) is False


def test_run_doctor_missing_source(tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"source": str(tmp_path / "gone")}))
    with patch(MOCK_WHICH, return_value="/usr/bin/tool"):
        with patch(MOCK_RUN, return_value=MagicMock(stdout="v1\n", stderr="")):
            assert run_doctor(config_file) is False
