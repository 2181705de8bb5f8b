# tests/test_reporter.py
from datetime import datetime, timezone
from unittest.mock import MagicMock

from ci_bootstrap.config_models import AppSettings, BootstrapConfig
from ci_bootstrap.errors import EXIT_FATAL_STEP, EXIT_OK, EXIT_OPTIONAL_STEP_FAILED
from ci_bootstrap.reporter import exit_status, print_report, render_report
from ci_bootstrap.step_executor import StepResult, StepStatus

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _result(name, status, optional=False, message=None, detail=None):
    return StepResult(
        name=name,
        status=status,
        optional=optional,
        message=message,
        detail=detail,
        started_at=NOW,
        finished_at=NOW,
    )


def test_exit_status():
    applied = _result("ci-user", StepStatus.APPLIED)
    skipped = _result("agent", StepStatus.SKIPPED, optional=True)
    optional_failed = _result("agent", StepStatus.FAILED, optional=True)
    fatal = _result("container-runtime", StepStatus.FAILED)

    assert exit_status([applied, skipped]) == EXIT_OK
    assert exit_status([applied, optional_failed]) == EXIT_OPTIONAL_STEP_FAILED
    assert exit_status([applied, fatal]) == EXIT_FATAL_STEP
    assert exit_status([]) == EXIT_OK


def test_report_flags_ssh_open_to_everyone():
    config = BootstrapConfig(user="ci", ssh_allow_cidr="")
    results = [
        _result("container-runtime", StepStatus.APPLIED, detail="Docker version 27.3.1"),
        _result("agent", StepStatus.SKIPPED, optional=True, message="agent platform is 'none'"),
    ]

    report = render_report(results, config, AppSettings())

    assert "SSH allow CIDR:       0.0.0.0/0 (allow all)" in report
    assert "SECURITY NOTE" in report
    assert "Docker version 27.3.1" in report
    assert "agent platform is 'none'" in report
    assert "docker group" in report
    assert "/var/log/ci01-bootstrap.log" in report


def test_report_with_restricted_cidr_has_no_security_note():
    config = BootstrapConfig(ssh_allow_cidr="203.0.113.7/32")

    report = render_report([], config, AppSettings())

    assert "203.0.113.7/32" in report
    assert "SECURITY NOTE" not in report


def test_report_redacts_tokens():
    config = BootstrapConfig(
        agent={
            "platform": "github",
            "owner": "acme",
            "repository": "infra",
            "token": "gh-super-secret",
        }
    )

    report = render_report([], config, AppSettings())

    assert "gh-super-secret" not in report
    assert "**********" in report
    assert "Agent platform:       github" in report


def test_print_report_logs_and_returns_status():
    logger = MagicMock()
    results = [_result("provisioning-tool", StepStatus.FAILED, message="boom")]

    status = print_report(results, BootstrapConfig(), AppSettings(), logger)

    assert status == EXIT_FATAL_STEP
    logger.warning.assert_called_once()
    assert "halted" in logger.warning.call_args[0][0]
