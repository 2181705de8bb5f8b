# tests/test_bootstrap_scenarios.py
"""
Whole-run behaviour against a simulated host: idempotence across runs, the
backup-once rule for sshd_config, fatal versus reported failures and the
choice of exactly one agent installer.
"""

import json
from pathlib import Path

import pytest

from ci_bootstrap.config_models import BootstrapConfig
from ci_bootstrap.errors import EXIT_FATAL_STEP, EXIT_OK, EXIT_OPTIONAL_STEP_FAILED
from ci_bootstrap.orchestrator import STEP_SEQUENCE, run_bootstrap
from ci_bootstrap.step_executor import StepStatus

ALL_STEP_NAMES = [
    "package-index",
    "base-packages",
    "ci-user",
    "security-baseline",
    "ssh-hardening",
    "container-runtime",
    "provisioning-tool",
    "configuration-tool",
    "ci-directories",
    "agent",
]
GITLAB_TOKEN = "glrt-SECRET-registration-token"
GITHUB_TOKEN = "AABBCCDDEEFF-runner-token"


def _statuses(outcome):
    return {result.name: result.status for result in outcome.results}


def _run(machine, app_settings, config):
    return run_bootstrap(
        app_settings, config, context_factory=machine.context_factory
    )


@pytest.fixture
def plain_config():
    return BootstrapConfig(
        user="ci", ssh_port=22, ssh_allow_cidr="", agent={"platform": "none"}
    )


def test_step_sequence_order():
    assert [step.name for step in STEP_SEQUENCE] == ALL_STEP_NAMES


def test_first_run_applies_every_step(machine, app_settings, plain_config):
    outcome = _run(machine, app_settings, plain_config)

    assert outcome.exit_code == EXIT_OK
    statuses = _statuses(outcome)
    assert list(statuses) == ALL_STEP_NAMES
    for name in ALL_STEP_NAMES[:-1]:
        assert statuses[name] is StepStatus.APPLIED, name
    assert statuses["agent"] is StepStatus.SKIPPED

    host = machine.host
    assert host.users["ci"] == "/home/ci"
    assert host.directories["/home/ci/.ssh"] == ("ci", 0o700)
    assert "ci" in host.groups["docker"]
    assert host.directories["/srv/ci/work"] == ("ci", 0o750)
    assert {"docker", "terraform", "ansible"} <= host.commands
    assert machine.firewall.rules == [(22, "tcp", None)]
    assert "fail2ban" in host.active_services


def test_second_run_skips_everything_already_present(
    machine, app_settings, plain_config, sshd_config_path
):
    first = _run(machine, app_settings, plain_config)
    assert first.exit_code == EXIT_OK
    hardened = sshd_config_path.read_text()
    installs_after_first = len(machine.packages.install_calls)

    second = _run(machine, app_settings, plain_config)

    assert second.exit_code == EXIT_OK
    statuses = _statuses(second)
    # The package index is refreshed on every run.
    assert statuses.pop("package-index") is StepStatus.APPLIED
    assert all(status is StepStatus.SKIPPED for status in statuses.values())
    assert len(machine.packages.install_calls) == installs_after_first
    assert machine.firewall.resets == 1
    assert sshd_config_path.read_text() == hardened


def test_sshd_backup_written_once_with_pristine_content(
    machine, app_settings, plain_config, sshd_config_path
):
    pristine = sshd_config_path.read_text()
    backup = Path(f"{sshd_config_path}{app_settings.backup_suffix}")

    first = _run(machine, app_settings, plain_config)
    assert first.backups == [str(sshd_config_path)]
    assert backup.read_text() == pristine

    # A later run with a different port edits the file again but keeps the
    # original backup untouched.
    moved = BootstrapConfig(user="ci", ssh_port=2222, agent={"platform": "none"})
    second = _run(machine, app_settings, moved)

    assert _statuses(second)["ssh-hardening"] is StepStatus.APPLIED
    assert "Port 2222" in sshd_config_path.read_text()
    assert backup.read_text() == pristine
    backups = list(sshd_config_path.parent.glob("sshd_config*.bak"))
    assert backups == [backup]


def test_hardened_sshd_config_values(
    machine, app_settings, plain_config, sshd_config_path
):
    _run(machine, app_settings, plain_config)

    lines = sshd_config_path.read_text().splitlines()
    assert "Port 22" in lines
    assert "PermitRootLogin no" in lines
    assert "PasswordAuthentication no" in lines
    assert "#Port 22" not in lines
    assert "X11Forwarding yes" in lines
    assert machine.host.restarts.count("ssh") == 1


def test_restricted_cidr_reaches_the_firewall(machine, app_settings):
    config = BootstrapConfig(
        user="ci", ssh_allow_cidr="203.0.113.7/32", agent={"platform": "none"}
    )

    outcome = _run(machine, app_settings, config)

    assert outcome.exit_code == EXIT_OK
    assert machine.firewall.rules == [(22, "tcp", "203.0.113.7/32")]


def test_fatal_step_halts_the_run(machine, app_settings, plain_config):
    machine.packages.fail_install.add("terraform")

    outcome = _run(machine, app_settings, plain_config)

    assert outcome.exit_code == EXIT_FATAL_STEP
    names = [result.name for result in outcome.results]
    assert names[-1] == "provisioning-tool"
    assert "configuration-tool" not in names
    failed = outcome.results[-1]
    assert failed.status is StepStatus.FAILED
    assert "terraform" in failed.message
    assert "ansible" not in machine.host.commands


def test_unavailable_pinned_version_is_fatal(machine, app_settings):
    machine.packages.available_versions["terraform"] = ["1.9.5-1"]
    config = BootstrapConfig(
        user="ci",
        agent={"platform": "none"},
        tool_versions={"terraform": "1.2.3"},
    )

    outcome = _run(machine, app_settings, config)

    assert outcome.exit_code == EXIT_FATAL_STEP
    assert outcome.results[-1].name == "provisioning-tool"
    assert "1.2.3" in outcome.results[-1].message


def test_pinned_version_is_installed_exactly(machine, app_settings):
    machine.packages.available_versions["terraform"] = ["1.9.5-1"]
    config = BootstrapConfig(
        user="ci",
        agent={"platform": "none"},
        tool_versions={"terraform": "1.9.5"},
    )

    outcome = _run(machine, app_settings, config)

    assert outcome.exit_code == EXIT_OK
    assert ["terraform=1.9.5-1"] in machine.packages.install_calls


def test_gitlab_agent_installed_and_registered(machine, app_settings):
    config = BootstrapConfig(
        user="ci",
        agent={
            "platform": "gitlab",
            "url": "https://gitlab.example.com",
            "registration_token": GITLAB_TOKEN,
        },
    )

    outcome = _run(machine, app_settings, config)

    assert outcome.exit_code == EXIT_OK
    assert _statuses(outcome)["agent"] is StepStatus.APPLIED
    host = machine.host
    assert "gitlab-runner" in host.groups["docker"]
    assert "gitlab-runner" in host.restarts
    registrations = [c for c in host.commands_run if c[:2] == ["gitlab-runner", "register"]]
    assert len(registrations) == 1
    # No GitHub runner work on a GitLab host.
    assert host.downloads == []
    assert not any("./config.sh" in c for c in host.commands_run)

    again = _run(machine, app_settings, config)
    assert _statuses(again)["agent"] is StepStatus.SKIPPED
    registrations = [c for c in host.commands_run if c[:2] == ["gitlab-runner", "register"]]
    assert len(registrations) == 1


def test_github_agent_installed_and_registered(machine, app_settings):
    config = BootstrapConfig(
        user="ci",
        agent={
            "platform": "github",
            "owner": "acme",
            "repository": "infra",
            "token": GITHUB_TOKEN,
        },
    )

    outcome = _run(machine, app_settings, config)

    assert outcome.exit_code == EXIT_OK
    assert _statuses(outcome)["agent"] is StepStatus.APPLIED
    host = machine.host
    assert len(host.downloads) == 1
    assert "actions-runner-linux-x64-" in host.downloads[0][0]
    config_runs = [c for c in host.commands_run if "./config.sh" in c]
    assert len(config_runs) == 1
    assert config_runs[0][:4] == ["sudo", "-u", "ci", "--"]
    assert "https://github.com/acme/infra" in config_runs[0]
    # Mutual exclusivity: nothing GitLab related happened.
    assert "gitlab-runner" not in machine.packages.installed
    assert machine.packages.repository_scripts == []

    again = _run(machine, app_settings, config)
    assert _statuses(again)["agent"] is StepStatus.SKIPPED
    assert len(host.downloads) == 1


def test_failed_registration_is_reported_not_fatal(machine, app_settings):
    machine.host.fail_commands["gitlab-runner register"] = (
        f"ERROR: Registering runner... failed  token={GITLAB_TOKEN} status=403 Forbidden"
    )
    config = BootstrapConfig(
        user="ci",
        agent={
            "platform": "gitlab",
            "url": "https://gitlab.example.com",
            "registration_token": GITLAB_TOKEN,
        },
    )

    outcome = _run(machine, app_settings, config)

    assert outcome.exit_code == EXIT_OPTIONAL_STEP_FAILED
    agent = outcome.results[-1]
    assert agent.name == "agent"
    assert agent.status is StepStatus.FAILED
    assert "403 Forbidden" in agent.message
    assert GITLAB_TOKEN not in agent.message
    # Every non-optional step still completed.
    assert all(
        result.status is not StepStatus.FAILED for result in outcome.results[:-1]
    )


def test_run_log_records_every_step(machine, app_settings, plain_config):
    _run(machine, app_settings, plain_config)

    lines = Path(app_settings.run_log_file).read_text().splitlines()
    entries = [json.loads(line) for line in lines]
    assert [entry["step"] for entry in entries] == ALL_STEP_NAMES
    assert entries[-1]["status"] == "skipped"
    assert len({entry["run_id"] for entry in entries}) == 1


def test_host_without_apt_fails_package_index(mocker, app_settings, plain_config):
    mocker.patch("common.debian.apt_manager.command_exists", return_value=False)
    mocker.patch(
        "common.debian.apt_manager.run_elevated_command",
        side_effect=FileNotFoundError(2, "No such file or directory", "apt-get"),
    )

    outcome = run_bootstrap(app_settings, plain_config)

    assert outcome.exit_code == EXIT_FATAL_STEP
    assert [result.name for result in outcome.results] == ["package-index"]
    failed = outcome.results[0]
    assert failed.status is StepStatus.FAILED
    assert "apt-get" in failed.message
    lines = Path(app_settings.run_log_file).read_text().splitlines()
    assert json.loads(lines[0])["step"] == "package-index"
