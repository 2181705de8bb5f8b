import subprocess

import pytest

from ci_bootstrap.config_models import BootstrapConfig
from ci_bootstrap.errors import InstallationFailed, RegistrationError
from installer.agents import AgentStep, select_agent_installer
from installer.agents.base import describe_command_failure
from installer.agents.github_runner import GitHubRunnerInstaller
from installer.agents.gitlab_runner import GitLabRunnerInstaller, registered_urls

GITLAB = {
    "platform": "gitlab",
    "url": "https://gitlab.example.com/",
    "registration_token": "glrt-secret",
    "tags": ["docker", "linux"],
}
GITHUB = {
    "platform": "github",
    "owner": "acme",
    "repository": "infra",
    "token": "gh-secret",
}


def test_registered_urls():
    config_toml = (
        "concurrent = 4\n\n"
        "[[runners]]\n"
        '  url = "https://gitlab.example.com/"\n'
        "[[runners]]\n"
        '  url = "https://other.example.com"\n'
    )

    assert registered_urls(config_toml) == [
        "https://gitlab.example.com",
        "https://other.example.com",
    ]
    assert registered_urls("not = [valid") == []
    assert registered_urls("concurrent = 1\n") == []


def test_describe_command_failure_masks_secret():
    error = subprocess.CalledProcessError(
        1,
        ["gitlab-runner", "register"],
        stderr="WARNING: retrying\nERROR: token glrt-secret is invalid\n",
    )

    reason = describe_command_failure(error, "glrt-secret")

    assert reason == "exited with status 1: ERROR: token ******** is invalid"
    assert describe_command_failure(
        subprocess.TimeoutExpired("config.sh", 30)
    ) == "timed out after 30s"


@pytest.mark.parametrize(
    "agent, expected",
    [
        (GITLAB, GitLabRunnerInstaller),
        (GITHUB, GitHubRunnerInstaller),
        ({"platform": "none"}, type(None)),
    ],
)
def test_select_agent_installer(make_context, agent, expected):
    context = make_context(BootstrapConfig(agent=agent))

    assert isinstance(select_agent_installer(context), expected)


def test_agent_step_without_platform_is_skipped(make_context):
    step = AgentStep(make_context(BootstrapConfig()))

    assert step.optional
    assert "none" in step.skip_reason()
    assert step.describe_state() is None


def test_gitlab_registration_command(make_context, machine):
    context = make_context(BootstrapConfig(agent=GITLAB))

    identity = context.gitlab_registration.register(context.config)

    command = machine.host.commands_run[-1]
    assert command[:3] == ["gitlab-runner", "register", "--non-interactive"]
    assert command[command.index("--registration-token") + 1] == "glrt-secret"
    assert command[command.index("--tag-list") + 1] == "docker,linux"
    assert "--executor" in command
    assert identity.platform == "gitlab"
    assert context.gitlab_registration.is_registered(context.config.agent)


def test_gitlab_registration_failure_hides_token(make_context, machine):
    machine.host.fail_commands["gitlab-runner register"] = (
        "ERROR: Registering runner... forbidden token=glrt-secret"
    )
    context = make_context(BootstrapConfig(agent=GITLAB))

    with pytest.raises(RegistrationError) as excinfo:
        context.gitlab_registration.register(context.config)

    assert "glrt-secret" not in str(excinfo.value)
    assert excinfo.value.__cause__ is None
    assert excinfo.value.__suppress_context__


def test_gitlab_installer_gives_runner_docker_access(make_context, machine):
    machine.host.groups["docker"] = set()
    installer = GitLabRunnerInstaller(make_context(BootstrapConfig(agent=GITLAB)))

    installer.apply()

    assert installer.is_satisfied()
    assert machine.host.groups["docker"] == {"gitlab-runner"}
    assert machine.host.restarts == ["gitlab-runner"]
    assert machine.packages.repository_scripts


def test_github_runner_unsupported_architecture(make_context, machine):
    machine.host.arch = "s390x"
    installer = GitHubRunnerInstaller(make_context(BootstrapConfig(agent=GITHUB)))

    with pytest.raises(InstallationFailed) as excinfo:
        installer.apply()

    assert "s390x" in str(excinfo.value)
    assert machine.host.downloads == []


def test_github_runner_install_and_service(make_context, machine, app_settings):
    installer = GitHubRunnerInstaller(make_context(BootstrapConfig(agent=GITHUB)))

    installer.apply()

    url, _ = machine.host.downloads[0]
    assert url.endswith(
        f"actions-runner-linux-x64-{app_settings.github_runner_version}.tar.gz"
    )
    runner_dir = app_settings.github_runner_dir
    assert ["./svc.sh", "install", "ci"] in machine.host.commands_run
    assert ["./svc.sh", "start"] in machine.host.commands_run
    assert machine.host.directories[runner_dir] == ("ci", 0o755)
    assert installer.is_satisfied()
    assert "https://github.com/acme/infra" in installer.describe_state()
