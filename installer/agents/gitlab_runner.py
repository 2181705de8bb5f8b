# installer/agents/gitlab_runner.py
# -*- coding: utf-8 -*-
"""
GitLab Runner: package install, non-interactive registration and access to
the Docker socket for the runner's service account.
"""

import logging
import subprocess
import tomllib
from typing import TYPE_CHECKING, List, Optional

from ci_bootstrap.config import (
    DOCKER_GROUP,
    GITLAB_RUNNER_REPO_SCRIPT_URL,
    GITLAB_RUNNER_SERVICE_ACCOUNT,
)
from ci_bootstrap.config_models import AppSettings, BootstrapConfig, GitLabAgent
from ci_bootstrap.errors import InstallationFailed, RegistrationError
from common.command_utils import log_bootstrap
from installer.agents.base import (
    AgentIdentity,
    AgentInstaller,
    describe_command_failure,
)
from installer.tool_installer import ManagedTool, ToolInstaller

if TYPE_CHECKING:
    from installer.context import HostContext

module_logger = logging.getLogger(__name__)

GITLAB_RUNNER_SERVICE = "gitlab-runner"


def _normalise_url(url: str) -> str:
    return url.strip().rstrip("/")


def registered_urls(config_toml: str) -> List[str]:
    """URLs of the [[runners]] entries in a gitlab-runner config.toml."""
    try:
        data = tomllib.loads(config_toml)
    except tomllib.TOMLDecodeError:
        return []
    return [
        _normalise_url(runner.get("url", ""))
        for runner in data.get("runners", [])
        if isinstance(runner, dict)
    ]


class GitLabRunnerRegistration:
    """Registers this host with a GitLab instance via `gitlab-runner register`."""

    platform = "gitlab"

    def __init__(
        self,
        app_settings: AppSettings,
        host,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.host = host
        self.logger = logger or module_logger

    def is_registered(self, agent: GitLabAgent) -> bool:
        content = self.host.read_file(self.app_settings.gitlab_runner_config_path)
        if not content:
            return False
        return _normalise_url(agent.url) in registered_urls(content)

    def register(self, config: BootstrapConfig) -> AgentIdentity:
        agent = config.agent
        token = agent.registration_token.get_secret_value()
        command = [
            "gitlab-runner",
            "register",
            "--non-interactive",
            "--url",
            agent.url,
            "--registration-token",
            token,
            "--executor",
            agent.executor,
            "--docker-image",
            agent.docker_image,
            "--description",
            agent.description,
            "--tag-list",
            ",".join(agent.tags),
            f"--run-untagged={str(agent.run_untagged).lower()}",
            f"--locked={str(agent.locked).lower()}",
            f"--access-level={agent.access_level}",
        ]
        log_bootstrap(
            f"Registering GitLab Runner '{agent.description}' with {agent.url} ({agent.executor} executor)...",
            "info",
            self.logger,
            self.app_settings,
        )
        try:
            self.host.run(
                command,
                capture_output=True,
                timeout=self.app_settings.network_timeout,
                secrets=[token],
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            # The original error holds the command line, token included.
            raise RegistrationError(
                self.platform, describe_command_failure(e, token)
            ) from None
        return AgentIdentity(
            platform=self.platform, name=agent.description, url=agent.url
        )


def add_gitlab_runner_repository(
    context: "HostContext", tool: ManagedTool
) -> None:
    if not context.packages.add_repository_from_script(
        GITLAB_RUNNER_REPO_SCRIPT_URL, context.app_settings
    ):
        raise InstallationFailed(
            tool.name, None, "the packagecloud repository script failed"
        )


def gitlab_runner_tool() -> ManagedTool:
    return ManagedTool(
        name="gitlab-runner",
        presence_command="gitlab-runner",
        packages=("gitlab-runner",),
        service=GITLAB_RUNNER_SERVICE,
        version_command=("gitlab-runner", "--version"),
        install_procedure=add_gitlab_runner_repository,
    )


class GitLabRunnerInstaller(AgentInstaller):
    platform = "gitlab"
    description = "GitLab Runner"

    def __init__(self, context: "HostContext"):
        super().__init__(context)
        self.tool = gitlab_runner_tool()
        self.tools = ToolInstaller(context)
        self.registration = context.gitlab_registration
        self.identity: Optional[AgentIdentity] = None

    def _has_docker_access(self) -> bool:
        return self.context.host.user_in_group(
            GITLAB_RUNNER_SERVICE_ACCOUNT, DOCKER_GROUP
        )

    def is_satisfied(self) -> bool:
        return (
            self.tools.is_present(self.tool)
            and self.registration.is_registered(self.agent)
            and self._has_docker_access()
        )

    def apply(self) -> None:
        host = self.context.host
        self.tools.ensure_installed(self.tool)

        if self.registration.is_registered(self.agent):
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} GitLab Runner already registered with {self.agent.url}. Skipping registration.",
                "warning",
                self.logger,
                self.app_settings,
            )
        else:
            self.identity = self.registration.register(self.config)

        if not self._has_docker_access():
            log_bootstrap(
                "Configuring GitLab Runner to access Docker...",
                "info",
                self.logger,
                self.app_settings,
            )
            host.add_user_to_group(GITLAB_RUNNER_SERVICE_ACCOUNT, DOCKER_GROUP)
        host.restart_service(GITLAB_RUNNER_SERVICE)

    def describe_state(self) -> Optional[str]:
        version = self.tools.version_of(self.tool)
        registered = f"registered with {self.agent.url}"
        return f"{version}; {registered}" if version else registered
