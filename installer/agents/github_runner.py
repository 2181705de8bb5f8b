# installer/agents/github_runner.py
# -*- coding: utf-8 -*-
"""
GitHub Actions self-hosted runner: release tarball, `config.sh`
registration as the operator account, and the systemd service installed by
`svc.sh`.
"""

import logging
import os
import subprocess
import tempfile
from typing import TYPE_CHECKING, Optional

from ci_bootstrap.config import GITHUB_RUNNER_ARCH_MAP, GITHUB_RUNNER_DOWNLOAD_URL
from ci_bootstrap.config_models import AppSettings, BootstrapConfig
from ci_bootstrap.errors import InstallationFailed, RegistrationError
from common.command_utils import log_bootstrap
from installer.agents.base import (
    AgentIdentity,
    AgentInstaller,
    describe_command_failure,
)

if TYPE_CHECKING:
    from installer.context import HostContext

module_logger = logging.getLogger(__name__)

RUNNER_DIRECTORY_MODE = 0o755
# Written by config.sh on successful registration.
REGISTRATION_MARKER = ".runner"
# Written by svc.sh install; holds the systemd unit name.
SERVICE_MARKER = ".service"


class GitHubRunnerRegistration:
    """Registers the unpacked runner with a repository via `config.sh`."""

    platform = "github"

    def __init__(
        self,
        app_settings: AppSettings,
        host,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.host = host
        self.logger = logger or module_logger
        self.runner_dir = app_settings.github_runner_dir

    def is_registered(self) -> bool:
        return self.host.path_exists(
            os.path.join(self.runner_dir, REGISTRATION_MARKER)
        )

    def register(self, config: BootstrapConfig) -> AgentIdentity:
        agent = config.agent
        token = agent.token.get_secret_value()
        log_bootstrap(
            f"Registering GitHub runner '{agent.runner_name}' with {agent.repository_url}...",
            "info",
            self.logger,
            self.app_settings,
        )
        try:
            self.host.run_as(
                config.user,
                [
                    "./config.sh",
                    "--unattended",
                    "--url",
                    agent.repository_url,
                    "--token",
                    token,
                    "--name",
                    agent.runner_name,
                    "--labels",
                    ",".join(agent.labels),
                    "--work",
                    agent.work_dir,
                ],
                cwd=self.runner_dir,
                timeout=self.app_settings.network_timeout,
                secrets=[token],
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            # The original error holds the command line, token included.
            raise RegistrationError(
                self.platform, describe_command_failure(e, token)
            ) from None
        return AgentIdentity(
            platform=self.platform,
            name=agent.runner_name,
            url=agent.repository_url,
        )


class GitHubRunnerInstaller(AgentInstaller):
    platform = "github"
    description = "GitHub Actions runner"

    def __init__(self, context: "HostContext"):
        super().__init__(context)
        self.registration = context.github_registration
        self.runner_dir = self.app_settings.github_runner_dir
        self.version = self.app_settings.github_runner_version
        self.identity: Optional[AgentIdentity] = None

    def _path(self, name: str) -> str:
        return os.path.join(self.runner_dir, name)

    def _is_unpacked(self) -> bool:
        return self.context.host.path_exists(self._path("config.sh"))

    def _is_service_installed(self) -> bool:
        return self.context.host.path_exists(self._path(SERVICE_MARKER))

    def is_satisfied(self) -> bool:
        return (
            self._is_unpacked()
            and self.registration.is_registered()
            and self._is_service_installed()
        )

    def _download_and_unpack(self) -> None:
        host = self.context.host
        dpkg_arch = host.architecture()
        arch = GITHUB_RUNNER_ARCH_MAP.get(dpkg_arch)
        if arch is None:
            raise InstallationFailed(
                "actions-runner",
                self.version,
                f"no runner build for architecture {dpkg_arch}",
            )
        url = GITHUB_RUNNER_DOWNLOAD_URL.format(version=self.version, arch=arch)
        archive = os.path.join(
            tempfile.gettempdir(), f"actions-runner-linux-{arch}-{self.version}.tar.gz"
        )

        host.ensure_directory(
            self.runner_dir, self.config.user, RUNNER_DIRECTORY_MODE
        )
        if not host.download(url, archive):
            raise InstallationFailed(
                "actions-runner", self.version, f"download of {url} failed"
            )
        if not host.extract_tarball(archive, self.runner_dir):
            raise InstallationFailed(
                "actions-runner", self.version, f"could not unpack {archive}"
            )
        host.ensure_directory(
            self.runner_dir,
            self.config.user,
            RUNNER_DIRECTORY_MODE,
            recursive=True,
        )

        log_bootstrap(
            "Installing runner dependencies...",
            "info",
            self.logger,
            self.app_settings,
        )
        try:
            host.run(
                [self._path("bin/installdependencies.sh")],
                cwd=self.runner_dir,
                timeout=self.app_settings.package_install_timeout,
            )
        except (
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
            FileNotFoundError,
        ) as e:
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} Runner dependency script failed ({e}). Continuing.",
                "warning",
                self.logger,
                self.app_settings,
            )

    def apply(self) -> None:
        host = self.context.host
        if not self._is_unpacked():
            self._download_and_unpack()

        if self.registration.is_registered():
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} Runner in {self.runner_dir} is already configured. Skipping registration.",
                "warning",
                self.logger,
                self.app_settings,
            )
        else:
            self.identity = self.registration.register(self.config)

        if not self._is_service_installed():
            log_bootstrap(
                "Installing and starting runner service...",
                "info",
                self.logger,
                self.app_settings,
            )
            host.run(["./svc.sh", "install", self.config.user], cwd=self.runner_dir)
            host.run(["./svc.sh", "start"], cwd=self.runner_dir)

    def describe_state(self) -> Optional[str]:
        return f"actions-runner {self.version} in {self.runner_dir}; registered with {self.agent.repository_url}"
