# installer/ci_user.py
# -*- coding: utf-8 -*-
"""
The operator account the CI tooling runs as.
"""

import os

from installer.base_step import BaseStep

SSH_DIRECTORY_MODE = 0o700


class CiUserStep(BaseStep):
    """Creates the operator account and its ~/.ssh directory."""

    name = "ci-user"
    description = "CI operator account"

    @property
    def ssh_dir(self) -> str:
        return os.path.join(self.config.home, ".ssh")

    def is_satisfied(self) -> bool:
        host = self.context.host
        return host.user_exists(self.config.user) and host.directory_matches(
            self.ssh_dir, self.config.user, SSH_DIRECTORY_MODE
        )

    def apply(self) -> None:
        host = self.context.host
        if not host.user_exists(self.config.user):
            host.create_user(self.config.user, self.config.home)
        host.ensure_directory(
            self.ssh_dir, self.config.user, SSH_DIRECTORY_MODE, recursive=True
        )

    def describe_state(self) -> str:
        return f"{self.config.user} ({self.config.home})"
