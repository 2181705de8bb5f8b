# installer/ssh_hardening.py
# -*- coding: utf-8 -*-
"""
SSH daemon hardening through key/value edits of sshd_config.
"""

from typing import TYPE_CHECKING, List

from ci_bootstrap.config import SSH_SERVICE_NAMES, SSHD_HARDENING_SETTINGS
from ci_bootstrap.config_mutator import ConfigFileEdit
from common.command_utils import log_bootstrap
from installer.base_step import BaseStep

if TYPE_CHECKING:
    from installer.context import HostContext


class SshHardeningStep(BaseStep):
    """
    Enforces the SSH port, disables root and password logins, and restarts
    the daemon. The pristine sshd_config is backed up once, before the
    first edit.
    """

    name = "ssh-hardening"
    description = "SSH daemon hardening"

    def __init__(self, context: "HostContext"):
        super().__init__(context)
        self.edit = ConfigFileEdit(
            path=self.app_settings.sshd_config_path,
            assignments=(("Port", str(self.config.ssh_port)),)
            + tuple(SSHD_HARDENING_SETTINGS),
            backup_suffix=self.app_settings.backup_suffix,
        )

    def pending(self) -> List[str]:
        return self.context.mutator.pending(self.edit)

    def is_satisfied(self) -> bool:
        return not self.pending()

    def apply(self) -> None:
        log_bootstrap(
            f"{self.app_settings.symbols.get('gear', '⚙️')} Hardening SSH: {', '.join(self.pending())}",
            "info",
            self.logger,
            self.app_settings,
        )
        if self.context.mutator.apply(self.edit):
            restarted = self.context.host.restart_first_available(
                SSH_SERVICE_NAMES
            )
            log_bootstrap(
                f"Restarted {restarted} to load the new configuration.",
                "info",
                self.logger,
                self.app_settings,
            )

    def describe_state(self) -> str:
        return f"port {self.config.ssh_port}, root and password login disabled"
