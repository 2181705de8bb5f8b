# installer/security_baseline.py
# -*- coding: utf-8 -*-
"""
Security baseline: UFW, a fail2ban jail for SSH and unattended upgrades.
"""

from ci_bootstrap.config import (
    AUTO_UPGRADES_CONTENT,
    AUTO_UPGRADES_PATH,
    FAIL2BAN_SSHD_BAN_TIME,
    FAIL2BAN_SSHD_FIND_TIME,
    FAIL2BAN_SSHD_MAX_RETRY,
    SECURITY_BASELINE_PACKAGES,
)
from ci_bootstrap.errors import InstallationFailed
from common.command_utils import log_bootstrap
from installer.base_step import BaseStep


class SecurityBaselineStep(BaseStep):
    """
    Installs the baseline packages, then resets and configures UFW, writes
    the sshd jail and turns on unattended upgrades.

    The firewall is only reset when the probe finds the baseline missing, so
    a second run never re-adds rules.
    """

    name = "security-baseline"
    description = "Security baseline (UFW, fail2ban, unattended-upgrades)"

    def _jail_values(self):
        return (
            "sshd",
            self.config.ssh_port,
            FAIL2BAN_SSHD_MAX_RETRY,
            FAIL2BAN_SSHD_FIND_TIME,
            FAIL2BAN_SSHD_BAN_TIME,
        )

    def _packages_installed(self) -> bool:
        return all(
            self.context.packages.is_installed(pkg, self.app_settings)
            for pkg in SECURITY_BASELINE_PACKAGES
        )

    def _auto_upgrades_enabled(self) -> bool:
        return self.context.host.read_file(AUTO_UPGRADES_PATH) == AUTO_UPGRADES_CONTENT

    def is_satisfied(self) -> bool:
        if not self._packages_installed():
            return False
        fail2ban = self.context.intrusion_prevention
        return (
            self.context.firewall.is_baseline_applied(
                self.config.ssh_port, self.config.ssh_allow_cidr
            )
            and fail2ban.jail_rule_matches(*self._jail_values())
            and fail2ban.is_service_active()
            and self._auto_upgrades_enabled()
        )

    def apply(self) -> None:
        symbols = self.app_settings.symbols
        if not self._packages_installed() and not self.context.packages.install(
            list(SECURITY_BASELINE_PACKAGES), self.app_settings
        ):
            raise InstallationFailed("security baseline packages")

        firewall = self.context.firewall
        if not firewall.is_baseline_applied(
            self.config.ssh_port, self.config.ssh_allow_cidr
        ):
            log_bootstrap(
                f"{symbols.get('gear', '⚙️')} Configuring UFW...",
                "info",
                self.logger,
                self.app_settings,
            )
            if self.config.allows_ssh_from_anywhere:
                log_bootstrap(
                    f"{symbols.get('warning', '⚠️')} No SSH source CIDR set. SSH on port {self.config.ssh_port} will be reachable from anywhere.",
                    "warning",
                    self.logger,
                    self.app_settings,
                )
            firewall.reset()
            firewall.set_default_policy("incoming", "deny")
            firewall.set_default_policy("outgoing", "allow")
            firewall.allow_port(
                self.config.ssh_port, "tcp", self.config.ssh_allow_cidr
            )
            firewall.enable()

        fail2ban = self.context.intrusion_prevention
        jail_written = False
        if not fail2ban.jail_rule_matches(*self._jail_values()):
            fail2ban.write_jail_rule(*self._jail_values())
            jail_written = True
        if not fail2ban.is_service_active():
            fail2ban.enable_service()
        elif jail_written:
            fail2ban.restart_service()

        if not self._auto_upgrades_enabled():
            log_bootstrap(
                f"{symbols.get('gear', '⚙️')} Enabling unattended upgrades...",
                "info",
                self.logger,
                self.app_settings,
            )
            self.context.host.write_file(AUTO_UPGRADES_PATH, AUTO_UPGRADES_CONTENT)

    def describe_state(self) -> str:
        source = self.config.ssh_allow_cidr or "anywhere"
        return f"ufw: allow {self.config.ssh_port}/tcp from {source}"
