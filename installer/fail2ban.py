# installer/fail2ban.py
# -*- coding: utf-8 -*-
"""
fail2ban jail configuration for the SSH daemon.
"""

import configparser
import logging
from typing import Optional

from ci_bootstrap.config_models import AppSettings
from common.command_utils import log_bootstrap
from common.system_utils import HostOperations

module_logger = logging.getLogger(__name__)

FAIL2BAN_SERVICE = "fail2ban"


def render_jail_rule(
    service: str, port: int, max_retry: int, find_time: str, ban_time: str
) -> str:
    return (
        f"[{service}]\n"
        "enabled = true\n"
        f"port    = {port}\n"
        f"maxretry = {max_retry}\n"
        f"findtime = {find_time}\n"
        f"bantime  = {ban_time}\n"
    )


class Fail2banService:
    """
    Writes a jail.d rule file and manages the fail2ban service.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        host: HostOperations,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.host = host
        self.logger = logger or module_logger
        self.jail_path = app_settings.fail2ban_jail_path

    def write_jail_rule(
        self,
        service: str,
        port: int,
        max_retry: int,
        find_time: str,
        ban_time: str,
    ) -> None:
        self.host.write_file(
            self.jail_path,
            render_jail_rule(service, port, max_retry, find_time, ban_time),
        )
        log_bootstrap(
            f"{self.app_settings.symbols.get('success', '✅')} Wrote fail2ban jail for {service} to {self.jail_path}",
            "success",
            self.logger,
            self.app_settings,
        )

    def enable_service(self) -> None:
        self.host.enable_service(FAIL2BAN_SERVICE)

    def restart_service(self) -> None:
        self.host.restart_service(FAIL2BAN_SERVICE)

    def is_service_active(self) -> bool:
        return self.host.is_service_active(FAIL2BAN_SERVICE)

    def jail_rule_matches(
        self,
        service: str,
        port: int,
        max_retry: int,
        find_time: str,
        ban_time: str,
    ) -> bool:
        """True if the jail file enables `service` with exactly these values."""
        content = self.host.read_file(self.jail_path)
        if content is None:
            return False
        parser = configparser.ConfigParser()
        try:
            parser.read_string(content)
        except configparser.Error:
            return False
        if not parser.has_section(service):
            return False
        section = parser[service]
        expected = {
            "enabled": "true",
            "port": str(port),
            "maxretry": str(max_retry),
            "findtime": find_time,
            "bantime": ban_time,
        }
        return all(
            section.get(key, "").strip() == value
            for key, value in expected.items()
        )
