# installer/firewall.py
# -*- coding: utf-8 -*-
"""
UFW (Uncomplicated Firewall) wrapper used by the security baseline.
"""

import ipaddress
import logging
import re
from typing import List, Optional, Tuple

from ci_bootstrap.config_models import AppSettings
from common.command_utils import log_bootstrap, run_elevated_command

module_logger = logging.getLogger(__name__)

# (to, action, from) as printed under the "To / Action / From" header.
UfwRule = Tuple[str, str, str]


def parse_ufw_status(output: str) -> Tuple[bool, List[str], List[UfwRule]]:
    """
    Parse `ufw status verbose` output.

    Returns (active, default policies, rules). Default policies are the
    comma-separated parts of the "Default:" line, e.g. "deny (incoming)".
    """
    active = False
    defaults: List[str] = []
    rules: List[UfwRule] = []
    in_rules = False
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("Status:"):
            active = line.split(":", 1)[1].strip() == "active"
        elif line.startswith("Default:"):
            defaults = [
                part.strip() for part in line.split(":", 1)[1].split(",")
            ]
        elif line.startswith("To") and "Action" in line:
            in_rules = True
        elif in_rules and not line.startswith("--"):
            # Columns are separated by two or more spaces.
            columns = re.split(r"\s{2,}", line)
            if len(columns) >= 3:
                rules.append((columns[0], columns[1], columns[2]))
    return active, defaults, rules


def _source_matches(rule_source: str, source_cidr: Optional[str]) -> bool:
    if source_cidr is None:
        return rule_source == "Anywhere"
    try:
        wanted = ipaddress.ip_network(source_cidr, strict=False)
        found = ipaddress.ip_network(rule_source, strict=False)
    except ValueError:
        return False
    return wanted == found


class UfwFirewall:
    """
    Firewall operations on the local host through the `ufw` command.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.logger = logger or module_logger

    def _ufw(self, *args: str) -> None:
        run_elevated_command(
            ["ufw"] + list(args), self.app_settings, current_logger=self.logger
        )

    def reset(self) -> None:
        self._ufw("--force", "reset")

    def set_default_policy(self, direction: str, action: str) -> None:
        self._ufw("default", action, direction)

    def allow_port(
        self, port: int, proto: str = "tcp", source_cidr: Optional[str] = None
    ) -> None:
        if source_cidr:
            self._ufw(
                "allow",
                "from",
                source_cidr,
                "to",
                "any",
                "port",
                str(port),
                "proto",
                proto,
            )
        else:
            self._ufw("allow", f"{port}/{proto}")

    def enable(self) -> None:
        self._ufw("--force", "enable")
        log_bootstrap(
            f"{self.app_settings.symbols.get('success', '✅')} UFW enabled.",
            "success",
            self.logger,
            self.app_settings,
        )

    def status(self) -> str:
        result = run_elevated_command(
            ["ufw", "status", "verbose"],
            self.app_settings,
            capture_output=True,
            check=False,
            current_logger=self.logger,
        )
        return result.stdout or ""

    def is_baseline_applied(
        self, port: int, source_cidr: Optional[str] = None, proto: str = "tcp"
    ) -> bool:
        """
        True if UFW is active, denies incoming, allows outgoing and has an
        allow rule for `port` from `source_cidr` (Anywhere when None).
        """
        active, defaults, rules = parse_ufw_status(self.status())
        if not active:
            return False
        if "deny (incoming)" not in defaults or "allow (outgoing)" not in defaults:
            return False
        target = f"{port}/{proto}"
        return any(
            to == target
            and action.startswith("ALLOW")
            and _source_matches(source, source_cidr)
            for to, action, source in rules
        )
