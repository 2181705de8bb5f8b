# common/system_utils.py
# -*- coding: utf-8 -*-
"""
System-level utility functions used by the bootstrap steps.

This module includes helpers for reading /etc/os-release, querying the
dpkg architecture, managing local accounts and group membership, driving
systemd units, and creating owned directories. HostOperations binds these
helpers to one run's settings and logger so steps can be given a fake host
in tests.
"""

import grp
import logging
import os
import pwd
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ci_bootstrap.config_models import AppSettings
from common.command_utils import (
    command_exists,
    log_bootstrap,
    run_command,
    run_elevated_command,
)
from common.network_utils import download_file, extract_tarball

module_logger = logging.getLogger(__name__)


def read_os_release(path: str = "/etc/os-release") -> Dict[str, str]:
    """
    Parse an os-release file into a dict of KEY -> value with quotes removed.

    Raises FileNotFoundError if the file does not exist.
    """
    values: Dict[str, str] = {}
    with open(path, "r", encoding="utf-8") as f:
        for raw_line in f:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            try:
                parts = shlex.split(value)
            except ValueError:
                parts = [value.strip("\"'")]
            values[key.strip()] = parts[0] if parts else ""
    return values


def get_dpkg_architecture(
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
) -> str:
    result = run_command(
        ["dpkg", "--print-architecture"],
        app_settings,
        capture_output=True,
        check=True,
        current_logger=current_logger or module_logger,
    )
    return result.stdout.strip()


def user_exists(user: str) -> bool:
    try:
        pwd.getpwnam(user)
        return True
    except KeyError:
        return False


def user_in_group(user: str, group: str) -> bool:
    """True if `user` is a supplementary member of `group` or has it as primary group."""
    try:
        group_entry = grp.getgrnam(group)
    except KeyError:
        return False
    if user in group_entry.gr_mem:
        return True
    try:
        return pwd.getpwnam(user).pw_gid == group_entry.gr_gid
    except KeyError:
        return False


def systemd_enable_now(
    service: str,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    run_elevated_command(
        ["systemctl", "enable", "--now", service],
        app_settings,
        current_logger=current_logger or module_logger,
    )


def systemd_restart(
    service: str,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    run_elevated_command(
        ["systemctl", "restart", service],
        app_settings,
        current_logger=current_logger or module_logger,
    )


def systemd_is_active(
    service: str,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    result = run_command(
        ["systemctl", "is-active", "--quiet", service],
        app_settings,
        check=False,
        current_logger=current_logger or module_logger,
    )
    return result.returncode == 0


class HostOperations:
    """
    Account, service, filesystem and command operations on the local host.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.logger = logger or module_logger

    # --- commands ---

    def command_exists(self, command_name: str) -> bool:
        return command_exists(command_name)

    def run(
        self,
        command: List[str],
        check: bool = True,
        capture_output: bool = False,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        secrets: Optional[List[str]] = None,
    ) -> subprocess.CompletedProcess:
        return run_elevated_command(
            command,
            self.app_settings,
            check=check,
            capture_output=capture_output,
            current_logger=self.logger,
            cwd=cwd,
            timeout=timeout,
            secrets=secrets,
        )

    def run_as(
        self,
        user: str,
        command: List[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        secrets: Optional[List[str]] = None,
    ) -> subprocess.CompletedProcess:
        """Run `command` as `user` (sudo -u), e.g. the GitHub runner config."""
        return run_command(
            ["sudo", "-u", user, "--"] + list(command),
            self.app_settings,
            check=True,
            current_logger=self.logger,
            cwd=cwd,
            timeout=timeout,
            secrets=secrets,
        )

    def architecture(self) -> str:
        return get_dpkg_architecture(self.app_settings, self.logger)

    def os_release(self) -> Dict[str, str]:
        return read_os_release(self.app_settings.os_release_path)

    def command_output(self, command: List[str]) -> Optional[str]:
        """First line of a command's stdout, or None if it cannot be run."""
        try:
            result = run_command(
                command,
                self.app_settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
            )
        except FileNotFoundError:
            return None
        if result.returncode != 0 or not result.stdout.strip():
            return None
        return result.stdout.strip().splitlines()[0]

    def download(self, url: str, destination: str) -> bool:
        return download_file(
            url, destination, self.app_settings.network_timeout, self.logger
        )

    def extract_tarball(self, archive: str, destination: str) -> bool:
        return extract_tarball(archive, destination, self.logger)

    # --- accounts ---

    def user_exists(self, user: str) -> bool:
        return user_exists(user)

    def create_user(self, user: str, home: Optional[str] = None) -> None:
        log_bootstrap(
            f"{self.app_settings.symbols.get('gear', '⚙️')} Creating user {user}...",
            "info",
            self.logger,
            self.app_settings,
        )
        run_elevated_command(
            ["adduser", "--disabled-password", "--gecos", ""]
            + (["--home", home] if home else [])
            + [user],
            self.app_settings,
            current_logger=self.logger,
        )

    def user_in_group(self, user: str, group: str) -> bool:
        return user_in_group(user, group)

    def add_user_to_group(self, user: str, group: str) -> None:
        run_elevated_command(
            ["usermod", "-aG", group, user],
            self.app_settings,
            current_logger=self.logger,
        )

    # --- services ---

    def enable_service(self, service: str) -> None:
        systemd_enable_now(service, self.app_settings, self.logger)

    def restart_service(self, service: str) -> None:
        systemd_restart(service, self.app_settings, self.logger)

    def restart_first_available(self, services: Iterable[str]) -> str:
        """
        Restart the first unit of `services` that restarts cleanly.

        Ubuntu names the SSH daemon `ssh`, other distributions `sshd`.
        """
        last_error: Optional[Exception] = None
        for service in services:
            try:
                systemd_restart(service, self.app_settings, self.logger)
                return service
            except subprocess.CalledProcessError as e:
                last_error = e
        if last_error is not None:
            raise last_error
        raise ValueError("No service names given")

    def is_service_active(self, service: str) -> bool:
        return systemd_is_active(service, self.app_settings, self.logger)

    # --- filesystem ---

    def path_exists(self, path: str) -> bool:
        return os.path.exists(path)

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        run_elevated_command(
            ["install", "-d", "-m", "0755", os.path.dirname(path)],
            self.app_settings,
            current_logger=self.logger,
        )
        run_elevated_command(
            ["tee", path],
            self.app_settings,
            cmd_input=content,
            capture_output=True,
            current_logger=self.logger,
        )
        run_elevated_command(
            ["chmod", f"{mode:o}", path],
            self.app_settings,
            current_logger=self.logger,
        )

    def read_file(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def ensure_directory(
        self, path: str, owner: str, mode: int, recursive: bool = False
    ) -> None:
        """Create `path` if needed and set its owner (user:user group) and mode."""
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        targets = [target]
        if recursive:
            targets.extend(target.rglob("*"))
        for item in targets:
            shutil.chown(item, user=owner, group=owner)
            if item.is_dir():
                os.chmod(item, mode)

    def directory_matches(self, path: str, owner: str, mode: int) -> bool:
        target = Path(path)
        if not target.is_dir():
            return False
        stat_result = target.stat()
        try:
            owner_name = pwd.getpwuid(stat_result.st_uid).pw_name
        except KeyError:
            return False
        return owner_name == owner and (stat_result.st_mode & 0o777) == mode
