# common/debian/apt_manager.py
# -*- coding: utf-8 -*-
import logging
import os
import subprocess
import tempfile
from typing import Dict, List, Optional, Union

import requests

from ci_bootstrap.config_models import AppSettings
from common.command_utils import (
    command_exists,
    run_command,
    run_elevated_command,
)

SOURCES_DIR = "/etc/apt/sources.list.d"


class AptManager:
    """
    A centralized manager for Debian apt packages using command-line tools.

    Third-party repositories are written in the deb822 .sources format.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initializes the AptManager.
        Args:
            logger: An optional logging object.
        """
        self.logger = logger or logging.getLogger(__name__)
        # A missing apt-get surfaces as a failed package-index step.
        if not command_exists("apt-get"):
            self.logger.warning(
                "'apt-get' command not found. Is this a Debian-based system?"
            )

    def update(
        self, app_settings: AppSettings, raise_error: bool = False
    ) -> bool:
        """
        Updates the list of available packages using 'apt-get update'.

        Args:
            app_settings: The application settings.
            raise_error: Whether to raise an exception on failure.

        Returns:
            True if successful, False otherwise.
        """
        self.logger.info("Updating apt package lists via 'apt-get update'...")
        try:
            run_elevated_command(
                ["apt-get", "update", "-yq"],
                app_settings,
                current_logger=self.logger,
                timeout=app_settings.network_timeout,
            )
            self.logger.info("Apt package lists updated successfully.")
            return True
        except (
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
            FileNotFoundError,
        ) as e:
            self.logger.error(f"Failed to update apt cache: {e}")
            if raise_error:
                raise
            return False

    def is_installed(self, package: str, app_settings: AppSettings) -> bool:
        """True if dpkg reports `package` as installed."""
        try:
            result = run_command(
                ["dpkg-query", "-W", "-f=${db:Status-Status}", package],
                app_settings,
                capture_output=True,
                check=True,
                current_logger=self.logger,
            )
        except subprocess.CalledProcessError:
            return False
        return result.stdout.strip() == "installed"

    def pinned_version_available(
        self, package: str, version: str, app_settings: AppSettings
    ) -> Optional[str]:
        """
        Look up `version` of `package` in the configured repositories.

        `version` may be a prefix ("1.9" matches "1.9.5-1"). Returns the full
        candidate version string, or None if no candidate matches.
        """
        result = run_command(
            ["apt-cache", "madison", package],
            app_settings,
            capture_output=True,
            check=False,
            current_logger=self.logger,
        )
        if result.returncode != 0:
            return None
        for line in result.stdout.splitlines():
            # "terraform | 1.9.5-1 | https://apt.releases.hashicorp.com noble/main amd64 Packages"
            parts = [part.strip() for part in line.split("|")]
            if len(parts) < 2:
                continue
            candidate = parts[1]
            if candidate == version or candidate.startswith(
                (f"{version}-", f"{version}.", f"{version}+", f"{version}~")
            ):
                return candidate
        return None

    def install(
        self,
        packages: Union[List[str], str],
        app_settings: AppSettings,
        update_first: bool = False,
    ) -> bool:
        """
        Installs one or more packages using 'apt-get install'.

        Packages may carry a version ("terraform=1.9.5-1").

        Args:
            packages: A single package name or a list of package names.
            app_settings: The application settings.
            update_first: Whether to update the package lists before installing.

        Returns:
            True if successful, False otherwise.
        """
        if not isinstance(packages, list):
            packages = [packages]

        if update_first:
            if not self.update(app_settings):
                return False

        packages_to_install = []
        for pkg_spec in packages:
            pkg_name = pkg_spec.split("=", 1)[0]
            if "=" not in pkg_spec and self.is_installed(
                pkg_name, app_settings
            ):
                self.logger.info(
                    f"Package '{pkg_name}' is already installed. Skipping."
                )
            else:
                self.logger.info(
                    f"Marking package for installation: {pkg_spec}"
                )
                packages_to_install.append(pkg_spec)

        if not packages_to_install:
            self.logger.info("All requested packages are already installed.")
            return True

        self.logger.info(
            f"Committing installation for: {', '.join(packages_to_install)}"
        )
        try:
            cmd = ["apt-get", "install", "-yq"] + packages_to_install
            run_elevated_command(
                cmd,
                app_settings,
                current_logger=self.logger,
                env=dict(os.environ, DEBIAN_FRONTEND="noninteractive"),
                timeout=app_settings.package_install_timeout,
            )
            self.logger.info("Packages installed successfully.")
            return True
        except (
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
            FileNotFoundError,
        ) as e:
            self.logger.error(f"Failed to install packages: {e}")
            return False

    def has_repository(self, repo_name: str) -> bool:
        return os.path.exists(os.path.join(SOURCES_DIR, f"{repo_name}.sources"))

    def add_repository(
        self,
        repo_name: str,
        repo_details: Dict[str, str],
        app_settings: AppSettings,
        update_after: bool = True,
    ) -> bool:
        """
        Adds a new apt repository by creating a deb822-style .sources file.

        Args:
            repo_name: The name for the repository file.
            repo_details: A dictionary containing the repository configuration.
            app_settings: The application settings.
            update_after: Whether to update package lists after adding.

        Returns:
            True if successful, False otherwise.
        """
        self.logger.info(
            f"Adding repository '{repo_name}' using deb822 format..."
        )
        repo_file_path = os.path.join(SOURCES_DIR, f"{repo_name}.sources")

        deb822_content = ""
        for key, value in repo_details.items():
            deb822_content += f"{key}: {value}\n"

        tmp_path: Optional[str] = None

        try:
            with tempfile.NamedTemporaryFile(
                "w", suffix=".sources", delete=False
            ) as tmp_f:
                tmp_f.write(deb822_content)
                tmp_path = tmp_f.name

            run_elevated_command(
                ["install", "-m", "0644", tmp_path, repo_file_path],
                app_settings,
                current_logger=self.logger,
            )
            self.logger.info(
                f"Successfully created repository file: {repo_file_path}"
            )
        except (subprocess.CalledProcessError, OSError) as e:
            self.logger.error(
                f"Failed to create repository file '{repo_file_path}': {e}"
            )
            return False
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        if update_after:
            return self.update(app_settings)
        return True

    def add_gpg_key_from_url(
        self, key_url: str, keyring_path: str, app_settings: AppSettings
    ) -> bool:
        """
        Downloads an ASCII-armored GPG key and stores it dearmored in a keyring.

        Args:
            key_url: The URL of the GPG key.
            keyring_path: The path to save the keyring file.
            app_settings: The application settings.

        Returns:
            True if successful, False otherwise.
        """
        self.logger.info(f"Adding GPG key from {key_url} to {keyring_path}")

        try:
            response = requests.get(
                key_url, timeout=app_settings.network_timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Failed to download GPG key from {key_url}: {e}")
            return False

        try:
            run_elevated_command(
                ["install", "-m", "0755", "-d", os.path.dirname(keyring_path)],
                app_settings,
                current_logger=self.logger,
            )
            run_elevated_command(
                ["gpg", "--batch", "--yes", "--dearmor", "-o", keyring_path],
                app_settings,
                cmd_input=response.text,
                current_logger=self.logger,
            )
            run_elevated_command(
                ["chmod", "a+r", keyring_path],
                app_settings,
                current_logger=self.logger,
            )
            self.logger.info("GPG key added and permissions set.")
            return True
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.error(f"Failed to add GPG key: {e}")
            return False

    def add_repository_from_script(
        self, script_url: str, app_settings: AppSettings
    ) -> bool:
        """
        Downloads a vendor repository setup script and runs it with bash.

        Used for packagecloud-hosted repositories such as gitlab-runner's.
        """
        self.logger.info(f"Running repository setup script from {script_url}")
        try:
            response = requests.get(
                script_url, timeout=app_settings.network_timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(
                f"Failed to download repository script {script_url}: {e}"
            )
            return False

        try:
            run_elevated_command(
                ["bash", "-s"],
                app_settings,
                cmd_input=response.text,
                current_logger=self.logger,
                timeout=app_settings.network_timeout,
            )
            return True
        except (
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
            FileNotFoundError,
        ) as e:
            self.logger.error(f"Repository setup script failed: {e}")
            return False
