# installer/toolchain.py
# -*- coding: utf-8 -*-
"""
The CI toolchain: Docker Engine, Terraform and Ansible.
"""

from typing import TYPE_CHECKING, Dict

from ci_bootstrap.config import (
    DOCKER_GPG_URL,
    DOCKER_GROUP,
    DOCKER_KEYRING_PATH,
    DOCKER_PACKAGES,
    DOCKER_REPO_URI,
    HASHICORP_GPG_URL,
    HASHICORP_KEYRING_PATH,
    HASHICORP_REPO_URI,
)
from ci_bootstrap.errors import InstallationFailed
from common.command_utils import log_bootstrap
from installer.tool_installer import ManagedTool, ToolStep

if TYPE_CHECKING:
    from installer.context import HostContext


def _ensure_vendor_repository(
    context: "HostContext",
    tool: ManagedTool,
    repo_name: str,
    key_url: str,
    keyring_path: str,
    repo_details: Dict[str, str],
) -> None:
    packages = context.packages
    if packages.has_repository(repo_name):
        return
    if not packages.add_gpg_key_from_url(
        key_url, keyring_path, context.app_settings
    ):
        raise InstallationFailed(
            tool.name, None, f"could not install the signing key from {key_url}"
        )
    if not packages.add_repository(
        repo_name, repo_details, context.app_settings, update_after=True
    ):
        raise InstallationFailed(
            tool.name, None, f"could not add the {repo_name} apt repository"
        )


def _codename(context: "HostContext") -> str:
    os_release = context.host.os_release()
    codename = os_release.get("VERSION_CODENAME") or os_release.get(
        "UBUNTU_CODENAME"
    )
    if not codename:
        raise InstallationFailed(
            "apt repository", None, "VERSION_CODENAME missing from os-release"
        )
    return codename


def add_docker_repository(context: "HostContext", tool: ManagedTool) -> None:
    _ensure_vendor_repository(
        context,
        tool,
        "docker",
        DOCKER_GPG_URL,
        DOCKER_KEYRING_PATH,
        {
            "Types": "deb",
            "URIs": DOCKER_REPO_URI,
            "Suites": _codename(context),
            "Components": "stable",
            "Architectures": context.host.architecture(),
            "Signed-By": DOCKER_KEYRING_PATH,
        },
    )


def add_hashicorp_repository(context: "HostContext", tool: ManagedTool) -> None:
    _ensure_vendor_repository(
        context,
        tool,
        "hashicorp",
        HASHICORP_GPG_URL,
        HASHICORP_KEYRING_PATH,
        {
            "Types": "deb",
            "URIs": HASHICORP_REPO_URI,
            "Suites": _codename(context),
            "Components": "main",
            "Signed-By": HASHICORP_KEYRING_PATH,
        },
    )


def docker_tool(version: str) -> ManagedTool:
    return ManagedTool(
        name="docker",
        presence_command="docker",
        packages=tuple(DOCKER_PACKAGES),
        pinned_package="docker-ce",
        version=version,
        service="docker",
        version_command=("docker", "--version"),
        install_procedure=add_docker_repository,
    )


def terraform_tool(version: str) -> ManagedTool:
    return ManagedTool(
        name="terraform",
        presence_command="terraform",
        packages=("terraform",),
        version=version,
        version_command=("terraform", "-version"),
        install_procedure=add_hashicorp_repository,
    )


def ansible_tool(version: str) -> ManagedTool:
    return ManagedTool(
        name="ansible",
        presence_command="ansible",
        packages=("ansible",),
        version=version,
        version_command=("ansible", "--version"),
    )


class ContainerRuntimeStep(ToolStep):
    """
    Docker Engine with the Compose plugin. The step also covers the
    operator account's membership of the docker group.
    """

    name = "container-runtime"
    description = "Docker Engine + Compose plugin"

    def build_tool(self) -> ManagedTool:
        return docker_tool(self.config.tool_versions.docker)

    def is_satisfied(self) -> bool:
        return self.installer.is_present(self.tool) and self.context.host.user_in_group(
            self.config.user, DOCKER_GROUP
        )

    def apply(self) -> None:
        if not self.installer.is_present(self.tool):
            self.installer.install(self.tool)
        if not self.context.host.user_in_group(self.config.user, DOCKER_GROUP):
            log_bootstrap(
                f"Adding {self.config.user} to the {DOCKER_GROUP} group...",
                "info",
                self.logger,
                self.app_settings,
            )
            self.context.host.add_user_to_group(self.config.user, DOCKER_GROUP)


class ProvisioningToolStep(ToolStep):
    name = "provisioning-tool"
    description = "Terraform"

    def build_tool(self) -> ManagedTool:
        return terraform_tool(self.config.tool_versions.terraform)


class ConfigurationToolStep(ToolStep):
    name = "configuration-tool"
    description = "Ansible"

    def build_tool(self) -> ManagedTool:
        return ansible_tool(self.config.tool_versions.ansible)
