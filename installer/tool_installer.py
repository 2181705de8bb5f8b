# installer/tool_installer.py
# -*- coding: utf-8 -*-
"""
Generic installer for externally packaged tools.

A ManagedTool describes how to find a tool on the host and how to get it
there. ToolInstaller probes for it, installs it from the package source
(optionally pinned to a version), enables its service and verifies that the
tool is present afterwards.
"""

import logging
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ci_bootstrap.config_models import TOOL_VERSION_LATEST
from ci_bootstrap.errors import InstallationFailed
from ci_bootstrap.step_executor import StepStatus
from common.command_utils import log_bootstrap
from installer.base_step import BaseStep

if TYPE_CHECKING:
    from installer.context import HostContext

module_logger = logging.getLogger(__name__)


class ManagedTool(BaseModel):
    """
    A tool the bootstrap installs. Presence is probed on every run and
    never cached.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    # Executable looked up on PATH to decide whether the tool is present.
    presence_command: str
    packages: Tuple[str, ...] = ()
    # Package the version pin applies to; defaults to the first package.
    pinned_package: Optional[str] = None
    version: Optional[str] = None
    service: Optional[str] = None
    version_command: Tuple[str, ...] = ()
    # Called as install_procedure(context, tool) before the package install,
    # e.g. to add a vendor repository.
    install_procedure: Optional[Callable[..., None]] = None

    @property
    def is_pinned(self) -> bool:
        return bool(self.version) and self.version != TOOL_VERSION_LATEST

    @property
    def pin_target(self) -> Optional[str]:
        if self.pinned_package:
            return self.pinned_package
        return self.packages[0] if self.packages else None


class ToolInstaller:
    """Installs ManagedTools through the context's package source."""

    def __init__(self, context: "HostContext"):
        self.context = context
        self.app_settings = context.app_settings
        self.logger = context.logger or module_logger

    def is_present(self, tool: ManagedTool) -> bool:
        return self.context.host.command_exists(tool.presence_command)

    def version_of(self, tool: ManagedTool) -> Optional[str]:
        if not tool.version_command:
            return None
        return self.context.host.command_output(list(tool.version_command))

    def _package_specs(self, tool: ManagedTool) -> List[str]:
        specs = list(tool.packages)
        if not tool.is_pinned:
            return specs
        target = tool.pin_target
        candidate = self.context.packages.pinned_version_available(
            target, tool.version, self.app_settings
        )
        if not candidate:
            raise InstallationFailed(
                tool.name,
                tool.version,
                f"version {tool.version} of {target} is not available from the package source",
            )
        return [
            f"{spec}={candidate}" if spec == target else spec for spec in specs
        ]

    def install(self, tool: ManagedTool) -> None:
        """
        Install `tool` unconditionally and verify it afterwards.

        Raises:
            InstallationFailed: The pinned version is unavailable, the package
                install failed, or the tool is still absent afterwards.
        """
        symbols = self.app_settings.symbols
        log_bootstrap(
            f"{symbols.get('package', '📦')} Installing {tool.name}...",
            "info",
            self.logger,
            self.app_settings,
        )
        if tool.install_procedure is not None:
            tool.install_procedure(self.context, tool)

        specs = self._package_specs(tool)
        if specs and not self.context.packages.install(
            specs, self.app_settings
        ):
            raise InstallationFailed(
                tool.name,
                tool.version if tool.is_pinned else None,
                f"package installation failed for {', '.join(specs)}",
            )

        if tool.service:
            self.context.host.enable_service(tool.service)

        if not self.is_present(tool):
            raise InstallationFailed(
                tool.name,
                tool.version if tool.is_pinned else None,
                f"'{tool.presence_command}' is still not available after installation",
            )
        log_bootstrap(
            f"{symbols.get('success', '✅')} {tool.name} installed.",
            "success",
            self.logger,
            self.app_settings,
        )

    def ensure_installed(self, tool: ManagedTool) -> StepStatus:
        """
        Install `tool` unless its presence command is already available.

        Returns SKIPPED when the tool was found, APPLIED after a verified
        install.
        """
        if self.is_present(tool):
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} {tool.name} already installed. Skipping.",
                "warning",
                self.logger,
                self.app_settings,
            )
            return StepStatus.SKIPPED
        self.install(tool)
        return StepStatus.APPLIED


class ToolStep(BaseStep):
    """A step whose target state is one installed ManagedTool."""

    def __init__(self, context: "HostContext"):
        super().__init__(context)
        self.installer = ToolInstaller(context)
        self.tool = self.build_tool()

    def build_tool(self) -> ManagedTool:
        raise NotImplementedError

    def is_satisfied(self) -> bool:
        return self.installer.is_present(self.tool)

    def apply(self) -> None:
        self.installer.install(self.tool)

    def describe_state(self) -> Optional[str]:
        return self.installer.version_of(self.tool)
