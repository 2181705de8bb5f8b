# installer/packages.py
# -*- coding: utf-8 -*-
"""
Package index refresh and the base package set.
"""

from typing import TYPE_CHECKING, List

from ci_bootstrap.config import BASE_PACKAGES
from ci_bootstrap.errors import InstallationFailed
from installer.base_step import BaseStep

if TYPE_CHECKING:
    from installer.context import HostContext


class PackageIndexStep(BaseStep):
    """
    Refreshes the apt index. The index is not host state worth probing, so
    this step applies on every run.
    """

    name = "package-index"
    description = "Refresh package index"

    def __init__(self, context: "HostContext"):
        super().__init__(context)
        self._refreshed = False

    def is_satisfied(self) -> bool:
        return self._refreshed

    def apply(self) -> None:
        self.context.packages.update(self.app_settings, raise_error=True)
        self._refreshed = True


class BasePackagesStep(BaseStep):
    name = "base-packages"
    description = "Base packages (git, unzip, jq)"

    packages: List[str] = BASE_PACKAGES

    def is_satisfied(self) -> bool:
        return all(
            self.context.packages.is_installed(pkg, self.app_settings)
            for pkg in self.packages
        )

    def apply(self) -> None:
        if not self.context.packages.install(
            list(self.packages), self.app_settings
        ):
            raise InstallationFailed(", ".join(self.packages))
