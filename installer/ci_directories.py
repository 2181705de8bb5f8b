# installer/ci_directories.py
# -*- coding: utf-8 -*-
"""
Working directories for CI jobs under the CI root.
"""

import os
from typing import List

from ci_bootstrap.config import CI_DIRECTORY_MODE, CI_SUBDIRECTORIES
from installer.base_step import BaseStep


class CiDirectoriesStep(BaseStep):
    name = "ci-directories"
    description = "CI working directories"

    def directories(self) -> List[str]:
        root = self.app_settings.ci_root
        return [root] + [os.path.join(root, sub) for sub in CI_SUBDIRECTORIES]

    def is_satisfied(self) -> bool:
        return all(
            self.context.host.directory_matches(
                path, self.config.user, CI_DIRECTORY_MODE
            )
            for path in self.directories()
        )

    def apply(self) -> None:
        for path in self.directories():
            self.context.host.ensure_directory(
                path, self.config.user, CI_DIRECTORY_MODE
            )

    def describe_state(self) -> str:
        return f"{self.app_settings.ci_root}/{{{','.join(CI_SUBDIRECTORIES)}}}"
