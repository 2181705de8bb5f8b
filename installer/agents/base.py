# installer/agents/base.py
# -*- coding: utf-8 -*-
"""
Shared types for the CI agent installers.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict

from common.command_utils import mask_secrets

if TYPE_CHECKING:
    from installer.context import HostContext


class AgentIdentity(BaseModel):
    """What a platform knows this host as after registration."""

    model_config = ConfigDict(frozen=True)

    platform: str
    name: str
    url: str


def describe_command_failure(
    error: Exception, secret: Optional[str] = None
) -> str:
    """A one-line reason for a failed registration command, with `secret` masked."""
    if isinstance(error, subprocess.TimeoutExpired):
        return f"timed out after {error.timeout}s"
    if isinstance(error, subprocess.CalledProcessError):
        stderr = error.stderr.strip() if isinstance(error.stderr, str) else ""
        reason = f"exited with status {error.returncode}"
        if stderr:
            reason = f"{reason}: {stderr.splitlines()[-1]}"
        return mask_secrets(reason, [secret] if secret else None)
    return mask_secrets(str(error), [secret] if secret else None)


class AgentInstaller(ABC):
    """
    Installs, registers and starts one platform's agent.

    Exactly one subclass runs per bootstrap, chosen from the configured
    agent platform.
    """

    platform: str = ""
    description: str = ""

    def __init__(self, context: "HostContext"):
        self.context = context
        self.app_settings = context.app_settings
        self.config = context.config
        self.agent = context.config.agent
        self.logger = context.logger or logging.getLogger(
            self.__class__.__name__
        )

    @abstractmethod
    def is_satisfied(self) -> bool:
        """True if the agent is installed, registered and running as a service."""
        pass

    @abstractmethod
    def apply(self) -> None:
        pass

    def describe_state(self) -> Optional[str]:
        return None
