# installer/agents/__init__.py
# -*- coding: utf-8 -*-
"""
CI agent installers and the optional `agent` step.

The agent platform is a closed choice made once in the configuration:
GitLab Runner, GitHub Actions runner or no agent. At most one installer is
constructed per run.
"""

from typing import TYPE_CHECKING, Optional

from ci_bootstrap.config_models import GitHubAgent, GitLabAgent, NoAgent
from installer.agents.base import AgentIdentity, AgentInstaller
from installer.agents.github_runner import GitHubRunnerInstaller
from installer.agents.gitlab_runner import GitLabRunnerInstaller
from installer.base_step import BaseStep

if TYPE_CHECKING:
    from installer.context import HostContext


def select_agent_installer(
    context: "HostContext",
) -> Optional[AgentInstaller]:
    """The installer for the configured platform, or None for `none`."""
    agent = context.config.agent
    if isinstance(agent, GitLabAgent):
        return GitLabRunnerInstaller(context)
    if isinstance(agent, GitHubAgent):
        return GitHubRunnerInstaller(context)
    if isinstance(agent, NoAgent):
        return None
    raise TypeError(f"Unknown agent settings: {type(agent).__name__}")


class AgentStep(BaseStep):
    """
    Installs and registers the configured CI agent. Optional: a failure is
    reported but the host stays usable without an agent.
    """

    name = "agent"
    optional = True

    def __init__(self, context: "HostContext"):
        super().__init__(context)
        self.installer = select_agent_installer(context)
        self.description = (
            self.installer.description
            if self.installer is not None
            else "CI agent"
        )

    def skip_reason(self) -> Optional[str]:
        if self.installer is None:
            return "agent platform is 'none'; no agent installer runs"
        return None

    def is_satisfied(self) -> bool:
        return self.installer.is_satisfied()

    def apply(self) -> None:
        self.installer.apply()

    def describe_state(self) -> Optional[str]:
        if self.installer is None:
            return None
        return self.installer.describe_state()


__all__ = [
    "AgentIdentity",
    "AgentInstaller",
    "AgentStep",
    "GitHubRunnerInstaller",
    "GitLabRunnerInstaller",
    "select_agent_installer",
]
