# installer/context.py
# -*- coding: utf-8 -*-
"""
Collaborators shared by the steps of one bootstrap run.
"""

import logging
from typing import Any, Optional

from ci_bootstrap.config_models import AppSettings, BootstrapConfig
from ci_bootstrap.config_mutator import BackupLedger, ConfigMutator


class HostContext:
    """
    Everything a step needs to probe and change the host.

    One instance per run. The orchestrator owns it together with the backup
    ledger, so two runs in one process share nothing.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        config: BootstrapConfig,
        packages: Any,
        host: Any,
        firewall: Any,
        intrusion_prevention: Any,
        mutator: ConfigMutator,
        gitlab_registration: Any = None,
        github_registration: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.config = config
        self.packages = packages
        self.host = host
        self.firewall = firewall
        self.intrusion_prevention = intrusion_prevention
        self.mutator = mutator
        self.gitlab_registration = gitlab_registration
        self.github_registration = github_registration
        self.logger = logger or logging.getLogger(__name__)


def build_host_context(
    app_settings: AppSettings,
    config: BootstrapConfig,
    ledger: BackupLedger,
    logger: Optional[logging.Logger] = None,
) -> HostContext:
    """Wire the real host implementations for a run on this machine."""
    from common.debian.apt_manager import AptManager
    from common.system_utils import HostOperations
    from installer.agents.github_runner import GitHubRunnerRegistration
    from installer.agents.gitlab_runner import GitLabRunnerRegistration
    from installer.fail2ban import Fail2banService
    from installer.firewall import UfwFirewall

    logger = logger or logging.getLogger(__name__)
    host = HostOperations(app_settings, logger)
    return HostContext(
        app_settings=app_settings,
        config=config,
        packages=AptManager(logger),
        host=host,
        firewall=UfwFirewall(app_settings, logger),
        intrusion_prevention=Fail2banService(app_settings, host, logger),
        mutator=ConfigMutator(app_settings, ledger, logger),
        gitlab_registration=GitLabRunnerRegistration(
            app_settings, host, logger
        ),
        github_registration=GitHubRunnerRegistration(
            app_settings, host, logger
        ),
        logger=logger,
    )
