# ci_bootstrap/orchestrator.py
# -*- coding: utf-8 -*-
"""
Runs one bootstrap pass: the fixed sequence of steps against one host.

A run owns its backup ledger, its step run log and its host context.
Nothing is kept between runs in the same process; a second run finds the
host's state again through the step probes.
"""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

from ci_bootstrap.config_models import AppSettings, BootstrapConfig
from ci_bootstrap.config_mutator import BackupLedger
from ci_bootstrap.reporter import exit_status
from ci_bootstrap.run_log import RunLog
from ci_bootstrap.step_executor import StepExecutor, StepResult
from common.command_utils import log_bootstrap
from installer.agents import AgentStep
from installer.base_step import BaseStep
from installer.ci_directories import CiDirectoriesStep
from installer.ci_user import CiUserStep
from installer.context import HostContext, build_host_context
from installer.packages import BasePackagesStep, PackageIndexStep
from installer.security_baseline import SecurityBaselineStep
from installer.ssh_hardening import SshHardeningStep
from installer.toolchain import (
    ConfigurationToolStep,
    ContainerRuntimeStep,
    ProvisioningToolStep,
)

module_logger = logging.getLogger(__name__)

ContextFactory = Callable[
    [AppSettings, BootstrapConfig, BackupLedger, Optional[logging.Logger]],
    HostContext,
]

# Execution order. Later steps rely on earlier ones (docker group before
# gitlab-runner joins it, the operator account before directories it owns).
STEP_SEQUENCE = (
    PackageIndexStep,
    BasePackagesStep,
    CiUserStep,
    SecurityBaselineStep,
    SshHardeningStep,
    ContainerRuntimeStep,
    ProvisioningToolStep,
    ConfigurationToolStep,
    CiDirectoriesStep,
    AgentStep,
)


class BootstrapOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: List[StepResult]
    exit_code: int
    backups: List[str] = []


def build_steps(context: HostContext) -> List[BaseStep]:
    return [step_class(context) for step_class in STEP_SEQUENCE]


def run_bootstrap(
    app_settings: AppSettings,
    config: BootstrapConfig,
    context_factory: ContextFactory = build_host_context,
    current_logger: Optional[logging.Logger] = None,
    run_log_path: Optional[str] = None,
) -> BootstrapOutcome:
    """
    Execute every step in order and return the results with the exit status.

    Args:
        app_settings: Runtime settings.
        config: The operator's parameters.
        context_factory: Builds the host collaborators. Tests pass one that
            returns in-memory fakes.
        current_logger: Logger for the run.
        run_log_path: JSON-lines step log; `app_settings.run_log_file` when None.
    """
    logger_to_use = current_logger if current_logger else module_logger
    ledger = BackupLedger()
    run_log = RunLog(
        run_log_path if run_log_path is not None else app_settings.run_log_file
    )
    log_bootstrap(
        f"{app_settings.symbols.get('rocket', '🚀')} Starting bootstrap run {run_log.run_id} for user '{config.user}'.",
        "info",
        logger_to_use,
        app_settings,
    )
    try:
        context = context_factory(app_settings, config, ledger, logger_to_use)
        executor = StepExecutor(app_settings, run_log, logger_to_use)
        results = executor.run(build_steps(context))
    finally:
        run_log.close()

    return BootstrapOutcome(
        results=results,
        exit_code=exit_status(results),
        backups=sorted(ledger.paths),
    )
