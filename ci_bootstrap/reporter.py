# ci_bootstrap/reporter.py
# -*- coding: utf-8 -*-
"""
Summary report and exit status for a bootstrap run.
"""

import logging
from typing import List, Optional, Sequence

import yaml

from ci_bootstrap.config import SCRIPT_VERSION
from ci_bootstrap.config_models import AgentPlatform, AppSettings, BootstrapConfig
from ci_bootstrap.errors import (
    EXIT_FATAL_STEP,
    EXIT_OK,
    EXIT_OPTIONAL_STEP_FAILED,
)
from ci_bootstrap.step_executor import StepResult, StepStatus
from common.command_utils import log_bootstrap

module_logger = logging.getLogger(__name__)

ALLOW_ALL_DISPLAY = "0.0.0.0/0 (allow all)"


def exit_status(results: Sequence[StepResult]) -> int:
    """
    0 if nothing failed, 30 if a non-optional step failed, 40 if only an
    optional step failed.
    """
    if any(result.is_fatal for result in results):
        return EXIT_FATAL_STEP
    if any(result.status is StepStatus.FAILED for result in results):
        return EXIT_OPTIONAL_STEP_FAILED
    return EXIT_OK


def next_steps(config: BootstrapConfig) -> List[str]:
    steps = [
        f"Log out and back in as '{config.user}' so the docker group membership takes effect.",
        f"Add your SSH public key to {config.home}/.ssh/authorized_keys; password login is disabled.",
        f"Connect with: ssh -p {config.ssh_port} {config.user}@<this-host>",
        "Store deployment credentials as CI secrets, never on this host.",
    ]
    if config.agent_platform is AgentPlatform.NONE:
        steps.append(
            "No CI agent was registered. Re-run with --agent gitlab or --agent github to add one."
        )
    return steps


def _status_symbol(result: StepResult, app_settings: AppSettings) -> str:
    symbols = app_settings.symbols
    if result.status is StepStatus.APPLIED:
        return symbols.get("success", "✅")
    if result.status is StepStatus.SKIPPED:
        return symbols.get("skip", "⏭️")
    return symbols.get("error", "❌")


def render_report(
    results: Sequence[StepResult],
    config: BootstrapConfig,
    app_settings: AppSettings,
) -> str:
    """Build the human-readable summary. Secrets appear only as asterisks."""
    symbols = app_settings.symbols
    status = exit_status(results)

    if status == EXIT_OK:
        headline = f"{symbols.get('sparkles', '✨')} CI node bootstrap complete."
    elif status == EXIT_OPTIONAL_STEP_FAILED:
        headline = f"{symbols.get('warning', '⚠️')} CI node bootstrap complete, but the agent step failed."
    else:
        headline = f"{symbols.get('critical', '🔥')} CI node bootstrap halted."

    cidr_display = config.ssh_allow_cidr or ALLOW_ALL_DISPLAY

    text = f"{headline}\n\n"
    text += f"  User:                 {config.user}\n"
    text += f"  SSH port:             {config.ssh_port}\n"
    text += f"  SSH allow CIDR:       {cidr_display}\n"
    text += f"  Agent platform:       {config.agent_platform.value}\n"
    text += f"  Log file:             {app_settings.log_file}\n"
    text += f"  Step log:             {app_settings.run_log_file}\n"
    text += f"  Bootstrapper version: {SCRIPT_VERSION}\n"
    if config.allows_ssh_from_anywhere:
        text += (
            f"\n  {symbols.get('warning', '⚠️')} SECURITY NOTE: SSH is reachable from any address. "
            "Restrict it with --ssh-allow-cidr <your-ip>/32 and re-run.\n"
        )

    text += "\n  Steps:\n"
    for result in results:
        line = f"    {_status_symbol(result, app_settings)} {result.name:<20} {result.status.value}"
        if result.message:
            line += f" ({result.message})"
        text += f"{line}\n"

    versions = [r for r in results if r.detail]
    if versions:
        text += "\n  Installed state:\n"
        for result in versions:
            text += f"    {result.name:<22} {result.detail}\n"

    text += "\n  Next steps:\n"
    for item in next_steps(config):
        text += f"    - {item}\n"

    dump = yaml.safe_dump(
        config.model_dump(mode="json"), sort_keys=False, default_flow_style=False
    )
    text += "\n  Effective configuration (secrets redacted):\n"
    for dump_line in dump.splitlines():
        text += f"    {dump_line}\n"
    return text


def print_report(
    results: Sequence[StepResult],
    config: BootstrapConfig,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> int:
    """Log the summary and return the exit status."""
    logger_to_use = current_logger if current_logger else module_logger
    status = exit_status(results)
    log_bootstrap(
        f"\n{render_report(results, config, app_settings)}",
        "info" if status == EXIT_OK else "warning",
        logger_to_use,
        app_settings,
    )
    return status
