# common/command_utils.py
# -*- coding: utf-8 -*-
"""
Utilities for executing shell commands and logging their output.
"""

import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional, Union

from ci_bootstrap.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)


def log_bootstrap(
    message: str,
    level: str = "info",
    current_logger: Optional[logging.Logger] = None,
    app_settings: Optional[AppSettings] = None,
    exc_info: bool = False,
) -> None:
    """
    Logs a bootstrap message at the given level.

    Args:
        message (str): The log message to be recorded.
        level (str): "debug", "info", "success", "warning", "error" or
            "critical". "success" is logged at INFO level.
        current_logger (Optional[logging.Logger]): Logger to use. Defaults to
            the module logger.
        app_settings (Optional[AppSettings]): Accepted for call-site symmetry
            with the other helpers in this module.
        exc_info (bool): Include exception information in the record.
    """
    effective_logger = current_logger if current_logger else module_logger

    if level == "warning":
        effective_logger.warning(message, exc_info=exc_info)
    elif level == "error":
        effective_logger.error(message, exc_info=exc_info)
    elif level == "critical":
        effective_logger.critical(message, exc_info=exc_info)
    elif level == "debug":
        effective_logger.debug(message, exc_info=exc_info)
    else:
        effective_logger.info(message, exc_info=exc_info)


def _get_elevated_command_prefix() -> List[str]:
    """
    Returns ["sudo"] unless the process already runs with euid 0.
    """
    return [] if os.geteuid() == 0 else ["sudo"]


def _symbols_for(app_settings: Optional[AppSettings]) -> Dict[str, str]:
    if app_settings is not None and app_settings.symbols:
        return app_settings.symbols
    return SYMBOLS_DEFAULT


def mask_secrets(text: str, secrets: Optional[List[str]]) -> str:
    for secret in secrets or []:
        if secret:
            text = text.replace(secret, "********")
    return text


def run_command(
    command: Union[List[str], str],
    app_settings: Optional[AppSettings],
    check: bool = True,
    shell: bool = False,
    capture_output: bool = False,
    text: bool = True,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    secrets: Optional[List[str]] = None,
) -> subprocess.CompletedProcess:
    """
    Executes a system command and logs the invocation and its output.

    Args:
        command (Union[List[str], str]): The command to run. A list is
            preferred; with shell=True a list is joined into one string.
        app_settings (Optional[AppSettings]): Settings used for log symbols.
        check (bool): Raise CalledProcessError on a non-zero exit code.
        shell (bool): Run the command through the shell.
        capture_output (bool): Capture stdout and stderr.
        text (bool): Decode output streams as text.
        cmd_input (Optional[str]): Data passed to the command's stdin.
        current_logger (Optional[logging.Logger]): Logger to use.
        cwd (Optional[str]): Working directory for the command.
        env (Optional[Dict[str, str]]): Environment for the command.
        timeout (Optional[float]): Seconds before the command is killed and
            subprocess.TimeoutExpired is raised.
        secrets (Optional[List[str]]): Values masked wherever the command
            line is logged, e.g. registration tokens passed as arguments.

    Returns:
        subprocess.CompletedProcess: The completed process.

    Raises:
        subprocess.CalledProcessError: Non-zero exit with check=True.
        subprocess.TimeoutExpired: The timeout elapsed.
        FileNotFoundError: The executable was not found.
    """
    effective_logger = current_logger if current_logger else module_logger
    symbols = _symbols_for(app_settings)
    command_to_log_str: str
    command_to_run: Union[List[str], str]

    if shell:
        if isinstance(command, list):
            command_to_run = " ".join(command)
        else:
            command_to_run = command
        command_to_log_str = str(command_to_run)
    else:
        if isinstance(command, str):
            log_bootstrap(
                f"{symbols.get('warning', '!')} Running string command '{command}' without shell=True. Consider list format.",
                "warning",
                effective_logger,
                app_settings,
            )
            command_to_run = command.split()
            command_to_log_str = command
        else:
            command_to_run = command
            command_to_log_str = subprocess.list2cmdline(command)
    command_to_log_str = mask_secrets(command_to_log_str, secrets)

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Executing: {command_to_log_str} {f'(in {cwd})' if cwd else ''}",
        "debug",
        effective_logger,
        app_settings,
    )
    try:
        result = subprocess.run(
            command_to_run,
            check=check,
            shell=shell,
            capture_output=capture_output,
            text=text,
            input=cmd_input,
            cwd=cwd,
            env=env,
            timeout=timeout,
        )
        if capture_output:
            if result.stdout and result.stdout.strip():
                log_bootstrap(
                    f"   stdout: {result.stdout.strip()}",
                    "debug",
                    effective_logger,
                    app_settings,
                )
            if (
                result.stderr
                and result.stderr.strip()
                and (not check or result.returncode == 0)
            ):
                log_bootstrap(
                    f"   stderr: {result.stderr.strip()}",
                    "debug",
                    effective_logger,
                    app_settings,
                )
        return result
    except subprocess.CalledProcessError as e:
        stdout_info = (
            e.stdout.strip()
            if e.stdout and hasattr(e.stdout, "strip")
            else "N/A"
        )
        stderr_info = (
            e.stderr.strip()
            if e.stderr and hasattr(e.stderr, "strip")
            else "N/A"
        )
        cmd_executed_str = mask_secrets(
            subprocess.list2cmdline(e.cmd)
            if isinstance(e.cmd, list)
            else str(e.cmd),
            secrets,
        )

        log_bootstrap(
            f"{symbols.get('error', '❌')} Command `{cmd_executed_str}` failed (rc {e.returncode}).",
            "error",
            effective_logger,
            app_settings,
        )
        if stdout_info != "N/A":
            log_bootstrap(
                f"   stdout: {stdout_info}",
                "error",
                effective_logger,
                app_settings,
            )
        if stderr_info != "N/A":
            log_bootstrap(
                f"   stderr: {stderr_info}",
                "error",
                effective_logger,
                app_settings,
            )
        raise
    except subprocess.TimeoutExpired:
        log_bootstrap(
            f"{symbols.get('error', '❌')} Command `{command_to_log_str}` timed out after {timeout}s.",
            "error",
            effective_logger,
            app_settings,
        )
        raise
    except FileNotFoundError as e:
        log_bootstrap(
            f"{symbols.get('error', '❌')} Command not found: {e.filename}. Ensure it's installed and in PATH.",
            "error",
            effective_logger,
            app_settings,
        )
        raise


def run_elevated_command(
    command: List[str],
    app_settings: Optional[AppSettings],
    check: bool = True,
    capture_output: bool = False,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    secrets: Optional[List[str]] = None,
) -> subprocess.CompletedProcess:
    """
    Executes a command with elevated permissions.

    Prefixes the command with sudo when the process is not already root and
    delegates to run_command.
    """
    prefix = _get_elevated_command_prefix()
    elevated_command_list = prefix + list(command)
    return run_command(
        elevated_command_list,
        app_settings,
        check=check,
        shell=False,
        capture_output=capture_output,
        text=True,
        cmd_input=cmd_input,
        current_logger=current_logger,
        cwd=cwd,
        env=env,
        timeout=timeout,
        secrets=secrets,
    )


def command_exists(command_name: str) -> bool:
    """
    Check if a command exists in the system's PATH.
    """
    return shutil.which(command_name) is not None
