# ci_bootstrap/errors.py
# -*- coding: utf-8 -*-
"""
Exception types raised by the bootstrapper and the exit codes they map to.

Exit codes are grouped by range so an operator (or a wrapping automation)
can tell a pre-flight refusal from a failure half way through the run:

    0       every non-optional step applied or skipped
    10-19   privilege failure
    20-29   missing or invalid operator parameter
    30-39   a non-optional step failed
    40-49   run completed, but the optional agent step failed
"""

from typing import Optional

EXIT_OK = 0
EXIT_INSUFFICIENT_PRIVILEGE = 10
EXIT_MISSING_FIELD = 20
EXIT_INVALID_PARAMETER = 21
EXIT_FATAL_STEP = 30
EXIT_OPTIONAL_STEP_FAILED = 40


class BootstrapError(Exception):
    """Base class for all bootstrapper errors."""

    exit_code: int = EXIT_FATAL_STEP


class InsufficientPrivilege(BootstrapError):
    exit_code = EXIT_INSUFFICIENT_PRIVILEGE

    def __init__(self, euid: int):
        self.euid = euid
        super().__init__(
            f"Administrative rights are required (effective uid is {euid}). "
            "Re-run with sudo."
        )


class MissingRequiredField(BootstrapError):
    exit_code = EXIT_MISSING_FIELD

    def __init__(self, field: str, reason: Optional[str] = None):
        self.field = field
        message = f"Missing required field: {field}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidParameter(BootstrapError):
    exit_code = EXIT_INVALID_PARAMETER

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for {field}: {value!r} ({reason})")


class StepError(BootstrapError):
    """Raised from inside a step; the executor turns it into a failed result."""


class ConfigFileNotFoundError(StepError, FileNotFoundError):
    def __init__(self, path: str):
        self.path = path
        StepError.__init__(self, f"Configuration file not found: {path}")


class FilePermissionError(StepError, PermissionError):
    def __init__(self, path: str):
        self.path = path
        StepError.__init__(self, f"Configuration file is not writable: {path}")


class InstallationFailed(StepError):
    def __init__(
        self, tool: str, version: Optional[str] = None, reason: str = ""
    ):
        self.tool = tool
        self.version = version
        pinned = f" (version {version})" if version else ""
        detail = f": {reason}" if reason else ""
        super().__init__(f"Installation of {tool}{pinned} failed{detail}")


class RegistrationError(StepError):
    def __init__(self, platform: str, reason: str):
        self.platform = platform
        self.reason = reason
        super().__init__(f"{platform} agent registration failed: {reason}")
