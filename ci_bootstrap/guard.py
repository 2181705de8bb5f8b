# ci_bootstrap/guard.py
# -*- coding: utf-8 -*-
"""
Pre-flight checks: administrative rights and host platform.
"""

import logging
import os
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from ci_bootstrap.config_models import AppSettings
from ci_bootstrap.errors import InsufficientPrivilege
from common.command_utils import log_bootstrap
from common.system_utils import read_os_release

module_logger = logging.getLogger(__name__)

UNKNOWN_PLATFORM_ID = "unknown"


class PlatformInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    version_id: str = ""
    codename: str = ""


def check_privilege(geteuid: Callable[[], int] = os.geteuid) -> None:
    """Raise InsufficientPrivilege unless running with effective uid 0."""
    euid = geteuid()
    if euid != 0:
        raise InsufficientPrivilege(euid)


def detect_platform(
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> PlatformInfo:
    """
    Identify the distribution from os-release.

    An unsupported or unidentifiable platform is a warning, not an error:
    the run continues and the step probes decide what works.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    try:
        release = read_os_release(app_settings.os_release_path)
    except FileNotFoundError:
        log_bootstrap(
            f"{symbols.get('warning', '⚠️')} {app_settings.os_release_path} not found. Cannot identify the platform; continuing.",
            "warning",
            logger_to_use,
            app_settings,
        )
        return PlatformInfo(id=UNKNOWN_PLATFORM_ID)

    info = PlatformInfo(
        id=release.get("ID", UNKNOWN_PLATFORM_ID) or UNKNOWN_PLATFORM_ID,
        version_id=release.get("VERSION_ID", ""),
        codename=release.get("VERSION_CODENAME")
        or release.get("UBUNTU_CODENAME", ""),
    )
    if info.id != app_settings.supported_os_id:
        log_bootstrap(
            f"{symbols.get('warning', '⚠️')} This bootstrapper targets {app_settings.supported_os_id}; detected '{info.id}'. Continuing anyway.",
            "warning",
            logger_to_use,
            app_settings,
        )
    else:
        log_bootstrap(
            f"Detected {info.id} {info.version_id} ({info.codename or 'no codename'}).",
            "info",
            logger_to_use,
            app_settings,
        )
    return info
