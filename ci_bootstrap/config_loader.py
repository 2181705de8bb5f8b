# ci_bootstrap/config_loader.py
# -*- coding: utf-8 -*-
"""
Loads operator parameters from their sources, applying this order of
precedence:
1. BootstrapConfig model defaults (applied later, at model construction)
2. YAML parameter file (--config)
3. Environment variables (CI_USER, CI_SSH_PORT, ...)
4. Command-line arguments

The result is a nested dict of raw values. Keys that no source supplied are
absent, so the parameter collector can tell what still has to be asked for.
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from ci_bootstrap.errors import InvalidParameter

module_logger = logging.getLogger(__name__)

RawParameters = Dict[str, Any]

# Top-level keys whose value must be a nested mapping.
MAPPING_SECTIONS = ("agent", "tool_versions")


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively updates a dictionary `source` with values from another dictionary
    `overrides`. Nested dictionaries are merged key by key; None values in
    `overrides` never replace a value from `source`.

    Parameters:
        source: Dict[str, Any]
            The dictionary to be updated. This dictionary gets modified in place.
        overrides: Dict[str, Any]
            The dictionary containing values to update or add to the `source`.

    Returns:
        Dict[str, Any]:
            The updated dictionary after applying all `overrides` to the input `source`.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
    return source


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            nested = _drop_none(value)
            if nested:
                cleaned[key] = nested
        elif value is not None:
            cleaned[key] = value
    return cleaned


class EnvironmentParameters(BaseSettings):
    """Operator parameters read from CI_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="CI_", extra="ignore")

    user: Optional[str] = None
    ssh_port: Optional[str] = None
    ssh_allow_cidr: Optional[str] = None
    agent_platform: Optional[str] = None
    gitlab_url: Optional[str] = None
    gitlab_reg_token: Optional[str] = None
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_runner_token: Optional[str] = None
    github_runner_name: Optional[str] = None
    github_runner_labels: Optional[str] = None
    terraform_version: Optional[str] = None

    def to_raw(self) -> RawParameters:
        return _drop_none(
            {
                "user": self.user,
                "ssh_port": self.ssh_port,
                "ssh_allow_cidr": self.ssh_allow_cidr,
                "agent": {
                    "platform": self.agent_platform,
                    "url": self.gitlab_url,
                    "registration_token": self.gitlab_reg_token,
                    "owner": self.github_owner,
                    "repository": self.github_repo,
                    "token": self.github_runner_token,
                    "runner_name": self.github_runner_name,
                    "labels": self.github_runner_labels,
                },
                "tool_versions": {"terraform": self.terraform_version},
            }
        )


def load_yaml_parameters(
    config_file_path: str,
    current_logger: Optional[logging.Logger] = None,
) -> RawParameters:
    """
    Read a YAML parameter file.

    The file is optional only in the sense that no path may be given; a path
    that was given but cannot be read or parsed is an invalid parameter.
    """
    logger_to_use = current_logger if current_logger else module_logger
    yaml_config_path = Path(config_file_path)
    try:
        with open(yaml_config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidParameter(
            "config", config_file_path, f"not valid YAML: {e}"
        ) from e
    except OSError as e:
        raise InvalidParameter(
            "config", config_file_path, f"cannot be read: {e.strerror or e}"
        ) from e

    if yaml_data is None:
        logger_to_use.warning(
            f"Parameter file '{yaml_config_path}' is empty. Ignoring."
        )
        return {}
    if not isinstance(yaml_data, dict):
        raise InvalidParameter(
            "config", config_file_path, "top level must be a mapping"
        )
    for section in MAPPING_SECTIONS:
        value = yaml_data.get(section)
        if value is not None and not isinstance(value, dict):
            raise InvalidParameter(section, value, "must be a mapping")
    logger_to_use.info(f"Loaded parameters from {yaml_config_path}")
    return _drop_none(yaml_data)


def cli_parameters(cli_args: Optional[argparse.Namespace]) -> RawParameters:
    if cli_args is None:
        return {}
    args = vars(cli_args)
    return _drop_none(
        {
            "user": args.get("user"),
            "ssh_port": args.get("ssh_port"),
            "ssh_allow_cidr": args.get("ssh_allow_cidr"),
            "agent": {
                "platform": args.get("agent"),
                "url": args.get("gitlab_url"),
                "registration_token": args.get("gitlab_token"),
                "owner": args.get("github_owner"),
                "repository": args.get("github_repo"),
                "token": args.get("github_token"),
                "runner_name": args.get("github_runner_name"),
                "labels": args.get("github_labels"),
            },
            "tool_versions": {"terraform": args.get("terraform_version")},
        }
    )


def load_raw_parameters(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: Optional[str] = None,
    environment: Optional[EnvironmentParameters] = None,
    current_logger: Optional[logging.Logger] = None,
) -> RawParameters:
    """
    Merge the parameter sources: YAML < environment < CLI.

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to a YAML parameter file, if one was given.
        environment: Environment parameters; read from os.environ when None.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        The merged raw parameters.
    """
    logger_to_use = current_logger if current_logger else module_logger
    merged: RawParameters = {}
    if config_file_path:
        merged = _deep_update(
            merged, load_yaml_parameters(config_file_path, logger_to_use)
        )
    env = environment if environment is not None else EnvironmentParameters()
    merged = _deep_update(merged, env.to_raw())
    merged = _deep_update(merged, cli_parameters(cli_args))
    logger_to_use.debug(
        f"Parameter sources supplied: {sorted(merged.keys())}"
    )
    return merged
