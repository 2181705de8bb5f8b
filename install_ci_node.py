#!/usr/bin/env python3
# filename: install_ci_node.py
# -*- coding: utf-8 -*-
"""
Entry point for the CI control-node bootstrapper.

Turns a fresh Ubuntu host into a CI/CD control node: toolchain, security
baseline, SSH hardening and, optionally, a GitLab or GitHub agent. Safe to
run again on a host it has already bootstrapped.
"""

import argparse
import logging
import sys
from typing import List, Optional

from ci_bootstrap.config import SCRIPT_VERSION
from ci_bootstrap.config_loader import load_raw_parameters
from ci_bootstrap.config_models import AgentPlatform, AppSettings
from ci_bootstrap.errors import BootstrapError
from ci_bootstrap.guard import check_privilege, detect_platform
from ci_bootstrap.orchestrator import run_bootstrap
from ci_bootstrap.parameter_collector import collect_parameters
from ci_bootstrap.reporter import print_report
from common.command_utils import log_bootstrap
from common.logging_config import setup_logging

logger = logging.getLogger("ci_node_bootstrap")


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Bootstrap this host into a CI/CD control node.",
        epilog="Values not given here are read from --config, then CI_* environment "
        "variables; anything still missing is prompted for unless --non-interactive.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {SCRIPT_VERSION}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--config", metavar="PATH", help="YAML file with bootstrap parameters"
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; fail if a required value is missing",
    )
    parser.add_argument(
        "--log-file", metavar="PATH", help="Override the human-readable log file"
    )

    host_group = parser.add_argument_group("Host")
    host_group.add_argument("--user", help="Operator account to create (default: ci)")
    host_group.add_argument("--ssh-port", help="SSH port (default: 22)")
    host_group.add_argument(
        "--ssh-allow-cidr",
        metavar="CIDR",
        help="Only allow SSH from this address range. Empty allows all.",
    )
    host_group.add_argument(
        "--terraform-version",
        metavar="VERSION",
        help="Terraform version to pin, or 'latest'",
    )

    agent_group = parser.add_argument_group("CI agent")
    agent_group.add_argument(
        "--agent",
        choices=[p.value for p in AgentPlatform],
        help="Agent platform to install and register",
    )
    agent_group.add_argument("--gitlab-url", metavar="URL")
    agent_group.add_argument(
        "--gitlab-token",
        metavar="TOKEN",
        help="GitLab registration token (prefer CI_GITLAB_REG_TOKEN)",
    )
    agent_group.add_argument("--github-owner", metavar="OWNER")
    agent_group.add_argument("--github-repo", metavar="REPO")
    agent_group.add_argument(
        "--github-token",
        metavar="TOKEN",
        help="GitHub runner registration token (prefer CI_GITHUB_RUNNER_TOKEN)",
    )
    agent_group.add_argument("--github-runner-name", metavar="NAME")
    agent_group.add_argument(
        "--github-labels", metavar="LABELS", help="Comma-separated runner labels"
    )
    return parser.parse_args(args)


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parsed_args = parse_args(args)

    settings_overrides = {}
    if parsed_args.log_file:
        settings_overrides["log_file"] = parsed_args.log_file
    if parsed_args.non_interactive:
        settings_overrides["interactive"] = False
    app_settings = AppSettings(**settings_overrides)

    setup_logging(
        log_level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        log_file=app_settings.log_file,
        log_to_console=True,
        symbols=app_settings.symbols,
    )
    symbols = app_settings.symbols

    try:
        raw_parameters = load_raw_parameters(
            cli_args=parsed_args,
            config_file_path=parsed_args.config,
            current_logger=logger,
        )
        config = collect_parameters(
            raw_parameters, app_settings, current_logger=logger
        )
        check_privilege()
        detect_platform(app_settings, logger)
        outcome = run_bootstrap(app_settings, config, current_logger=logger)
    except BootstrapError as e:
        log_bootstrap(
            f"{symbols.get('error', '❌')} {e}",
            "error",
            logger,
            app_settings,
        )
        return e.exit_code

    return print_report(outcome.results, config, app_settings, logger)


if __name__ == "__main__":
    sys.exit(main())
