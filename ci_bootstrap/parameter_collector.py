# ci_bootstrap/parameter_collector.py
# -*- coding: utf-8 -*-
"""
Turns raw operator parameters into the immutable BootstrapConfig.

Values supplied by the YAML file, the environment or the command line are
taken as given. In interactive mode every value that is still missing is
asked for on stdin (tokens without echo); in non-interactive mode a missing
required value raises MissingRequiredField. Nothing here touches the host.
"""

import getpass
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ci_bootstrap.config_models import (
    CI_USER_DEFAULT,
    RUNNER_LABELS_DEFAULT,
    RUNNER_NAME_DEFAULT,
    SSH_PORT_DEFAULT,
    TOOL_VERSION_LATEST,
    AgentPlatform,
    AppSettings,
    BootstrapConfig,
    GitHubAgent,
    GitLabAgent,
    NoAgent,
)
from ci_bootstrap.errors import InvalidParameter
from common.command_utils import log_bootstrap

module_logger = logging.getLogger(__name__)

Prompt = Callable[[str], str]

AGENT_MENU_CHOICES: Dict[str, AgentPlatform] = {
    "1": AgentPlatform.GITLAB,
    "2": AgentPlatform.GITHUB,
    "3": AgentPlatform.NONE,
}

_AGENT_MODELS = {
    AgentPlatform.GITLAB: GitLabAgent,
    AgentPlatform.GITHUB: GitHubAgent,
    AgentPlatform.NONE: NoAgent,
}


def parse_port(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidParameter("ssh_port", value, "not a number")
    if isinstance(value, int):
        port = value
    else:
        try:
            port = int(str(value).strip())
        except ValueError:
            raise InvalidParameter("ssh_port", value, "not a number") from None
    if not (1 <= port <= 65535):
        raise InvalidParameter("ssh_port", value, "must be between 1 and 65535")
    return port


def parse_platform(value: Any) -> AgentPlatform:
    try:
        return AgentPlatform(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(p.value for p in AgentPlatform)
        raise InvalidParameter(
            "agent_platform", value, f"must be one of {choices}"
        ) from None


def parse_labels(value: Any) -> List[str]:
    """Accept a list or a comma-separated string; blanks are dropped."""
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = str(value).split(",")
    return [item.strip() for item in items if item.strip()]


def parameter_section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    """A copy of the nested mapping `raw[key]`; absent or empty gives {}."""
    section = raw.get(key)
    if section is None or section == "":
        return {}
    if not isinstance(section, dict):
        raise InvalidParameter(key, section, "must be a mapping")
    return dict(section)


def _validation_error_to_parameter_error(
    error: ValidationError,
) -> InvalidParameter:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "config"
    return InvalidParameter(field, first.get("input"), first.get("msg", ""))


class ParameterCollector:
    """
    Collects the operator's parameters.

    `prompt` and `secret_prompt` default to input() and getpass(); tests pass
    scripted callables instead.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        interactive: bool = True,
        prompt: Prompt = input,
        secret_prompt: Prompt = getpass.getpass,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.interactive = interactive
        self.prompt = prompt
        self.secret_prompt = secret_prompt
        self.logger = logger or module_logger

    def _ask(
        self, question: str, default: Optional[str] = None, secret: bool = False
    ) -> str:
        suffix = f" [{default}]" if default not in (None, "") else ""
        reader = self.secret_prompt if secret else self.prompt
        try:
            answer = reader(f"{question}{suffix}: ").strip()
        except EOFError:
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} No input received, using default.",
                "warning",
                self.logger,
                self.app_settings,
            )
            answer = ""
        return answer if answer else (default or "")

    def _value(
        self,
        raw: Dict[str, Any],
        key: str,
        question: str,
        default: Optional[str] = None,
        secret: bool = False,
    ) -> Optional[Any]:
        """A supplied value, else an answer (interactive) or the default."""
        if key in raw:
            return raw[key]
        if not self.interactive:
            return default
        return self._ask(question, default, secret=secret)

    def _choose_platform(self, agent_raw: Dict[str, Any]) -> AgentPlatform:
        if "platform" in agent_raw:
            return parse_platform(agent_raw["platform"])
        if not self.interactive:
            return AgentPlatform.NONE
        print("Which CI agent should this host run?")
        print("  1) GitLab Runner")
        print("  2) GitHub Actions runner")
        print("  3) none")
        choice = self._ask("Choose 1/2/3", "1")
        # Anything other than 2 or 3 selects GitLab.
        return AGENT_MENU_CHOICES.get(choice, AgentPlatform.GITLAB)

    def _collect_gitlab(self, agent_raw: Dict[str, Any]) -> Dict[str, Any]:
        agent = dict(agent_raw)
        agent["url"] = self._value(agent_raw, "url", "GitLab URL (e.g. https://gitlab.example.com)")
        agent["registration_token"] = self._value(
            agent_raw, "registration_token", "GitLab registration token", secret=True
        )
        if "tags" in agent:
            agent["tags"] = parse_labels(agent["tags"])
        elif "labels" in agent:
            agent["tags"] = parse_labels(agent["labels"])
        return agent

    def _collect_github(self, agent_raw: Dict[str, Any]) -> Dict[str, Any]:
        agent = dict(agent_raw)
        agent["owner"] = self._value(agent_raw, "owner", "GitHub owner/org")
        agent["repository"] = self._value(agent_raw, "repository", "GitHub repository name")
        agent["token"] = self._value(
            agent_raw, "token", "GitHub runner registration token", secret=True
        )
        agent["runner_name"] = self._value(
            agent_raw, "runner_name", "Runner name", RUNNER_NAME_DEFAULT
        )
        agent["labels"] = parse_labels(
            self._value(
                agent_raw,
                "labels",
                "Runner labels (comma-separated)",
                ",".join(RUNNER_LABELS_DEFAULT),
            )
        )
        return agent

    def _collect_agent(self, agent_raw: Dict[str, Any]) -> Dict[str, Any]:
        platform = self._choose_platform(agent_raw)
        if platform is AgentPlatform.GITLAB:
            agent = self._collect_gitlab(agent_raw)
        elif platform is AgentPlatform.GITHUB:
            agent = self._collect_github(agent_raw)
        else:
            agent = {}
        model = _AGENT_MODELS[platform]
        # Keys that belong to the other platform are dropped.
        agent = {
            key: value
            for key, value in agent.items()
            if key in model.model_fields and value is not None
        }
        agent["platform"] = platform.value
        return agent

    def collect(self, raw: Optional[Dict[str, Any]] = None) -> BootstrapConfig:
        raw = dict(raw or {})
        if self.interactive:
            log_bootstrap(
                f"{self.app_settings.symbols.get('info', 'ℹ️')} Press Enter to accept the default shown in brackets.",
                "info",
                self.logger,
                self.app_settings,
            )

        user = self._value(raw, "user", "CI username", CI_USER_DEFAULT)
        ssh_port = parse_port(
            self._value(raw, "ssh_port", "SSH port", str(SSH_PORT_DEFAULT))
        )
        ssh_allow_cidr = self._value(
            raw,
            "ssh_allow_cidr",
            "Restrict SSH to your IP/CIDR (e.g. 203.0.113.7/32, empty allows all)",
            "",
        )

        agent = self._collect_agent(parameter_section(raw, "agent"))

        tool_versions = parameter_section(raw, "tool_versions")
        tool_versions["terraform"] = self._value(
            tool_versions,
            "terraform",
            "Terraform version ('latest' or e.g. 1.9.5)",
            TOOL_VERSION_LATEST,
        )

        data: Dict[str, Any] = {
            "user": user,
            "ssh_port": ssh_port,
            "ssh_allow_cidr": ssh_allow_cidr,
            "agent": agent,
            "tool_versions": tool_versions,
        }
        if raw.get("home"):
            data["home"] = raw["home"]

        try:
            config = BootstrapConfig(**data)
        except ValidationError as e:
            raise _validation_error_to_parameter_error(e) from None

        log_bootstrap(
            f"Parameters: user={config.user}, ssh_port={config.ssh_port}, "
            f"ssh_allow_cidr={config.ssh_allow_cidr or 'ANY'}, agent={config.agent_platform.value}",
            "info",
            self.logger,
            self.app_settings,
        )
        return config


def collect_parameters(
    raw: Optional[Dict[str, Any]],
    app_settings: AppSettings,
    interactive: Optional[bool] = None,
    prompt: Prompt = input,
    secret_prompt: Prompt = getpass.getpass,
    current_logger: Optional[logging.Logger] = None,
) -> BootstrapConfig:
    """
    Build the BootstrapConfig for this run.

    Raises:
        MissingRequiredField: a required value was neither supplied nor answered.
        InvalidParameter: a value was supplied but cannot be used.
    """
    if interactive is None:
        interactive = app_settings.interactive
    collector = ParameterCollector(
        app_settings,
        interactive=interactive,
        prompt=prompt,
        secret_prompt=secret_prompt,
        logger=current_logger,
    )
    return collector.collect(raw)


__all__ = [
    "ParameterCollector",
    "collect_parameters",
    "parameter_section",
    "parse_labels",
    "parse_platform",
    "parse_port",
]
