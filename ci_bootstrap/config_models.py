# ci_bootstrap/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for the bootstrapper's configuration.

AppSettings holds how the bootstrapper itself runs (log destinations,
timeouts, file locations) and is read from the environment. BootstrapConfig
holds what the operator asked for (account, SSH policy, agent platform,
tool versions); it is built once by the parameter collector and is
immutable afterwards.
"""

import ipaddress
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ci_bootstrap.errors import InvalidParameter, MissingRequiredField

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
    "skip": "⏭️",
}

CI_USER_DEFAULT: str = "ci"
SSH_PORT_DEFAULT: int = 22
TOOL_VERSION_LATEST: str = "latest"
RUNNER_NAME_DEFAULT: str = "ci-01"
RUNNER_LABELS_DEFAULT: List[str] = ["ci", "hetzner", "ubuntu", "docker"]
RUNNER_WORKDIR_DEFAULT: str = "_work"
GITHUB_RUNNER_VERSION_DEFAULT: str = "2.319.1"
BACKUP_SUFFIX_DEFAULT: str = ".ci01.bak"
LOG_FILE_DEFAULT: str = "/var/log/ci01-bootstrap.log"
RUN_LOG_FILE_DEFAULT: str = "/var/log/ci01-bootstrap.steps.jsonl"


class AppSettings(BaseSettings):
    """Runtime settings of the bootstrapper itself."""

    model_config = SettingsConfigDict(
        env_prefix="CI_BOOTSTRAP_", extra="ignore"
    )

    log_file: str = Field(
        default=LOG_FILE_DEFAULT, description="Human-readable log file."
    )
    run_log_file: str = Field(
        default=RUN_LOG_FILE_DEFAULT,
        description="JSON-lines log of every step result.",
    )
    backup_suffix: str = Field(
        default=BACKUP_SUFFIX_DEFAULT,
        description="Suffix appended to a mutated file's path for its one-time backup.",
    )
    sshd_config_path: str = Field(default="/etc/ssh/sshd_config")
    os_release_path: str = Field(default="/etc/os-release")
    fail2ban_jail_path: str = Field(
        default="/etc/fail2ban/jail.d/sshd.local"
    )
    ci_root: str = Field(
        default="/srv/ci", description="Root of the CI working directories."
    )
    github_runner_version: str = Field(default=GITHUB_RUNNER_VERSION_DEFAULT)
    github_runner_dir: str = Field(default="/opt/actions-runner")
    gitlab_runner_config_path: str = Field(
        default="/etc/gitlab-runner/config.toml"
    )
    network_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Seconds allowed for any single network-bound operation.",
    )
    package_install_timeout: float = Field(
        default=1800.0,
        gt=0,
        description="Seconds allowed for a single apt-get install run.",
    )
    supported_os_id: str = Field(default="ubuntu")
    interactive: bool = Field(
        default=True,
        description="Prompt for parameters that were not supplied.",
    )

    symbols: Dict[str, str] = Field(
        default_factory=lambda: dict(SYMBOLS_DEFAULT)
    )


class AgentPlatform(str, Enum):
    GITLAB = "gitlab"
    GITHUB = "github"
    NONE = "none"


def _require(value: Optional[Union[str, SecretStr]], field: str) -> None:
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    if value is None or not str(value).strip():
        raise MissingRequiredField(field)


class GitLabAgent(BaseModel):
    """GitLab Runner registration parameters."""

    model_config = ConfigDict(frozen=True)

    platform: Literal["gitlab"] = "gitlab"
    url: str = ""
    registration_token: SecretStr = SecretStr("")
    description: str = RUNNER_NAME_DEFAULT
    tags: List[str] = Field(
        default_factory=lambda: list(RUNNER_LABELS_DEFAULT)
    )
    executor: str = "docker"
    docker_image: str = "docker:27"
    run_untagged: bool = True
    locked: bool = False
    access_level: str = "not_protected"

    @model_validator(mode="after")
    def _check_required(self) -> "GitLabAgent":
        _require(self.url, "gitlab_url")
        _require(self.registration_token, "gitlab_registration_token")
        return self


class GitHubAgent(BaseModel):
    """GitHub Actions runner registration parameters."""

    model_config = ConfigDict(frozen=True)

    platform: Literal["github"] = "github"
    owner: str = ""
    repository: str = ""
    token: SecretStr = SecretStr("")
    runner_name: str = RUNNER_NAME_DEFAULT
    labels: List[str] = Field(
        default_factory=lambda: list(RUNNER_LABELS_DEFAULT)
    )
    work_dir: str = RUNNER_WORKDIR_DEFAULT

    @model_validator(mode="after")
    def _check_required(self) -> "GitHubAgent":
        _require(self.owner, "github_owner")
        _require(self.repository, "github_repository")
        _require(self.token, "github_token")
        return self

    @property
    def repository_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repository}"


class NoAgent(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: Literal["none"] = "none"


AgentSettings = Annotated[
    Union[GitLabAgent, GitHubAgent, NoAgent],
    Field(discriminator="platform"),
]


class ToolVersions(BaseModel):
    model_config = ConfigDict(frozen=True)

    docker: str = TOOL_VERSION_LATEST
    terraform: str = TOOL_VERSION_LATEST
    ansible: str = TOOL_VERSION_LATEST


class BootstrapConfig(BaseModel):
    """
    Operator-supplied parameters for one bootstrap run.

    An empty ssh_allow_cidr allows inbound SSH from anywhere. That matches
    the behaviour hosts have always been bootstrapped with; the summary
    report calls it out so it is not mistaken for a restricted setup.
    """

    model_config = ConfigDict(frozen=True)

    user: str = CI_USER_DEFAULT
    home: str = ""
    ssh_port: int = SSH_PORT_DEFAULT
    ssh_allow_cidr: Optional[str] = None
    agent: AgentSettings = Field(default_factory=NoAgent)
    tool_versions: ToolVersions = Field(default_factory=ToolVersions)

    @model_validator(mode="before")
    @classmethod
    def _derive_home(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            user = data.get("user") or CI_USER_DEFAULT
            if not data.get("home"):
                data["home"] = f"/home/{user}"
            if data.get("ssh_allow_cidr") == "":
                data["ssh_allow_cidr"] = None
        return data

    @model_validator(mode="after")
    def _check_fields(self) -> "BootstrapConfig":
        _require(self.user, "user")
        if not (1 <= self.ssh_port <= 65535):
            raise InvalidParameter(
                "ssh_port", self.ssh_port, "must be between 1 and 65535"
            )
        if self.ssh_allow_cidr is not None:
            try:
                ipaddress.ip_network(self.ssh_allow_cidr, strict=False)
            except ValueError as e:
                raise InvalidParameter(
                    "ssh_allow_cidr", self.ssh_allow_cidr, str(e)
                ) from e
        return self

    @property
    def agent_platform(self) -> AgentPlatform:
        return AgentPlatform(self.agent.platform)

    @property
    def allows_ssh_from_anywhere(self) -> bool:
        return self.ssh_allow_cidr is None
