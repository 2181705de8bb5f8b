# tests/conftest.py
import subprocess
from typing import Dict, List, Optional, Set, Tuple

import pytest

from ci_bootstrap.config_models import AppSettings
from ci_bootstrap.config_mutator import BackupLedger, ConfigMutator
from installer.agents.github_runner import GitHubRunnerRegistration
from installer.agents.gitlab_runner import GitLabRunnerRegistration
from installer.context import HostContext
from installer.fail2ban import Fail2banService

SSHD_CONFIG_SAMPLE = (
    "# Stock Ubuntu sshd_config\n"
    "Include /etc/ssh/sshd_config.d/*.conf\n"
    "#Port 22\n"
    "#PermitRootLogin prohibit-password\n"
    "PasswordAuthentication yes\n"
    "KbdInteractiveAuthentication no\n"
    "UsePAM yes\n"
    "X11Forwarding yes\n"
)

# Package name -> executable it provides.
PACKAGE_COMMANDS: Dict[str, str] = {
    "git": "git",
    "unzip": "unzip",
    "jq": "jq",
    "ufw": "ufw",
    "fail2ban": "fail2ban-client",
    "docker-ce": "docker",
    "terraform": "terraform",
    "ansible": "ansible",
    "gitlab-runner": "gitlab-runner",
}


class FakeHost:
    """In-memory stand-in for common.system_utils.HostOperations."""

    def __init__(self, app_settings: AppSettings):
        self.app_settings = app_settings
        self.commands: Set[str] = set()
        self.users: Dict[str, str] = {}
        self.groups: Dict[str, Set[str]] = {}
        self.active_services: Set[str] = set()
        self.restarts: List[str] = []
        self.files: Dict[str, str] = {}
        self.directories: Dict[str, Tuple[str, int]] = {}
        self.commands_run: List[List[str]] = []
        self.downloads: List[Tuple[str, str]] = []
        # "command prefix" -> stderr of the simulated failure
        self.fail_commands: Dict[str, str] = {}
        self.os_release_values = {
            "ID": "ubuntu",
            "VERSION_ID": "24.04",
            "VERSION_CODENAME": "noble",
        }
        self.arch = "amd64"

    def _maybe_fail(self, command: List[str]) -> None:
        joined = " ".join(command)
        for prefix, stderr in self.fail_commands.items():
            if joined.startswith(prefix):
                raise subprocess.CalledProcessError(
                    1, command, output="", stderr=stderr
                )

    def _simulate(self, command: List[str], cwd: Optional[str]) -> None:
        if command[:2] == ["gitlab-runner", "register"]:
            url = command[command.index("--url") + 1]
            self.files[self.app_settings.gitlab_runner_config_path] = (
                "concurrent = 1\n\n[[runners]]\n"
                '  name = "ci-01"\n'
                f'  url = "{url}"\n'
                '  executor = "docker"\n'
            )
        elif command[:1] == ["./config.sh"]:
            self.files[f"{cwd}/.runner"] = "{}"
        elif command[:2] == ["./svc.sh", "install"]:
            self.files[f"{cwd}/.service"] = "actions.runner.ci-01.service"

    def command_exists(self, command_name: str) -> bool:
        return command_name in self.commands

    def run(
        self,
        command,
        check=True,
        capture_output=False,
        cwd=None,
        timeout=None,
        secrets=None,
    ):
        self.commands_run.append(list(command))
        self._maybe_fail(list(command))
        self._simulate(list(command), cwd)
        return subprocess.CompletedProcess(command, 0, "", "")

    def run_as(self, user, command, cwd=None, timeout=None, secrets=None):
        self.commands_run.append(["sudo", "-u", user, "--"] + list(command))
        self._maybe_fail(list(command))
        self._simulate(list(command), cwd)
        return subprocess.CompletedProcess(command, 0, "", "")

    def architecture(self) -> str:
        return self.arch

    def os_release(self) -> Dict[str, str]:
        return dict(self.os_release_values)

    def command_output(self, command: List[str]) -> Optional[str]:
        if command[0] not in self.commands:
            return None
        return f"{command[0]} version 1.0.0"

    def download(self, url: str, destination: str) -> bool:
        self.downloads.append((url, destination))
        return True

    def extract_tarball(self, archive: str, destination: str) -> bool:
        self.files[f"{destination}/config.sh"] = "#!/bin/bash\n"
        self.files[f"{destination}/svc.sh"] = "#!/bin/bash\n"
        return True

    def user_exists(self, user: str) -> bool:
        return user in self.users

    def create_user(self, user: str, home: Optional[str] = None) -> None:
        self.users[user] = home or f"/home/{user}"

    def user_in_group(self, user: str, group: str) -> bool:
        return user in self.groups.get(group, set())

    def add_user_to_group(self, user: str, group: str) -> None:
        if group not in self.groups:
            raise subprocess.CalledProcessError(
                6, ["usermod", "-aG", group, user], stderr=f"group '{group}' does not exist"
            )
        self.groups[group].add(user)

    def enable_service(self, service: str) -> None:
        self.active_services.add(service)

    def restart_service(self, service: str) -> None:
        self.restarts.append(service)
        self.active_services.add(service)

    def restart_first_available(self, services) -> str:
        service = list(services)[0]
        self.restart_service(service)
        return service

    def is_service_active(self, service: str) -> bool:
        return service in self.active_services

    def path_exists(self, path: str) -> bool:
        return path in self.files or path in self.directories

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        self.files[path] = content

    def read_file(self, path: str) -> Optional[str]:
        return self.files.get(path)

    def ensure_directory(
        self, path: str, owner: str, mode: int, recursive: bool = False
    ) -> None:
        self.directories[path] = (owner, mode)

    def directory_matches(self, path: str, owner: str, mode: int) -> bool:
        return self.directories.get(path) == (owner, mode)


class FakePackageSource:
    """In-memory stand-in for common.debian.apt_manager.AptManager."""

    def __init__(self, host: FakeHost):
        self.host = host
        self.installed: Set[str] = set()
        self.repositories: Set[str] = set()
        self.keys: List[str] = []
        self.repository_scripts: List[str] = []
        self.install_calls: List[List[str]] = []
        self.update_count = 0
        self.available_versions: Dict[str, List[str]] = {}
        self.fail_install: Set[str] = set()

    def update(self, app_settings, raise_error=False) -> bool:
        self.update_count += 1
        return True

    def is_installed(self, package_name, app_settings) -> bool:
        return package_name in self.installed

    def install(self, packages, app_settings, update_first=False) -> bool:
        self.install_calls.append(list(packages))
        names = [spec.split("=", 1)[0] for spec in packages]
        if any(name in self.fail_install for name in names):
            return False
        for name in names:
            self.installed.add(name)
            if name in PACKAGE_COMMANDS:
                self.host.commands.add(PACKAGE_COMMANDS[name])
            if name == "docker-ce":
                self.host.groups.setdefault("docker", set())
            if name == "gitlab-runner":
                self.host.users.setdefault(
                    "gitlab-runner", "/home/gitlab-runner"
                )
        return True

    def pinned_version_available(self, package_name, version, app_settings):
        for candidate in self.available_versions.get(package_name, []):
            if candidate == version or candidate.startswith(f"{version}-"):
                return candidate
        return None

    def has_repository(self, name: str) -> bool:
        return name in self.repositories

    def add_repository(self, name, details, app_settings, update_after=True):
        self.repositories.add(name)
        return True

    def add_gpg_key_from_url(self, key_url, keyring_path, app_settings):
        self.keys.append(keyring_path)
        return True

    def add_repository_from_script(self, script_url, app_settings):
        self.repository_scripts.append(script_url)
        self.repositories.add("gitlab-runner")
        return True


class FakeFirewall:
    """In-memory stand-in for installer.firewall.UfwFirewall."""

    def __init__(self):
        self.active = False
        self.defaults: Dict[str, str] = {}
        self.rules: List[Tuple[int, str, Optional[str]]] = []
        self.resets = 0

    def reset(self) -> None:
        self.resets += 1
        self.active = False
        self.defaults = {}
        self.rules = []

    def set_default_policy(self, direction: str, action: str) -> None:
        self.defaults[direction] = action

    def allow_port(self, port, proto="tcp", source_cidr=None) -> None:
        self.rules.append((port, proto, source_cidr))

    def enable(self) -> None:
        self.active = True

    def is_baseline_applied(self, port, source_cidr=None, proto="tcp") -> bool:
        return (
            self.active
            and self.defaults == {"incoming": "deny", "outgoing": "allow"}
            and (port, proto, source_cidr) in self.rules
        )


class FakeMachine:
    """
    One simulated host. Its state survives across bootstrap runs; every run
    gets a fresh context (and backup ledger) from `context_factory`.
    """

    def __init__(self, app_settings: AppSettings):
        self.app_settings = app_settings
        self.host = FakeHost(app_settings)
        self.packages = FakePackageSource(self.host)
        self.firewall = FakeFirewall()

    def context_factory(self, app_settings, config, ledger, logger=None):
        return HostContext(
            app_settings=app_settings,
            config=config,
            packages=self.packages,
            host=self.host,
            firewall=self.firewall,
            intrusion_prevention=Fail2banService(
                app_settings, self.host, logger
            ),
            mutator=ConfigMutator(app_settings, ledger, logger),
            gitlab_registration=GitLabRunnerRegistration(
                app_settings, self.host, logger
            ),
            github_registration=GitHubRunnerRegistration(
                app_settings, self.host, logger
            ),
            logger=logger,
        )


@pytest.fixture
def sshd_config_path(tmp_path):
    path = tmp_path / "sshd_config"
    path.write_text(SSHD_CONFIG_SAMPLE)
    return path


@pytest.fixture
def app_settings(tmp_path, sshd_config_path):
    """AppSettings pointing every on-disk path into tmp_path."""
    return AppSettings(
        log_file=str(tmp_path / "bootstrap.log"),
        run_log_file=str(tmp_path / "bootstrap.steps.jsonl"),
        sshd_config_path=str(sshd_config_path),
        os_release_path=str(tmp_path / "os-release"),
        interactive=False,
    )


@pytest.fixture
def machine(app_settings):
    return FakeMachine(app_settings)


@pytest.fixture
def make_context(machine):
    """Build a HostContext on the fake machine for a given config."""

    def _make(config, ledger=None):
        return machine.context_factory(
            machine.app_settings, config, ledger or BackupLedger()
        )

    return _make
