# ci_bootstrap/config.py
"""
Static constants for the CI node bootstrap: package lists, upstream
repository locations, directory layout and hardening values.
"""

from typing import Dict, List, Tuple

SCRIPT_VERSION: str = "1.0.0"

# --- Package Lists (for apt installation) ---
BASE_PACKAGES: List[str] = ["git", "unzip", "jq"]

SECURITY_BASELINE_PACKAGES: List[str] = [
    "ufw",
    "fail2ban",
    "unattended-upgrades",
    "ca-certificates",
    "curl",
    "gnupg",
    "lsb-release",
    "apt-transport-https",
    "software-properties-common",
]

DOCKER_PACKAGES: List[str] = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
]

# --- Upstream repositories ---
DOCKER_GPG_URL: str = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_KEYRING_PATH: str = "/etc/apt/keyrings/docker.gpg"
DOCKER_REPO_URI: str = "https://download.docker.com/linux/ubuntu"

HASHICORP_GPG_URL: str = "https://apt.releases.hashicorp.com/gpg"
HASHICORP_KEYRING_PATH: str = (
    "/usr/share/keyrings/hashicorp-archive-keyring.gpg"
)
HASHICORP_REPO_URI: str = "https://apt.releases.hashicorp.com"

GITLAB_RUNNER_REPO_SCRIPT_URL: str = "https://packages.gitlab.com/install/repositories/runner/gitlab-runner/script.deb.sh"
GITHUB_RUNNER_DOWNLOAD_URL: str = "https://github.com/actions/runner/releases/download/v{version}/actions-runner-linux-{arch}-{version}.tar.gz"

# dpkg architecture -> GitHub runner tarball architecture
GITHUB_RUNNER_ARCH_MAP: Dict[str, str] = {
    "amd64": "x64",
    "arm64": "arm64",
    "armhf": "arm",
}

# --- SSH hardening ---
# Port is prepended at runtime from BootstrapConfig.ssh_port.
SSHD_HARDENING_SETTINGS: List[Tuple[str, str]] = [
    ("PermitRootLogin", "no"),
    ("PasswordAuthentication", "no"),
    ("KbdInteractiveAuthentication", "no"),
    ("ChallengeResponseAuthentication", "no"),
    ("UsePAM", "yes"),
]
SSH_SERVICE_NAMES: List[str] = ["ssh", "sshd"]

# --- fail2ban sshd jail ---
FAIL2BAN_SSHD_MAX_RETRY: int = 5
FAIL2BAN_SSHD_FIND_TIME: str = "10m"
FAIL2BAN_SSHD_BAN_TIME: str = "1h"

# --- CI working directories ---
CI_SUBDIRECTORIES: List[str] = [
    "work",
    "artifacts",
    "cache",
    "ansible",
    "terraform",
    "logs",
]
CI_DIRECTORY_MODE: int = 0o750

DOCKER_GROUP: str = "docker"
GITLAB_RUNNER_SERVICE_ACCOUNT: str = "gitlab-runner"

# --- unattended-upgrades ---
# What `dpkg-reconfigure -f noninteractive unattended-upgrades` writes.
AUTO_UPGRADES_PATH: str = "/etc/apt/apt.conf.d/20auto-upgrades"
AUTO_UPGRADES_CONTENT: str = (
    'APT::Periodic::Update-Package-Lists "1";\n'
    'APT::Periodic::Unattended-Upgrade "1";\n'
)
