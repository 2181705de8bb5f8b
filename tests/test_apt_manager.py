# tests/test_apt_manager.py
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from ci_bootstrap.config_models import AppSettings
from common.debian.apt_manager import AptManager

MADISON_OUTPUT = """\
 terraform | 1.10.0-1 | https://apt.releases.hashicorp.com noble/main amd64 Packages
 terraform | 1.9.5-1 | https://apt.releases.hashicorp.com noble/main amd64 Packages
 terraform | 1.9.0-1 | https://apt.releases.hashicorp.com noble/main amd64 Packages
"""


@pytest.fixture
def app_settings():
    return AppSettings(network_timeout=5, package_install_timeout=60)


@pytest.fixture
def apt_manager():
    """Fixture to initialize AptManager with mocked dependencies."""
    mock_logger = MagicMock()
    with (
        patch(
            "common.debian.apt_manager.run_elevated_command"
        ) as mock_run_elevated,
        patch("common.debian.apt_manager.run_command") as mock_run_cmd,
        patch("common.debian.apt_manager.command_exists", return_value=True),
    ):
        manager = AptManager(logger=mock_logger)
        yield manager, mock_logger, mock_run_elevated, mock_run_cmd


def test_missing_apt_get_warns_and_update_fails(app_settings):
    mock_logger = MagicMock()
    with (
        patch("common.debian.apt_manager.command_exists", return_value=False),
        patch(
            "common.debian.apt_manager.run_elevated_command",
            side_effect=FileNotFoundError(
                2, "No such file or directory", "apt-get"
            ),
        ),
    ):
        manager = AptManager(logger=mock_logger)
        mock_logger.warning.assert_called_once()
        assert "apt-get" in mock_logger.warning.call_args[0][0]

        assert manager.update(app_settings) is False
        with pytest.raises(FileNotFoundError):
            manager.update(app_settings, raise_error=True)


def test_install_new_package(apt_manager, app_settings):
    manager, logger, mock_run_elevated, mock_run_cmd = apt_manager
    mock_run_cmd.side_effect = subprocess.CalledProcessError(1, "dpkg-query")

    assert manager.install(["jq"], app_settings) is True

    logger.info.assert_any_call("Marking package for installation: jq")
    mock_run_elevated.assert_called_once()
    args, kwargs = mock_run_elevated.call_args
    assert args[0] == ["apt-get", "install", "-yq", "jq"]
    assert kwargs["env"]["DEBIAN_FRONTEND"] == "noninteractive"
    assert kwargs["timeout"] == 60


def test_install_already_installed(apt_manager, app_settings):
    manager, logger, mock_run_elevated, mock_run_cmd = apt_manager
    mock_run_cmd.return_value = MagicMock(stdout="installed")

    assert manager.install("git", app_settings) is True

    logger.info.assert_any_call("Package 'git' is already installed. Skipping.")
    mock_run_elevated.assert_not_called()


def test_pinned_spec_is_always_installed(apt_manager, app_settings):
    manager, _, mock_run_elevated, mock_run_cmd = apt_manager
    mock_run_cmd.return_value = MagicMock(stdout="installed")

    manager.install(["terraform=1.9.5-1"], app_settings)

    assert mock_run_elevated.call_args[0][0] == [
        "apt-get",
        "install",
        "-yq",
        "terraform=1.9.5-1",
    ]


def test_install_failure_returns_false(apt_manager, app_settings):
    manager, logger, mock_run_elevated, mock_run_cmd = apt_manager
    mock_run_cmd.side_effect = subprocess.CalledProcessError(1, "dpkg-query")
    mock_run_elevated.side_effect = subprocess.CalledProcessError(100, "apt-get")

    assert manager.install(["jq"], app_settings) is False
    logger.error.assert_called_once()


def test_update_raises_when_asked(apt_manager, app_settings):
    manager, _, mock_run_elevated, _ = apt_manager
    mock_run_elevated.side_effect = subprocess.TimeoutExpired("apt-get", 5)

    assert manager.update(app_settings) is False
    with pytest.raises(subprocess.TimeoutExpired):
        manager.update(app_settings, raise_error=True)


def test_install_with_failed_update_does_not_install(apt_manager, app_settings):
    manager, _, mock_run_elevated, _ = apt_manager
    mock_run_elevated.side_effect = subprocess.CalledProcessError(100, "apt-get")

    assert manager.install(["jq"], app_settings, update_first=True) is False
    assert mock_run_elevated.call_count == 1


def test_is_installed_reads_dpkg_status(apt_manager, app_settings):
    manager, _, _, mock_run_cmd = apt_manager
    mock_run_cmd.return_value = MagicMock(stdout="config-files")

    assert manager.is_installed("docker-ce", app_settings) is False

    mock_run_cmd.return_value = MagicMock(stdout="installed\n")
    assert manager.is_installed("docker-ce", app_settings) is True


@pytest.mark.parametrize(
    "version, expected",
    [
        ("1.9.5", "1.9.5-1"),
        ("1.9.5-1", "1.9.5-1"),
        ("1.9", "1.9.5-1"),
        ("1.10.0", "1.10.0-1"),
        ("1.8.0", None),
    ],
)
def test_pinned_version_available(apt_manager, app_settings, version, expected):
    manager, _, _, mock_run_cmd = apt_manager
    mock_run_cmd.return_value = MagicMock(returncode=0, stdout=MADISON_OUTPUT)

    assert (
        manager.pinned_version_available("terraform", version, app_settings)
        == expected
    )


def test_pinned_version_unknown_package(apt_manager, app_settings):
    manager, _, _, mock_run_cmd = apt_manager
    mock_run_cmd.return_value = MagicMock(returncode=100, stdout="")

    assert manager.pinned_version_available("nope", "1.0", app_settings) is None


def test_add_repository_writes_deb822(apt_manager, app_settings):
    manager, _, mock_run_elevated, _ = apt_manager
    written = {}

    def capture(command, *args, **kwargs):
        if command[0] == "install":
            with open(command[3], encoding="utf-8") as f:
                written["content"] = f.read()
            written["target"] = command[4]
        return MagicMock(returncode=0)

    mock_run_elevated.side_effect = capture

    assert manager.add_repository(
        "docker",
        {"Types": "deb", "URIs": "https://download.docker.com/linux/ubuntu"},
        app_settings,
        update_after=False,
    )

    assert written["target"] == "/etc/apt/sources.list.d/docker.sources"
    assert written["content"] == (
        "Types: deb\nURIs: https://download.docker.com/linux/ubuntu\n"
    )


def test_add_gpg_key_download_failure(apt_manager, app_settings, mocker):
    manager, logger, mock_run_elevated, _ = apt_manager
    mocker.patch(
        "common.debian.apt_manager.requests.get",
        side_effect=requests.exceptions.ConnectionError("offline"),
    )

    assert (
        manager.add_gpg_key_from_url(
            "https://example.com/gpg", "/etc/apt/keyrings/x.gpg", app_settings
        )
        is False
    )
    mock_run_elevated.assert_not_called()


def test_add_gpg_key_dearmors_key(apt_manager, app_settings, mocker):
    manager, _, mock_run_elevated, _ = apt_manager
    response = MagicMock(text="-----BEGIN PGP PUBLIC KEY BLOCK-----")
    get = mocker.patch(
        "common.debian.apt_manager.requests.get", return_value=response
    )

    assert manager.add_gpg_key_from_url(
        "https://example.com/gpg", "/etc/apt/keyrings/x.gpg", app_settings
    )

    get.assert_called_once_with("https://example.com/gpg", timeout=5)
    gpg_call = mock_run_elevated.call_args_list[1]
    assert gpg_call[0][0][:2] == ["gpg", "--batch"]
    assert gpg_call[1]["cmd_input"] == response.text


def test_repository_script_is_piped_to_bash(apt_manager, app_settings, mocker):
    manager, _, mock_run_elevated, _ = apt_manager
    mocker.patch(
        "common.debian.apt_manager.requests.get",
        return_value=MagicMock(text="echo repo"),
    )

    assert manager.add_repository_from_script(
        "https://packages.example.com/script.deb.sh", app_settings
    )

    args, kwargs = mock_run_elevated.call_args
    assert args[0] == ["bash", "-s"]
    assert kwargs["cmd_input"] == "echo repo"
