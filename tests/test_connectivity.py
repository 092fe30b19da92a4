"""Tests for SSH connectivity classification."""

import pytest

from gitswitch.connectivity import ConnectionStatus, ConnectivityProbe, classify_output
from gitswitch.exceptions import ExternalToolError
from gitswitch.providers import ServiceType

GITHUB_OK = "Hi someone! You've successfully authenticated, but GitHub does not provide shell access.\n"
GITLAB_OK = "Welcome to GitLab, @someone!\n"
BITBUCKET_OK = (
    "authenticated via ssh key.\n\n"
    "You can use git to connect to Bitbucket. Shell access is disabled\n"
    "logged in as someone.\n"
)
DENIED = "git@github.com: Permission denied (publickey).\n"
UNRESOLVED = "ssh: Could not resolve hostname github.com: nodename nor servname provided, or not known\n"


@pytest.mark.parametrize(
    "output,service,username",
    [
        (GITHUB_OK, ServiceType.GITHUB, "someone"),
        (GITHUB_OK, None, "someone"),
        (GITLAB_OK, ServiceType.GITLAB, "someone"),
        (BITBUCKET_OK, ServiceType.BITBUCKET, "someone"),
    ],
)
def test_classify_authenticated(output: str, service, username: str) -> None:
    result = classify_output(output, service)
    assert result.status is ConnectionStatus.AUTHENTICATED
    assert result.username == username
    assert result.ok


def test_classify_authenticated_without_username() -> None:
    result = classify_output("You've successfully authenticated", ServiceType.GITHUB)
    assert result.status is ConnectionStatus.AUTHENTICATED
    assert result.username is None


def test_classify_failures() -> None:
    assert classify_output("Permission denied (publickey).").status is ConnectionStatus.UNAUTHORIZED
    assert classify_output(DENIED).status is ConnectionStatus.UNAUTHORIZED
    assert classify_output(UNRESOLVED).status is ConnectionStatus.UNREACHABLE
    assert classify_output("Connection timed out").status is ConnectionStatus.UNKNOWN
    assert classify_output("").status is ConnectionStatus.UNKNOWN


def test_test_connection_ignores_exit_code(runner) -> None:
    """Test that a non-zero exit with a banner still counts as authenticated."""
    runner.on("ssh", returncode=1, stderr=GITHUB_OK)
    probe = ConnectivityProbe(runner=runner, timeout=5)

    result = probe.test_connection("/keys/work", ServiceType.GITHUB)

    assert result.status is ConnectionStatus.AUTHENTICATED
    assert result.username == "someone"
    cmd = runner.commands("ssh")[0]
    assert cmd[:2] == ["ssh", "-T"]
    assert "StrictHostKeyChecking=no" in cmd
    assert "PasswordAuthentication=no" in cmd
    assert cmd[cmd.index("-i") + 1] == "/keys/work"
    assert cmd[-1] == "git@github.com"
    assert runner.timeouts[-1] == 5


@pytest.mark.parametrize(
    "service,host",
    [(ServiceType.GITLAB, "git@gitlab.com"), (ServiceType.BITBUCKET, "git@bitbucket.org")],
)
def test_test_connection_hosts(runner, service: ServiceType, host: str) -> None:
    runner.on("ssh", returncode=255, stderr=DENIED)
    result = ConnectivityProbe(runner=runner).test_connection("/keys/k", service)
    assert result.status is ConnectionStatus.UNAUTHORIZED
    assert runner.commands("ssh")[0][-1] == host


def test_test_connection_unknown_service_skips_ssh(runner) -> None:
    result = ConnectivityProbe(runner=runner).test_connection("/keys/k", ServiceType.GITEA)
    assert result.status is ConnectionStatus.UNKNOWN
    assert runner.commands("ssh") == []


def test_test_connection_never_raises(runner) -> None:
    runner.on("ssh", raises=ExternalToolError("ssh timed out after 15 seconds"))
    result = ConnectivityProbe(runner=runner).test_connection("/keys/k", ServiceType.GITHUB)
    assert result.status is ConnectionStatus.UNKNOWN
    assert "timed out" in result.output
