"""Tests for the global Git identity bridge."""

from unittest.mock import Mock

import git
import pytest

from gitswitch.exceptions import ExternalToolError, GitConfigError
from gitswitch.git import GitIdentity


@pytest.fixture
def git_cmd() -> Mock:
    """Mock GitPython command wrapper."""
    return Mock(spec=["config"])


def test_get_current(git_cmd: Mock) -> None:
    values = {"user.name": "J Doe\n", "user.email": "j@co.com\n"}
    git_cmd.config.side_effect = lambda scope, key, **kwargs: values[key]

    assert GitIdentity(git_cmd=git_cmd, timeout=3).get_current() == ("J Doe", "j@co.com")
    git_cmd.config.assert_any_call("--global", "user.name", kill_after_timeout=3)


def test_get_current_unset(git_cmd: Mock) -> None:
    git_cmd.config.side_effect = git.exc.GitCommandError(["git", "config"], 1)
    assert GitIdentity(git_cmd=git_cmd).get_current() == ("", "")


def test_get_current_git_missing(git_cmd: Mock) -> None:
    git_cmd.config.side_effect = git.exc.GitCommandNotFound("git", "not found")
    assert GitIdentity(git_cmd=git_cmd).get_current() == ("", "")


def test_set_current(git_cmd: Mock) -> None:
    GitIdentity(git_cmd=git_cmd, timeout=3).set_current("J Doe", "j@co.com")

    git_cmd.config.assert_any_call("--global", "user.name", "J Doe", kill_after_timeout=3)
    git_cmd.config.assert_any_call("--global", "user.email", "j@co.com", kill_after_timeout=3)


def test_set_current_failure(git_cmd: Mock) -> None:
    git_cmd.config.side_effect = git.exc.GitCommandError(
        ["git", "config"], 255, stderr="error: could not lock config file"
    )

    with pytest.raises(GitConfigError, match="Failed to set git config user.name") as exc_info:
        GitIdentity(git_cmd=git_cmd).set_current("J Doe", "j@co.com")

    assert isinstance(exc_info.value, ExternalToolError)
    assert exc_info.value.returncode == 255
