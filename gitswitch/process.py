"""Child process execution with a timeout."""

import logging
import subprocess
from collections.abc import Sequence
from typing import Protocol

from .config import DEFAULT_COMMAND_TIMEOUT
from .exceptions import ExternalToolError

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    """Anything that runs a command and returns its captured result."""

    def __call__(
        self, cmd: Sequence[str], timeout: float = ...
    ) -> subprocess.CompletedProcess: ...


def run_command(
    cmd: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT
) -> subprocess.CompletedProcess:
    """Run a command, capturing text output.

    The exit code is not checked; callers decide what a non-zero exit means.

    Raises:
        ExternalToolError: If the program is missing or does not finish in time
    """
    # Only the program name is logged: arguments may carry a passphrase.
    logger.debug(f"Running {cmd[0]} (timeout {timeout}s)")
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        logger.error(f"{cmd[0]} not found")
        raise ExternalToolError(f"{cmd[0]} is not installed") from e
    except subprocess.TimeoutExpired as e:
        logger.error(f"{cmd[0]} timed out after {timeout}s")
        raise ExternalToolError(f"{cmd[0]} timed out after {timeout} seconds") from e

    logger.debug(f"{cmd[0]} exited with code {result.returncode}")
    return result
