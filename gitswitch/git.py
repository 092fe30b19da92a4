"""Global Git identity management."""

import logging
from typing import Optional

import git

from .config import DEFAULT_COMMAND_TIMEOUT
from .exceptions import GitConfigError

logger = logging.getLogger(__name__)


class GitIdentity:
    """Reads and writes the global ``user.name`` / ``user.email`` pair."""

    def __init__(
        self,
        git_cmd: Optional[git.Git] = None,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        """Initialize the bridge.

        Args:
            git_cmd: GitPython command wrapper; a fresh ``git.Git()`` by default
            timeout: Seconds before a git invocation is killed
        """
        self._git = git_cmd if git_cmd is not None else git.Git()
        self.timeout = timeout

    def _get(self, key: str) -> str:
        return self._git.config("--global", key, kill_after_timeout=self.timeout).strip()

    def get_current(self) -> tuple[str, str]:
        """Get the global Git identity.

        Returns:
            Tuple of (user_name, email); empty strings if either is unset
        """
        try:
            return self._get("user.name"), self._get("user.email")
        except git.exc.CommandError as e:
            # Exit code 1 just means the key is unset
            logger.debug(f"Could not read global Git identity: {e}")
            return "", ""

    def set_current(self, user_name: str, email: str) -> None:
        """Write both identity values to the global Git configuration.

        Raises:
            GitConfigError: If git refuses either write
        """
        for key, value in (("user.name", user_name), ("user.email", email)):
            try:
                self._git.config("--global", key, value, kill_after_timeout=self.timeout)
            except git.exc.CommandError as e:
                logger.error(f"Failed to set {key}: {e}")
                status = getattr(e, "status", None)
                raise GitConfigError(
                    f"Failed to set git config {key}",
                    returncode=status if isinstance(status, int) else None,
                    stderr=str(getattr(e, "stderr", "") or ""),
                ) from e
        logger.debug(f"Global Git identity set to {user_name} <{email}>")
