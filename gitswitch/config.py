"""Paths and timeouts for gitswitch, resolved from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path

STORE_FILENAME = ".gitswitch.json"
BACKUP_SUFFIX = ".backup"
DEFAULT_COMMAND_TIMEOUT = 30.0
DEFAULT_SSH_TIMEOUT = 15.0
DEFAULT_LOCK_TIMEOUT = 10.0


def get_home_dir() -> Path:
    """Get the home directory, honouring GITSWITCH_HOME."""
    override = os.environ.get("GITSWITCH_HOME")
    if override:
        return Path(override)
    return Path.home()


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Resolved locations and limits."""
    home: Path
    store_path: Path
    ssh_dir: Path
    ssh_config_path: Path
    log_dir: Path
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    ssh_timeout: float = DEFAULT_SSH_TIMEOUT
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    @property
    def log_file(self) -> Path:
        return self.log_dir / "gitswitch.log"

    @classmethod
    def from_env(cls, home: Path | None = None) -> "Settings":
        """Build settings for the given (or detected) home directory."""
        home = home or get_home_dir()
        ssh_dir = home / ".ssh"
        return cls(
            home=home,
            store_path=home / STORE_FILENAME,
            ssh_dir=ssh_dir,
            ssh_config_path=ssh_dir / "config",
            log_dir=home / ".gitswitch",
            command_timeout=_float_env("GITSWITCH_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT),
            ssh_timeout=_float_env("GITSWITCH_SSH_TIMEOUT", DEFAULT_SSH_TIMEOUT),
            lock_timeout=_float_env("GITSWITCH_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT),
        )
