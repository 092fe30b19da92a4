"""SSH key management module for gitswitch."""

import logging
import platform
import re
import shutil
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import validators
from .config import DEFAULT_COMMAND_TIMEOUT, DEFAULT_LOCK_TIMEOUT
from .exceptions import (
    ExternalToolError,
    KeyPermissionError,
    NotFoundError,
    ValidationError,
)
from .process import CommandRunner, run_command
from .providers import KEY_SETTINGS_URLS, ServiceType, get_service_hostname
from .ssh_config import SSHConfigFile, build_block

logger = logging.getLogger(__name__)

DEFAULT_KEY_TYPE = "ed25519"
KEY_PREFIX = "id_rsa_"
SECURE_PRIVATE_MODES = (0o600, 0o400)

KEY_NAME_PATTERNS = [
    re.compile(r"^id_[a-z0-9]+$"),
    re.compile(r"^id_[a-z0-9]+_.*$"),
    re.compile(r"^.*_rsa$"),
    re.compile(r"^.*_ed25519$"),
    re.compile(r"^.*_ecdsa$"),
]


def public_key_path(key_path: "str | Path") -> Path:
    """Public half of a key pair: the private path plus ``.pub``."""
    key_path = Path(key_path)
    return key_path.with_name(key_path.name + ".pub")


def clipboard_command() -> Optional[list[str]]:
    """Get the clipboard copy command for this platform, if one is available."""
    system = platform.system().lower()
    if system == "darwin":
        return ["pbcopy"]
    if system == "windows":
        return ["clip"]
    if system == "linux":
        # Try different clipboard commands available on Linux
        for cmd in (
            ["xclip", "-selection", "clipboard"],
            ["xsel", "--clipboard", "--input"],
            ["wl-copy"],
        ):
            if shutil.which(cmd[0]):
                return cmd
    return None


def copy_to_clipboard(text: str, timeout: float = 5.0) -> bool:
    """Copy text to clipboard.

    Returns:
        True if the text was handed to a clipboard command
    """
    cmd = clipboard_command()
    if cmd is None:
        logger.debug(f"No clipboard command found on {platform.system()}")
        return False
    try:
        subprocess.run(cmd, input=text, text=True, capture_output=True, timeout=timeout, check=True)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Could not copy to clipboard with {cmd[0]}: {e}")
        return False
    return True


@dataclass
class KeyInfo:
    """A private key found in the SSH directory."""
    name: str
    path: Path
    has_public_key: bool


@dataclass
class KeyValidation:
    """Outcome of validating a key pair."""
    valid: bool
    error: Optional[str] = None
    fixable: bool = False


class SSHKeyManager:
    """Manages key pairs, the SSH agent, and gitswitch's SSH config blocks."""

    def __init__(
        self,
        ssh_dir: Optional[Path] = None,
        runner: CommandRunner = run_command,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        config_path: Optional[Path] = None,
    ) -> None:
        """Initialize SSH key manager.

        Args:
            ssh_dir: SSH directory; ``~/.ssh`` by default
            runner: Callable used for every ssh-keygen / ssh-add invocation
            timeout: Seconds before a tool invocation is abandoned
            lock_timeout: Seconds to wait for the SSH config lock
            config_path: SSH client config; ``<ssh_dir>/config`` by default
        """
        if ssh_dir is None:
            from .config import Settings
            ssh_dir = Settings.from_env().ssh_dir
        self.ssh_dir = Path(ssh_dir)
        self.runner = runner
        self.timeout = timeout
        self.config_file = SSHConfigFile(
            Path(config_path) if config_path else self.ssh_dir / "config", lock_timeout
        )

    def _run(self, cmd: list[str]):
        return self.runner(cmd, timeout=self.timeout)

    def ensure_ssh_dir(self) -> None:
        """Ensure SSH directory exists with correct permissions."""
        try:
            self.ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            self.ssh_dir.chmod(0o700)
        except OSError as e:
            raise KeyPermissionError(f"Could not set up SSH directory: {e}") from e

    def derive_key_path(self, profile_name: str) -> Path:
        """Key path for a profile: every non-alphanumeric character becomes ``_``."""
        sanitized = re.sub(r"[^A-Za-z0-9]", "_", profile_name)
        return self.ssh_dir / f"{KEY_PREFIX}{sanitized}"

    def generate_key(
        self, email: str, key_path: "str | Path", passphrase: str = ""
    ) -> Path:
        """Generate a new Ed25519 key pair.

        Raises:
            ValidationError: If a private key already exists at ``key_path``
            ExternalToolError: If ssh-keygen fails
        """
        key_path = Path(key_path)
        self.ensure_ssh_dir()
        if key_path.exists():
            raise ValidationError(f"SSH key already exists: {key_path}")

        result = self._run([
            "ssh-keygen",
            "-t", DEFAULT_KEY_TYPE,
            "-C", email,
            "-f", str(key_path),
            "-N", passphrase,
        ])
        if result.returncode != 0:
            raise ExternalToolError(
                "Failed to generate SSH key",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        try:
            key_path.chmod(0o600)
            public_key_path(key_path).chmod(0o644)
        except OSError as e:
            raise KeyPermissionError(f"Failed to set key permissions: {e}") from e

        logger.info(f"Generated {DEFAULT_KEY_TYPE} key pair at {key_path}")
        return key_path

    def key_exists(self, key_path: "str | Path") -> bool:
        """Check if both private and public keys exist."""
        return Path(key_path).exists() and public_key_path(key_path).exists()

    def get_public_key(self, key_path: "str | Path") -> str:
        """Get the contents of the public key file."""
        pub = public_key_path(key_path)
        if not pub.exists():
            raise NotFoundError(f"Public key not found at {pub}")
        return pub.read_text().strip()

    def validate_key_pair(self, key_path: "str | Path") -> KeyValidation:
        """Check that a key pair exists, is private, and parses.

        Checks run in order and stop at the first failure. Only a bad mode
        on an otherwise complete pair is reported as fixable.

        The public key is checked before the mode, unlike older releases
        that checked the mode first: a pair missing its public half stays
        invalid after a chmod, so it must not be reported as fixable.
        """
        key_path = Path(key_path)
        if not key_path.exists():
            return KeyValidation(False, "Private key not found")
        try:
            st = key_path.stat()
        except OSError as e:
            return KeyValidation(False, str(e))
        if not stat.S_ISREG(st.st_mode):
            return KeyValidation(False, "Path is not a file")

        if not public_key_path(key_path).exists():
            return KeyValidation(False, "Public key not found")

        mode = stat.S_IMODE(st.st_mode)
        if mode not in SECURE_PRIVATE_MODES:
            return KeyValidation(
                False,
                f"Insecure permissions ({mode:o}). Should be 600 or 400.",
                fixable=True,
            )

        if self.fingerprint(key_path) is None:
            return KeyValidation(False, "Invalid key format")

        return KeyValidation(True)

    def fix_permissions(self, key_path: "str | Path") -> None:
        """Restrict the private key to its owner (0600)."""
        try:
            Path(key_path).chmod(0o600)
        except OSError as e:
            raise KeyPermissionError(f"Failed to fix permissions: {e}") from e
        logger.info(f"Fixed permissions on {key_path}")

    def fingerprint(self, key_path: "str | Path") -> Optional[str]:
        """Get the fingerprint of an SSH key, or None if ssh-keygen cannot read it."""
        try:
            result = self._run(["ssh-keygen", "-l", "-f", str(key_path)])
        except ExternalToolError as e:
            logger.debug(f"Could not fingerprint {key_path}: {e}")
            return None
        if result.returncode != 0:
            return None
        # Output format: <bits> <fingerprint> <comment> (<type>)
        parts = result.stdout.strip().split()
        return parts[1] if len(parts) > 1 else None

    def is_agent_running(self) -> bool:
        """Check whether an SSH agent is reachable.

        ``ssh-add -l`` exits 1 for a running agent with no keys and 2 when
        there is no agent at all.
        """
        try:
            result = self._run(["ssh-add", "-l"])
        except ExternalToolError as e:
            logger.debug(f"Could not query SSH agent: {e}")
            return False
        return result.returncode in (0, 1)

    def is_key_in_agent(self, key_path: "str | Path") -> bool:
        """Check if the key is loaded in the SSH agent, comparing fingerprints."""
        fingerprint = self.fingerprint(key_path)
        if not fingerprint:
            return False
        try:
            result = self._run(["ssh-add", "-l"])
        except ExternalToolError as e:
            logger.debug(f"Could not query SSH agent: {e}")
            return False
        # Code 1 means an empty agent, 2 means no agent
        if result.returncode != 0:
            return False
        return fingerprint in result.stdout

    def add_to_agent(self, key_path: "str | Path") -> None:
        """Add a key to the SSH agent.

        Raises:
            ExternalToolError: If ssh-add fails
        """
        result = self._run(["ssh-add", str(key_path)])
        if result.returncode != 0:
            raise ExternalToolError(
                "Failed to add key to SSH agent",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        logger.info(f"Added key to SSH agent: {key_path}")

    def remove_from_agent(self, key_path: "str | Path") -> bool:
        """Remove a key from the SSH agent; False if it was not loaded."""
        try:
            result = self._run(["ssh-add", "-d", str(key_path)])
        except ExternalToolError as e:
            logger.debug(f"Could not remove key from agent: {e}")
            return False
        return result.returncode == 0

    def clear_agent(self) -> bool:
        """Unload every key from the SSH agent."""
        try:
            result = self._run(["ssh-add", "-D"])
        except ExternalToolError as e:
            logger.debug(f"Could not clear SSH agent: {e}")
            return False
        return result.returncode == 0

    def list_available_keys(self) -> list[KeyInfo]:
        """Find private keys in the SSH directory by common naming conventions."""
        if not self.ssh_dir.is_dir():
            return []

        keys = []
        for path in sorted(self.ssh_dir.iterdir()):
            name = path.name
            if name.endswith(".pub") or not path.is_file():
                continue
            if not any(pattern.match(name) for pattern in KEY_NAME_PATTERNS):
                continue
            keys.append(KeyInfo(
                name=name,
                path=path,
                has_public_key=public_key_path(path).exists(),
            ))
        return keys

    def host_alias(self, name: str, service_type: ServiceType) -> str:
        return f"{service_type.alias_prefix}-{name}"

    def update_block(
        self,
        name: str,
        key_path: "str | Path",
        service_type: ServiceType,
        hostname: Optional[str] = None,
    ) -> str:
        """Write (or rewrite in place) the SSH config block for a profile.

        Returns:
            The host alias to use in clone URLs, e.g. ``git@github-work:org/repo``

        Raises:
            ValidationError: If ``name`` cannot be used as a profile name
        """
        name = validators.profile_name(name)
        alias = self.host_alias(name, service_type)
        block = build_block(
            name,
            alias,
            hostname or get_service_hostname(service_type),
            key_path,
        )
        self.config_file.update_block(name, block)
        logger.info(f"SSH config updated for {alias}")
        return alias

    def remove_block(self, name: str) -> bool:
        """Remove the SSH config block for a profile, if there is one."""
        return self.config_file.remove_block(name)

    @staticmethod
    def get_key_settings_url(service_type: ServiceType) -> str:
        """Web page where a public key is registered for the service."""
        return KEY_SETTINGS_URLS[service_type]
