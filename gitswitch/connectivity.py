"""SSH connectivity checks against Git hosting services."""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import DEFAULT_SSH_TIMEOUT
from .exceptions import ExternalToolError
from .process import CommandRunner, run_command
from .providers import ServiceType, get_probe_hostname

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """How a handshake attempt turned out."""
    AUTHENTICATED = "authenticated"
    UNAUTHORIZED = "unauthorized"
    UNREACHABLE = "unreachable"
    UNKNOWN = "unknown"


@dataclass
class ConnectionResult:
    """Classified handshake output."""
    status: ConnectionStatus
    username: Optional[str] = None
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ConnectionStatus.AUTHENTICATED


AUTH_BANNERS = (
    "successfully authenticated",  # GitHub
    "Welcome to GitLab",
    "logged in as",  # Bitbucket
)

USERNAME_PATTERNS = {
    ServiceType.GITHUB: re.compile(r"Hi ([^!]+)!"),
    ServiceType.GITLAB: re.compile(r"@([^\s!]+)"),
    ServiceType.BITBUCKET: re.compile(r"logged in as ([^.\s]+)"),
}


def _extract_username(output: str, service_type: Optional[ServiceType]) -> Optional[str]:
    if service_type in USERNAME_PATTERNS:
        patterns = [USERNAME_PATTERNS[service_type]]
    else:
        patterns = list(USERNAME_PATTERNS.values())
    for pattern in patterns:
        match = pattern.search(output)
        if match:
            return match.group(1).strip()
    return None


def classify_output(output: str, service_type: Optional[ServiceType] = None) -> ConnectionResult:
    """Classify captured ``ssh -T`` output.

    Hosting services refuse a shell and exit non-zero even when the key is
    accepted, so only the text is looked at. Wording differs between services
    and tool versions; anything unrecognised is UNKNOWN.
    """
    if any(banner in output for banner in AUTH_BANNERS):
        return ConnectionResult(
            ConnectionStatus.AUTHENTICATED,
            username=_extract_username(output, service_type),
            output=output,
        )
    if "Permission denied" in output:
        return ConnectionResult(ConnectionStatus.UNAUTHORIZED, output=output)
    if "Could not resolve hostname" in output:
        return ConnectionResult(ConnectionStatus.UNREACHABLE, output=output)
    return ConnectionResult(ConnectionStatus.UNKNOWN, output=output)


class ConnectivityProbe:
    """Attempts an SSH handshake with a hosting service using one key."""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        timeout: float = DEFAULT_SSH_TIMEOUT,
    ) -> None:
        self.runner = runner
        self.timeout = timeout

    def build_command(self, key_path: "str | Path", hostname: str) -> list[str]:
        return [
            "ssh", "-T",
            "-o", "StrictHostKeyChecking=no",
            "-o", "PasswordAuthentication=no",
            "-o", "BatchMode=yes",
            "-o", "IdentitiesOnly=yes",
            "-o", f"ConnectTimeout={int(self.timeout)}",
            "-i", str(key_path),
            f"git@{hostname}",
        ]

    def test_connection(self, key_path: "str | Path", service_type: ServiceType) -> ConnectionResult:
        """Test SSH connection to the service. Never raises."""
        hostname = get_probe_hostname(service_type)
        if hostname is None:
            logger.debug(f"No known SSH host for {service_type}, skipping probe")
            return ConnectionResult(ConnectionStatus.UNKNOWN, output="Unknown service type")

        try:
            result = self.runner(self.build_command(key_path, hostname), timeout=self.timeout)
        except ExternalToolError as e:
            logger.warning(f"SSH connection test to {hostname} failed: {e}")
            return ConnectionResult(ConnectionStatus.UNKNOWN, output=str(e))

        output = (result.stdout or "") + (result.stderr or "")
        classified = classify_output(output, service_type)
        logger.debug(
            f"SSH test to {hostname} exited {result.returncode}: {classified.status.value}"
        )
        return classified
