"""Git hosting service types."""

from enum import Enum
from typing import Optional


class ServiceType(Enum):
    """Supported Git hosting services."""
    GITHUB = "GitHub"
    GITLAB = "GitLab"
    BITBUCKET = "Bitbucket"
    GITEA = "Gitea"

    @classmethod
    def from_str(cls, value: "str | ServiceType") -> "ServiceType":
        """Convert string to service type, ignoring case."""
        if isinstance(value, cls):
            return value
        normalized = str(value).lower().strip()
        for service in cls:
            if service.value.lower() == normalized:
                return service
        raise ValueError(f"Invalid service type: {value}")

    @property
    def alias_prefix(self) -> str:
        """Prefix used for SSH host aliases."""
        return self.value.lower()

    def __str__(self) -> str:
        return self.value


# Hosts with a fixed public SSH endpoint. Gitea is self-hosted, so the
# connectivity probe has nothing to connect to.
PROBE_HOSTNAMES = {
    ServiceType.GITHUB: "github.com",
    ServiceType.GITLAB: "gitlab.com",
    ServiceType.BITBUCKET: "bitbucket.org",
}

DEFAULT_GITEA_HOSTNAME = "gitea.com"

KEY_SETTINGS_URLS = {
    ServiceType.GITHUB: "https://github.com/settings/ssh/new",
    ServiceType.GITLAB: "https://gitlab.com/-/profile/keys",
    ServiceType.BITBUCKET: "https://bitbucket.org/account/settings/ssh-keys/",
    ServiceType.GITEA: "/user/settings/keys",
}


def get_probe_hostname(service_type: ServiceType) -> Optional[str]:
    """Get the hostname the connectivity probe talks to, if any."""
    return PROBE_HOSTNAMES.get(service_type)


def get_service_hostname(service_type: ServiceType) -> str:
    """Get the SSH hostname written into config blocks."""
    return PROBE_HOSTNAMES.get(service_type, DEFAULT_GITEA_HOSTNAME)
