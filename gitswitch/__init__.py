"""gitswitch - switch between Git identities and their SSH keys."""

from gitswitch.connectivity import ConnectionStatus, ConnectivityProbe, classify_output
from gitswitch.git import GitIdentity
from gitswitch.profile import Profile, ProfileStore
from gitswitch.providers import ServiceType
from gitswitch.ssh import SSHKeyManager

__version__ = "0.1.0"

__all__ = [
    "ConnectionStatus",
    "ConnectivityProbe",
    "GitIdentity",
    "Profile",
    "ProfileStore",
    "SSHKeyManager",
    "ServiceType",
    "__version__",
    "classify_output",
]
