"""Custom exceptions for gitswitch."""


class GitswitchError(Exception):
    """Base exception for gitswitch."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ValidationError(GitswitchError):
    """Bad or duplicate input."""
    pass


class NotFoundError(GitswitchError):
    """A profile, key or backup that was referenced does not exist."""

    def __init__(
        self,
        message: str,
        profile_name: str | None = None,
        details: str | None = None,
    ) -> None:
        self.profile_name = profile_name
        super().__init__(message, details)


class ExternalToolError(GitswitchError):
    """An external tool exited non-zero, was missing, or timed out."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str | None = None,
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, details=stderr.strip() if stderr else None)


class GitConfigError(ExternalToolError):
    """Errors related to Git configuration."""
    pass


class KeyPermissionError(GitswitchError):
    """Insecure key file mode that could not be corrected."""
    pass


class StoreError(GitswitchError):
    """File read/write errors for the profile store or SSH config."""
    pass


class LockTimeoutError(StoreError):
    """A file lock could not be acquired in time."""
    pass
