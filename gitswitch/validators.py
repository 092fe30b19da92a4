"""Input validation for profile fields."""

import re

from .exceptions import ValidationError
from .providers import ServiceType

PROFILE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_PROFILE_NAME_LENGTH = 50


def profile_name(name: str | None) -> str:
    """Validate and normalize a profile name."""
    if not name or not isinstance(name, str):
        raise ValidationError("Profile name is required")

    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Profile name cannot be empty")
    if len(trimmed) > MAX_PROFILE_NAME_LENGTH:
        raise ValidationError(
            f"Profile name is too long (max {MAX_PROFILE_NAME_LENGTH} characters)"
        )
    if not PROFILE_NAME_PATTERN.match(trimmed):
        raise ValidationError(
            "Profile name can only contain letters, numbers, hyphens, and underscores"
        )
    return trimmed


def email(value: str | None) -> str:
    """Validate an email address."""
    if not value or not EMAIL_PATTERN.match(value.strip()):
        raise ValidationError(f"Invalid email format: {value!r}")
    return value.strip()


def git_user_name(name: str | None) -> str:
    """Validate a Git user name."""
    if not name or not isinstance(name, str):
        raise ValidationError("Git user name is required")
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Git user name cannot be empty")
    return trimmed


def service_type(value: "str | ServiceType | None") -> ServiceType:
    """Validate a service type; ``None`` means GitHub."""
    if value is None:
        return ServiceType.GITHUB
    try:
        return ServiceType.from_str(value)
    except ValueError:
        valid = ", ".join(str(s) for s in ServiceType)
        raise ValidationError(
            f"Invalid service type {value!r}. Must be one of: {valid}"
        ) from None
