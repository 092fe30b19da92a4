"""Profile management module for gitswitch."""

import dataclasses
import json
import logging
import shutil
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from . import validators
from .config import BACKUP_SUFFIX, DEFAULT_LOCK_TIMEOUT, Settings
from .exceptions import NotFoundError, StoreError, ValidationError
from .locking import atomic_write_text, file_lock
from .providers import ServiceType

logger = logging.getLogger(__name__)

# Fields from releases that stored the active profile instead of deriving it.
DEPRECATED_FIELDS = ("active", "isActive", "is_active", "current", "isDefault")

UPDATABLE_FIELDS = ("user_name", "email", "ssh_key", "service_type", "last_used")


def _now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Profile:
    """A named Git identity."""
    user_name: str
    email: str
    service_type: ServiceType = ServiceType.GITHUB
    ssh_key: str = ""
    created_at: str = ""
    last_used: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def ssh_key_path(self) -> Optional[Path]:
        """Path of the private key, if the profile has one."""
        return Path(self.ssh_key).expanduser() if self.ssh_key else None

    def to_dict(self) -> dict[str, Any]:
        """Convert profile to dictionary for serialization."""
        data: dict[str, Any] = {
            "name": self.user_name,
            "email": self.email,
            "sshKey": self.ssh_key,
            "type": str(self.service_type),
            "createdAt": self.created_at,
            "lastUsed": self.last_used,
        }
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Profile":
        """Create profile from dictionary.

        Keys this version does not know about are kept in ``extra`` and
        written back unchanged.
        """
        known = {"name", "email", "sshKey", "type", "createdAt", "lastUsed", "updatedAt"}
        try:
            service_type = ServiceType.from_str(data.get("type") or ServiceType.GITHUB)
        except ValueError:
            logger.warning(f"Unknown service type {data.get('type')!r}, using GitHub")
            service_type = ServiceType.GITHUB

        return cls(
            user_name=data.get("name") or "",
            email=data.get("email") or "",
            service_type=service_type,
            ssh_key=data.get("sshKey") or "",
            created_at=data.get("createdAt") or "",
            last_used=data.get("lastUsed"),
            updated_at=data.get("updatedAt"),
            extra={k: v for k, v in data.items() if k not in known},
        )


def match_profile(
    profiles: Mapping[str, Profile], user_name: str, email: str
) -> Optional[str]:
    """Find the profile whose identity matches ``(user_name, email)``.

    When several profiles share the identity the lexicographically smallest
    name wins, so the answer never depends on insertion order.
    """
    if not user_name or not email:
        return None
    matches = sorted(
        name
        for name, profile in profiles.items()
        if profile.user_name == user_name and profile.email == email
    )
    return matches[0] if matches else None


class ProfileStore:
    """CRUD over named profiles backed by a single JSON file."""

    def __init__(
        self,
        path: Optional[Path] = None,
        git_identity: Any = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        """Initialize and load the store.

        Args:
            path: Store file; ``~/.gitswitch.json`` by default
            git_identity: Object with ``get_current() -> (user_name, email)``;
                a :class:`gitswitch.git.GitIdentity` is created on first use
            lock_timeout: Seconds to wait for the store lock
        """
        self.path = Path(path) if path else Settings.from_env().store_path
        self.backup_path = self.path.with_name(self.path.name + BACKUP_SUFFIX)
        self.lock_timeout = lock_timeout
        self._git_identity = git_identity
        self.profiles: dict[str, Profile] = {}
        self.load()

    @property
    def git_identity(self) -> Any:
        if self._git_identity is None:
            from .git import GitIdentity
            self._git_identity = GitIdentity()
        return self._git_identity

    def _read(self) -> tuple[dict[str, Profile], bool]:
        """Read the store file.

        Returns:
            Tuple of (profiles, migrated) where ``migrated`` is True if any
            deprecated field was stripped
        """
        if not self.path.exists():
            return {}, False

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable profile store {self.path}: {e}")
            return {}, False

        records = data.get("profiles") if isinstance(data, dict) else None
        if not isinstance(records, dict):
            return {}, False

        profiles: dict[str, Profile] = {}
        migrated = False
        for name, record in records.items():
            if not isinstance(record, dict):
                logger.warning(f"Skipping malformed profile record: {name}")
                continue
            if any(key in record for key in DEPRECATED_FIELDS):
                migrated = True
                record = {k: v for k, v in record.items() if k not in DEPRECATED_FIELDS}
            profiles[name] = Profile.from_dict(record)
        return profiles, migrated

    def _refresh(self) -> None:
        """Re-read the store and rewrite it if legacy fields were stripped.

        The caller holds the store lock.
        """
        self.profiles, migrated = self._read()
        if migrated:
            logger.info("Removed deprecated fields from profile store")
            if not self.save():
                logger.warning("Could not rewrite migrated profile store")

    def load(self) -> dict[str, Profile]:
        """Load profiles from disk, migrating legacy fields if present."""
        self.profiles, migrated = self._read()
        if migrated:
            with file_lock(self.path, self.lock_timeout):
                self._refresh()
        logger.debug(f"Loaded {len(self.profiles)} profiles from {self.path}")
        return self.profiles

    def save(self) -> bool:
        """Write the whole store to disk.

        Returns:
            True on success, False if the file could not be written
        """
        data = {"profiles": {name: p.to_dict() for name, p in self.profiles.items()}}
        try:
            atomic_write_text(self.path, json.dumps(data, indent=2) + "\n", mode=0o600)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save profiles to {self.path}: {e}")
            return False
        return True

    @contextmanager
    def _transaction(self) -> Iterator[dict[str, Profile]]:
        """Lock the store, re-read it, and save whatever the block changed."""
        with file_lock(self.path, self.lock_timeout):
            self.profiles, _ = self._read()
            yield self.profiles
            if not self.save():
                self.profiles, _ = self._read()
                raise StoreError(f"Failed to save profiles to {self.path}")

    def get(self, name: str) -> Profile:
        """Get a profile by name."""
        if name not in self.profiles:
            raise NotFoundError(f"Profile '{name}' does not exist", profile_name=name)
        return self.profiles[name]

    def find(self, name: str) -> Optional[Profile]:
        return self.profiles.get(name)

    def names(self) -> list[str]:
        return list(self.profiles)

    def items(self) -> list[tuple[str, Profile]]:
        return list(self.profiles.items())

    def has_profiles(self) -> bool:
        return bool(self.profiles)

    def find_by_key_path(self, key_path: "str | Path") -> list[str]:
        """Names of profiles that use the given private key."""
        target = Path(key_path).expanduser()
        return [
            name for name, profile in self.profiles.items()
            if profile.ssh_key_path == target
        ]

    def add(
        self,
        name: str,
        user_name: str,
        email: str,
        ssh_key: "str | Path" = "",
        service_type: "str | ServiceType | None" = None,
    ) -> Profile:
        """Add a new profile.

        Raises:
            ValidationError: If the name is taken or a field is missing or invalid
        """
        name = validators.profile_name(name)
        user_name = validators.git_user_name(user_name)
        email = validators.email(email)
        service = validators.service_type(service_type)

        with self._transaction() as profiles:
            if name in profiles:
                raise ValidationError(f"Profile '{name}' already exists")
            profile = Profile(
                user_name=user_name,
                email=email,
                service_type=service,
                ssh_key=str(ssh_key) if ssh_key else "",
                created_at=_now(),
                last_used=None,
            )
            profiles[name] = profile

        logger.info(f"Added profile {name}")
        return profile

    def update(self, name: str, changes: Mapping[str, Any]) -> Profile:
        """Shallow-merge ``changes`` over an existing profile.

        Args:
            name: Profile name
            changes: Attribute names from ``UPDATABLE_FIELDS`` mapped to new values

        Raises:
            NotFoundError: If the profile does not exist
            ValidationError: If a key is unknown or a value is invalid
        """
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(unknown)}")

        clean = dict(changes)
        if "user_name" in clean:
            clean["user_name"] = validators.git_user_name(clean["user_name"])
        if "email" in clean:
            clean["email"] = validators.email(clean["email"])
        if "service_type" in clean:
            clean["service_type"] = validators.service_type(clean["service_type"])
        if "ssh_key" in clean:
            clean["ssh_key"] = str(clean["ssh_key"]) if clean["ssh_key"] else ""

        with self._transaction() as profiles:
            if name not in profiles:
                raise NotFoundError(f"Profile '{name}' does not exist", profile_name=name)
            profile = dataclasses.replace(profiles[name], **clean, updated_at=_now())
            profiles[name] = profile

        logger.info(f"Updated profile {name}")
        return profile

    def rename(self, old: str, new: str) -> Profile:
        """Move a profile to a new name, leaving every field unchanged."""
        new = validators.profile_name(new)
        with self._transaction() as profiles:
            if old not in profiles:
                raise NotFoundError(f"Profile '{old}' does not exist", profile_name=old)
            if new in profiles:
                raise ValidationError(f"Profile '{new}' already exists")
            profiles[new] = profiles.pop(old)

        logger.info(f"Renamed profile {old} to {new}")
        return self.profiles[new]

    def delete(self, name: str) -> Profile:
        """Delete a profile and return the removed record."""
        with self._transaction() as profiles:
            if name not in profiles:
                raise NotFoundError(f"Profile '{name}' does not exist", profile_name=name)
            profile = profiles.pop(name)

        logger.info(f"Deleted profile {name}")
        return profile

    def touch(self, name: str) -> None:
        """Record that a profile was just switched to."""
        with self._transaction() as profiles:
            if name not in profiles:
                raise NotFoundError(f"Profile '{name}' does not exist", profile_name=name)
            profiles[name].last_used = _now()

    def reset(self) -> None:
        """Remove every profile."""
        with self._transaction() as profiles:
            profiles.clear()
        logger.info("Profile store reset")

    def current_profile(self) -> Optional[str]:
        """Name of the profile matching the live global Git identity, if any."""
        user_name, email = self.git_identity.get_current()
        return match_profile(self.profiles, user_name, email)

    def backup(self) -> Path:
        """Copy the store file to its ``.backup`` sibling.

        Returns:
            Path to the backup file
        """
        with file_lock(self.path, self.lock_timeout):
            if not self.path.exists():
                raise StoreError(f"No profile store to back up at {self.path}")
            try:
                shutil.copyfile(self.path, self.backup_path)
            except OSError as e:
                raise StoreError(f"Failed to create backup: {e}") from e

        logger.info(f"Profile store backed up to {self.backup_path}")
        return self.backup_path

    def restore(self, backup_path: "str | Path") -> None:
        """Replace the store with the contents of ``backup_path`` and reload.

        Anything added since the backup was taken is discarded.
        """
        source = Path(backup_path)
        if not source.exists():
            raise NotFoundError(f"Backup file does not exist: {source}")

        with file_lock(self.path, self.lock_timeout):
            try:
                if not (self.path.exists() and source.samefile(self.path)):
                    shutil.copyfile(source, self.path)
            except OSError as e:
                raise StoreError(f"Failed to restore backup: {e}") from e
            self._refresh()

        logger.info(f"Profile store restored from {source}")
