"""Named host blocks inside the user's SSH client configuration.

The file is shared with the user and other tools, so it is handled as an
ordered list of segments: raw text that is never touched, and blocks that
gitswitch owns. Joining the segments gives back the original file byte for
byte. A block is delimited by a begin and an end marker carrying the profile
name, e.g.::

    # gitswitch: begin work
    Host github-work
        HostName github.com
        User git
        IdentityFile ~/.ssh/id_rsa_work
        IdentitiesOnly yes
    # gitswitch: end work
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .config import DEFAULT_LOCK_TIMEOUT
from .exceptions import StoreError
from .locking import atomic_write_text, file_lock

logger = logging.getLogger(__name__)

BEGIN_MARKER = "# gitswitch: begin {name}"
END_MARKER = "# gitswitch: end {name}"

_BEGIN_RE = re.compile(r"^# gitswitch: begin (\S+)\s*$")
_END_RE = re.compile(r"^# gitswitch: end (\S+)\s*$")
# Older releases wrote a header comment with no end marker.
_LEGACY_RE = re.compile(r"^# GitSwitch - (\S+)\s*$")
_STANZA_RE = re.compile(r"^(Host|Match)\b", re.IGNORECASE)


@dataclass
class RawSegment:
    """Text gitswitch does not own."""
    text: str


@dataclass
class BlockSegment:
    """A block owned by gitswitch for one profile."""
    name: str
    text: str
    legacy: bool = False


Segment = Union[RawSegment, BlockSegment]


def _find_end(lines: list[str], start: int, name: str) -> Optional[int]:
    """Index of the end marker for ``name``, or None if the block is unterminated."""
    for i in range(start, len(lines)):
        stripped = lines[i].rstrip("\r\n")
        end = _END_RE.match(stripped)
        if end and end.group(1) == name:
            return i
        if _BEGIN_RE.match(stripped):
            return None
    return None


def _legacy_end(lines: list[str], start: int) -> int:
    """Index just past a legacy block's single Host stanza."""
    seen_stanza = False
    i = start
    while i < len(lines):
        stripped = lines[i].strip()
        if not stripped or stripped.startswith("#"):
            break
        if _STANZA_RE.match(stripped):
            if seen_stanza:
                break
            seen_stanza = True
        i += 1
    return i


def parse_config(content: str) -> list[Segment]:
    """Split SSH config text into raw and block segments."""
    lines = content.splitlines(keepends=True)
    segments: list[Segment] = []
    raw: list[str] = []

    def flush_raw() -> None:
        if raw:
            segments.append(RawSegment("".join(raw)))
            raw.clear()

    i = 0
    while i < len(lines):
        stripped = lines[i].rstrip("\r\n")

        begin = _BEGIN_RE.match(stripped)
        if begin:
            name = begin.group(1)
            end = _find_end(lines, i + 1, name)
            if end is None:
                logger.warning(f"Unterminated SSH config block for {name}, leaving it as is")
                raw.append(lines[i])
                i += 1
                continue
            flush_raw()
            segments.append(BlockSegment(name, "".join(lines[i:end + 1])))
            i = end + 1
            continue

        legacy = _LEGACY_RE.match(stripped)
        if legacy:
            end = _legacy_end(lines, i + 1)
            flush_raw()
            segments.append(BlockSegment(legacy.group(1), "".join(lines[i:end]), legacy=True))
            i = end
            continue

        raw.append(lines[i])
        i += 1

    flush_raw()
    return segments


def render_config(segments: list[Segment]) -> str:
    return "".join(segment.text for segment in segments)


def build_block(name: str, alias: str, hostname: str, key_path: "str | Path") -> str:
    """Render the block text for one profile."""
    return "\n".join([
        BEGIN_MARKER.format(name=name),
        f"Host {alias}",
        f"    HostName {hostname}",
        "    User git",
        f"    IdentityFile {key_path}",
        "    IdentitiesOnly yes",
        END_MARKER.format(name=name),
    ]) + "\n"


def upsert_block(segments: list[Segment], name: str, block: str) -> list[Segment]:
    """Replace the block for ``name`` in place, or append it.

    If the user duplicated a block, the first copy is replaced and the rest
    are dropped so exactly one remains.
    """
    result: list[Segment] = []
    replaced = False
    for segment in segments:
        if isinstance(segment, BlockSegment) and segment.name == name:
            if not replaced:
                result.append(BlockSegment(name, block))
                replaced = True
            continue
        result.append(segment)

    if not replaced:
        existing = render_config(result)
        if existing and not existing.endswith("\n"):
            result.append(RawSegment("\n"))
        if existing:
            result.append(RawSegment("\n"))
        result.append(BlockSegment(name, block))
    return result


def remove_block(segments: list[Segment], name: str) -> tuple[list[Segment], bool]:
    """Drop every block for ``name``.

    When the removed block closed the file, the blank separator line that
    :func:`upsert_block` put in front of it goes too.

    Returns:
        Tuple of (new segments, whether anything was removed)
    """
    result: list[Segment] = []
    removed = False
    for index, segment in enumerate(segments):
        if isinstance(segment, BlockSegment) and segment.name == name:
            removed = True
            is_last = index == len(segments) - 1
            if is_last and result and isinstance(result[-1], RawSegment):
                previous = result[-1]
                if previous.text.endswith("\n\n"):
                    result[-1] = RawSegment(previous.text[:-1])
            continue
        result.append(segment)
    return result, removed


class SSHConfigFile:
    """Lock-guarded block edits on an SSH client configuration file."""

    def __init__(self, path: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.path = Path(path)
        self.lock_timeout = lock_timeout

    def read(self) -> str:
        if not self.path.exists():
            return ""
        try:
            return self.path.read_text(encoding="utf-8", errors="surrogateescape")
        except (OSError, UnicodeError) as e:
            raise StoreError(f"Failed to read SSH config {self.path}: {e}") from e

    def _write(self, content: str) -> None:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            atomic_write_text(self.path, content, mode=0o600)
        except (OSError, UnicodeError) as e:
            raise StoreError(f"Failed to update SSH config: {e}") from e

    def block_names(self) -> list[str]:
        """Names of all gitswitch blocks in the file, in file order."""
        return [
            segment.name for segment in parse_config(self.read())
            if isinstance(segment, BlockSegment)
        ]

    def update_block(self, name: str, block: str) -> None:
        """Insert or replace the block for ``name``."""
        with file_lock(self.path, self.lock_timeout):
            segments = upsert_block(parse_config(self.read()), name, block)
            self._write(render_config(segments))
        logger.debug(f"SSH config block for {name} written to {self.path}")

    def remove_block(self, name: str) -> bool:
        """Delete the block for ``name``; a missing file or block is a no-op."""
        if not self.path.exists():
            return False
        with file_lock(self.path, self.lock_timeout):
            segments, removed = remove_block(parse_config(self.read()), name)
            if removed:
                self._write(render_config(segments))
        if removed:
            logger.debug(f"SSH config block for {name} removed from {self.path}")
        return removed
