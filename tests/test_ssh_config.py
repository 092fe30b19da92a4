"""Tests for named blocks in the SSH client configuration."""

import stat
from pathlib import Path

import pytest

from gitswitch.providers import ServiceType
from gitswitch.ssh import SSHKeyManager
from gitswitch.ssh_config import (
    BlockSegment,
    RawSegment,
    SSHConfigFile,
    build_block,
    parse_config,
    remove_block,
    render_config,
    upsert_block,
)

USER_STANZA = """Host *
    AddKeysToAgent yes
    ServerAliveInterval 60

"""

# Two blocks with no blank line between them, followed by user content.
ADJACENT = (
    USER_STANZA
    + build_block("work", "github-work", "github.com", "/home/u/.ssh/id_rsa_work")
    + build_block("home", "github-home", "github.com", "/home/u/.ssh/id_rsa_home")
    + "Host bastion\n    HostName 10.0.0.1\n    User admin\n"
)


@pytest.fixture
def config_path(ssh_dir: Path) -> Path:
    return ssh_dir / "config"


def test_parse_round_trips_byte_for_byte() -> None:
    text = ADJACENT + "# trailing comment without newline"
    assert render_config(parse_config(text)) == text


def test_parse_separates_adjacent_blocks() -> None:
    segments = parse_config(ADJACENT)

    blocks = [s for s in segments if isinstance(s, BlockSegment)]
    assert [b.name for b in blocks] == ["work", "home"]
    assert blocks[0].text.endswith("# gitswitch: end work\n")
    assert blocks[1].text.startswith("# gitswitch: begin home\n")
    assert isinstance(segments[0], RawSegment)
    assert segments[-1].text.startswith("Host bastion")


def test_update_twice_leaves_one_block_and_others_untouched(
    ssh_manager: SSHKeyManager, config_path: Path
) -> None:
    """Test that repeated updates replace the block in place."""
    config_path.write_text(ADJACENT)
    before = parse_config(ADJACENT)

    ssh_manager.update_block("work", "/keys/a", ServiceType.GITHUB)
    ssh_manager.update_block("work", "/keys/b", ServiceType.GITHUB)

    content = config_path.read_text()
    after = parse_config(content)
    work_blocks = [s for s in after if isinstance(s, BlockSegment) and s.name == "work"]
    assert len(work_blocks) == 1
    assert "IdentityFile /keys/b\n" in work_blocks[0].text
    assert "/keys/a" not in content

    # Every other segment is unchanged and in the same position.
    assert len(after) == len(before)
    for old, new in zip(before, after):
        if isinstance(old, BlockSegment) and old.name == "work":
            continue
        assert old == new


def test_update_replaces_only_the_named_block(config_path: Path) -> None:
    config_path.write_text(ADJACENT)
    block = build_block("home", "gitlab-home", "gitlab.com", "/keys/h")

    SSHConfigFile(config_path).update_block("home", block)

    expected = ADJACENT.replace(
        build_block("home", "github-home", "github.com", "/home/u/.ssh/id_rsa_home"), block
    )
    assert config_path.read_text() == expected


def test_update_appends_after_existing_content(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    config_path.write_text("Host example\n    User me")

    ssh_manager.update_block("work", "/keys/w", ServiceType.BITBUCKET)

    content = config_path.read_text()
    assert content.startswith("Host example\n    User me\n\n# gitswitch: begin work\n")
    assert "    HostName bitbucket.org\n" in content
    assert content.endswith("# gitswitch: end work\n")


def test_update_creates_missing_file(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    alias = ssh_manager.update_block("work", "/keys/w", ServiceType.GITHUB)
    assert alias == "github-work"
    assert config_path.read_text() == build_block("work", "github-work", "github.com", "/keys/w")


def test_update_with_custom_hostname(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    ssh_manager.update_block("corp", "/keys/c", ServiceType.GITEA, hostname="git.corp.example")
    content = config_path.read_text()
    assert "Host gitea-corp\n" in content
    assert "    HostName git.corp.example\n" in content


def test_remove_block_keeps_everything_else(config_path: Path) -> None:
    config_path.write_text(ADJACENT)
    work = build_block("work", "github-work", "github.com", "/home/u/.ssh/id_rsa_work")

    assert SSHConfigFile(config_path).remove_block("work")

    assert config_path.read_text() == ADJACENT.replace(work, "")


def test_append_then_remove_restores_file(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    original = "Host example\n    User me\n"
    config_path.write_text(original)

    ssh_manager.update_block("work", "/keys/w", ServiceType.GITHUB)
    ssh_manager.remove_block("work")

    assert config_path.read_text() == original


def test_remove_missing_block_is_noop(config_path: Path) -> None:
    config_path.write_text(USER_STANZA)
    assert SSHConfigFile(config_path).remove_block("ghost") is False
    assert config_path.read_text() == USER_STANZA


def test_remove_without_file(config_path: Path) -> None:
    assert SSHConfigFile(config_path).remove_block("work") is False
    assert not config_path.exists()


def test_legacy_block_is_replaced(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    """Test that blocks written without an end marker are upgraded in place."""
    legacy = (
        "# GitSwitch - work\n"
        "Host github-work\n"
        "    HostName github.com\n"
        "    User git\n"
        "    IdentityFile /old/key\n"
        "    IdentitiesOnly yes\n"
    )
    config_path.write_text(USER_STANZA + legacy + "Host bastion\n    User admin\n")

    ssh_manager.update_block("work", "/new/key", ServiceType.GITHUB)

    assert config_path.read_text() == (
        USER_STANZA
        + build_block("work", "github-work", "github.com", "/new/key")
        + "Host bastion\n    User admin\n"
    )


def test_legacy_block_stops_at_next_host() -> None:
    text = "# GitSwitch - a\nHost github-a\n    User git\nHost other\n    User me\n"
    segments = parse_config(text)
    assert segments[0] == BlockSegment("a", "# GitSwitch - a\nHost github-a\n    User git\n", legacy=True)
    assert segments[1] == RawSegment("Host other\n    User me\n")


def test_unterminated_block_is_left_alone() -> None:
    text = "# gitswitch: begin work\nHost github-work\n    User git\n"
    segments = parse_config(text)
    assert segments == [RawSegment(text)]

    updated = render_config(upsert_block(segments, "work", build_block("work", "a", "b", "c")))
    assert updated.startswith(text)
    assert updated.count("# gitswitch: begin work") == 2


def test_duplicate_blocks_collapse_to_one() -> None:
    block = build_block("work", "github-work", "github.com", "/k")
    segments = parse_config(block + "\n" + block)

    result = upsert_block(segments, "work", build_block("work", "github-work", "github.com", "/new"))

    names = [s.name for s in result if isinstance(s, BlockSegment)]
    assert names == ["work"]


def test_remove_block_reports_result() -> None:
    segments = parse_config(ADJACENT)
    remaining, removed = remove_block(segments, "home")
    assert removed
    assert [s.name for s in remaining if isinstance(s, BlockSegment)] == ["work"]

    _, removed = remove_block(remaining, "home")
    assert not removed


def test_block_names(config_path: Path) -> None:
    config_path.write_text(ADJACENT)
    config_file = SSHConfigFile(config_path)
    assert config_file.block_names() == ["work", "home"]
    assert SSHConfigFile(config_path.with_name("absent")).block_names() == []


def test_update_follows_symlinked_config(ssh_manager: SSHKeyManager, config_path: Path, tmp_path: Path) -> None:
    """Test that a config managed as a dotfile link keeps the link."""
    dotfile = tmp_path / "dotfiles" / "ssh_config"
    dotfile.parent.mkdir()
    dotfile.write_text(USER_STANZA)
    config_path.symlink_to(dotfile)

    ssh_manager.update_block("work", "/keys/w", ServiceType.GITHUB)

    assert config_path.is_symlink()
    assert "# gitswitch: begin work\n" in dotfile.read_text()

    ssh_manager.remove_block("work")

    assert config_path.is_symlink()
    assert dotfile.read_text() == USER_STANZA


def test_non_utf8_bytes_survive_edits(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    original = b"Host caf\xe9\n    User me\n"
    config_path.write_bytes(original)

    ssh_manager.update_block("work", "/keys/w", ServiceType.GITHUB)
    assert config_path.read_bytes().startswith(original)

    ssh_manager.remove_block("work")
    assert config_path.read_bytes() == original


def test_update_keeps_existing_mode(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    config_path.write_text(USER_STANZA)
    config_path.chmod(0o644)

    ssh_manager.update_block("work", "/keys/w", ServiceType.GITHUB)

    assert stat.S_IMODE(config_path.stat().st_mode) == 0o644


def test_new_config_is_private(ssh_manager: SSHKeyManager, config_path: Path) -> None:
    ssh_manager.update_block("work", "/keys/w", ServiceType.GITHUB)
    assert stat.S_IMODE(config_path.stat().st_mode) == 0o600
