"""Command-line interface."""

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any, Optional, TypeVar, cast

import click

from . import validators
from .config import Settings
from .connectivity import ConnectivityProbe
from .exceptions import ExternalToolError, GitswitchError, ValidationError
from .git import GitIdentity
from .profile import ProfileStore
from .providers import ServiceType
from .ssh import SSHKeyManager, copy_to_clipboard
from .ui_common import (
    confirm_action,
    console,
    print_connection_result,
    print_error,
    print_info,
    print_key_table,
    print_profile_table,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])

SERVICE_CHOICE = click.Choice([s.value for s in ServiceType], case_sensitive=False)


@dataclass
class App:
    """Collaborators shared by every command."""
    settings: Settings
    store: ProfileStore
    ssh: SSHKeyManager
    git: GitIdentity
    probe: ConnectivityProbe


def create_app(settings: Optional[Settings] = None) -> App:
    """Wire up the subsystem for the current user."""
    settings = settings or Settings.from_env()
    git_identity = GitIdentity(timeout=settings.command_timeout)
    return App(
        settings=settings,
        store=ProfileStore(
            settings.store_path,
            git_identity=git_identity,
            lock_timeout=settings.lock_timeout,
        ),
        ssh=SSHKeyManager(
            settings.ssh_dir,
            timeout=settings.command_timeout,
            lock_timeout=settings.lock_timeout,
            config_path=settings.ssh_config_path,
        ),
        git=git_identity,
        probe=ConnectivityProbe(timeout=settings.ssh_timeout),
    )


pass_app = click.make_pass_decorator(App)


def handle_errors(f: F) -> F:
    """Decorator to handle errors in CLI commands."""
    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except GitswitchError as e:
            console.print(f"\n[bold red]Error:[/bold red] {e}")
            if e.details:
                console.print(f"[dim]{e.details}[/dim]")
            raise click.Abort()
        except OSError as e:
            logger.error(f"File operation failed: {e}", exc_info=True)
            console.print(f"\n[bold red]Error:[/bold red] {e}")
            raise click.Abort()
    return cast(F, wrapper)


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Switch between Git identities and their SSH keys."""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")

    if ctx.obj is None:
        ctx.obj = create_app()


@cli.command()
@click.option("--name", "profile_name", default="default", show_default=True,
              help="Name for the profile created from the current identity")
@click.option("--type", "service_type", type=SERVICE_CHOICE, default="GitHub", show_default=True,
              help="Git hosting service")
@click.option("--force", is_flag=True, help="Reinitialize without confirmation")
@pass_app
@handle_errors
def init(app: App, profile_name: str, service_type: str, force: bool) -> None:
    """Start over with a profile for the current Git identity."""
    profile_name = validators.profile_name(profile_name)
    if app.store.has_profiles() and not force:
        if not confirm_action("Configuration already exists. Reinitialize?", default=False):
            print_info("Initialization cancelled")
            return

    app.store.reset()
    user_name, email = app.git.get_current()
    if not user_name or not email:
        print_warning("No existing Git configuration found")
        print_info("Run 'gitswitch add' to create a profile")
        return

    print_info(f"Current Git user: {user_name} <{email}>")
    app.store.add(profile_name, user_name, email, service_type=service_type)
    print_success(f"Profile '{profile_name}' saved")


@cli.command()
@click.argument("name")
@click.option("--user-name", required=True, help="Git user.name for this profile")
@click.option("--email", required=True, help="Git user.email for this profile")
@click.option("--type", "service_type", type=SERVICE_CHOICE, default="GitHub", show_default=True,
              help="Git hosting service")
@click.option("--key", "key_path", type=click.Path(path_type=Path),
              help="Use an existing private key instead of generating one")
@click.option("--generate/--no-generate", default=True, show_default=True,
              help="Generate a new key pair when --key is not given")
@click.option("--passphrase", default="", help="Passphrase for a generated key")
@click.option("--copy", is_flag=True, help="Copy a generated public key to the clipboard")
@pass_app
@handle_errors
def add(
    app: App,
    name: str,
    user_name: str,
    email: str,
    service_type: str,
    key_path: Optional[Path],
    generate: bool,
    passphrase: str,
    copy: bool,
) -> None:
    """Add a new profile."""
    name = validators.profile_name(name)
    user_name = validators.git_user_name(user_name)
    email = validators.email(email)
    service = validators.service_type(service_type)
    if app.store.find(name) is not None:
        raise ValidationError(f"Profile '{name}' already exists")

    generated = False
    if key_path:
        key_path = key_path.expanduser()
        validation = app.ssh.validate_key_pair(key_path)
        if validation.fixable:
            app.ssh.fix_permissions(key_path)
            print_warning("Fixed insecure private key permissions")
        elif not validation.valid:
            raise ValidationError(f"Invalid SSH key {key_path}: {validation.error}")
    elif generate:
        key_path = app.ssh.derive_key_path(name)
        owners = app.store.find_by_key_path(key_path)
        if owners:
            raise ValidationError(
                f"Key path {key_path} is already used by profile '{owners[0]}'"
            )
        app.ssh.generate_key(email, key_path, passphrase)
        generated = True

    if key_path:
        alias = app.ssh.update_block(name, key_path, service)
        print_info(f"SSH host alias: {alias}")

    app.store.add(name, user_name, email, ssh_key=key_path or "", service_type=service)
    print_success(f"Added profile: {name}")

    if generated:
        public_key = app.ssh.get_public_key(key_path)
        console.print(f"\n{public_key}\n")
        if copy:
            if copy_to_clipboard(public_key):
                print_success("Public key copied to clipboard")
            else:
                print_warning("Could not copy to clipboard. Install xclip, xsel, or wl-copy")
        print_info(f"Add this public key at: {app.ssh.get_key_settings_url(service)}")


@cli.command(name="list")
@pass_app
@handle_errors
def list_profiles(app: App) -> None:
    """List all profiles."""
    if not app.store.has_profiles():
        print_info("No profiles configured. Run 'gitswitch add' to create one.")
        return
    print_profile_table(app.store.items(), app.store.current_profile())


@cli.command()
@pass_app
@handle_errors
def current(app: App) -> None:
    """Show the profile matching the global Git identity."""
    name = app.store.current_profile()
    if name is None:
        user_name, email = app.git.get_current()
        print_warning(f"No profile matches the current identity: {user_name} <{email}>")
        return
    profile = app.store.get(name)
    print_success(f"Current profile: {name}")
    print_info(f"{profile.user_name} <{profile.email}> ({profile.service_type})")


@cli.command()
@click.argument("name")
@click.option("--no-test", is_flag=True, help="Skip the SSH connection test")
@pass_app
@handle_errors
def switch(app: App, name: str, no_test: bool) -> None:
    """Switch the global Git identity to a profile."""
    profile = app.store.get(name)

    app.git.set_current(profile.user_name, profile.email)
    app.store.touch(name)
    print_success(f"Switched to profile: {name}")
    print_info(f"{profile.user_name} <{profile.email}>")

    if not profile.ssh_key:
        return

    if not app.ssh.is_agent_running():
        print_warning("SSH agent is not running. Start it with: eval \"$(ssh-agent -s)\"")
    else:
        if app.ssh.clear_agent():
            logger.debug("Cleared SSH agent")
        try:
            app.ssh.add_to_agent(profile.ssh_key)
            print_success(f"Loaded SSH key: {profile.ssh_key}")
        except ExternalToolError as e:
            print_error(f"Failed to load SSH key: {e}")

    if not no_test:
        result = app.probe.test_connection(profile.ssh_key, profile.service_type)
        print_connection_result(result, app.ssh.get_key_settings_url(profile.service_type))


@cli.command()
@click.argument("name")
@click.option("--force", is_flag=True, help="Delete without confirmation")
@click.option("--delete-key", is_flag=True, help="Also delete the key pair files")
@pass_app
@handle_errors
def remove(app: App, name: str, force: bool, delete_key: bool) -> None:
    """Remove a profile."""
    profile = app.store.get(name)
    if not force and not confirm_action(f"Remove profile '{name}'?", default=False):
        print_info("Removal cancelled")
        return

    if app.ssh.remove_block(name):
        print_info("Removed SSH config entry")

    key_path = profile.ssh_key_path
    if key_path:
        app.ssh.remove_from_agent(key_path)

    app.store.delete(name)
    print_success(f"Deleted profile: {name}")

    if key_path and delete_key:
        shared = app.store.find_by_key_path(key_path)
        if shared:
            print_warning(f"Key is still used by {', '.join(shared)}, keeping it")
        elif not app.ssh.key_exists(key_path):
            print_warning(f"Key pair not found at {key_path}")
        else:
            key_path.unlink()
            key_path.with_name(key_path.name + ".pub").unlink()
            print_success("Removed SSH keys")


@cli.command()
@click.argument("old")
@click.argument("new")
@pass_app
@handle_errors
def rename(app: App, old: str, new: str) -> None:
    """Rename a profile."""
    profile = app.store.rename(old, new)
    if profile.ssh_key and app.ssh.remove_block(old):
        alias = app.ssh.update_block(new, profile.ssh_key, profile.service_type)
        print_info(f"SSH host alias is now: {alias}")
    print_success(f"Renamed profile {old} to {new}")


@cli.command()
@click.argument("name")
@click.option("--user-name", help="New Git user.name")
@click.option("--email", help="New Git user.email")
@click.option("--type", "service_type", type=SERVICE_CHOICE, help="New hosting service")
@click.option("--key", "key_path", type=click.Path(path_type=Path), help="New private key")
@pass_app
@handle_errors
def edit(
    app: App,
    name: str,
    user_name: Optional[str],
    email: Optional[str],
    service_type: Optional[str],
    key_path: Optional[Path],
) -> None:
    """Edit a profile."""
    changes: dict[str, Any] = {}
    if user_name is not None:
        changes["user_name"] = user_name
    if email is not None:
        changes["email"] = email
    if service_type is not None:
        changes["service_type"] = service_type
    if key_path is not None:
        changes["ssh_key"] = str(key_path.expanduser())
    if not changes:
        print_info("Nothing to change")
        return

    profile = app.store.update(name, changes)
    if profile.ssh_key and ("ssh_key" in changes or "service_type" in changes):
        alias = app.ssh.update_block(name, profile.ssh_key, profile.service_type)
        print_info(f"SSH host alias: {alias}")
    print_success(f"Updated profile: {name}")


@cli.command()
@click.argument("destination", required=False, type=click.Path(path_type=Path))
@pass_app
@handle_errors
def backup(app: App, destination: Optional[Path]) -> None:
    """Back up the profile store."""
    path = app.store.backup()
    if destination and destination != path:
        shutil.copyfile(path, destination)
        path = destination
    print_success(f"Configuration backed up to: {path}")


@cli.command()
@click.argument("backup_path", type=click.Path(path_type=Path))
@click.option("--force", is_flag=True, help="Replace existing profiles without asking")
@pass_app
@handle_errors
def restore(app: App, backup_path: Path, force: bool) -> None:
    """Restore the profile store from a backup."""
    if app.store.has_profiles() and not force:
        if not confirm_action("This will replace your current configuration. Continue?", default=False):
            print_info("Restore cancelled")
            return
    app.store.restore(backup_path)
    print_success("Configuration restored successfully")


@cli.command(name="config")
@pass_app
@handle_errors
def show_config(app: App) -> None:
    """Show where gitswitch keeps its data."""
    store_path = app.store.path
    console.print("[title]gitswitch configuration[/title]")
    console.print(f"  Config Path: [path]{store_path}[/path]")
    console.print(f"  Profiles: {len(app.store.names())}")
    console.print(f"  Current Profile: {app.store.current_profile() or 'None'}")
    if store_path.exists():
        console.print(f"  Config Size: {store_path.stat().st_size} bytes")
    console.print(f"  SSH Config: [path]{app.ssh.config_file.path}[/path]")
    blocks = app.ssh.config_file.block_names()
    console.print(f"  SSH Blocks: {', '.join(blocks) if blocks else 'None'}")


@cli.group()
def keys() -> None:
    """Manage SSH keys."""


@keys.command(name="list")
@pass_app
@handle_errors
def list_keys(app: App) -> None:
    """List keys found in the SSH directory."""
    found = app.ssh.list_available_keys()
    if not found:
        print_info(f"No SSH keys found in {app.ssh.ssh_dir}")
        return
    print_key_table(found)


@keys.command()
@click.argument("name")
@click.option("--fix", is_flag=True, help="Fix insecure permissions")
@pass_app
@handle_errors
def check(app: App, name: str, fix: bool) -> None:
    """Validate a profile's key pair and agent status."""
    profile = app.store.get(name)
    if not profile.ssh_key:
        print_warning(f"Profile '{name}' has no SSH key")
        return

    validation = app.ssh.validate_key_pair(profile.ssh_key)
    if validation.fixable and fix:
        app.ssh.fix_permissions(profile.ssh_key)
        print_success("Fixed key permissions")
        validation = app.ssh.validate_key_pair(profile.ssh_key)

    if validation.valid:
        print_success(f"Key pair is valid: {profile.ssh_key}")
    else:
        print_error(validation.error or "Key pair is invalid")
        if validation.fixable:
            print_info(f"Run 'gitswitch keys check {name} --fix' to repair permissions")

    if app.ssh.is_key_in_agent(profile.ssh_key):
        print_success("Key is loaded in SSH agent")
    else:
        print_warning("Key is not loaded in SSH agent")


@keys.command(name="add")
@click.argument("name")
@pass_app
@handle_errors
def add_key(app: App, name: str) -> None:
    """Load a profile's key into the SSH agent."""
    profile = app.store.get(name)
    if not profile.ssh_key:
        print_warning(f"Profile '{name}' has no SSH key")
        return
    if not app.ssh.is_agent_running():
        raise ExternalToolError(
            "SSH agent is not running",
            stderr='Start it with: eval "$(ssh-agent -s)"',
        )
    app.ssh.add_to_agent(profile.ssh_key)
    print_success(f"Loaded SSH key: {profile.ssh_key}")


@keys.command(name="remove")
@click.argument("name")
@pass_app
@handle_errors
def remove_key(app: App, name: str) -> None:
    """Unload a profile's key from the SSH agent."""
    profile = app.store.get(name)
    if not profile.ssh_key:
        print_warning(f"Profile '{name}' has no SSH key")
        return
    if app.ssh.remove_from_agent(profile.ssh_key):
        print_success(f"Removed SSH key from agent: {profile.ssh_key}")
    else:
        print_warning("Key was not loaded in SSH agent")


@keys.command(name="test")
@click.argument("name")
@pass_app
@handle_errors
def test_key(app: App, name: str) -> None:
    """Test a profile's SSH connection to its hosting service."""
    profile = app.store.get(name)
    if not profile.ssh_key:
        print_warning(f"Profile '{name}' has no SSH key")
        return
    result = app.probe.test_connection(profile.ssh_key, profile.service_type)
    print_connection_result(result, app.ssh.get_key_settings_url(profile.service_type))
