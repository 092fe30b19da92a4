"""Common UI utilities shared across commands."""

from typing import Optional

from rich import box
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table
from rich.theme import Theme

from .connectivity import ConnectionResult, ConnectionStatus
from .profile import Profile
from .ssh import KeyInfo

# Create a custom theme for consistent styling
theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red",
        "success": "green",
        "title": "bold cyan",
        "path": "blue",
    }
)

console = Console(theme=theme)


def print_error(message: str) -> None:
    """Print error message."""
    console.print(f"[error]Error:[/error] {message}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[warning]Warning:[/warning] {message}")


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[info]Info:[/info] {message}")


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[success]Success:[/success] {message}")


def confirm_action(prompt: str, default: bool = True) -> bool:
    """Confirm an action with the user."""
    try:
        return Confirm.ask(prompt, default=default)
    except KeyboardInterrupt:
        from .exceptions import GitswitchError
        raise GitswitchError("Operation cancelled by user") from None


def print_profile_table(profiles: list[tuple[str, Profile]], current: Optional[str]) -> None:
    """Print profiles in a table format."""
    table = Table(
        title="Git Profiles",
        box=box.ROUNDED,
        header_style="bold cyan",
        border_style="blue"
    )

    table.add_column("Name", style="cyan")
    table.add_column("User", style="blue")
    table.add_column("Email", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("SSH Key", style="magenta")
    table.add_column("Last Used", style="dim")
    table.add_column("Current", justify="center", style="bold green")

    for name, profile in profiles:
        table.add_row(
            name,
            profile.user_name,
            profile.email,
            str(profile.service_type),
            profile.ssh_key or "-",
            profile.last_used or "never",
            "✓" if name == current else ""
        )

    console.print(table)
    console.print()


def print_key_table(keys: list[KeyInfo]) -> None:
    """Print SSH keys found in the SSH directory."""
    table = Table(title="SSH Keys", box=box.ROUNDED, header_style="bold cyan", border_style="blue")
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="path")
    table.add_column("Public Key", justify="center")

    for key in keys:
        table.add_row(
            key.name,
            str(key.path),
            "[green]✓[/green]" if key.has_public_key else "[red]✗[/red]",
        )

    console.print(table)


def print_connection_result(result: ConnectionResult, key_settings_url: str) -> None:
    """Print the outcome of an SSH connection test."""
    if result.ok:
        print_success("SSH connection confirmed")
        if result.username:
            print_info(f"Authenticated as {result.username}")
    elif result.status is ConnectionStatus.UNAUTHORIZED:
        print_warning("SSH key not yet authorized")
        print_info(f"Remember to add your key at: {key_settings_url}")
    elif result.status is ConnectionStatus.UNREACHABLE:
        print_warning("Could not reach the SSH host")
    else:
        print_warning("SSH connection status unknown")
