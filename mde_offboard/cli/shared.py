"""Shared CLI helpers: console, logger, sign-in, table rendering."""

from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from mde_offboard.auth import (
    AuthSession,
    AuthorizationPrompt,
    LoopbackBrowserPrompt,
    PastedUrlPrompt,
    loopback_port,
)
from mde_offboard.config import AUTH_TIMEOUT_SECONDS, CLIENT_ID, TENANT_ID
from mde_offboard.defender import Device, LogonUser
from mde_offboard.utils.logger import get_logger
from mde_offboard.utils.tracing import get_tracer

console = Console()
logger = get_logger("mde_offboard.cli")

HEALTH_STYLES = {"Active": "green", "Inactive": "yellow"}


def require_app_registration(log) -> None:
    """Exit when the tenant or client id is not configured."""
    missing = [name for name, value in (("MDE_TENANT_ID", TENANT_ID), ("MDE_CLIENT_ID", CLIENT_ID)) if not value]
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        log.warning("cli.missing_env", missing=missing)
        raise typer.Exit(1)


def choose_prompt(redirect_uri: str) -> AuthorizationPrompt:
    """Loopback listener for http://localhost redirect URIs, paste-back for anything else."""
    port = loopback_port(redirect_uri)
    if port is not None:
        return LoopbackBrowserPrompt(port=port, timeout=AUTH_TIMEOUT_SECONDS)
    return PastedUrlPrompt(read_line=console.input, show=console.print)


def sign_in(session: AuthSession, log) -> str:
    """Run the interactive sign-in; exit with code 1 if it fails. Returns the access token."""
    require_app_registration(log)
    console.print("[bold]Sign-in required[/bold]: complete the Microsoft sign-in in your browser.\n")
    with get_tracer().start_as_current_span("sign_in"):
        ok = session.authenticate(choose_prompt(session.redirect_uri))
    if not ok or not session.access_token:
        console.print(f"[red]{session.error_message or 'Authentication failed'}[/red]")
        log.warning("cli.sign_in_failed", error=session.error_message)
        raise typer.Exit(1)
    console.print("[green]Signed in.[/green]")
    return session.access_token


def format_date(value: str, with_time: bool = True) -> str:
    """Human-readable form of an ISO 8601 timestamp; unparsable values are shown as-is."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%b %d, %Y %H:%M" if with_time else "%m/%d/%Y")


def health_text(status: str) -> str:
    style = HEALTH_STYLES.get(status, "red")
    return f"[{style}]{status}[/{style}]"


def devices_table(devices: list[Device], title: str = "Devices", favorites: set[str] | None = None) -> Table:
    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Device Name", style="bold")
    table.add_column("Health")
    table.add_column("Platform", style="magenta")
    table.add_column("Last Seen", style="dim")
    table.add_column("Device ID", style="dim")
    for i, device in enumerate(devices, 1):
        name = device.computer_dns_name
        if favorites and device.id in favorites:
            name = f"★ {name}"
        table.add_row(
            str(i),
            name,
            health_text(device.health_status),
            device.os_platform,
            format_date(device.last_seen),
            device.id,
        )
    return table


def users_table(users: list[LogonUser], title: str = "Logon users") -> Table:
    table = Table(title=title)
    table.add_column("User", style="bold")
    table.add_column("Logon types")
    table.add_column("First seen", style="dim")
    table.add_column("Last seen", style="dim")
    table.add_column("Flags", style="yellow")
    for user in users:
        flags = []
        if user.is_domain_admin:
            flags.append("domain admin")
        if user.is_only_network_user:
            flags.append("network only")
        table.add_row(
            user.display_name,
            user.logon_types,
            format_date(user.first_seen, with_time=False),
            format_date(user.last_seen, with_time=False),
            ", ".join(flags),
        )
    return table


def print_device(device: Device) -> None:
    """Device details and, when loaded, its logon users."""
    console.print(f"\n[bold]{device.computer_dns_name}[/bold]")
    console.print(f"  Device ID: {device.id}")
    console.print(f"  AAD Device ID: {device.aad_device_id or 'N/A'}")
    console.print(f"  Health: {health_text(device.health_status)}")
    console.print(f"  Platform: {device.os_platform}")
    console.print(f"  Last seen: {format_date(device.last_seen)}")
    if not device.users_loaded:
        console.print("  [dim]Logon users not loaded.[/dim]")
    elif not device.logon_users:
        console.print("  [dim]No logon users reported.[/dim]")
    else:
        console.print(users_table(device.logon_users))


def count_table(counts: dict[str, int], title: str, label: str) -> Table:
    total = sum(counts.values()) or 1
    table = Table(title=title)
    table.add_column(label, style="cyan")
    table.add_column("Devices", justify="right")
    table.add_column("Share", justify="right", style="dim")
    for key in sorted(counts):
        table.add_row(key, str(counts[key]), f"{counts[key] * 100 / total:.0f}%")
    return table
