"""Search mode: look up one device by name and show its logon users."""

import asyncio

import typer

from mde_offboard.auth import AuthSession
from mde_offboard.defender import DefenderClient, DeviceDirectory
from mde_offboard.utils.logger import bind_context, clear_context

from .shared import console, logger, print_device, sign_in


def search(
    name: str = typer.Argument(..., help="Device host name (case-insensitive exact match)"),
) -> None:
    """Find a device by name and show its details and logon users."""
    log = logger.bind(command="search", device_name=name)
    log.info("search.start")
    session = AuthSession()
    token = sign_in(session, log)
    bind_context(command="search", device_name=name)

    async def _run():
        async with DefenderClient() as client:
            directory = DeviceDirectory(client)
            directory.add_recent_search(name)
            if not await directory.fetch_all_devices(token) and not directory.devices:
                return None, directory.error_message
            found = directory.search_device(name)
            if found is None:
                return None, f"Device '{name}' not found."
            lookup = await directory.fetch_device_with_users(found.id, token)
            if lookup.device is None:
                console.print(f"[yellow]Device found, but failed to load logon users: {lookup.error}[/yellow]")
                return found, None
            return lookup.device, None

    with console.status(f"Searching for {name}..."):
        device, error = asyncio.run(_run())

    clear_context()
    if device is None:
        console.print(f"[red]{error}[/red]")
        log.info("search.not_found", error=error)
        raise typer.Exit(1)
    print_device(device)
    log.info("search.complete", device_id=device.id, users=len(device.logon_users))
