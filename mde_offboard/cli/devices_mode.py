"""Devices mode: sign in, load every device, print a filtered table and optionally export CSV."""

import asyncio
from pathlib import Path

import typer

from mde_offboard.auth import AuthSession
from mde_offboard.defender import DefenderClient, DeviceDirectory, export_devices_csv
from mde_offboard.defender.directory import ALL
from mde_offboard.utils.logger import bind_context, clear_context
from mde_offboard.utils.tracing import get_tracer

from .shared import console, count_table, devices_table, logger, sign_in


def devices(
    search: str = typer.Option("", "--search", "-s", help="Substring match on device name"),
    platform: str = typer.Option(ALL, "--platform", "-p", help="Only this OS platform"),
    status: str = typer.Option(ALL, "--status", help="Only this health status"),
    export: Path | None = typer.Option(None, "--export", "-e", help="Write the filtered devices to this CSV file"),
    stats: bool = typer.Option(False, "--stats", help="Also print health / platform distribution"),
) -> None:
    """List all Defender devices with optional filters."""
    log = logger.bind(command="devices", platform=platform, status=status)
    log.info("devices.start")
    session = AuthSession()
    token = sign_in(session, log)
    bind_context(command="devices")

    async def _run() -> tuple[DeviceDirectory, bool]:
        async with DefenderClient() as client:
            directory = DeviceDirectory(client)
            with get_tracer().start_as_current_span("fetch_all_devices") as span:
                ok = await directory.fetch_all_devices(token)
                span.set_attribute("devices.count", len(directory.devices))
            return directory, ok

    with console.status("Loading devices..."):
        directory, ok = asyncio.run(_run())

    if not ok:
        console.print(f"[red]{directory.error_message}[/red]")
        if directory.devices:
            console.print(f"[yellow]Showing {len(directory.devices)} devices loaded before the error.[/yellow]")

    filtered = directory.filter_devices(search_text=search, platform=platform, status=status)
    console.print(devices_table(filtered, title=f"Devices ({len(filtered)} of {len(directory.devices)})"))
    if stats:
        console.print(count_table(directory.device_stats(), "Health status", "Status"))
        console.print(count_table(directory.platform_stats(), "Platform distribution", "Platform"))
    export_failed = False
    if export is not None:
        try:
            path = export_devices_csv(filtered, export)
        except OSError as e:
            export_failed = True
            console.print(f"[red]Export failed: {e}[/red]")
            log.warning("devices.export_failed", error=str(e))
        else:
            console.print(f"[green]Wrote {path}[/green]")

    log.info("devices.complete", loaded=len(directory.devices), shown=len(filtered), ok=ok)
    clear_context()
    if not ok or export_failed:
        raise typer.Exit(1)
