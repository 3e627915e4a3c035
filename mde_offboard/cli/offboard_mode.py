"""Offboard mode: resolve devices by name or id, confirm, then offboard them all at once."""

import asyncio

import typer
from opentelemetry.trace import Status, StatusCode

from mde_offboard.auth import AuthSession
from mde_offboard.defender import DefenderClient, Device, DeviceDirectory, bulk_offboard
from mde_offboard.utils.logger import bind_context, clear_context
from mde_offboard.utils.tracing import get_tracer

from .shared import console, devices_table, logger, sign_in


def resolve_targets(directory: DeviceDirectory, names_or_ids: list[str]) -> tuple[list[Device], list[str]]:
    """Loaded devices matching each argument by id or host name, plus the unmatched arguments."""
    found: dict[str, Device] = {}
    missing = []
    for value in names_or_ids:
        device = directory.find_device(value) or directory.search_device(value)
        if device is None:
            missing.append(value)
        else:
            found.setdefault(device.id, device)
    return list(found.values()), missing


def offboard(
    targets: list[str] = typer.Argument(..., help="Device names or Defender device ids"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Offboard one or more devices from Defender for Endpoint."""
    log = logger.bind(command="offboard", targets=len(targets))
    log.info("offboard.start")
    session = AuthSession()
    token = sign_in(session, log)
    bind_context(command="offboard")

    async def _run():
        async with DefenderClient() as client:
            directory = DeviceDirectory(client)
            with console.status("Loading devices..."):
                loaded = await directory.fetch_all_devices(token)
            if not loaded:
                console.print(f"[yellow]Device list incomplete: {directory.error_message}[/yellow]")
            selected, missing = resolve_targets(directory, targets)
            for value in missing:
                console.print(f"[red]Device '{value}' not found.[/red]")
            if not selected:
                return None

            console.print(devices_table(selected, title="Devices to offboard"))
            if not yes:
                loop = asyncio.get_running_loop()
                answer = await loop.run_in_executor(
                    None,
                    lambda: console.input(f"\nOffboard {len(selected)} device(s)? This cannot be undone. [y/N]: "),
                )
                if answer.strip().lower() not in ("y", "yes"):
                    return None

            tracer = get_tracer()
            with tracer.start_as_current_span("bulk_offboard") as span:
                span.set_attribute("offboard.total", len(selected))
                summary = await bulk_offboard(directory, [d.id for d in selected], token)
                span.set_attribute("offboard.failed", summary.failure_count)
                if summary.failure_count:
                    span.set_status(Status(StatusCode.ERROR, summary.message))
            return summary

    summary = asyncio.run(_run())
    clear_context()
    if summary is None:
        console.print("[dim]Nothing offboarded.[/dim]")
        log.info("offboard.skipped")
        raise typer.Exit(1)

    style = "green" if summary.failure_count == 0 else "yellow" if summary.success_count else "red"
    console.print(f"\n[{style}]{summary.message}[/{style}]")
    for failure in summary.failures:
        console.print(f"  [red]{failure.device_id}: {failure.error}[/red]")
    log.info("offboard.complete", succeeded=summary.success_count, failed=summary.failure_count)
    if summary.failure_count:
        raise typer.Exit(1)
