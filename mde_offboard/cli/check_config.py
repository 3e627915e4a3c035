"""Show effective configuration and fail if the app registration is incomplete."""

from rich.table import Table

from mde_offboard import config

from .shared import console, logger


def check_config() -> None:
    """Print effective settings; exit 1 when tenant or client id is missing."""
    log = logger.bind(command="check-config")
    log.info("check_config.start")

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Tenant ID", f"{config.TENANT_ID[:8]}..." if config.TENANT_ID else "[red](missing)[/red]")
    table.add_row("Client ID", config.CLIENT_ID or "[red](missing)[/red]")
    table.add_row("Redirect URI", config.REDIRECT_URI)
    table.add_row("Authority", config.AUTHORITY_BASE)
    table.add_row("Scopes", "\n".join(config.SCOPES))
    table.add_row("API base", config.API_BASE)
    table.add_row("Offboard comment", f"Offboard machine by {config.OFFBOARD_USER}")
    table.add_row("Log file", str(config.LOG_FILE))
    table.add_row("Tracing", config.OTEL_EXPORTER_OTLP_ENDPOINT if config.TRACING_ENABLED else "off")
    console.print(table)

    missing = [
        name
        for name, value in (("MDE_TENANT_ID", config.TENANT_ID), ("MDE_CLIENT_ID", config.CLIENT_ID))
        if not value
    ]
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        log.error("check_config.missing", missing=missing)
        raise SystemExit(1)
    console.print("[green]Configuration complete.[/green]")
    log.info("check_config.ok")
