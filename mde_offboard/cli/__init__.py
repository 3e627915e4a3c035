"""CLI commands: one module per mode (console, devices, search, offboard, check-config)."""

from typer import Typer

from mde_offboard.cli import check_config as check_config_module
from mde_offboard.cli import console_mode, devices_mode, offboard_mode, search_mode
from mde_offboard.utils.tracing import init_tracing

init_tracing()

app = Typer(help="Microsoft Defender for Endpoint offboarding console")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command(name="console")(console_mode.console_command)
    app.command()(devices_mode.devices)
    app.command()(search_mode.search)
    app.command()(offboard_mode.offboard)
    app.command(name="check-config")(check_config_module.check_config)


register_commands()
