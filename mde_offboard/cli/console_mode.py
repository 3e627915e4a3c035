"""Console mode: interactive session over one sign-in (search, browse, favorites, offboard)."""

import asyncio
import shlex
from pathlib import Path

from rich.table import Table

from mde_offboard.auth import AuthSession
from mde_offboard.defender import (
    DefenderClient,
    Device,
    DeviceDirectory,
    bulk_offboard,
    export_devices_csv,
)
from mde_offboard.defender.directory import ALL
from mde_offboard.utils.logger import bind_context, clear_context

from .offboard_mode import resolve_targets
from .shared import (
    choose_prompt,
    console,
    count_table,
    devices_table,
    logger,
    print_device,
    require_app_registration,
)

HELP = """[bold]Commands[/bold]
  search NAME            find a device (exact name) and show its logon users
  list [TEXT]            list devices, optionally filtered by name substring
  filter PLATFORM|All STATUS|All   set platform / status filters for list
  users NAME             load logon users for a device (once)
  fav NAME               add or remove a favorite
  favorites              show favorites (snapshots taken when added)
  recent [N]             show recent searches, or open the N-th one
  dashboard              device counts by health status and platform
  export [PATH]          write loaded devices to CSV
  offboard NAME|ID       offboard one device
  bulk NAME|ID ...       offboard several devices at once
  refresh                reload all devices
  clear recent|favorites|all
  signout / signin
  quit"""


class ConsoleSession:
    """Command loop driving one AuthSession and one DeviceDirectory on a single event loop."""

    def __init__(self, session: AuthSession, directory: DeviceDirectory):
        self.session = session
        self.directory = directory
        self.platform = ALL
        self.status = ALL
        self.log = logger.bind(command="console")

    async def _ask(self, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: console.input(prompt))

    async def _confirm(self, question: str) -> bool:
        answer = await self._ask(f"{question} [y/N]: ")
        return answer.strip().lower() in ("y", "yes")

    def _token(self) -> str | None:
        if not self.session.access_token:
            console.print("[red]Not signed in. Use 'signin'.[/red]")
        return self.session.access_token

    def _find(self, value: str) -> Device | None:
        device = self.directory.find_device(value) or self.directory.search_device(value)
        if device is None:
            console.print(f"[red]Device '{value}' not found.[/red]")
        return device

    async def sign_in(self) -> bool:
        loop = asyncio.get_running_loop()
        prompt = choose_prompt(self.session.redirect_uri)
        ok = await loop.run_in_executor(None, lambda: self.session.authenticate(prompt))
        if not ok:
            console.print(f"[red]{self.session.error_message}[/red]")
            return False
        console.print("[green]Signed in.[/green]")
        await self.refresh()
        return True

    async def refresh(self) -> None:
        token = self._token()
        if not token:
            return
        with console.status("Loading devices..."):
            ok = await self.directory.fetch_all_devices(token)
        if not ok:
            console.print(f"[red]{self.directory.error_message}[/red]")
        console.print(f"[dim]{len(self.directory.devices)} devices loaded.[/dim]")

    async def cmd_search(self, args: list[str]) -> None:
        if not args:
            console.print("[red]Usage: search NAME[/red]")
            return
        name = " ".join(args)
        self.directory.add_recent_search(name)
        token = self._token()
        if not token:
            return
        if not self.directory.devices and not self.directory.is_loading:
            await self.refresh()
        found = self.directory.search_device(name)
        if found is None:
            console.print(f"[red]Device '{name}' not found.[/red]")
            return
        with console.status("Loading logon users..."):
            lookup = await self.directory.fetch_device_with_users(found.id, token)
        if lookup.device is None:
            console.print(f"[yellow]Device found, but failed to load logon users: {lookup.error}[/yellow]")
            print_device(found)
            return
        print_device(lookup.device)

    async def cmd_list(self, args: list[str]) -> None:
        text = " ".join(args)
        filtered = self.directory.filter_devices(search_text=text, platform=self.platform, status=self.status)
        favorites = {f.id for f in self.directory.favorite_devices}
        console.print(devices_table(filtered, title=f"Devices ({len(filtered)})", favorites=favorites))

    async def cmd_filter(self, args: list[str]) -> None:
        if len(args) != 2:
            console.print("[red]Usage: filter PLATFORM|All STATUS|All[/red]")
            console.print(f"Platforms: {', '.join([ALL] + self.directory.platforms())}")
            console.print(f"Statuses: {', '.join([ALL] + self.directory.statuses())}")
            return
        self.platform, self.status = args
        console.print(f"[dim]Filters: platform={self.platform} status={self.status}[/dim]")

    async def cmd_users(self, args: list[str]) -> None:
        token = self._token()
        device = self._find(" ".join(args)) if args else None
        if not token or device is None:
            return
        with console.status("Loading logon users..."):
            await self.directory.load_users_for_device(device.id, token)
            device = await self.directory.wait_for_users(device.id)
        error = self.directory.user_load_errors.get(device.id) if device else None
        if error:
            console.print(f"[red]Failed to load logon users: {error}[/red]")
        if device is not None:
            print_device(device)

    async def cmd_fav(self, args: list[str]) -> None:
        device = self._find(" ".join(args)) if args else None
        if device is None:
            return
        added = self.directory.toggle_favorite(device)
        console.print(f"[green]{'Added' if added else 'Removed'} {device.computer_dns_name}.[/green]")

    async def cmd_favorites(self, args: list[str]) -> None:
        if not self.directory.favorite_devices:
            console.print("[dim]No favorites.[/dim]")
            return
        console.print(devices_table(self.directory.favorite_devices, title="Favorites"))

    async def cmd_recent(self, args: list[str]) -> None:
        recents = self.directory.recent_searches
        if not args:
            if not recents:
                console.print("[dim]No recent searches.[/dim]")
            for i, term in enumerate(recents, 1):
                console.print(f"  {i}. {term}")
            return
        try:
            index = int(args[0])
            if index < 1:
                raise IndexError(index)
            term = recents[index - 1]
        except (ValueError, IndexError):
            console.print("[red]Enter a number from the recent list.[/red]")
            return
        token = self._token()
        if not token:
            return
        with console.status(f"Loading {term}..."):
            device = await self.directory.resolve_recent_search(term, token)
        if device is None:
            console.print(f"[red]Device '{term}' not found in loaded devices.[/red]")
            return
        print_device(device)

    async def cmd_dashboard(self, args: list[str]) -> None:
        stats = self.directory.device_stats()
        summary = Table(title="Dashboard")
        summary.add_column("Total", justify="right")
        summary.add_column("Active", justify="right", style="green")
        summary.add_column("Inactive", justify="right", style="yellow")
        summary.add_row(
            str(len(self.directory.devices)),
            str(stats.get("Active", 0)),
            str(stats.get("Inactive", 0)),
        )
        console.print(summary)
        console.print(count_table(self.directory.platform_stats(), "Platform distribution", "Platform"))

    async def cmd_export(self, args: list[str]) -> None:
        try:
            path = export_devices_csv(self.directory.devices, Path(args[0]) if args else None)
        except OSError as e:
            console.print(f"[red]Export failed: {e}[/red]")
            self.log.warning("console.export_failed", error=str(e))
            return
        console.print(f"[green]Wrote {path}[/green]")

    async def cmd_offboard(self, args: list[str]) -> None:
        token = self._token()
        device = self._find(" ".join(args)) if args else None
        if not token or device is None:
            return
        if not await self._confirm(f"Offboard {device.computer_dns_name}? This cannot be undone."):
            return
        result = await self.directory.offboard_device(device.id, token)
        if result.success:
            console.print(f"[green]Offboard request accepted for {device.computer_dns_name}.[/green]")
        else:
            console.print(f"[red]{result.error}[/red]")

    async def cmd_bulk(self, args: list[str]) -> None:
        token = self._token()
        if not token or not args:
            return
        selected, missing = resolve_targets(self.directory, args)
        for value in missing:
            console.print(f"[red]Device '{value}' not found.[/red]")
        if not selected:
            return
        console.print(devices_table(selected, title="Devices to offboard"))
        if not await self._confirm(f"Offboard {len(selected)} device(s)? This cannot be undone."):
            return
        with console.status("Offboarding..."):
            summary = await bulk_offboard(self.directory, [d.id for d in selected], token)
        console.print(summary.message)
        for failure in summary.failures:
            console.print(f"  [red]{failure.device_id}: {failure.error}[/red]")

    async def cmd_refresh(self, args: list[str]) -> None:
        await self.refresh()

    async def cmd_clear(self, args: list[str]) -> None:
        what = args[0] if args else "all"
        if what in ("recent", "all"):
            self.directory.clear_recent_searches()
        if what in ("favorites", "all"):
            self.directory.clear_favorites()
        console.print(f"[dim]Cleared {what}.[/dim]")

    async def cmd_signout(self, args: list[str]) -> None:
        self.session.sign_out()
        self.directory.reset()
        console.print("[dim]Signed out.[/dim]")

    async def cmd_signin(self, args: list[str]) -> None:
        await self.sign_in()

    async def cmd_help(self, args: list[str]) -> None:
        console.print(HELP)

    async def run(self) -> None:
        if not await self.sign_in():
            return
        console.print("[dim]Type 'help' for commands.[/dim]")
        while True:
            line = (await self._ask("\nmde> ")).strip()
            if not line:
                continue
            try:
                name, *args = shlex.split(line)
            except ValueError as e:
                console.print(f"[red]{e}[/red]")
                continue
            if name in ("quit", "exit"):
                return
            handler = getattr(self, f"cmd_{name}", None)
            if handler is None:
                console.print(f"[red]Unknown command '{name}'. Type 'help'.[/red]")
                continue
            self.log.debug("console.command", name=name)
            try:
                await handler(args)
            except Exception as e:
                console.print(f"[red]'{name}' failed: {e}[/red]")
                self.log.exception("console.command_error", name=name)


def console_command() -> None:
    """Interactive session: sign in once, then search, browse and offboard devices."""
    log = logger.bind(command="console")
    log.info("console.start")
    require_app_registration(log)
    bind_context(command="console")

    async def _run() -> None:
        async with DefenderClient() as client:
            await ConsoleSession(AuthSession(), DeviceDirectory(client)).run()

    try:
        asyncio.run(_run())
    except (KeyboardInterrupt, EOFError):
        console.print("\n[dim]Bye.[/dim]")
    finally:
        clear_context()
    log.info("console.complete")
