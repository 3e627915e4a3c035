"""Device directory: loaded devices, logon-user enrichment, favorites, recent searches, offboarding.

All state lives on one DeviceDirectory instance owned by the event loop that
drives it. Network calls are awaited on that loop and their results are
applied after the await returns, so mutation is serialized without locks.
The bearer token is passed into every network operation and never stored.
"""

import asyncio
from collections import Counter
from enum import Enum
from typing import Optional

from mde_offboard.config import OFFBOARD_USER
from mde_offboard.defender.client import DefenderAPIError, DefenderClient
from mde_offboard.defender.models import (
    Device,
    DeviceLookupResult,
    LogonUsersResult,
    OffboardResult,
)
from mde_offboard.utils.logger import get_logger

logger = get_logger("mde_offboard.defender.directory")

RECENT_SEARCH_LIMIT = 10
ALL = "All"


class UsersLoadState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class DeviceDirectory:
    """In-memory device directory backed by the Defender API."""

    def __init__(self, client: DefenderClient, offboard_user: str = OFFBOARD_USER):
        self._client = client
        self._offboard_user = offboard_user
        self.devices: list[Device] = []
        self.is_loading = False
        self.error_message: Optional[str] = None
        self.recent_searches: list[str] = []
        # Snapshots taken at toggle time; they do not follow later changes.
        self.favorite_devices: list[Device] = []
        self.user_load_errors: dict[str, str] = {}
        self._user_loads: dict[str, asyncio.Future] = {}  # device_id -> completion, in-flight only
        self._loaded_device_users: set[str] = set()

    # ------------------------------------------------------------------
    # Device list
    # ------------------------------------------------------------------

    async def fetch_all_devices(self, access_token: str) -> bool:
        """Reload every device, following @odata.nextLink until the last page.

        Pages are fetched one after another. On failure paging stops, devices
        accumulated so far are kept and error_message is set. Returns True when
        every page was loaded.
        """
        self.is_loading = True
        self.error_message = None
        self.devices = []
        self._loaded_device_users.clear()
        self.user_load_errors.clear()
        log = logger.bind(operation="fetch_all_devices")
        log.info("directory.fetch_all.start")

        url = None
        visited: set[str] = set()
        seen_ids: set[str] = set()
        pages = 0
        try:
            while True:
                try:
                    page = await self._client.list_devices_page(access_token, url)
                except DefenderAPIError as e:
                    self.error_message = str(e)
                    log.error(
                        "directory.fetch_all.error",
                        error=self.error_message,
                        pages=pages,
                        devices=len(self.devices),
                    )
                    return False
                pages += 1
                fresh = []
                for device in page.devices:
                    if device.id not in seen_ids:
                        seen_ids.add(device.id)
                        fresh.append(device)
                self.devices.extend(fresh)
                log.debug(
                    "directory.fetch_all.page",
                    page=pages,
                    count=len(page.devices),
                    duplicates=len(page.devices) - len(fresh),
                )
                if page.next_link is None:
                    log.info("directory.fetch_all.complete", pages=pages, devices=len(self.devices))
                    return True
                if page.next_link in visited:
                    self.error_message = "Invalid response format - repeated '@odata.nextLink'"
                    log.error("directory.fetch_all.link_cycle", pages=pages, devices=len(self.devices))
                    return False
                visited.add(page.next_link)
                url = page.next_link
        finally:
            self.is_loading = False

    def find_device(self, device_id: str) -> Optional[Device]:
        return next((d for d in self.devices if d.id == device_id), None)

    def search_device(self, device_name: str) -> Optional[Device]:
        """Case-insensitive exact match on host name; first match in list order."""
        needle = device_name.lower()
        return next((d for d in self.devices if d.computer_dns_name.lower() == needle), None)

    def filter_devices(
        self,
        search_text: str = "",
        platform: str = ALL,
        status: str = ALL,
    ) -> list[Device]:
        """Substring search on host name plus exact platform / health status filters."""
        filtered = self.devices
        if search_text:
            needle = search_text.lower()
            filtered = [d for d in filtered if needle in d.computer_dns_name.lower()]
        if platform and platform != ALL:
            filtered = [d for d in filtered if d.os_platform == platform]
        if status and status != ALL:
            filtered = [d for d in filtered if d.health_status == status]
        return filtered

    def device_stats(self) -> dict[str, int]:
        """Device count per health status."""
        return dict(Counter(d.health_status for d in self.devices))

    def platform_stats(self) -> dict[str, int]:
        """Device count per OS platform."""
        return dict(Counter(d.os_platform for d in self.devices))

    def platforms(self) -> list[str]:
        return sorted({d.os_platform for d in self.devices})

    def statuses(self) -> list[str]:
        return sorted({d.health_status for d in self.devices})

    def reset(self) -> None:
        """Forget loaded devices (sign-out). Favorites and recent searches are kept."""
        self.devices = []
        self.error_message = None
        self._loaded_device_users.clear()
        self.user_load_errors.clear()

    # ------------------------------------------------------------------
    # Logon users
    # ------------------------------------------------------------------

    @property
    def devices_loading_users(self) -> frozenset[str]:
        return frozenset(self._user_loads)

    def users_load_state(self, device_id: str) -> UsersLoadState:
        if device_id in self._user_loads:
            return UsersLoadState.LOADING
        if device_id in self._loaded_device_users:
            return UsersLoadState.LOADED
        if device_id in self.user_load_errors:
            return UsersLoadState.FAILED
        return UsersLoadState.NOT_LOADED

    async def fetch_logon_users(self, device_id: str, access_token: str) -> LogonUsersResult:
        """Unconditional fetch; does not consult or update the loading/loaded bookkeeping."""
        try:
            users = await self._client.list_logon_users(access_token, device_id)
        except DefenderAPIError as e:
            logger.warning("directory.logon_users.error", device_id=device_id, error=str(e))
            return LogonUsersResult(device_id=device_id, error=str(e))
        logger.debug("directory.logon_users", device_id=device_id, count=len(users))
        return LogonUsersResult(device_id=device_id, users=users)

    async def fetch_device_with_users(self, device_id: str, access_token: str) -> DeviceLookupResult:
        """Copy of a loaded device with its logon users; the stored device is not modified."""
        existing = self.find_device(device_id)
        if existing is None:
            return DeviceLookupResult(error="Device not found in loaded devices")
        result = await self.fetch_logon_users(device_id, access_token)
        if not result.ok:
            return DeviceLookupResult(error=result.error)
        updated = existing.model_copy(deep=True)
        updated.logon_users = list(result.users or [])
        updated.users_loaded = True
        return DeviceLookupResult(device=updated)

    async def load_users_for_device(self, device_id: str, access_token: str) -> None:
        """Load logon users into the stored device, at most once per device.

        No-op while a load for the same device is in flight or after one
        succeeded. A failed load is recorded in user_load_errors and may be
        retried by calling again.
        """
        if device_id in self._user_loads or device_id in self._loaded_device_users:
            return

        done = asyncio.get_running_loop().create_future()
        self._user_loads[device_id] = done
        self.user_load_errors.pop(device_id, None)
        try:
            result = await self.fetch_logon_users(device_id, access_token)
        except BaseException:
            done.cancel()
            raise
        finally:
            del self._user_loads[device_id]

        if result.ok:
            device = self.find_device(device_id)
            if device is not None:
                device.logon_users = list(result.users or [])
                device.users_loaded = True
                self._loaded_device_users.add(device_id)
        else:
            self.user_load_errors[device_id] = result.error or "Unknown error"
        done.set_result(result)

    async def wait_for_users(self, device_id: str) -> Optional[Device]:
        """Wait for an in-flight load_users_for_device (if any) and return the stored device."""
        pending = self._user_loads.get(device_id)
        if pending is not None:
            await asyncio.wait({pending})
        return self.find_device(device_id)

    async def resolve_recent_search(self, term: str, access_token: str) -> Optional[Device]:
        """Device for a recent search term with its logon users loaded when possible."""
        device = self.search_device(term)
        if device is None:
            return None
        if not device.users_loaded:
            # Returns at once if another caller's load is in flight; wait on that one.
            await self.load_users_for_device(device.id, access_token)
            return await self.wait_for_users(device.id)
        return device

    # ------------------------------------------------------------------
    # Offboarding
    # ------------------------------------------------------------------

    async def offboard_device(self, device_id: str, access_token: str) -> OffboardResult:
        comment = f"Offboard machine by {self._offboard_user}"
        try:
            await self._client.offboard_machine(access_token, device_id, comment)
        except DefenderAPIError as e:
            logger.error(
                "directory.offboard.error",
                device_id=device_id,
                status_code=e.status_code,
                error=str(e),
            )
            return OffboardResult(device_id=device_id, success=False, error=str(e))
        logger.info("directory.offboard.accepted", device_id=device_id)
        return OffboardResult(device_id=device_id, success=True)

    # ------------------------------------------------------------------
    # Favorites and recent searches
    # ------------------------------------------------------------------

    def toggle_favorite(self, device: Device) -> bool:
        """Add a snapshot of device to favorites, or remove it. Returns True if now a favorite."""
        for index, favorite in enumerate(self.favorite_devices):
            if favorite.id == device.id:
                del self.favorite_devices[index]
                return False
        self.favorite_devices.append(device.model_copy(deep=True))
        return True

    def is_favorite(self, device: Device) -> bool:
        return any(f.id == device.id for f in self.favorite_devices)

    def clear_favorites(self) -> None:
        self.favorite_devices = []

    def add_recent_search(self, term: str) -> None:
        if term in self.recent_searches:
            return
        self.recent_searches.insert(0, term)
        del self.recent_searches[RECENT_SEARCH_LIMIT:]

    def clear_recent_searches(self) -> None:
        self.recent_searches = []
