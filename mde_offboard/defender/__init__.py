"""Defender for Endpoint: API client, device directory, bulk offboarding, export."""

from mde_offboard.defender.models import (
    BulkOffboardSummary,
    Device,
    DeviceLookupResult,
    DevicePage,
    LogonUser,
    LogonUsersResult,
    OffboardResult,
)
from mde_offboard.defender.client import DefenderAPIError, DefenderClient
from mde_offboard.defender.directory import DeviceDirectory, UsersLoadState
from mde_offboard.defender.bulk import bulk_offboard
from mde_offboard.defender.export import export_devices_csv

__all__ = [
    "BulkOffboardSummary",
    "Device",
    "DeviceLookupResult",
    "DevicePage",
    "LogonUser",
    "LogonUsersResult",
    "OffboardResult",
    "DefenderAPIError",
    "DefenderClient",
    "DeviceDirectory",
    "UsersLoadState",
    "bulk_offboard",
    "export_devices_csv",
]
