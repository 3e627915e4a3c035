"""CSV export of the loaded device list."""

import csv
from collections.abc import Iterable
from pathlib import Path

from mde_offboard.config import DEFAULT_EXPORT_FILENAME, EXPORT_DIR
from mde_offboard.defender.models import Device
from mde_offboard.utils.logger import get_logger

logger = get_logger("mde_offboard.defender.export")

EXPORT_HEADER = [
    "Device Name",
    "Device ID",
    "Health Status",
    "OS Platform",
    "Last Seen",
    "AAD Device ID",
    "First User",
]

# Spreadsheet apps evaluate cells starting with these as formulas (CWE-1236).
_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _sanitize_csv_cell(value: str) -> str:
    if value.startswith(_FORMULA_PREFIXES):
        return f"\t{value}"
    return value


def device_row(device: Device) -> list[str]:
    first_user = device.logon_users[0].display_name if device.logon_users else "No users"
    row = [
        device.computer_dns_name,
        device.id,
        device.health_status,
        device.os_platform,
        device.last_seen,
        device.aad_device_id or "N/A",
        first_user,
    ]
    return [_sanitize_csv_cell(cell) for cell in row]


def export_devices_csv(devices: Iterable[Device], path: Path | None = None) -> Path:
    """Write one row per device and return the file path."""
    path = path or EXPORT_DIR / DEFAULT_EXPORT_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL)
        writer.writerow(EXPORT_HEADER)
        for device in devices:
            writer.writerow(device_row(device))
            count += 1
    logger.info("export.write_csv", path=str(path), rows=count)
    return path
