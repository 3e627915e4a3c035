"""Bulk offboarding: fan out one offboard request per selected device."""

import asyncio
from collections.abc import Iterable

from mde_offboard.defender.directory import DeviceDirectory
from mde_offboard.defender.models import BulkOffboardSummary
from mde_offboard.utils.logger import get_logger

logger = get_logger("mde_offboard.defender.bulk")


async def bulk_offboard(
    directory: DeviceDirectory,
    device_ids: Iterable[str],
    access_token: str,
) -> BulkOffboardSummary:
    """Offboard every selected device concurrently and summarize once all have completed.

    All requests are started together; there is no ordering between devices and
    no way to stop the remaining ones once started.
    """
    selected = list(dict.fromkeys(device_ids))
    log = logger.bind(operation="bulk_offboard", total=len(selected))
    log.info("bulk_offboard.start")
    results = await asyncio.gather(
        *(directory.offboard_device(device_id, access_token) for device_id in selected)
    )
    summary = BulkOffboardSummary(results=list(results))
    log.info(
        "bulk_offboard.complete",
        succeeded=summary.success_count,
        failed=summary.failure_count,
    )
    return summary
