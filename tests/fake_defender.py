"""Shared fixtures for Defender API tests: JSON builders and a MockTransport-backed client."""

import sys
from pathlib import Path

import httpx

# Allow importing mde_offboard when running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mde_offboard.defender.client import DefenderClient

API_BASE = "https://api.test/api"


def device_json(
    device_id: str,
    name: str,
    status: str = "Active",
    platform: str = "Windows10",
    last_seen: str = "2025-08-01T10:00:00Z",
    aad_device_id: str | None = None,
) -> dict:
    return {
        "id": device_id,
        "computerDnsName": name,
        "aadDeviceId": aad_device_id,
        "healthStatus": status,
        "osPlatform": platform,
        "lastSeen": last_seen,
    }


def user_json(
    user_id: str,
    account: str,
    domain: str = "CONTOSO",
    admin: bool | None = False,
    network_only: bool | None = False,
) -> dict:
    return {
        "id": user_id,
        "accountName": account,
        "accountDomain": domain,
        "firstSeen": "2025-07-01T08:00:00Z",
        "lastSeen": "2025-08-01T08:00:00Z",
        "logonTypes": "Interactive",
        "isDomainAdmin": admin,
        "isOnlyNetworkUser": network_only,
    }


def make_client(handler) -> DefenderClient:
    """DefenderClient whose requests are answered by handler(request) -> httpx.Response."""
    transport = httpx.MockTransport(handler)
    return DefenderClient(base_url=API_BASE, http_client=httpx.AsyncClient(transport=transport))
