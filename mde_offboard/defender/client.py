"""HTTP client for the Microsoft Defender for Endpoint machine API (async)."""

from typing import Any

import httpx
from pydantic import ValidationError

from mde_offboard.config import API_BASE
from mde_offboard.defender.models import Device, DevicePage, LogonUser
from mde_offboard.utils.logger import get_logger

logger = get_logger("mde_offboard.defender.client")

DEVICE_SELECT_FIELDS = [
    "id",
    "computerDnsName",
    "aadDeviceId",
    "healthStatus",
    "osPlatform",
    "lastSeen",
]

OFFBOARD_SUCCESS_CODES = (200, 201, 202)


class DefenderAPIError(Exception):
    """Request to the Defender API failed; str(error) is the user-facing message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _describe(e: Exception) -> str:
    return str(e).strip() or type(e).__name__


def _parse_records(items: list[Any], model: type) -> list:
    """Validate each record; malformed ones are skipped rather than failing the batch."""
    parsed = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.debug("defender_client.records_skipped", model=model.__name__, skipped=skipped)
    return parsed


class DefenderClient:
    """Thin async wrapper over the machines endpoints.

    Each call takes the bearer token explicitly; the client never stores it.
    Failures are raised as DefenderAPIError with a message suitable for display.
    """

    def __init__(self, base_url: str = API_BASE, http_client: httpx.AsyncClient | None = None):
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @property
    def devices_url(self) -> str:
        return f"{self._base_url}/machines?$Select={','.join(DEVICE_SELECT_FIELDS)}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "DefenderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    def _headers(access_token: str, json_body: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def list_devices_page(self, access_token: str, url: str | None = None) -> DevicePage:
        """Fetch one page of machines. url is the @odata.nextLink of the previous page."""
        request_url = url or self.devices_url
        try:
            response = await self._client.get(request_url, headers=self._headers(access_token))
        except httpx.HTTPError as e:
            raise DefenderAPIError(f"API request failed: {_describe(e)}") from e

        if response.status_code != 200:
            raise DefenderAPIError(
                f"API returned status code: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise DefenderAPIError(f"Failed to parse API response: {_describe(e)}") from e

        items = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise DefenderAPIError("Invalid response format - no 'value' array")

        next_link = payload.get("@odata.nextLink")
        page = DevicePage(
            devices=_parse_records(items, Device),
            next_link=next_link if isinstance(next_link, str) and next_link else None,
        )
        logger.debug(
            "defender_client.devices_page",
            count=len(page.devices),
            has_next=page.next_link is not None,
        )
        return page

    async def list_logon_users(self, access_token: str, device_id: str) -> list[LogonUser]:
        """Logon users of one machine. A missing or empty value array is an empty result."""
        url = f"{self._base_url}/machines/{device_id}/logonusers"
        try:
            response = await self._client.get(url, headers=self._headers(access_token))
        except httpx.HTTPError as e:
            raise DefenderAPIError(f"Failed to fetch logon users: {_describe(e)}") from e

        if response.status_code != 200:
            raise DefenderAPIError(
                f"API returned status code: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise DefenderAPIError(f"Failed to parse logon users response: {_describe(e)}") from e

        items = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return _parse_records(items, LogonUser)

    async def offboard_machine(self, access_token: str, device_id: str, comment: str) -> None:
        """POST machines/{id}/offboard. 200/201/202 are all accepted as success."""
        url = f"{self._base_url}/machines/{device_id}/offboard"
        try:
            response = await self._client.post(
                url,
                headers=self._headers(access_token, json_body=True),
                json={"Comment": comment},
            )
        except httpx.HTTPError as e:
            raise DefenderAPIError(f"Offboard request failed: {_describe(e)}") from e

        if response.status_code in OFFBOARD_SUCCESS_CODES:
            return

        status_message = f"HTTP {response.status_code}"
        detail = None
        try:
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                detail = body["error"].get("message")
        except ValueError:
            pass
        if not isinstance(detail, str) or not detail:
            detail = "Offboard request failed"
        raise DefenderAPIError(f"{status_message}: {detail}", status_code=response.status_code)
