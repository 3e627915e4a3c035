"""Pydantic models for the Defender for Endpoint machine API (subset we need)."""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class LogonUser(BaseModel):
    """Account observed signing in to a device (machines/{id}/logonusers)."""

    id: str
    account_name: str = Field(alias="accountName")
    account_domain: str = Field(alias="accountDomain")
    first_seen: str = Field(alias="firstSeen")  # ISO 8601
    last_seen: str = Field(alias="lastSeen")  # ISO 8601
    logon_types: str = Field(alias="logonTypes")
    is_domain_admin: bool = Field(False, alias="isDomainAdmin")
    is_only_network_user: bool = Field(False, alias="isOnlyNetworkUser")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("is_domain_admin", "is_only_network_user", mode="before")
    @classmethod
    def _missing_flag_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def display_name(self) -> str:
        """DOMAIN\\account, or the bare account name when the domain is empty."""
        if not self.account_domain:
            return self.account_name
        return f"{self.account_domain}\\{self.account_name}"


class Device(BaseModel):
    """Defender machine resource, enriched with its logon users once fetched."""

    id: str
    computer_dns_name: str = Field(alias="computerDnsName")
    aad_device_id: Optional[str] = Field(None, alias="aadDeviceId")
    health_status: str = Field(alias="healthStatus")  # "Active" | "Inactive" | ...
    os_platform: str = Field(alias="osPlatform")
    last_seen: str = Field(alias="lastSeen")  # ISO 8601, never parsed
    logon_users: list[LogonUser] = Field(default_factory=list)
    users_loaded: bool = False

    model_config = {"populate_by_name": True}

    @field_validator("aad_device_id", mode="before")
    @classmethod
    def _non_string_aad_id_is_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None


class DevicePage(BaseModel):
    """One page of the machines listing."""

    devices: list[Device] = []
    next_link: Optional[str] = None


class LogonUsersResult(BaseModel):
    """Outcome of a logon-user fetch: users on success, error message otherwise."""

    device_id: str
    users: Optional[list[LogonUser]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DeviceLookupResult(BaseModel):
    """Device copy with logon users populated, or the reason it is missing."""

    device: Optional[Device] = None
    error: Optional[str] = None


class OffboardResult(BaseModel):
    device_id: str
    success: bool
    error: Optional[str] = None


class BulkOffboardSummary(BaseModel):
    """Aggregate of a bulk offboard once every request has completed."""

    results: list[OffboardResult] = []

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return self.total - self.success_count

    @property
    def failures(self) -> list[OffboardResult]:
        return [r for r in self.results if not r.success]

    @property
    def message(self) -> str:
        if self.failure_count == 0:
            return f"Successfully offboarded {self.success_count} devices."
        if self.success_count == 0:
            return f"Failed to offboard any devices. {self.failure_count} failures."
        return (
            f"Offboarded {self.success_count} devices successfully. "
            f"{self.failure_count} failed."
        )
