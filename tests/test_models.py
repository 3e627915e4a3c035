"""Tests for Defender models: API field mapping and display helpers."""

import pytest
from pydantic import ValidationError

from fake_defender import device_json, user_json

from mde_offboard.defender.models import Device, LogonUser


def test_logon_user_display_name():
    """DOMAIN\\account when a domain is present, bare account otherwise."""
    assert LogonUser.model_validate(user_json("u1", "alice", domain="CONTOSO")).display_name == "CONTOSO\\alice"
    assert LogonUser.model_validate(user_json("u2", "bob", domain="")).display_name == "bob"


def test_logon_user_null_flags_default_false():
    user = LogonUser.model_validate(user_json("u1", "alice", admin=None, network_only=None))
    assert user.is_domain_admin is False
    assert user.is_only_network_user is False


def test_logon_user_is_immutable():
    user = LogonUser.model_validate(user_json("u1", "alice", admin=True))
    assert user.is_domain_admin is True
    with pytest.raises(ValidationError):
        user.account_name = "mallory"


def test_device_from_api_payload():
    device = Device.model_validate(device_json("d1", "web-01", aad_device_id="aad-1"))
    assert device.computer_dns_name == "web-01"
    assert device.aad_device_id == "aad-1"
    assert device.logon_users == []
    assert device.users_loaded is False


def test_device_non_string_aad_id_becomes_none():
    payload = device_json("d1", "web-01")
    payload["aadDeviceId"] = 12345
    assert Device.model_validate(payload).aad_device_id is None


def test_device_missing_required_field_rejected():
    payload = device_json("d1", "web-01")
    del payload["lastSeen"]
    with pytest.raises(ValidationError):
        Device.model_validate(payload)


def test_models_accept_field_names():
    """populate_by_name lets callers build models without the API's camelCase keys."""
    device = Device(
        id="d1",
        computer_dns_name="web-01",
        health_status="Active",
        os_platform="Linux",
        last_seen="2025-08-01T10:00:00Z",
    )
    assert device.computer_dns_name == "web-01"
    assert LogonUser.model_config["frozen"] is True
    assert "frozen" not in Device.model_config
