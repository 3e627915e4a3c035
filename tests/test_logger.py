"""Tests for structured logging helpers."""

import sys
from pathlib import Path

import structlog

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mde_offboard.utils.logger import _redact_secrets, bind_context, clear_context


def test_credentials_are_masked():
    event = {"event": "auth.exchange", "access_token": "eyJ0eXAi", "code": "0.AXk", "tenant_id": "11111111"}
    redacted = _redact_secrets(None, "info", event)
    assert redacted["access_token"] == "***"
    assert redacted["code"] == "***"
    assert redacted["tenant_id"] == "11111111"
    assert redacted["event"] == "auth.exchange"


def test_bind_and_clear_context():
    clear_context()
    bind_context(command="devices")
    assert structlog.contextvars.get_contextvars() == {"command": "devices"}
    clear_context()
    assert structlog.contextvars.get_contextvars() == {}
