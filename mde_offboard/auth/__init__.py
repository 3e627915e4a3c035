"""Interactive delegated sign-in for the Defender API (in-memory token only)."""

from mde_offboard.auth.prompt import (
    AuthorizationCancelled,
    AuthorizationPrompt,
    InvalidCallbackURL,
    LoopbackBrowserPrompt,
    PastedUrlPrompt,
    loopback_port,
    parse_callback_url,
)
from mde_offboard.auth.session import AuthSession, AuthState

__all__ = [
    "AuthorizationCancelled",
    "AuthorizationPrompt",
    "InvalidCallbackURL",
    "LoopbackBrowserPrompt",
    "PastedUrlPrompt",
    "loopback_port",
    "parse_callback_url",
    "AuthSession",
    "AuthState",
]
