"""Interactive sign-in: OAuth2 authorization-code flow against the Microsoft identity platform.

Public-client flow (no client secret) through msal. The access token is held
in memory only; there is no cache, no refresh and nothing written to disk.
"""

import uuid
from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

import msal
import requests

from mde_offboard.auth.prompt import (
    AuthorizationCancelled,
    AuthorizationPrompt,
    InvalidCallbackURL,
    parse_callback_url,
)
from mde_offboard.config import AUTHORITY_BASE, CLIENT_ID, REDIRECT_URI, SCOPES, TENANT_ID
from mde_offboard.utils.logger import get_logger

logger = get_logger("mde_offboard.auth.session")


class AuthState(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class AuthSession:
    """Owns one authorization-code exchange and the resulting bearer token.

    IDLE -> AUTHENTICATING -> AUTHENTICATED, or AUTHENTICATING -> FAILED with
    error_message set. A failed session can start again; sign_out() always
    returns to IDLE.
    """

    def __init__(
        self,
        tenant_id: str = TENANT_ID,
        client_id: str = CLIENT_ID,
        redirect_uri: str = REDIRECT_URI,
        scopes: Optional[list[str]] = None,
        authority_base: str = AUTHORITY_BASE,
        app: Any = None,
    ):
        self._tenant_id = tenant_id
        self._client_id = client_id
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes or SCOPES)
        self.authority = f"{authority_base.rstrip('/')}/{tenant_id}"
        self._app = app
        self._flow: Optional[dict] = None
        self.state = AuthState.IDLE
        self.access_token: Optional[str] = None
        self.error_message: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.state is AuthState.AUTHENTICATING

    def _get_app(self):
        # Constructing the msal app performs authority discovery over the network.
        if self._app is None:
            self._app = msal.PublicClientApplication(
                client_id=self._client_id,
                authority=self.authority,
            )
        return self._app

    def _fail(self, message: str) -> bool:
        self._flow = None
        self.access_token = None
        self.state = AuthState.FAILED
        self.error_message = message
        logger.warning("auth.failed", error=message, tenant_id=self._tenant_id[:8])
        return False

    def begin(self) -> Optional[str]:
        """Start a sign-in attempt and return the authorization URL to open (None on failure)."""
        self.state = AuthState.AUTHENTICATING
        self.error_message = None
        self.access_token = None
        try:
            self._flow = self._get_app().initiate_auth_code_flow(
                scopes=self.scopes,
                redirect_uri=self.redirect_uri,
                state=str(uuid.uuid4()),
                prompt="select_account",
            )
        except (ValueError, requests.RequestException) as e:
            self._fail(f"Failed to create authentication URL: {e}")
            return None
        logger.info("auth.begin", tenant_id=self._tenant_id[:8], redirect_uri=self.redirect_uri)
        return self._flow["auth_uri"]

    def complete(self, auth_response: Mapping[str, str]) -> bool:
        """Handle the redirect's query parameters and exchange the code for a token."""
        if self._flow is None:
            return self._fail("Authentication failed: no sign-in in progress")

        if auth_response.get("error") is not None:
            description = auth_response.get("error_description") or "Unknown error"
            return self._fail(f"Authentication error: {description}")

        if not auth_response.get("code"):
            return self._fail("No authorization code received")

        try:
            result = self._get_app().acquire_token_by_auth_code_flow(self._flow, dict(auth_response))
        except requests.RequestException as e:
            return self._fail(f"Token exchange failed: {e}")
        except ValueError as e:
            # msal raises on state mismatch or a malformed flow / response body
            return self._fail(f"Failed to parse token response: {e}")

        if not isinstance(result, dict):
            return self._fail("Invalid response format")
        if "error" in result:
            description = result.get("error_description") or "Unknown error"
            return self._fail(f"Token error: {description}")
        token = result.get("access_token")
        if not isinstance(token, str) or not token:
            return self._fail("No access token in response")

        self._flow = None
        self.access_token = token
        self.state = AuthState.AUTHENTICATED
        self.error_message = None
        logger.info("auth.authenticated", tenant_id=self._tenant_id[:8])
        return True

    def complete_from_url(self, callback_url: str) -> bool:
        """complete() from the full redirect URL, as pasted or received."""
        try:
            params = parse_callback_url(callback_url)
        except InvalidCallbackURL:
            return self._fail("Invalid callback URL")
        return self.complete(params)

    def authenticate(self, prompt: AuthorizationPrompt) -> bool:
        """Run the whole flow: build the URL, let the user sign in through prompt, exchange the code."""
        auth_uri = self.begin()
        if auth_uri is None:
            return False
        state = self._flow["state"] if self._flow else ""
        try:
            auth_response = prompt(auth_uri, state)
        except AuthorizationCancelled:
            return self._fail("Authentication was cancelled")
        except InvalidCallbackURL:
            return self._fail("Invalid callback URL")
        except Exception as e:
            return self._fail(f"Authentication failed: {e}")
        return self.complete(auth_response)

    def sign_out(self) -> None:
        self._flow = None
        self.access_token = None
        self.error_message = None
        self.state = AuthState.IDLE
        logger.info("auth.sign_out")
