"""Tests for AuthSession: authorization-code flow states and failure messages."""

import sys
import unittest
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mde_offboard.auth.prompt import (
    AuthorizationCancelled,
    InvalidCallbackURL,
    PastedUrlPrompt,
    loopback_port,
    parse_callback_url,
)
from mde_offboard.auth.session import AuthSession, AuthState

SCOPES = [
    "https://api.securitycenter.microsoft.com/Machine.Read",
    "https://api.securitycenter.microsoft.com/Machine.Offboard",
    "User.Read.All",
]


class FakeMsalApp:
    """Stands in for msal.PublicClientApplication (no network)."""

    def __init__(self, token_result=None, exchange_error=None, initiate_error=None):
        self.token_result = token_result if token_result is not None else {"access_token": "tok-123"}
        self.exchange_error = exchange_error
        self.initiate_error = initiate_error
        self.flows: list[dict] = []
        self.exchanges: list[tuple[dict, dict]] = []

    def initiate_auth_code_flow(self, scopes, redirect_uri=None, state=None, prompt=None, **kwargs):
        if self.initiate_error:
            raise self.initiate_error
        flow = {
            "auth_uri": f"https://login.test/tenant/oauth2/v2.0/authorize?state={state}&prompt={prompt}",
            "state": state,
            "redirect_uri": redirect_uri,
            "scope": list(scopes),
        }
        self.flows.append(flow)
        return flow

    def acquire_token_by_auth_code_flow(self, auth_code_flow, auth_response, **kwargs):
        self.exchanges.append((auth_code_flow, auth_response))
        if self.exchange_error:
            raise self.exchange_error
        return self.token_result


def _session(app: FakeMsalApp) -> AuthSession:
    return AuthSession(
        tenant_id="tenant-0000",
        client_id="client-1",
        redirect_uri="http://localhost:8400",
        scopes=SCOPES,
        authority_base="https://login.test",
        app=app,
    )


def _prompt_returning(response: dict):
    def prompt(auth_uri, state):
        return {**response, "state": state}

    return prompt


def _prompt_raising(exc: Exception):
    def prompt(auth_uri, state):
        raise exc

    return prompt


class TestAuthenticate(unittest.TestCase):
    def test_success(self):
        app = FakeMsalApp()
        session = _session(app)
        self.assertTrue(session.authenticate(_prompt_returning({"code": "abc"})))
        self.assertEqual(session.state, AuthState.AUTHENTICATED)
        self.assertTrue(session.is_authenticated)
        self.assertEqual(session.access_token, "tok-123")
        self.assertIsNone(session.error_message)
        flow = app.flows[0]
        self.assertEqual(flow["scope"], SCOPES)
        self.assertEqual(flow["redirect_uri"], "http://localhost:8400")
        self.assertIn("prompt=select_account", flow["auth_uri"])
        self.assertEqual(app.exchanges[0][1]["code"], "abc")
        self.assertEqual(session.authority, "https://login.test/tenant-0000")

    def test_begin_uses_fresh_state_and_clears_error(self):
        app = FakeMsalApp()
        session = _session(app)
        session.error_message = "old"
        first = session.begin()
        self.assertEqual(session.state, AuthState.AUTHENTICATING)
        self.assertTrue(session.is_loading)
        self.assertIsNone(session.error_message)
        session.begin()
        self.assertTrue(first.startswith("https://login.test/"))
        self.assertNotEqual(app.flows[0]["state"], app.flows[1]["state"])

    def test_begin_failure(self):
        session = _session(FakeMsalApp(initiate_error=ValueError("bad authority")))
        self.assertIsNone(session.begin())
        self.assertEqual(session.state, AuthState.FAILED)
        self.assertEqual(session.error_message, "Failed to create authentication URL: bad authority")

    def test_cancelled(self):
        session = _session(FakeMsalApp())
        self.assertFalse(session.authenticate(_prompt_raising(AuthorizationCancelled())))
        self.assertEqual(session.state, AuthState.FAILED)
        self.assertEqual(session.error_message, "Authentication was cancelled")

    def test_prompt_error(self):
        session = _session(FakeMsalApp())
        self.assertFalse(session.authenticate(_prompt_raising(OSError("port in use"))))
        self.assertEqual(session.error_message, "Authentication failed: port in use")

    def test_prompt_invalid_callback(self):
        session = _session(FakeMsalApp())
        self.assertFalse(session.authenticate(_prompt_raising(InvalidCallbackURL("x"))))
        self.assertEqual(session.error_message, "Invalid callback URL")

    def test_provider_error(self):
        app = FakeMsalApp()
        session = _session(app)
        response = {"error": "access_denied", "error_description": "User declined consent"}
        self.assertFalse(session.authenticate(_prompt_returning(response)))
        self.assertEqual(session.error_message, "Authentication error: User declined consent")
        self.assertEqual(app.exchanges, [])

    def test_provider_error_without_description(self):
        session = _session(FakeMsalApp())
        self.assertFalse(session.authenticate(_prompt_returning({"error": "server_error"})))
        self.assertEqual(session.error_message, "Authentication error: Unknown error")

    def test_missing_code(self):
        app = FakeMsalApp()
        session = _session(app)
        self.assertFalse(session.authenticate(_prompt_returning({})))
        self.assertEqual(session.error_message, "No authorization code received")
        self.assertEqual(app.exchanges, [])

    def test_token_error(self):
        app = FakeMsalApp(token_result={"error": "invalid_grant", "error_description": "AADSTS70008: expired"})
        session = _session(app)
        self.assertFalse(session.authenticate(_prompt_returning({"code": "abc"})))
        self.assertEqual(session.error_message, "Token error: AADSTS70008: expired")
        self.assertIsNone(session.access_token)

    def test_token_response_without_access_token(self):
        session = _session(FakeMsalApp(token_result={"token_type": "Bearer"}))
        self.assertFalse(session.authenticate(_prompt_returning({"code": "abc"})))
        self.assertEqual(session.error_message, "No access token in response")

    def test_transport_error(self):
        app = FakeMsalApp(exchange_error=requests.ConnectionError("network down"))
        session = _session(app)
        self.assertFalse(session.authenticate(_prompt_returning({"code": "abc"})))
        self.assertEqual(session.error_message, "Token exchange failed: network down")

    def test_state_mismatch(self):
        session = _session(FakeMsalApp(exchange_error=ValueError("state missing from auth_code_flow")))
        self.assertFalse(session.authenticate(_prompt_returning({"code": "abc"})))
        self.assertTrue(session.error_message.startswith("Failed to parse token response"))

    def test_retry_after_failure(self):
        app = FakeMsalApp()
        session = _session(app)
        session.authenticate(_prompt_raising(AuthorizationCancelled()))
        self.assertEqual(session.state, AuthState.FAILED)
        self.assertTrue(session.authenticate(_prompt_returning({"code": "abc"})))
        self.assertEqual(session.state, AuthState.AUTHENTICATED)
        self.assertIsNone(session.error_message)


class TestCompleteFromUrl(unittest.TestCase):
    def test_custom_scheme_callback(self):
        app = FakeMsalApp()
        session = _session(app)
        session.begin()
        state = app.flows[0]["state"]
        self.assertTrue(session.complete_from_url(f"msauth.com.defender.offboarder://auth?code=xyz&state={state}"))
        self.assertEqual(app.exchanges[0][1], {"code": "xyz", "state": state})

    def test_invalid_callback_url(self):
        session = _session(FakeMsalApp())
        session.begin()
        self.assertFalse(session.complete_from_url("msauth.com.defender.offboarder://auth"))
        self.assertEqual(session.error_message, "Invalid callback URL")

    def test_complete_without_begin(self):
        session = _session(FakeMsalApp())
        self.assertFalse(session.complete({"code": "abc"}))
        self.assertEqual(session.state, AuthState.FAILED)


class TestSignOut(unittest.TestCase):
    def test_sign_out_from_any_state(self):
        session = _session(FakeMsalApp())
        session.authenticate(_prompt_returning({"code": "abc"}))
        session.sign_out()
        self.assertEqual(session.state, AuthState.IDLE)
        self.assertIsNone(session.access_token)
        self.assertFalse(session.is_authenticated)

        session.authenticate(_prompt_raising(AuthorizationCancelled()))
        session.sign_out()
        self.assertEqual(session.state, AuthState.IDLE)
        self.assertIsNone(session.error_message)

        session.begin()
        session.sign_out()
        self.assertEqual(session.state, AuthState.IDLE)


class TestPromptHelpers(unittest.TestCase):
    def test_parse_callback_url(self):
        params = parse_callback_url("http://localhost:8400/?code=a%20b&state=s1&session_state=")
        self.assertEqual(params, {"code": "a b", "state": "s1", "session_state": ""})

    def test_parse_callback_url_without_query(self):
        with self.assertRaises(InvalidCallbackURL):
            parse_callback_url("http://localhost:8400/")

    def test_loopback_port(self):
        self.assertEqual(loopback_port("http://localhost:8400"), 8400)
        self.assertEqual(loopback_port("http://127.0.0.1/"), 80)
        self.assertIsNone(loopback_port("msauth.com.defender.offboarder://auth"))
        self.assertIsNone(loopback_port("https://app.example.com/callback"))

    def test_pasted_url_prompt(self):
        shown = []
        prompt = PastedUrlPrompt(
            read_line=lambda _: "msauth.app://auth?code=c1&state=s1",
            show=shown.append,
            open_browser=False,
        )
        self.assertEqual(prompt("https://login.test/authorize", "s1"), {"code": "c1", "state": "s1"})
        self.assertIn("https://login.test/authorize", shown[0])

    def test_pasted_url_prompt_empty_cancels(self):
        prompt = PastedUrlPrompt(read_line=lambda _: "  ", show=lambda _: None, open_browser=False)
        with self.assertRaises(AuthorizationCancelled):
            prompt("https://login.test/authorize", "s1")


if __name__ == "__main__":
    unittest.main()
