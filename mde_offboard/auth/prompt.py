"""Interactive step of the authorization-code flow: show the sign-in page, capture the redirect."""

from collections.abc import Callable, Mapping
from typing import Protocol
from urllib.parse import parse_qs, urlsplit

import typer
from msal.oauth2cli.authcode import AuthCodeReceiver

from mde_offboard.utils.logger import get_logger

logger = get_logger("mde_offboard.auth.prompt")


class AuthorizationCancelled(Exception):
    """The user closed or abandoned the sign-in step."""


class InvalidCallbackURL(ValueError):
    """Redirect URL could not be parsed into query parameters."""


class AuthorizationPrompt(Protocol):
    """Presents auth_uri to the user and returns the redirect's query parameters."""

    def __call__(self, auth_uri: str, state: str) -> Mapping[str, str]:
        ...


def parse_callback_url(url: str) -> dict[str, str]:
    """Query parameters of a redirect URL (first value per key)."""
    try:
        query = urlsplit(url.strip()).query
    except ValueError as e:
        raise InvalidCallbackURL(str(e)) from e
    if not query:
        raise InvalidCallbackURL("no query parameters in callback URL")
    params = parse_qs(query, keep_blank_values=True)
    return {key: values[0] for key, values in params.items()}


def loopback_port(redirect_uri: str) -> int | None:
    """Port of an http://localhost redirect URI, or None if it is not a loopback URI."""
    parts = urlsplit(redirect_uri)
    if parts.scheme != "http" or parts.hostname not in ("localhost", "127.0.0.1"):
        return None
    return parts.port or 80


class LoopbackBrowserPrompt:
    """Opens the system browser and receives the redirect on a localhost port.

    A timeout or Ctrl+C counts as a cancelled sign-in.
    """

    def __init__(self, port: int, timeout: int | None = None):
        self._port = port
        self._timeout = timeout

    def __call__(self, auth_uri: str, state: str) -> Mapping[str, str]:
        logger.info("auth_prompt.loopback.wait", port=self._port, timeout=self._timeout)
        try:
            with AuthCodeReceiver(port=self._port) as receiver:
                response = receiver.get_auth_response(
                    auth_uri=auth_uri,
                    timeout=self._timeout,
                    state=state,
                )
        except KeyboardInterrupt as e:
            raise AuthorizationCancelled() from e
        if not response:
            raise AuthorizationCancelled()
        return response


class PastedUrlPrompt:
    """For redirect URIs nothing local can listen on (custom schemes).

    Opens the sign-in page, then asks the user to paste the URL the browser was
    redirected to. An empty answer cancels.
    """

    def __init__(
        self,
        read_line: Callable[[str], str] = input,
        show: Callable[[str], None] = print,
        open_browser: bool = True,
    ):
        self._read_line = read_line
        self._show = show
        self._open_browser = open_browser

    def __call__(self, auth_uri: str, state: str) -> Mapping[str, str]:
        self._show(f"Sign in at:\n{auth_uri}\n")
        if self._open_browser:
            typer.launch(auth_uri)
        try:
            pasted = self._read_line("Paste the URL you were redirected to (Enter to cancel): ")
        except (KeyboardInterrupt, EOFError) as e:
            raise AuthorizationCancelled() from e
        if not pasted.strip():
            raise AuthorizationCancelled()
        return parse_callback_url(pasted)
