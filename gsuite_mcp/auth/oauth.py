"""Google OAuth 2.0 building blocks for the interactive flow.

This module holds the provider-facing pieces of the authorization-code
flow. The coordination between them lives in ``gsuite_mcp.auth.manager``.

- Client secret loading (``client_secret.json`` from Google Cloud Console)
- Authorization URL construction with a fresh CSRF state
- Authorization code exchange
- Authenticated account lookup via the userinfo endpoint
- Best-effort browser launch

Security considerations:
- The state parameter is 16 bytes from ``secrets`` and is the only CSRF
  defense for the callback endpoint
- ``access_type=offline`` plus ``prompt=consent`` guarantee a refresh token
  is issued, even for accounts that already granted access
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import sys
import webbrowser
from pathlib import Path
from typing import Any

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from gsuite_mcp.utils.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

# Google may grant a subset of the requested scopes (granular consent).
# Without this oauthlib raises on any scope difference in the token response.
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

# Scopes for Gmail, Calendar, Docs, Tasks, Drive, Sheets, and Contacts
DEFAULT_SCOPES = [
    # OpenID Connect scopes (required for getting authenticated user email)
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    # Gmail
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.labels",
    "https://www.googleapis.com/auth/gmail.settings.basic",
    # Calendar
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    # Docs
    "https://www.googleapis.com/auth/documents",
    # Tasks
    "https://www.googleapis.com/auth/tasks",
    # Drive
    "https://www.googleapis.com/auth/drive",
    # Sheets
    "https://www.googleapis.com/auth/spreadsheets",
    # Contacts (People API)
    "https://www.googleapis.com/auth/contacts",
]

# Google OAuth endpoints
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v2/userinfo"

CALLBACK_PATH = "/oauth2callback"

STATE_TOKEN_BYTES = 16

USERINFO_TIMEOUT_SECONDS = 30

CLIENT_TYPES = ("installed", "web")


def load_client_config(path: Path) -> dict[str, Any]:
    """Load the OAuth client configuration from a client secret file.

    Args:
        path: Path to ``client_secret.json``.

    Returns:
        Client configuration in the format expected by google-auth-oauthlib.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or does not
            describe an "installed" or "web" OAuth client.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"client_secret.json not found at {path} - "
            "download from Google Cloud Console",
            details={"path": str(path)},
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"reading client secret: {e}",
            details={"path": str(path)},
        ) from e

    try:
        client_config = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"parsing client secret: {e}",
            details={"path": str(path)},
        ) from e

    if not isinstance(client_config, dict) or not any(
        key in client_config for key in CLIENT_TYPES
    ):
        raise ConfigurationError(
            "parsing client secret: expected an 'installed' or 'web' client",
            details={"path": str(path)},
        )

    client_type = next(key for key in CLIENT_TYPES if key in client_config)
    client_info = client_config[client_type]
    for field in ("client_id", "client_secret"):
        if not client_info.get(field):
            raise ConfigurationError(
                f"parsing client secret: missing {field}",
                details={"path": str(path)},
            )
    client_info.setdefault("auth_uri", GOOGLE_AUTH_URI)
    client_info.setdefault("token_uri", GOOGLE_TOKEN_URI)

    logger.debug("Loaded %s OAuth client from %s", client_type, path)
    return client_config


def redirect_uri_for_port(port: int) -> str:
    """Get the loopback redirect URI for a callback port."""
    return f"http://localhost:{port}{CALLBACK_PATH}"


def generate_state() -> str:
    """Generate an unguessable CSRF state token.

    Returns:
        32 hex characters (16 random bytes).
    """
    return secrets.token_hex(STATE_TOKEN_BYTES)


def create_flow(client_config: dict[str, Any], redirect_uri: str) -> Flow:
    """Create an authorization-code flow for one attempt.

    Args:
        client_config: Client configuration from ``load_client_config``.
        redirect_uri: Loopback URI of the callback listener.

    Returns:
        A new Flow requesting ``DEFAULT_SCOPES``.
    """
    return Flow.from_client_config(
        client_config,
        scopes=DEFAULT_SCOPES,
        redirect_uri=redirect_uri,
    )


def build_authorization_url(flow: Flow, state: str) -> str:
    """Build the consent page URL for one flow attempt.

    Args:
        flow: Flow created by ``create_flow``.
        state: CSRF state from ``generate_state``.

    Returns:
        The full authorization URL.
    """
    auth_url, _ = flow.authorization_url(
        state=state,
        access_type="offline",
        prompt="consent",
    )
    logger.debug("Created auth URL with state: %s", state[:8] + "...")
    return auth_url


def exchange_code(flow: Flow, code: str) -> Credentials:
    """Exchange an authorization code for tokens.

    Args:
        flow: The flow that produced the authorization URL.
        code: Authorization code from the callback.

    Returns:
        Credentials holding the access and refresh tokens.

    Raises:
        AuthenticationError: If the token endpoint rejects the exchange.
    """
    try:
        flow.fetch_token(code=code)
    except Exception as e:
        logger.error("Failed to exchange authorization code: %s", e)
        raise AuthenticationError(
            f"failed to exchange code for token: {e}",
            details={"error_type": type(e).__name__},
        ) from e

    logger.info("Exchanged authorization code for tokens")
    return flow.credentials


def fetch_account_email(credentials: Credentials) -> str:
    """Fetch the email address of the account that granted access.

    Args:
        credentials: Freshly exchanged credentials.

    Returns:
        The account's email address as confirmed by Google.

    Raises:
        AuthenticationError: If the userinfo request fails or has no email.
    """
    try:
        with AuthorizedSession(credentials) as session:
            response = session.get(
                GOOGLE_USERINFO_URI, timeout=USERINFO_TIMEOUT_SECONDS
            )
    except requests.RequestException as e:
        raise AuthenticationError(
            f"fetching userinfo: {e}",
            details={"error_type": type(e).__name__},
        ) from e

    if response.status_code != 200:
        raise AuthenticationError(
            f"userinfo API error: {response.status_code} - {response.text}",
            details={"status_code": response.status_code},
        )

    try:
        email = response.json().get("email")
    except ValueError as e:
        raise AuthenticationError(f"parsing userinfo: {e}") from e

    if not email:
        raise AuthenticationError("userinfo response did not include an email")

    return str(email)


def open_browser(url: str) -> bool:
    """Open a URL in the default browser, best effort.

    Returns:
        True if a browser was launched, False otherwise.
    """
    try:
        return webbrowser.open(url)
    except webbrowser.Error as e:
        logger.debug("Browser launch failed: %s", e)
        return False


def print_auth_instructions(auth_url: str) -> None:
    """Print the authorization URL and instructions to stderr."""
    print(
        "\n=== Authentication Required ===\n"
        "Opening browser to authenticate with Google...\n"
        "Choose any Google account you want to use.\n"
        f"If browser doesn't open, visit:\n{auth_url}\n"
        "================================\n",
        file=sys.stderr,
    )


__all__ = [
    "DEFAULT_SCOPES",
    "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI",
    "GOOGLE_USERINFO_URI",
    "CALLBACK_PATH",
    "load_client_config",
    "redirect_uri_for_port",
    "generate_state",
    "create_flow",
    "build_authorization_url",
    "exchange_code",
    "fetch_account_email",
    "open_browser",
    "print_auth_instructions",
]
