"""Authentication module for gsuite-mcp.

This module provides OAuth 2.0 authentication for Google Workspace APIs
with dynamic account discovery, including:

- Per-account credential files (``credentials/<email>.json``, mode 0600)
- The interactive local-server flow: loopback listener, browser launch,
  CSRF-checked code exchange
- Account discovery through Google's userinfo endpoint

Usage:
    >>> from gsuite_mcp.auth import CredentialStore, OAuthManager
    >>>
    >>> store = CredentialStore()
    >>> manager = OAuthManager.from_client_secret_file(store=store)
    >>>
    >>> # Authenticate any account (opens browser)
    >>> email = asyncio.run(manager.authenticate_dynamic())
    >>>
    >>> # Later, load the stored credential
    >>> record = store.load(email)
"""

from gsuite_mcp.auth.callback import CallbackServer
from gsuite_mcp.auth.manager import OAuthManager
from gsuite_mcp.auth.models import AuthResult, CredentialRecord
from gsuite_mcp.auth.oauth import (
    DEFAULT_SCOPES,
    GOOGLE_AUTH_URI,
    GOOGLE_TOKEN_URI,
    GOOGLE_USERINFO_URI,
)
from gsuite_mcp.auth.storage import CredentialStore

__all__ = [
    # OAuth
    "OAuthManager",
    "CallbackServer",
    "DEFAULT_SCOPES",
    "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI",
    "GOOGLE_USERINFO_URI",
    # Credential storage
    "CredentialStore",
    "CredentialRecord",
    "AuthResult",
]
