"""Authenticated Google Workspace client factory.

Resolves an account (explicit, or the first authenticated one) to an
HTTP client backed by its stored credentials, optionally running the
interactive OAuth flow when the account has none. Nothing is cached in
memory: every call re-reads the credential store, so a credential file
deleted by hand is noticed on the next call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build

from gsuite_mcp.auth.manager import OAuthManager
from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.auth.storage import CredentialStore
from gsuite_mcp.utils.errors import (
    AccountMismatchError,
    NoCredentialsError,
    TokenError,
)

logger = logging.getLogger(__name__)


class StoreBackedCredentials(Credentials):
    """Credentials that write refreshed tokens back to the credential store.

    Refresh stays lazy: google-auth calls ``refresh`` on the first request
    made with an expired access token (or after a 401). When the refreshed
    access token differs from the last one persisted, the record is saved
    again. A failed save only logs a warning; the in-memory credentials keep
    working until the process exits.
    """

    def __init__(
        self,
        *args: Any,
        email: str | None = None,
        store: CredentialStore | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._email = email
        self._store = store
        self._persisted_token = self.token

    @classmethod
    def from_record(
        cls, email: str, record: CredentialRecord, store: CredentialStore
    ) -> StoreBackedCredentials:
        """Build credentials for an account from its stored record."""
        return cls(
            token=record.token,
            refresh_token=record.refresh_token,
            token_uri=record.token_uri,
            client_id=record.client_id,
            client_secret=record.client_secret,
            scopes=record.scopes or None,
            expiry=record.expiry,
            email=email,
            store=store,
        )

    @property
    def email(self) -> str | None:
        """The account these credentials belong to."""
        return self._email

    def refresh(self, request: Any) -> None:
        try:
            super().refresh(request)
        except RefreshError as e:
            raise TokenError(
                f"refreshing token for {self._email}: {e}",
                details={
                    "hint": "Run 'gsuite-mcp auth' and sign in with this account again"
                },
            ) from e

        if self._store is None or not self._email:
            return
        if self.token == self._persisted_token:
            return

        try:
            self._store.save(self._email, CredentialRecord.from_credentials(self))
        except TokenError as e:
            logger.warning(
                "Failed to save refreshed token for %s: %s", self._email, e
            )
            return

        self._persisted_token = self.token
        logger.debug("Persisted refreshed token for %s", self._email)


class WorkspaceClient:
    """Resolves accounts to authenticated Google API clients.

    At most one interactive flow runs at a time per instance: the decision
    to start one is made under ``_auth_lock``, and callers queued behind a
    running flow re-check the store before starting their own.

    Example:
        >>> store = CredentialStore()
        >>> manager = OAuthManager.from_client_secret_file(store=store)
        >>> client = WorkspaceClient(manager)
        >>> session = await client.get_client_or_authenticate("me@example.com")
        >>> session.get("https://www.googleapis.com/oauth2/v2/userinfo")
    """

    def __init__(
        self, manager: OAuthManager, store: CredentialStore | None = None
    ) -> None:
        self._manager = manager
        self._store = store if store is not None else manager.store
        self._auth_lock = asyncio.Lock()

    @property
    def store(self) -> CredentialStore:
        """The credential store accounts are resolved from."""
        return self._store

    def list_accounts(self) -> list[str]:
        """List authenticated accounts, sorted."""
        return self._store.list_identities()

    def get_credentials_for_email(self, email: str) -> StoreBackedCredentials:
        """Load credentials for an account without any network call.

        Raises:
            NoCredentialsError: If the account has no stored credential.
            TokenError: If the stored credential cannot be read.
        """
        record = self._store.load(email)
        return StoreBackedCredentials.from_record(email, record, self._store)

    def get_client_for_email(self, email: str) -> AuthorizedSession:
        """Get an auto-refreshing HTTP session for a stored account."""
        return AuthorizedSession(self.get_credentials_for_email(email))

    async def get_credentials_or_authenticate(
        self, email: str = "", interactive: bool = False
    ) -> StoreBackedCredentials:
        """Resolve an account to credentials, authenticating if allowed.

        Args:
            email: Account to use; empty means the first authenticated one.
            interactive: Whether a missing credential may start the
                browser flow.

        Returns:
            Credentials for the requested (or default) account.

        Raises:
            NoCredentialsError: If the account has no credential and
                interactive mode is off.
            AccountMismatchError: If the user signed in with a different
                account than the one requested.
            AuthenticationError: If the interactive flow fails.
        """
        if email:
            return await self._resolve_requested(email, interactive)
        return await self._resolve_default(interactive)

    async def get_client_or_authenticate(
        self, email: str = "", interactive: bool = False
    ) -> AuthorizedSession:
        """Resolve an account to an auto-refreshing HTTP session.

        See ``get_credentials_or_authenticate`` for the resolution rules.
        """
        credentials = await self.get_credentials_or_authenticate(email, interactive)
        return AuthorizedSession(credentials)

    async def build_service(
        self,
        api: str,
        version: str,
        email: str = "",
        interactive: bool = False,
    ) -> Resource:
        """Build a Google API client (e.g. ``"gmail", "v1"``) for an account."""
        credentials = await self.get_credentials_or_authenticate(email, interactive)
        service = build(api, version, credentials=credentials, cache_discovery=False)
        logger.debug("Created %s %s service for %s", api, version, credentials.email)
        return service

    async def _resolve_requested(
        self, email: str, interactive: bool
    ) -> StoreBackedCredentials:
        try:
            return self.get_credentials_for_email(email)
        except NoCredentialsError as e:
            if not interactive:
                raise NoCredentialsError(
                    f"no credentials for {email}; "
                    "run 'gsuite-mcp auth' and sign in with that account",
                    email=email,
                ) from e

        async with self._auth_lock:
            # A flow that finished while we waited may have added this account
            if self._store.exists(email):
                return self.get_credentials_for_email(email)

            authenticated = await self._authenticate()
            if authenticated != email:
                raise AccountMismatchError(
                    f"authenticated with different account ({authenticated}); "
                    f"need credentials for {email}",
                    requested=email,
                    authenticated=authenticated,
                )
            return self.get_credentials_for_email(email)

    async def _resolve_default(self, interactive: bool) -> StoreBackedCredentials:
        default_email = self._store.default_identity()
        if default_email:
            return self.get_credentials_for_email(default_email)

        if not interactive:
            raise NoCredentialsError(
                "no authenticated accounts; run 'gsuite-mcp auth' to authenticate"
            )

        async with self._auth_lock:
            default_email = self._store.default_identity()
            if default_email:
                return self.get_credentials_for_email(default_email)

            authenticated = await self._authenticate()
            return self.get_credentials_for_email(authenticated)

    async def _authenticate(self) -> str:
        logger.info("No stored credentials; starting interactive authentication")
        try:
            return await self._manager.authenticate_dynamic()
        except Exception as e:
            logger.error("Authentication failed: %s", e)
            raise


__all__ = [
    "WorkspaceClient",
    "StoreBackedCredentials",
]
