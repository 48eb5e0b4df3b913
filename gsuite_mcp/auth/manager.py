"""Interactive OAuth flow coordinator.

``OAuthManager.authenticate_dynamic`` runs one end-to-end authorization
code flow without knowing the account in advance: the user signs in with
any Google account, and the credential is saved under the email address
Google reports for it.

Flow:
1. Bind the loopback callback listener
2. Print the consent URL and try to open a browser
3. Wait for the first of: code, callback error, timeout, cancellation
4. Exchange the code, look up the account email, save the credential
5. Publish the result so the browser tab shows the resolved account
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from gsuite_mcp.auth.callback import (
    DEFAULT_RESULT_TIMEOUT,
    DEFAULT_SHUTDOWN_TIMEOUT,
    CallbackServer,
)
from gsuite_mcp.auth.models import AuthResult, CredentialRecord
from gsuite_mcp.auth.oauth import (
    DEFAULT_SCOPES,
    build_authorization_url,
    create_flow,
    exchange_code,
    fetch_account_email,
    generate_state,
    load_client_config,
    open_browser,
    print_auth_instructions,
)
from gsuite_mcp.auth.storage import CredentialStore
from gsuite_mcp.config import client_secret_path, get_oauth_port
from gsuite_mcp.utils.errors import (
    AuthenticationError,
    AuthTimeoutError,
    TokenError,
)

logger = logging.getLogger(__name__)

# Seconds the user has to complete the consent screen.
DEFAULT_FLOW_TIMEOUT = 300.0


class OAuthManager:
    """Runs interactive OAuth flows and persists the resulting credentials.

    A manager runs one flow at a time; callers that may race (see
    ``WorkspaceClient``) must serialize calls to ``authenticate_dynamic``.

    Attributes:
        _client_config: OAuth client configuration, read once.
        _store: Where credentials are saved, keyed by account email.
        _port: Callback port override; None resolves GSUITE_MCP_OAUTH_PORT
            on every flow.
        _browser: Best-effort URL opener.

    Example:
        >>> manager = OAuthManager.from_client_secret_file()
        >>> email = asyncio.run(manager.authenticate_dynamic())
    """

    def __init__(
        self,
        client_config: dict[str, Any],
        store: CredentialStore,
        *,
        port: int | None = None,
        browser: Callable[[str], bool] = open_browser,
        flow_timeout: float = DEFAULT_FLOW_TIMEOUT,
        result_timeout: float = DEFAULT_RESULT_TIMEOUT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        """Initialize the manager.

        Args:
            client_config: Client configuration from ``load_client_config``.
            store: Credential store for authenticated accounts.
            port: Callback port; overrides GSUITE_MCP_OAUTH_PORT when set.
            browser: Callable that opens a URL and reports success.
            flow_timeout: Seconds to wait for the user to finish consent.
            result_timeout: Seconds the browser request waits for the result page.
            shutdown_timeout: Seconds allowed for the listener to shut down.
        """
        self._client_config = client_config
        self._store = store
        self._port = port
        self._browser = browser
        self._flow_timeout = flow_timeout
        self._result_timeout = result_timeout
        self._shutdown_timeout = shutdown_timeout

    @classmethod
    def from_client_secret_file(
        cls,
        path: Path | None = None,
        store: CredentialStore | None = None,
        **kwargs: Any,
    ) -> OAuthManager:
        """Create a manager from a ``client_secret.json`` file.

        Args:
            path: Client secret file. Defaults to the one in the config dir.
            store: Credential store. Defaults to the config dir's store.
            **kwargs: Passed through to the constructor.

        Raises:
            ConfigurationError: If the client secret is missing or invalid.
        """
        client_config = load_client_config(path or client_secret_path())
        return cls(client_config, store or CredentialStore(), **kwargs)

    @property
    def store(self) -> CredentialStore:
        """The credential store this manager writes to."""
        return self._store

    async def authenticate_dynamic(self) -> str:
        """Run one interactive OAuth flow.

        The credential is keyed by the email Google confirms, never by an
        account the caller expected.

        Returns:
            The authenticated account's email.

        Raises:
            ConfigurationError: If GSUITE_MCP_OAUTH_PORT is invalid.
            AuthenticationError: If the port cannot be bound, the callback
                reports an error, or the code exchange or email lookup fails.
            AuthTimeoutError: If the user does not finish in time.
            TokenError: If the credential cannot be saved.
            asyncio.CancelledError: If the calling task is cancelled.
        """
        port = self._port if self._port is not None else get_oauth_port()
        state = generate_state()

        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[str] = loop.create_future()

        def settle(code: str | None, error: Exception | None) -> None:
            # First code or error wins
            if outcome.done():
                return
            if error is not None:
                outcome.set_exception(error)
            else:
                outcome.set_result(code or "")

        server = CallbackServer(
            port,
            state,
            on_code=lambda code: loop.call_soon_threadsafe(settle, code, None),
            on_error=lambda error: loop.call_soon_threadsafe(settle, None, error),
            result_timeout=self._result_timeout,
            shutdown_timeout=self._shutdown_timeout,
        )

        server.start()
        try:
            flow = create_flow(self._client_config, server.redirect_uri)
            auth_url = build_authorization_url(flow, state)

            print_auth_instructions(auth_url)
            if not self._browser(auth_url):
                logger.warning(
                    "Couldn't open browser automatically; visit the URL above"
                )

            code = await self._wait_for_code(outcome)
            return await self._complete_flow(flow, code, server)
        finally:
            # close() joins the listener thread
            await asyncio.to_thread(server.close)

    async def _wait_for_code(self, outcome: asyncio.Future[str]) -> str:
        try:
            return await asyncio.wait_for(outcome, timeout=self._flow_timeout)
        except TimeoutError:
            raise AuthTimeoutError(
                f"authentication timed out after {self._flow_timeout:g}s "
                "- please try again",
                details={"timeout_seconds": self._flow_timeout},
            ) from None

    async def _complete_flow(
        self, flow: Flow, code: str, server: CallbackServer
    ) -> str:
        try:
            credentials = await asyncio.to_thread(exchange_code, flow, code)
        except AuthenticationError:
            server.publish(AuthResult())
            raise

        try:
            email = await asyncio.to_thread(fetch_account_email, credentials)
        except AuthenticationError as e:
            server.publish(AuthResult())
            raise AuthenticationError(
                f"failed to get authenticated email: {e.message}",
                details=e.details,
            ) from e

        try:
            self._persist(email, credentials)
        except TokenError as e:
            # The user did authenticate; the page still shows who
            server.publish(AuthResult(email=email))
            raise TokenError(
                f"failed to save token: {e.message}",
                details=e.details,
            ) from e

        server.publish(
            AuthResult(email=email, other_accounts=self._other_accounts(email))
        )

        print(f"✓ Successfully authenticated: {email}", file=sys.stderr)
        logger.info("Authenticated %s", email)
        return email

    def _persist(self, email: str, credentials: Credentials) -> None:
        record = CredentialRecord.from_credentials(credentials, scopes=DEFAULT_SCOPES)

        previous: CredentialRecord | None = None
        if self._store.exists(email):
            logger.info("Replacing stored credentials for %s", email)
            try:
                previous = self._store.load(email)
            except AuthenticationError as e:
                logger.warning("Ignoring unreadable credentials for %s: %s", email, e)

        if record.refresh_token is None and previous is not None:
            logger.warning(
                "No refresh token issued for %s; keeping the stored one", email
            )
            record = record.model_copy(
                update={"refresh_token": previous.refresh_token}
            )

        self._store.save(email, record)

    def _other_accounts(self, email: str) -> list[str]:
        try:
            identities = self._store.list_identities()
        except OSError as e:
            logger.debug("Could not list accounts: %s", e)
            return []
        return [identity for identity in identities if identity != email]


__all__ = [
    "OAuthManager",
    "DEFAULT_FLOW_TIMEOUT",
]
