"""Pytest configuration and fixtures for gsuite-mcp tests."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

import pytest
import requests
from google.oauth2.credentials import Credentials

from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.auth.oauth import GOOGLE_TOKEN_URI
from gsuite_mcp.auth.storage import CredentialStore


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config dir at a temp directory and clear the port override."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("GSUITE_MCP_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("GSUITE_MCP_OAUTH_PORT", raising=False)
    return config_dir


@pytest.fixture
def client_config() -> dict[str, Any]:
    """OAuth client configuration as found in client_secret.json."""
    return {
        "installed": {
            "client_id": "test-client-id.apps.googleusercontent.com",
            "client_secret": "test-client-secret",
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": GOOGLE_TOKEN_URI,
            "redirect_uris": ["http://localhost"],
        }
    }


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    """Credential store in a directory that does not exist yet."""
    return CredentialStore(tmp_path / "credentials")


def utcnow() -> datetime:
    """Naive UTC now, the form google-auth compares expiry against."""
    return datetime.now(UTC).replace(tzinfo=None)


def make_record(
    token: str = "ya29.access-token",
    refresh_token: str | None = "1//refresh-token",
    expires_in: timedelta = timedelta(hours=1),
) -> CredentialRecord:
    """Build a credential record expiring relative to now."""
    return CredentialRecord(
        token=token,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        scopes=["openid", "https://www.googleapis.com/auth/userinfo.email"],
        expiry=(utcnow() + expires_in).replace(microsecond=0),
    )


@pytest.fixture
def record() -> CredentialRecord:
    """A valid, unexpired credential record."""
    return make_record()


@pytest.fixture
def exchanged_credentials() -> Credentials:
    """Credentials as returned by a successful code exchange."""
    return Credentials(  # type: ignore[no-untyped-call]
        token="ya29.fresh-access-token",
        refresh_token="1//fresh-refresh-token",
        token_uri=GOOGLE_TOKEN_URI,
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        scopes=["openid", "https://www.googleapis.com/auth/userinfo.email"],
        expiry=utcnow() + timedelta(hours=1),
    )


class BrowserStub:
    """Stands in for the user's browser.

    Called with the authorization URL, it immediately "redirects" to the
    callback listener from a background thread, like Google would after
    consent. The query can be altered to simulate forged or failed
    callbacks.
    """

    def __init__(
        self,
        params: dict[str, str] | None = None,
        drop: tuple[str, ...] = (),
        visit: bool = True,
        opened: bool = True,
    ) -> None:
        self.params = {"code": "test-auth-code", **(params or {})}
        self.drop = drop
        self.visit = visit
        self.opened = opened
        self.auth_url: str | None = None
        self.redirect_uri: str | None = None
        self.state: str | None = None
        self.responses: list[requests.Response] = []
        self.errors: list[Exception] = []
        self.url_seen = threading.Event()
        self._threads: list[threading.Thread] = []

    def __call__(self, url: str) -> bool:
        self.auth_url = url
        query = parse_qs(urlparse(url).query)
        self.redirect_uri = query["redirect_uri"][0]
        self.state = query["state"][0]
        self.url_seen.set()

        if self.visit:
            callback_params = {"state": self.state, **self.params}
            for name in self.drop:
                callback_params.pop(name, None)
            callback_url = f"{self.redirect_uri}?{urlencode(callback_params)}"
            thread = threading.Thread(target=self._get, args=(callback_url,), daemon=True)
            thread.start()
            self._threads.append(thread)

        return self.opened

    def _get(self, url: str) -> None:
        try:
            self.responses.append(requests.get(url, timeout=15))
        except requests.RequestException as e:
            self.errors.append(e)

    @property
    def port(self) -> int:
        assert self.redirect_uri is not None
        return int(urlparse(self.redirect_uri).port or 0)

    def join(self, timeout: float = 15.0) -> None:
        for thread in self._threads:
            thread.join(timeout)

    @property
    def response(self) -> requests.Response:
        self.join()
        assert not self.errors, self.errors
        assert len(self.responses) == 1
        return self.responses[0]


@pytest.fixture
def record_factory():
    """Factory for credential records, see ``make_record``."""
    return make_record


@pytest.fixture
def browser_stub():
    """The ``BrowserStub`` class, for building per-test browsers."""
    return BrowserStub
