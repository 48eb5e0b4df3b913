"""Tests for configuration paths and the callback port override."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from gsuite_mcp.config import (
    DEFAULT_OAUTH_PORT,
    client_secret_path,
    credentials_dir,
    default_config_dir,
    ensure_config_dir,
    get_oauth_port,
)
from gsuite_mcp.utils.errors import ConfigurationError


class TestPaths:
    """Tests for the configuration directory layout."""

    def test_config_dir_override(self, isolated_environment: Path) -> None:
        """GSUITE_MCP_CONFIG_DIR relocates everything."""
        assert default_config_dir() == isolated_environment
        assert credentials_dir() == isolated_environment / "credentials"
        assert client_secret_path() == isolated_environment / "client_secret.json"

    def test_default_location(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """Without an override the config lives under ~/.config."""
        monkeypatch.delenv("GSUITE_MCP_CONFIG_DIR")
        monkeypatch.setenv("HOME", str(tmp_path))

        assert default_config_dir() == tmp_path / ".config" / "gsuite-mcp"

    def test_explicit_config_dir(self, tmp_path: Path) -> None:
        """Path helpers accept an explicit config dir."""
        assert credentials_dir(tmp_path) == tmp_path / "credentials"
        assert client_secret_path(tmp_path) == tmp_path / "client_secret.json"

    def test_ensure_config_dir(self, isolated_environment: Path) -> None:
        """The credentials directory is created owner-only."""
        created = ensure_config_dir()

        assert created == isolated_environment / "credentials"
        assert created.is_dir()
        assert stat.S_IMODE(created.stat().st_mode) == 0o700

    def test_ensure_config_dir_is_idempotent(self) -> None:
        """Running init twice is harmless."""
        first = ensure_config_dir()
        second = ensure_config_dir()

        assert first == second


class TestOAuthPort:
    """Tests for get_oauth_port()."""

    def test_default_port(self) -> None:
        """Port 8000 is used when no override is set."""
        assert get_oauth_port() == DEFAULT_OAUTH_PORT == 8000

    def test_empty_override_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An empty variable counts as unset."""
        monkeypatch.setenv("GSUITE_MCP_OAUTH_PORT", "")

        assert get_oauth_port() == 8000

    def test_valid_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A numeric override replaces the default."""
        monkeypatch.setenv("GSUITE_MCP_OAUTH_PORT", "9123")

        assert get_oauth_port() == 9123

    @pytest.mark.parametrize("value", ["abc", "80.5", "0", "65536", "-1"])
    def test_invalid_override_is_an_error(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        """An invalid override is reported, never replaced by the default."""
        monkeypatch.setenv("GSUITE_MCP_OAUTH_PORT", value)

        with pytest.raises(ConfigurationError) as exc_info:
            get_oauth_port()

        assert f"invalid GSUITE_MCP_OAUTH_PORT value: {value}" in str(exc_info.value)
