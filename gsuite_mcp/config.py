"""Filesystem layout and environment configuration for gsuite-mcp.

Accounts are discovered dynamically from the credentials directory, so the
only configuration is where that directory lives and which local port the
OAuth callback listener binds.

Layout (default ``~/.config/gsuite-mcp``):

    client_secret.json          OAuth client downloaded from Google Cloud Console
    credentials/<email>.json    one credential record per authenticated account
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from gsuite_mcp.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

APP_NAME = "gsuite-mcp"

CONFIG_DIR_ENV = "GSUITE_MCP_CONFIG_DIR"
OAUTH_PORT_ENV = "GSUITE_MCP_OAUTH_PORT"

DEFAULT_OAUTH_PORT = 8000

CLIENT_SECRET_FILENAME = "client_secret.json"
CREDENTIALS_DIRNAME = "credentials"


def default_config_dir() -> Path:
    """Get the configuration directory.

    Honors GSUITE_MCP_CONFIG_DIR, otherwise ``~/.config/gsuite-mcp``.
    """
    override = os.getenv(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / APP_NAME


def credentials_dir(config_dir: Path | None = None) -> Path:
    """Get the directory holding one credential file per account."""
    return (config_dir or default_config_dir()) / CREDENTIALS_DIRNAME


def client_secret_path(config_dir: Path | None = None) -> Path:
    """Get the path of the OAuth client secret file."""
    return (config_dir or default_config_dir()) / CLIENT_SECRET_FILENAME


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Create the configuration and credentials directories if missing.

    Returns:
        The credentials directory.
    """
    creds_dir = credentials_dir(config_dir)
    creds_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return creds_dir


def get_oauth_port() -> int:
    """Get the OAuth callback port.

    Returns:
        GSUITE_MCP_OAUTH_PORT if set, otherwise 8000.

    Raises:
        ConfigurationError: If GSUITE_MCP_OAUTH_PORT is not a port number.
            An invalid override is never silently replaced by the default.
    """
    raw = os.getenv(OAUTH_PORT_ENV, "").strip()
    if not raw:
        return DEFAULT_OAUTH_PORT

    try:
        port = int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"invalid {OAUTH_PORT_ENV} value: {raw}",
            details={"hint": "Set it to a port number between 1 and 65535"},
        ) from e

    if not 1 <= port <= 65535:
        raise ConfigurationError(
            f"invalid {OAUTH_PORT_ENV} value: {raw}",
            details={"hint": "Set it to a port number between 1 and 65535"},
        )

    logger.debug("Using OAuth callback port %d from %s", port, OAUTH_PORT_ENV)
    return port


__all__ = [
    "APP_NAME",
    "CONFIG_DIR_ENV",
    "OAUTH_PORT_ENV",
    "DEFAULT_OAUTH_PORT",
    "default_config_dir",
    "credentials_dir",
    "client_secret_path",
    "ensure_config_dir",
    "get_oauth_port",
]
