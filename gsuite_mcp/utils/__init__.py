"""Utility helpers for gsuite-mcp.

This module re-exports the exception hierarchy shared by every package.
"""

from gsuite_mcp.utils.errors import (
    AccountMismatchError,
    AuthenticationError,
    AuthTimeoutError,
    ConfigurationError,
    GsuiteMCPError,
    NoCredentialsError,
    OAuthCallbackError,
    TokenError,
)

__all__ = [
    "GsuiteMCPError",
    "ConfigurationError",
    "AuthenticationError",
    "NoCredentialsError",
    "TokenError",
    "OAuthCallbackError",
    "AuthTimeoutError",
    "AccountMismatchError",
]
