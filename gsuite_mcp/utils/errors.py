"""Custom exception hierarchy for gsuite-mcp.

This module defines the structured exceptions raised by the authentication
core: configuration problems, missing credentials, OAuth callback failures,
timeouts, and credential persistence errors.
"""

from __future__ import annotations


class GsuiteMCPError(Exception):
    """Base exception for all gsuite-mcp errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(GsuiteMCPError):
    """Exception raised for invalid or missing local configuration.

    Fatal at startup and never retried.

    Examples:
        - client_secret.json is missing or malformed
        - GSUITE_MCP_OAUTH_PORT is not a valid port number
    """

    pass


class AuthenticationError(GsuiteMCPError):
    """Exception raised for OAuth and credential-related errors.

    Examples:
        - Authorization code exchange failed
        - The userinfo endpoint could not be reached
        - The callback listener could not bind its port
    """

    pass


class NoCredentialsError(AuthenticationError):
    """Raised when an account has never been authenticated.

    Callers branch on this to decide whether an interactive flow may be
    started.

    Attributes:
        email: The account that has no stored credential, if known.
    """

    def __init__(
        self,
        message: str,
        email: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        """Initialize the no-credentials exception.

        Args:
            message: Human-readable error description.
            email: The account that has no stored credential, if known.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message, details)
        self.email = email


class TokenError(AuthenticationError):
    """Exception raised for credential storage or refresh errors.

    Examples:
        - Credential file contains invalid JSON
        - Credential file could not be written
        - Token refresh was rejected by the provider
    """

    pass


class OAuthCallbackError(AuthenticationError):
    """Exception raised when the redirect callback is rejected.

    Examples:
        - State parameter mismatch (possible CSRF)
        - Provider returned error=access_denied
        - No authorization code in the callback
    """

    pass


class AuthTimeoutError(AuthenticationError):
    """Exception raised when the interactive flow is not completed in time."""

    pass


class AccountMismatchError(AuthenticationError):
    """Raised when the user signs in with a different account than requested.

    Attributes:
        requested: The account the caller asked for.
        authenticated: The account the provider actually confirmed.
    """

    def __init__(
        self,
        message: str,
        requested: str,
        authenticated: str,
        details: dict[str, object] | None = None,
    ) -> None:
        """Initialize the account mismatch exception.

        Args:
            message: Human-readable error description.
            requested: The account the caller asked for.
            authenticated: The account the provider actually confirmed.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message, details)
        self.requested = requested
        self.authenticated = authenticated


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
