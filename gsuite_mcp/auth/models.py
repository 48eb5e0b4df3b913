"""Pydantic models for stored credentials and flow results."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from gsuite_mcp.auth.oauth import GOOGLE_TOKEN_URI

if TYPE_CHECKING:
    from google.oauth2.credentials import Credentials


class CredentialRecord(BaseModel):
    """Durable token bundle for one authenticated account.

    Field names follow google-auth's authorized-user JSON format, so a
    record file can also be loaded with
    ``Credentials.from_authorized_user_info``.

    ``expiry`` is kept as a naive UTC datetime, which is what
    ``google.oauth2.credentials.Credentials`` compares against.
    """

    token: str = Field(..., description="Access token")
    refresh_token: str | None = Field(default=None, description="Refresh token")
    token_uri: str = Field(default=GOOGLE_TOKEN_URI, description="Token endpoint")
    client_id: str = Field(..., description="OAuth client ID")
    client_secret: str = Field(..., description="OAuth client secret")
    scopes: list[str] = Field(default_factory=list, description="Granted scopes")
    expiry: datetime | None = Field(
        default=None,
        description="Absolute access token expiry (naive UTC)",
    )

    @field_validator("expiry", mode="after")
    @classmethod
    def _normalize_expiry(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        # 0001-01-01T00:00:00Z is the "unset" expiry written by Go tooling
        if value.year <= 1:
            return None
        return value

    @field_serializer("expiry")
    def _serialize_expiry(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        return value.isoformat() + "Z"

    @classmethod
    def from_credentials(
        cls,
        credentials: Credentials,
        scopes: list[str] | None = None,
    ) -> CredentialRecord:
        """Build a record from google-auth credentials.

        Args:
            credentials: Credentials returned by a code exchange or refresh.
            scopes: Scopes to record when the credentials carry none.

        Returns:
            A record ready to be saved.
        """
        return cls(
            token=credentials.token,
            refresh_token=credentials.refresh_token,
            token_uri=credentials.token_uri or GOOGLE_TOKEN_URI,
            client_id=credentials.client_id or "",
            client_secret=credentials.client_secret or "",
            scopes=list(credentials.scopes or scopes or []),
            expiry=credentials.expiry,
        )


class AuthResult(BaseModel):
    """Outcome of one interactive flow, shown on the browser result page.

    An empty ``email`` means the flow failed after the code was received.
    """

    model_config = ConfigDict(frozen=True)

    email: str = ""
    other_accounts: list[str] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        """Whether the flow resolved an account."""
        return bool(self.email)


__all__ = [
    "CredentialRecord",
    "AuthResult",
]
