"""File-based credential storage, one JSON file per account.

Storage location: ``<config_dir>/credentials/{email}.json``

Security considerations:
- Files are written with 0600 permissions (owner read/write only)
- The credentials directory is created with 0700 permissions
- Email addresses are validated to prevent path traversal attacks
- Records are stored as plain JSON; there is no encryption at rest
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.config import credentials_dir
from gsuite_mcp.utils.errors import NoCredentialsError, TokenError

logger = logging.getLogger(__name__)

CREDENTIAL_SUFFIX = ".json"
CREDENTIAL_FILE_MODE = 0o600
CREDENTIAL_DIR_MODE = 0o700


def _is_valid_identity(email: str) -> bool:
    """True if the identifier maps to a visible file inside the store."""
    return not (
        not email
        or email.startswith(".")
        or "/" in email
        or "\\" in email
        or "\x00" in email
    )


class CredentialStore:
    """Per-account credential files.

    Each account's file is addressed independently, so no locking is done
    here: two different accounts never touch the same file.

    Attributes:
        _base_dir: Directory where credential files are stored.

    Example:
        >>> store = CredentialStore(Path("/tmp/creds"))
        >>> store.save("user@example.com", record)
        >>> store.load("user@example.com").token
        'ya29...'
        >>> store.list_identities()
        ['user@example.com']
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Initialize credential storage.

        The directory is not created until the first save.

        Args:
            base_dir: Directory for credential files. Defaults to the
                credentials directory under the configuration directory.
        """
        self._base_dir = base_dir if base_dir is not None else credentials_dir()
        logger.debug("CredentialStore using %s", self._base_dir)

    @property
    def base_dir(self) -> Path:
        """Directory holding the credential files."""
        return self._base_dir

    def path_for(self, email: str) -> Path:
        """Get the credential file path for an account.

        Args:
            email: Account email address.

        Returns:
            Path to the account's credential file.

        Raises:
            TokenError: If the email could escape the credentials directory.
        """
        if not _is_valid_identity(email):
            raise TokenError(
                "Invalid account identifier",
                details={"email": email[:50]},
            )
        return self._base_dir / f"{email}{CREDENTIAL_SUFFIX}"

    def save(self, email: str, record: CredentialRecord) -> None:
        """Save the credential record for an account.

        Overwrites any existing record. The file is created with owner-only
        permissions, and existing files are tightened to the same mode.

        Args:
            email: Account email address.
            record: Credential record to persist.

        Raises:
            TokenError: If the directory or file cannot be written.
        """
        path = self.path_for(email)

        try:
            self._base_dir.mkdir(mode=CREDENTIAL_DIR_MODE, parents=True, exist_ok=True)
            data = record.model_dump_json(indent=2)

            fd = os.open(
                path,
                os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                CREDENTIAL_FILE_MODE,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)

            # O_CREAT's mode only applies to new files
            path.chmod(CREDENTIAL_FILE_MODE)

            logger.info("Saved credentials for %s", email)

        except PermissionError as e:
            logger.error("Permission denied writing credential file: %s", e)
            raise TokenError(
                f"Permission denied writing credentials for {email}",
                details={"path": str(path)},
            ) from e
        except OSError as e:
            logger.error("Failed to save credentials for %s: %s", email, e)
            raise TokenError(
                f"writing credentials for {email}: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

    def load(self, email: str) -> CredentialRecord:
        """Load the credential record for an account.

        Args:
            email: Account email address.

        Returns:
            The stored credential record.

        Raises:
            NoCredentialsError: If the account has never been authenticated.
            TokenError: If the file cannot be read or parsed.
        """
        path = self.path_for(email)

        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            logger.debug("No credentials found for %s", email)
            raise NoCredentialsError(f"no credentials for {email}", email=email) from e
        except OSError as e:
            logger.error("Failed to read credentials for %s: %s", email, e)
            raise TokenError(
                f"reading credentials for {email}: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e
        except UnicodeDecodeError as e:
            logger.error("Credential file for %s is not UTF-8: %s", email, e)
            raise TokenError(
                f"parsing credentials for {email}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

        try:
            record = CredentialRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Invalid credential file for %s: %s", email, e)
            raise TokenError(
                f"parsing credentials for {email}",
                details={"path": str(path), "errors": e.error_count()},
            ) from e

        logger.debug("Loaded credentials for %s", email)
        return record

    def delete(self, email: str) -> bool:
        """Delete the credential record for an account.

        Args:
            email: Account email address.

        Returns:
            True if a record was deleted, False if none existed.

        Raises:
            TokenError: If the file exists but cannot be removed.
        """
        path = self.path_for(email)

        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("No credentials to delete for %s", email)
            return False
        except OSError as e:
            logger.error("Failed to delete credentials for %s: %s", email, e)
            raise TokenError(
                f"deleting credentials for {email}: {e}",
                details={"path": str(path), "error_type": type(e).__name__},
            ) from e

        logger.info("Deleted credentials for %s", email)
        return True

    def exists(self, email: str) -> bool:
        """Check if a credential record exists for an account."""
        return self.path_for(email).is_file()

    def list_identities(self) -> list[str]:
        """List all authenticated accounts.

        Returns:
            Sorted account emails derived from the credential filenames.
            Empty if the credentials directory does not exist yet.
        """
        if not self._base_dir.is_dir():
            return []

        return sorted(
            name
            for name in (
                path.name[: -len(CREDENTIAL_SUFFIX)]
                for path in self._base_dir.iterdir()
                if path.is_file() and path.name.endswith(CREDENTIAL_SUFFIX)
            )
            if _is_valid_identity(name)
        )

    def default_identity(self) -> str | None:
        """Get the first authenticated account, or None if there are none."""
        identities = self.list_identities()
        return identities[0] if identities else None


__all__ = [
    "CredentialStore",
    "CREDENTIAL_FILE_MODE",
]
