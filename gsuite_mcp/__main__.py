"""Command line entry point for gsuite-mcp account management."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from gsuite_mcp import __version__
from gsuite_mcp.auth.manager import OAuthManager
from gsuite_mcp.auth.storage import CredentialStore
from gsuite_mcp.config import (
    APP_NAME,
    client_secret_path,
    credentials_dir,
    default_config_dir,
    ensure_config_dir,
)
from gsuite_mcp.utils.errors import GsuiteMCPError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure logging to stderr (STDIO-safe).

    Sends all logs to stderr so they don't interfere with MCP's
    STDIO transport which uses stdout for JSON-RPC messages.

    Respects LOG_LEVEL env var (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = logging.getLevelNamesMapping().get(log_level_str, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # Reduce noise from Google libraries
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)


def cmd_init(args: argparse.Namespace) -> int:
    """Create the config directory and print setup steps."""
    ensure_config_dir()
    print(f"Config directory ready: {default_config_dir()}")
    print("\nSetup steps:")
    print("1. Create OAuth credentials (Desktop app) in Google Cloud Console")
    print(f"2. Download and save as: {client_secret_path()}")
    print(f"3. Run '{APP_NAME} auth' to authenticate your Google account")
    return 0


def cmd_auth(args: argparse.Namespace) -> int:
    """Authenticate any Google account through the browser."""
    manager = OAuthManager.from_client_secret_file(store=CredentialStore())
    email = asyncio.run(manager.authenticate_dynamic())
    print(f"Successfully authenticated: {email}")
    return 0


def cmd_accounts(args: argparse.Namespace) -> int:
    """List authenticated accounts."""
    emails = CredentialStore().list_identities()

    if not emails:
        print("No authenticated accounts found.")
        print(f"\nRun '{APP_NAME} auth' to authenticate a Google account.")
        return 0

    print("Authenticated accounts:\n")
    for email in emails:
        print(f"  {email}")
    print(f"\nRun '{APP_NAME} auth' to add another account.")
    return 0


def cmd_logout(args: argparse.Namespace) -> int:
    """Delete the stored credential for an account."""
    if CredentialStore().delete(args.email):
        print(f"Removed credentials for {args.email}")
        return 0

    print(f"No credentials stored for {args.email}", file=sys.stderr)
    return 1


def cmd_version(args: argparse.Namespace) -> int:
    """Print the program name and version."""
    print(f"{APP_NAME} {__version__}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Google Workspace MCP server with dynamic multi-account support",
        epilog=(
            f"Config dir: {default_config_dir()}\n"
            f"Credentials: {credentials_dir()}\n"
            f"Client secret: {client_secret_path()}"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"{APP_NAME} {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "init", help="Create initial configuration"
    ).set_defaults(handler=cmd_init)
    subparsers.add_parser(
        "auth", help="Authenticate a Google account (opens browser)"
    ).set_defaults(handler=cmd_auth)
    subparsers.add_parser(
        "accounts", help="List authenticated accounts"
    ).set_defaults(handler=cmd_accounts)

    logout = subparsers.add_parser("logout", help="Remove an account's credentials")
    logout.add_argument("email", help="Account email address")
    logout.set_defaults(handler=cmd_logout)

    subparsers.add_parser(
        "version", help="Show version information"
    ).set_defaults(handler=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Loads environment, configures logging, and dispatches the subcommand.
    """
    # Load .env file if present
    load_dotenv()

    configure_logging()

    args = build_parser().parse_args(argv)

    try:
        return int(args.handler(args))
    except GsuiteMCPError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
