"""Command-line interface for octosession."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

from pathlib import Path
from typing import TYPE_CHECKING

from .config import APP_NAME, _find_config_files, _user_config_dir


if TYPE_CHECKING:
    from .app import AuthApp
    from .config import OctoSessionSettings


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="octosession",
        description="GitHub OAuth login and session management",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    login_parser = subparsers.add_parser("login", help="Sign in with GitHub in the browser")
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the authorization URL instead of opening a browser",
    )
    subparsers.add_parser("logout", help="Remove the stored session")
    status_parser = subparsers.add_parser("status", help="Show login state")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the status as JSON",
    )
    subparsers.add_parser("refresh", help="Refresh the stored user profile")

    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )

    args = parser.parse_args(argv)

    from .config import get_settings
    from .log import configure_from_settings, enable_debug

    settings = get_settings()
    configure_from_settings(settings.log.level, settings.log.format)
    if args.debug:
        enable_debug()

    if args.command == "config":
        return handle_config(args, settings)
    if args.command in ("login", "logout", "status", "refresh"):
        return asyncio.run(handle_session_command(args, settings))
    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace, settings: OctoSessionSettings) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.
    settings : OctoSessionSettings
        Effective settings.

    Returns
    -------
    int
        Exit code.
    """
    if args.sources:
        return show_config_sources()
    if args.env:
        print(settings.to_env())
        return 0
    print(settings.show())
    return 0


def show_config_sources() -> int:
    """Show configuration file sources and their status.

    Returns
    -------
    int
        Exit code.
    """
    active = {path.resolve() for path in _find_config_files()}
    sources = [
        ("pyproject.toml [tool.octosession]", Path("pyproject.toml")),
        (f"./{APP_NAME}.toml", Path(f"{APP_NAME}.toml")),
        ("User config", _user_config_dir() / "config.toml"),
    ]
    env_file = os.environ.get("OCTOSESSION_CONFIG_FILE")
    if env_file:
        sources.append(("OCTOSESSION_CONFIG_FILE", Path(env_file)))

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<40} {'Status':<15} {'Path'}")
    print("-" * 80)
    print(f"{'Built-in defaults':<40} {'✓ Active':<15}")
    for name, path in sources:
        status = "✓ Found" if path.resolve() in active else "✗ Not found"
        print(f"{name:<40} {status:<15} {path}")

    env_vars = sorted(k for k in os.environ if k.startswith("OCTOSESSION_"))
    if env_vars:
        shown = ", ".join(env_vars[:3]) + ("..." if len(env_vars) > 3 else "")
        print(f"{'Environment variables':<40} {f'✓ {len(env_vars)} vars':<15} {shown}")
    else:
        print(f"{'Environment variables':<40} {'✗ No vars':<15}")
    return 0


def _print_url(url: str) -> bool:
    print(f"Open this URL to sign in:\n  {url}")
    return True


async def handle_session_command(args: argparse.Namespace, settings: OctoSessionSettings) -> int:
    """Run ``login``, ``logout``, ``status`` or ``refresh`` against a fresh ``AuthApp``.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.
    settings : OctoSessionSettings
        Effective settings.

    Returns
    -------
    int
        Exit code.
    """
    from .app import AuthApp

    opener = _print_url if getattr(args, "no_browser", False) else None
    app = AuthApp(settings=settings, opener=opener)
    try:
        if not await app.initialize_oauth():
            print(f"Error: {app.setup_error}", file=sys.stderr)
            return 1
        return await _dispatch(args, app)
    finally:
        await app.destroy()


async def _dispatch(args: argparse.Namespace, app: AuthApp) -> int:
    if args.command == "login":
        print("Waiting for GitHub authorization in the browser...")
        result = await app.login()
        if not result.success or result.user is None:
            print(f"Login failed: {result.error}", file=sys.stderr)
            return 1
        email = result.user.best_email
        print(f"Logged in as {result.user.display_name} (@{result.user.login})")
        if email:
            print(f"Email: {email}")
        return 0

    if args.command == "logout":
        outcome = await app.logout()
        if not outcome.success:
            print(f"Logout failed: {outcome.error}", file=sys.stderr)
            return 1
        print("Logged out")
        return 0

    if args.command == "refresh":
        refreshed = await app.manual_refresh()
        if not refreshed.success or refreshed.user is None:
            print(f"Refresh failed: {refreshed.error}", file=sys.stderr)
            return 1
        print(f"Refreshed profile for @{refreshed.user.login}")
        return 0

    status = app.get_status()
    snapshot = app.get_session_status()
    if args.json:
        print(json.dumps({**status.to_dict(), "session": snapshot.to_dict()}, indent=2))
        return 0
    if status.is_logged_in and status.user is not None:
        print(f"Logged in as {status.user.display_name} (@{status.user.login})")
        if snapshot.time_since_last_validation is not None:
            print(f"Last validated {snapshot.time_since_last_validation:.0f}s ago")
    else:
        print("Not logged in")
    return 0
