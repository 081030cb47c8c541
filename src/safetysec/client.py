#!/usr/bin/env python3
"""
SafetySec terminal client.

Drives the auth state container against the local backend.

Usage:
    safetysec register --email ann@example.com --name Ann --role monitor
    safetysec login --email ann@example.com
    safetysec whoami
    safetysec logout
    safetysec theme dark
"""

import argparse
import asyncio
import getpass
import sys
from contextlib import aclosing
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from .auth import (
    AuthState,
    AuthStateContainer,
    DefaultAuthRepository,
    GetCurrentUserUseCase,
    JWTHandler,
    LocalDocumentStore,
    LocalIdentityProvider,
    LoginUseCase,
    LogoutUseCase,
    RegisterUseCase,
    TokenStore,
    User,
    UserDatabase,
    load_or_create_secret,
)
from .config import Settings, get_settings
from .preferences import ThemeMode, ThemePreferences


@dataclass
class Backend:
    """Local services wired together."""
    identity: LocalIdentityProvider
    repository: DefaultAuthRepository


def setup_logging(level: str) -> None:
    """Send loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> {message}")


def build_backend(settings: Settings) -> Backend:
    """
    Create the local identity provider and auth repository.

    Args:
        settings: Application settings

    Returns:
        Backend with provider and repository
    """
    database = UserDatabase(settings.database_path)
    database.cleanup_expired_sessions()
    secret = settings.jwt_secret or load_or_create_secret(settings.secret_file)
    identity = LocalIdentityProvider(
        database,
        JWTHandler(secret, ttl_minutes=settings.session_ttl_minutes),
        TokenStore(settings.token_file),
    )
    repository = DefaultAuthRepository(identity, LocalDocumentStore(database))
    return Backend(identity=identity, repository=repository)


def create_container(repository: DefaultAuthRepository) -> AuthStateContainer:
    """Auth state container over a repository (call inside the event loop)."""
    return AuthStateContainer(
        LoginUseCase(repository),
        RegisterUseCase(repository),
        LogoutUseCase(repository),
        GetCurrentUserUseCase(repository),
    )


def format_user(user: User) -> str:
    return (
        f"{user.name} <{user.email}> [{user.initials}]\n"
        f"  id:    {user.id}\n"
        f"  role:  {user.role.display_name}\n"
        f"  since: {user.created_at:%Y-%m-%d %H:%M} UTC"
    )


def format_state(state: AuthState) -> str:
    if state.error:
        return f"Error: {state.error}"
    if state.user is None:
        return "Not signed in"
    prefix = "Registered" if state.registration_success else "Signed in as"
    return f"{prefix} {format_user(state.user)}"


async def run_action(settings: Settings, args: argparse.Namespace) -> int:
    """
    Run one auth action through the state container.

    Returns:
        Exit status (1 if the action ended in an error)
    """
    backend = build_backend(settings)
    container = create_container(backend.repository)
    try:
        if args.command == "register":
            container.register(args.email, args.password, args.name, args.role)
        elif args.command == "login":
            container.login(args.email, args.password)
        elif args.command == "logout":
            container.logout()
        await container.join()
        state = container.state.value
    finally:
        await container.close()

    print(format_state(state))
    if state.error:
        return 1

    if args.command == "logout":
        logger.success("Signed out")
    else:
        logger.success(f"{args.command.capitalize()} complete")
    return 0


async def run_whoami(settings: Settings) -> int:
    backend = build_backend(settings)
    await backend.identity.verify_session()
    async with aclosing(backend.repository.get_current_user()) as users:
        user = await anext(users)

    if user is None:
        print("Not signed in")
        return 1
    print(format_user(user))
    return 0


def run_theme(settings: Settings, mode: Optional[str]) -> int:
    preferences = ThemePreferences(settings.preferences_file)
    if mode is not None:
        preferences.set_theme_mode(ThemeMode(mode.upper()))
    print(f"Theme: {preferences.get_theme_mode().value.lower()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SafetySec terminal client")
    parser.add_argument("--log-level", help="Override SAFETYSEC_LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    register = commands.add_parser("register", help="Create an account")
    register.add_argument("--email", required=True)
    register.add_argument("--name", required=True)
    register.add_argument(
        "--role",
        required=True,
        help="monitor, protected or both"
    )
    register.add_argument("--password", help="Prompted when omitted")

    login = commands.add_parser("login", help="Sign in")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="Prompted when omitted")

    commands.add_parser("logout", help="Sign out")
    commands.add_parser("whoami", help="Show the signed-in user")

    theme = commands.add_parser("theme", help="Show or set the theme")
    theme.add_argument(
        "mode",
        nargs="?",
        choices=[mode.value.lower() for mode in ThemeMode],
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    if args.command == "theme":
        return run_theme(settings, args.mode)
    if args.command == "whoami":
        return asyncio.run(run_whoami(settings))

    if args.command in ("register", "login") and not args.password:
        args.password = getpass.getpass("Password: ")

    try:
        return asyncio.run(run_action(settings, args))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
