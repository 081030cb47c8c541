"""
Authentication repository.

AuthRepository is the boundary between the auth core and the identity and
document services. Every service fault is converted into an Error result
here; nothing raises past this module.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import AsyncIterator, Optional

from loguru import logger
from pydantic import ValidationError

from .models import USERS_COLLECTION, RoleParseError, User, UserRole, parse_role
from .results import AuthResult, Error, Success
from .services import DocumentStore, IdentityProvider, IdentitySession

REGISTER_FAILED = "Unknown error occurred"
LOGIN_FAILED = "Login failed"
LOGOUT_FAILED = "Logout failed"
PROFILE_NOT_FOUND = "User profile not found"
PROFILE_INVALID = "User profile is invalid"


def _message(error: Exception, fallback: str) -> str:
    """Human-readable message of a service fault, or the fallback."""
    return getattr(error, "message", None) or str(error) or fallback


class AuthRepository(ABC):
    """
    Authentication operations over the identity and document services.
    """

    @abstractmethod
    async def register(
        self,
        email: str,
        password: str,
        name: str,
        role: str
    ) -> AuthResult[User]:
        """
        Create an account, sign it in and store its profile document.

        Args:
            email: Account email
            password: Plain text password
            name: Display name
            role: Role string, parsed strictly (see parse_role)

        Returns:
            Success(User) or Error(message)
        """

    @abstractmethod
    async def login(self, email: str, password: str) -> AuthResult[User]:
        """
        Sign in and load the profile document.

        Returns:
            Success(User) or Error(message); a missing profile and rejected
            credentials produce different messages
        """

    @abstractmethod
    async def logout(self) -> AuthResult[None]:
        """Sign out. Succeeds when no session exists."""

    @abstractmethod
    def get_current_user(self) -> AsyncIterator[Optional[User]]:
        """Current user's profile (or None), re-emitted on every session change."""

    @abstractmethod
    def is_user_authenticated(self) -> AsyncIterator[bool]:
        """Whether a session exists, re-emitted on every session change."""

    @abstractmethod
    def get_user_role(self) -> AsyncIterator[Optional[str]]:
        """Role name of the current user, or None."""


class DefaultAuthRepository(AuthRepository):
    """
    AuthRepository backed by an IdentityProvider and a DocumentStore.

    Profiles live in the "users" collection, keyed by the session uid.
    Register and login work on a pending session and only activate it once
    the profile is stored or loaded, so a failed attempt leaves whoever is
    signed in signed in. Both hold a lock meanwhile, which current-user reads
    also take.
    """

    def __init__(self, identity: IdentityProvider, documents: DocumentStore):
        """
        Initialize repository.

        Args:
            identity: Identity provider issuing sessions
            documents: Document store holding user profiles
        """
        self.identity = identity
        self.documents = documents
        self._profile_lock = asyncio.Lock()

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        role: str
    ) -> AuthResult[User]:
        try:
            user_role = parse_role(role)
        except RoleParseError as e:
            logger.warning(f"Registration rejected for '{email}': {e}")
            return Error(str(e))

        async with self._profile_lock:
            return await self._create_account(email, password, name, user_role)

    async def _create_account(
        self,
        email: str,
        password: str,
        name: str,
        user_role: UserRole
    ) -> AuthResult[User]:
        try:
            session = await self.identity.create_account(email, password)
        except Exception as e:
            logger.warning(f"Registration failed for '{email}': {e}")
            return Error(_message(e, REGISTER_FAILED))

        try:
            user = User(
                id=session.uid,
                name=name,
                email=email,
                role=user_role,
                is_email_verified=session.email_verified,
            )
            await self.documents.set(USERS_COLLECTION, user.id, user.to_document())
        except Exception as e:
            logger.error(f"Failed to store profile for {session.uid}: {e}")
            await self._discard(session, delete_account=True)
            return Error(_message(e, REGISTER_FAILED))

        error = await self._activate(session, REGISTER_FAILED)
        if error is not None:
            return error

        logger.info(f"User registered: {email} ({user.id}) as {user_role.value}")
        return Success(user)

    async def login(self, email: str, password: str) -> AuthResult[User]:
        async with self._profile_lock:
            return await self._sign_in(email, password)

    async def _sign_in(self, email: str, password: str) -> AuthResult[User]:
        try:
            session = await self.identity.authenticate(email, password)
        except Exception as e:
            logger.warning(f"Login failed for '{email}': {e}")
            return Error(_message(e, LOGIN_FAILED))

        try:
            data = await self.documents.get(USERS_COLLECTION, session.uid)
            user = User.from_document(data) if data is not None else None
        except ValidationError as e:
            logger.error(f"Stored profile for {session.uid} is invalid: {e}")
            await self._discard(session)
            return Error(PROFILE_INVALID)
        except Exception as e:
            logger.error(f"Failed to load profile for {session.uid}: {e}")
            await self._discard(session)
            return Error(_message(e, LOGIN_FAILED))

        if user is None:
            logger.warning(f"Login for '{email}' has no profile document ({session.uid})")
            await self._discard(session)
            return Error(PROFILE_NOT_FOUND)

        error = await self._activate(session, LOGIN_FAILED)
        if error is not None:
            return error

        logger.info(f"User logged in: {email}")
        return Success(user)

    async def logout(self) -> AuthResult[None]:
        try:
            await self.identity.sign_out()
        except Exception as e:
            logger.error(f"Logout failed: {e}")
            return Error(_message(e, LOGOUT_FAILED))

        logger.info("User logged out")
        return Success(None)

    async def get_current_user(self) -> AsyncIterator[Optional[User]]:
        async with self.identity.session_changes() as sessions:
            async for session in sessions:
                yield await self._load_user(session)

    async def is_user_authenticated(self) -> AsyncIterator[bool]:
        async with self.identity.session_changes() as sessions:
            async for session in sessions:
                yield session is not None

    async def get_user_role(self) -> AsyncIterator[Optional[str]]:
        async with aclosing(self.get_current_user()) as users:
            async for user in users:
                yield user.role.value if user is not None else None

    async def _load_user(self, session: Optional[IdentitySession]) -> Optional[User]:
        """Profile of the session's user; None when signed out or unreadable."""
        if session is None:
            return None
        try:
            async with self._profile_lock:
                data = await self.documents.get(USERS_COLLECTION, session.uid)
            return User.from_document(data) if data is not None else None
        except Exception as e:
            logger.error(f"Failed to load current user {session.uid}: {e}")
            return None

    async def _activate(self, session: IdentitySession, fallback: str) -> Optional[Error]:
        """Make a pending session current; an Error if that fails."""
        try:
            await self.identity.activate_session(session)
        except Exception as e:
            logger.error(f"Failed to start session for {session.uid}: {e}")
            await self._discard(session)
            return Error(_message(e, fallback))
        return None

    async def _discard(self, session: IdentitySession, delete_account: bool = False) -> None:
        """Drop a pending session; the current session stays as it was."""
        try:
            await self.identity.discard_session(session, delete_account=delete_account)
        except Exception as e:
            logger.error(f"Failed to discard pending session for {session.uid}: {e}")
