"""
Local identity provider and document store.

Implements the identity and document service boundaries on top of
UserDatabase, so the app runs without a hosted backend. Blocking database
and bcrypt work runs in worker threads.
"""

import asyncio
import re
import sqlite3
from typing import Any, Callable, Dict, Optional, TypeVar

from loguru import logger

from .database import Account, UserDatabase
from .jwt_handler import JWTHandler
from .observable import MutableState, Subscription
from .services import DocumentStoreError, IdentityError, IdentitySession
from .token_store import TokenStore

R = TypeVar("R")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6

# Provider messages, shown to the user as-is
EMAIL_INVALID = "The email address is badly formatted."
WEAK_PASSWORD = "The given password is invalid. [ Password should be at least 6 characters ]"
EMAIL_IN_USE = "The email address is already in use by another account."
USER_NOT_FOUND = (
    "There is no user record corresponding to this identifier. "
    "The user may have been deleted."
)
WRONG_PASSWORD = "The password is invalid or the user does not have a password."
NOT_SIGNED_IN = "No user is currently signed in."


class LocalIdentityProvider:
    """
    Identity provider backed by the local user database.

    Sessions are JWTs recorded in the sessions table. A session whose token
    expired or whose row was revoked ends at the next verify_session().
    Pending sessions (from create_account() or authenticate()) have a row
    but are not current until activate_session().
    """

    def __init__(
        self,
        database: UserDatabase,
        jwt_handler: JWTHandler,
        token_store: Optional[TokenStore] = None
    ):
        """
        Initialize provider.

        Args:
            database: Account and session storage
            jwt_handler: Session token signer
            token_store: Where to persist the session for later processes
                (optional; sessions are in-memory only without it)
        """
        self.db = database
        self.jwt = jwt_handler
        self.token_store = token_store
        self._session: MutableState[Optional[IdentitySession]] = MutableState(
            self._restore_session()
        )

    @property
    def current_session(self) -> Optional[IdentitySession]:
        return self._session.value

    def session_changes(self) -> Subscription[Optional[IdentitySession]]:
        return self._session.watch()

    # ========================================================================
    # Identity Operations
    # ========================================================================

    async def create_user(self, email: str, password: str) -> IdentitySession:
        session = await self.create_account(email, password)
        await self.activate_session(session)
        return session

    async def sign_in(self, email: str, password: str) -> IdentitySession:
        session = await self.authenticate(email, password)
        await self.activate_session(session)
        return session

    async def sign_out(self) -> None:
        session = self.current_session
        if session is None:
            return

        await self._revoke(session)
        self._drop_session(session)
        logger.info(f"Signed out: {session.email}")

    async def delete_current_user(self) -> None:
        session = self.current_session
        if session is None:
            raise IdentityError(NOT_SIGNED_IN)

        await self.discard_session(session, delete_account=True)

    # ========================================================================
    # Pending Sessions
    # ========================================================================

    async def create_account(self, email: str, password: str) -> IdentitySession:
        if not EMAIL_PATTERN.match(email or ""):
            raise IdentityError(EMAIL_INVALID)
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise IdentityError(WEAK_PASSWORD)

        try:
            account = await asyncio.to_thread(self.db.create_account, email, password)
        except sqlite3.IntegrityError:
            logger.warning(f"Registration for existing email: {email}")
            raise IdentityError(EMAIL_IN_USE) from None
        except sqlite3.Error as e:
            logger.error(f"Failed to create account for {email}: {e}")
            raise IdentityError(f"Identity database error: {e}") from e

        return await self._issue_session(account)

    async def authenticate(self, email: str, password: str) -> IdentitySession:
        if not EMAIL_PATTERN.match(email or ""):
            raise IdentityError(EMAIL_INVALID)

        account = await self._run(self.db.get_account_by_email, email)
        if account is None:
            logger.warning(f"Sign-in failed: '{email}' not found")
            raise IdentityError(USER_NOT_FOUND)

        if not await asyncio.to_thread(self.db.verify_password, account, password or ""):
            logger.warning(f"Sign-in failed: invalid password for '{email}'")
            raise IdentityError(WRONG_PASSWORD)

        return await self._issue_session(account)

    async def activate_session(self, session: IdentitySession) -> None:
        previous = self.current_session
        if previous == session:
            return
        if previous is not None:
            await self._revoke(previous)

        if self.token_store is not None:
            self.token_store.save(session.token)
        self._session.set(session)
        logger.info(f"Session started for {session.email}")

    async def discard_session(
        self,
        session: IdentitySession,
        delete_account: bool = False
    ) -> None:
        if delete_account:
            await self._run(self.db.delete_account, session.uid)
        else:
            await self._revoke(session)
        self._drop_session(session)

    async def verify_session(self) -> Optional[IdentitySession]:
        """
        Re-check the current session against its token and the session table.

        Ends the session (publishing None) when the token expired or the
        session was revoked.

        Returns:
            The still-valid session, or None
        """
        session = self.current_session
        if session is None:
            return None

        valid = await self._run(self._validate, session.token)
        if valid is None and self.current_session is session:
            logger.warning(f"Session for {session.email} is no longer valid")
            self._drop_session(session)
        return valid

    async def revoke_sessions(self, uid: str) -> int:
        """
        Revoke every session of an account (e.g. from another device).

        Args:
            uid: Account ID

        Returns:
            Number of sessions revoked
        """
        return await self._run(self.db.delete_sessions_for_account, uid)

    # ========================================================================
    # Session Bookkeeping
    # ========================================================================

    async def _issue_session(self, account: Account) -> IdentitySession:
        token, claims = self.jwt.create_session_token(
            account.uid, account.email, account.email_verified
        )
        await self._run(self.db.create_session, claims.jti, claims.uid, claims.exp)

        return IdentitySession(
            uid=account.uid,
            email=account.email,
            token=token,
            email_verified=account.email_verified,
        )

    async def _revoke(self, session: IdentitySession) -> None:
        jti = self.jwt.extract_jti(session.token)
        if jti:
            await self._run(self.db.delete_session, jti)

    def _drop_session(self, session: IdentitySession) -> None:
        if self.current_session != session:
            return
        if self.token_store is not None:
            self.token_store.clear()
        self._session.set(None)

    def _restore_session(self) -> Optional[IdentitySession]:
        if self.token_store is None:
            return None

        token = self.token_store.load()
        if token is None:
            return None

        session = self._validate(token)
        if session is None:
            self.token_store.clear()
        else:
            logger.info(f"Session resumed for {session.email}")
        return session

    def _validate(self, token: str) -> Optional[IdentitySession]:
        claims = self.jwt.verify_token(token)
        if claims is None:
            return None
        if not self.db.session_exists(claims.jti):
            logger.warning(f"Session {claims.jti} was revoked")
            return None

        return IdentitySession(
            uid=claims.uid,
            email=claims.email,
            token=token,
            email_verified=claims.email_verified,
        )

    async def _run(self, func: Callable[..., R], *args: Any) -> R:
        """Run a blocking database call in a worker thread."""
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error(f"Identity database error: {e}")
            raise IdentityError(f"Identity database error: {e}") from e


class LocalDocumentStore:
    """
    Document store backed by the local user database.
    """

    def __init__(self, database: UserDatabase):
        """
        Initialize store.

        Args:
            database: Storage for JSON documents
        """
        self.db = database

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self.db.get_document, collection, doc_id)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Failed to read {collection}/{doc_id}: {e}")
            raise DocumentStoreError(f"Failed to read document: {e}") from e

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self.db.put_document, collection, doc_id, data)
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Failed to write {collection}/{doc_id}: {e}")
            raise DocumentStoreError(f"Failed to write document: {e}") from e
