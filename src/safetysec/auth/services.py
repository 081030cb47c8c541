"""
Identity and document service boundaries.

Protocols for the identity provider (sessions) and the document store
(user profiles). Only the auth repository talks to these.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .observable import Subscription


class ServiceError(Exception):
    """
    Failure reported by an identity or document service.

    Attributes:
        message: Human-readable description, shown to the user as-is
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class IdentityError(ServiceError):
    """Identity provider rejected or failed a request."""


class DocumentStoreError(ServiceError):
    """Document store failed a read or write."""


@dataclass(frozen=True)
class IdentitySession:
    """
    Signed-in session issued by the identity provider.

    Attributes:
        uid: Provider-assigned user identifier
        email: Email the session was opened with
        token: Opaque session token
        email_verified: Whether the provider verified the email
    """
    uid: str
    email: str
    token: str
    email_verified: bool = False


class IdentityProvider(Protocol):
    """
    Credential-based session creation and destruction.

    create_user() and sign_in() switch the current session at once.
    create_account() and authenticate() issue a pending session instead,
    which is then either activated or discarded.
    """

    @property
    def current_session(self) -> Optional[IdentitySession]:
        """Session currently signed in, or None."""
        ...

    async def create_user(self, email: str, password: str) -> IdentitySession:
        """
        Create an account and sign it in.

        Raises:
            IdentityError: If the provider rejects the credentials
        """
        ...

    async def sign_in(self, email: str, password: str) -> IdentitySession:
        """
        Sign in with existing credentials.

        Raises:
            IdentityError: If the credentials are invalid
        """
        ...

    async def sign_out(self) -> None:
        """End the current session. No-op when signed out."""
        ...

    async def delete_current_user(self) -> None:
        """Delete the signed-in account and end its session."""
        ...

    async def create_account(self, email: str, password: str) -> IdentitySession:
        """
        Create an account and issue a pending session for it.

        The current session is left untouched until activate_session().

        Raises:
            IdentityError: If the provider rejects the credentials
        """
        ...

    async def authenticate(self, email: str, password: str) -> IdentitySession:
        """
        Check credentials and issue a pending session.

        The current session is left untouched until activate_session().

        Raises:
            IdentityError: If the credentials are invalid
        """
        ...

    async def activate_session(self, session: IdentitySession) -> None:
        """Make a pending session current, ending the one it replaces."""
        ...

    async def discard_session(
        self,
        session: IdentitySession,
        delete_account: bool = False
    ) -> None:
        """
        Revoke a pending session, optionally deleting its account too.

        The current session is only affected if it is the one discarded.
        """
        ...

    def session_changes(self) -> Subscription[Optional[IdentitySession]]:
        """Subscription yielding the current session, then every change."""
        ...


class DocumentStore(Protocol):
    """Keyed documents grouped in collections."""

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Read a document.

        Returns:
            Document contents, or None if it does not exist

        Raises:
            DocumentStoreError: If the read fails
        """
        ...

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """
        Write a full document, replacing any existing one.

        Raises:
            DocumentStoreError: If the write fails
        """
        ...
