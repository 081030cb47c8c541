"""
Authentication use cases.

One callable per auth action. Each forwards to the AuthRepository and
returns its result unchanged, so the state container can be tested against
mocked use cases instead of a real repository.
"""

from typing import AsyncIterator, Optional

from .models import User
from .repository import AuthRepository
from .results import AuthResult


class LoginUseCase:
    """Sign in with email and password."""

    def __init__(self, repository: AuthRepository):
        self.repository = repository

    async def __call__(self, email: str, password: str) -> AuthResult[User]:
        return await self.repository.login(email, password)


class RegisterUseCase:
    """Create an account with a profile and a role."""

    def __init__(self, repository: AuthRepository):
        self.repository = repository

    async def __call__(
        self,
        email: str,
        password: str,
        name: str,
        role: str
    ) -> AuthResult[User]:
        return await self.repository.register(email, password, name, role)


class LogoutUseCase:
    """Sign the current user out."""

    def __init__(self, repository: AuthRepository):
        self.repository = repository

    async def __call__(self) -> AuthResult[None]:
        return await self.repository.logout()


class GetCurrentUserUseCase:
    """Stream of the signed-in user's profile (None when signed out)."""

    def __init__(self, repository: AuthRepository):
        self.repository = repository

    def __call__(self) -> AsyncIterator[Optional[User]]:
        return self.repository.get_current_user()
