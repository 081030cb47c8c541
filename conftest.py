"""
Shared fixtures for the auth tests.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

import pytest

from safetysec.auth import (
    AuthRepository,
    AuthResult,
    AuthState,
    AuthStateContainer,
    DefaultAuthRepository,
    DocumentStoreError,
    GetCurrentUserUseCase,
    JWTHandler,
    LocalDocumentStore,
    LocalIdentityProvider,
    LoginUseCase,
    LogoutUseCase,
    MutableState,
    ObservableState,
    RegisterUseCase,
    Success,
    TokenStore,
    User,
    UserDatabase,
    UserRole,
)

TEST_SECRET = "test-secret-" + "0123456789abcdef" * 4


def make_user(**overrides) -> User:
    fields = dict(
        id="uid-ann",
        name="Ann Lee",
        email="a@b.com",
        role=UserRole.MONITOR,
    )
    fields.update(overrides)
    return User(**fields)


class FakeAuthRepository(AuthRepository):
    """In-memory repository with scripted results and a controllable user stream."""

    def __init__(self):
        self.register_result: AuthResult = Success(make_user())
        self.login_result: AuthResult = Success(make_user())
        self.logout_result: AuthResult = Success(None)
        self.current_user: MutableState[Optional[User]] = MutableState(None)
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[tuple] = []

    async def _wait_gate(self):
        if self.gate is not None:
            await self.gate.wait()

    async def register(self, email, password, name, role):
        self.calls.append(("register", email, password, name, role))
        await self._wait_gate()
        return self.register_result

    async def login(self, email, password):
        self.calls.append(("login", email, password))
        await self._wait_gate()
        return self.login_result

    async def logout(self):
        self.calls.append(("logout",))
        return self.logout_result

    async def get_current_user(self):
        async with self.current_user.watch() as users:
            async for user in users:
                yield user

    async def is_user_authenticated(self):
        async for user in self.get_current_user():
            yield user is not None

    async def get_user_role(self):
        async for user in self.get_current_user():
            yield user.role.value if user else None


def make_container(repository: AuthRepository) -> AuthStateContainer:
    return AuthStateContainer(
        LoginUseCase(repository),
        RegisterUseCase(repository),
        LogoutUseCase(repository),
        GetCurrentUserUseCase(repository),
    )


async def settle(rounds: int = 5):
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for_state(state: ObservableState, predicate, timeout: float = 5.0) -> AuthState:
    """Wait until the published state satisfies predicate."""
    async def _wait():
        async with state.watch() as values:
            async for value in values:
                if predicate(value):
                    return value

    return await asyncio.wait_for(_wait(), timeout)


@pytest.fixture
def fake_repository() -> FakeAuthRepository:
    return FakeAuthRepository()


@pytest.fixture
def database(tmp_path: Path) -> UserDatabase:
    return UserDatabase(tmp_path / "safetysec.db")


@pytest.fixture
def jwt_handler() -> JWTHandler:
    return JWTHandler(TEST_SECRET, ttl_minutes=60)


@pytest.fixture
def token_store(tmp_path: Path) -> TokenStore:
    return TokenStore(tmp_path / "session.json")


@pytest.fixture
def identity(database, jwt_handler, token_store) -> LocalIdentityProvider:
    return LocalIdentityProvider(database, jwt_handler, token_store)


@pytest.fixture
def documents(database) -> LocalDocumentStore:
    return LocalDocumentStore(database)


@pytest.fixture
def repository(identity, documents) -> DefaultAuthRepository:
    return DefaultAuthRepository(identity, documents)


class BrokenDocumentStore:
    """Document store whose writes always fail."""

    def __init__(self, inner: LocalDocumentStore):
        self.inner = inner

    async def get(self, collection, doc_id):
        return await self.inner.get(collection, doc_id)

    async def set(self, collection, doc_id, data):
        raise DocumentStoreError("Document store unavailable")
