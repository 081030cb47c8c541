"""
Tests for DefaultAuthRepository over the local identity and document backend.
"""

import asyncio
from contextlib import aclosing

import pytest

from conftest import BrokenDocumentStore, make_container, wait_for_state
from safetysec.auth import (
    USERS_COLLECTION,
    DefaultAuthRepository,
    Error,
    Success,
    UserRole,
)
from safetysec.auth.local_provider import USER_NOT_FOUND, WRONG_PASSWORD
from safetysec.auth.repository import PROFILE_INVALID, PROFILE_NOT_FOUND


class FailingIdentity:
    """Identity provider whose calls raise an unexpected fault."""

    current_session = None

    async def create_account(self, email, password):
        raise RuntimeError("")

    async def authenticate(self, email, password):
        raise RuntimeError("")

    async def sign_out(self):
        raise RuntimeError("")


class TestRegister:
    """Test registration."""

    @pytest.mark.asyncio
    async def test_register_creates_profile(self, repository, documents, identity):
        """Test that registration signs in and stores the profile document."""
        result = await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")

        assert isinstance(result, Success)
        user = result.data
        assert user.name == "Ann"
        assert user.email == "a@b.com"
        assert user.role == UserRole.MONITOR
        assert user.id == identity.current_session.uid

        stored = await documents.get(USERS_COLLECTION, user.id)
        assert stored["name"] == "Ann"
        assert stored["role"] == "MONITOR"

    @pytest.mark.asyncio
    async def test_unknown_role_creates_nothing(self, repository, database, identity):
        """Test that an unknown role fails before any account exists."""
        result = await repository.register("a@b.com", "Passw0rd!", "Ann", "admin")

        assert result == Error("Invalid role: admin")
        assert database.get_account_by_email("a@b.com") is None
        assert identity.current_session is None

    @pytest.mark.asyncio
    async def test_duplicate_email(self, repository):
        """Test that the provider's message is passed through."""
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")

        result = await repository.register("a@b.com", "Another1!", "Ann Two", "both")

        assert isinstance(result, Error)
        assert "already in use" in result.message

    @pytest.mark.asyncio
    async def test_provider_rules_apply(self, repository):
        """Test that weak passwords are rejected by the provider."""
        result = await repository.register("a@b.com", "123", "Ann", "monitor")

        assert isinstance(result, Error)
        assert "at least 6 characters" in result.message

    @pytest.mark.asyncio
    async def test_profile_write_failure_discards_identity(self, identity, documents, database):
        """Test that a failed profile write removes the new identity."""
        repository = DefaultAuthRepository(identity, BrokenDocumentStore(documents))

        result = await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")

        assert result == Error("Document store unavailable")
        assert identity.current_session is None
        assert database.get_account_by_email("a@b.com") is None

        # Same credentials now fail consistently as unknown credentials
        retry = await repository.login("a@b.com", "Passw0rd!")
        assert retry == Error(USER_NOT_FOUND)

    @pytest.mark.asyncio
    async def test_failed_register_keeps_signed_in_user(self, repository, identity, documents, database):
        """Test that a failed registration leaves the current session in place."""
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        ann = identity.current_session
        broken = DefaultAuthRepository(identity, BrokenDocumentStore(documents))

        result = await broken.register("c@b.com", "Passw0rd!", "Cy", "both")

        assert result == Error("Document store unavailable")
        assert identity.current_session == ann
        assert database.session_exists(identity.jwt.extract_jti(ann.token))
        assert database.get_account_by_email("c@b.com") is None

    @pytest.mark.asyncio
    async def test_fallback_message(self):
        """Test the fallback message when a fault carries none."""
        repository = DefaultAuthRepository(FailingIdentity(), None)

        result = await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")

        assert result == Error("Unknown error occurred")


class TestLogin:
    """Test login."""

    @pytest.mark.asyncio
    async def test_login_loads_profile(self, repository):
        """Test that login returns the stored profile."""
        registered = await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        await repository.logout()

        result = await repository.login("a@b.com", "Passw0rd!")

        assert result == Success(registered.data)

    @pytest.mark.asyncio
    async def test_wrong_password(self, repository, identity):
        """Test that rejected credentials produce the provider message."""
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        await repository.logout()

        result = await repository.login("a@b.com", "wrong")

        assert result == Error(WRONG_PASSWORD)
        assert identity.current_session is None

    @pytest.mark.asyncio
    async def test_missing_profile_is_distinct(self, repository, identity):
        """Test that a missing profile is not reported as bad credentials."""
        await identity.create_user("a@b.com", "Passw0rd!")
        await identity.sign_out()

        result = await repository.login("a@b.com", "Passw0rd!")

        assert result == Error(PROFILE_NOT_FOUND)
        assert result.message != WRONG_PASSWORD
        assert identity.current_session is None

    @pytest.mark.asyncio
    async def test_corrupt_profile(self, repository, identity, documents):
        """Test that an unreadable profile is reported and the session ended."""
        session = await identity.create_user("a@b.com", "Passw0rd!")
        await documents.set(USERS_COLLECTION, session.uid, {"id": session.uid})
        await identity.sign_out()

        result = await repository.login("a@b.com", "Passw0rd!")

        assert result == Error(PROFILE_INVALID)
        assert identity.current_session is None

    @pytest.mark.asyncio
    async def test_missing_profile_keeps_signed_in_user(self, repository, identity, database):
        """Test that a login without a profile does not end the current session."""
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        ann = identity.current_session
        database.create_account("bob@b.com", "Passw0rd!")

        result = await repository.login("bob@b.com", "Passw0rd!")

        assert result == Error(PROFILE_NOT_FOUND)
        assert identity.current_session == ann
        assert database.session_exists(identity.jwt.extract_jti(ann.token))

    @pytest.mark.asyncio
    async def test_wrong_password_keeps_signed_in_user(self, repository, identity):
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        ann = identity.current_session

        result = await repository.login("a@b.com", "wrong")

        assert result == Error(WRONG_PASSWORD)
        assert identity.current_session == ann

    @pytest.mark.asyncio
    async def test_login_replaces_session_only_on_success(self, repository, identity, database):
        """Test that a successful login ends the session it replaces."""
        ann = (await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")).data
        await repository.register("bob@b.com", "Passw0rd!", "Bob", "protected")
        bob = identity.current_session

        result = await repository.login("a@b.com", "Passw0rd!")

        assert result == Success(ann)
        assert identity.current_session.uid == ann.id
        assert not database.session_exists(identity.jwt.extract_jti(bob.token))

    @pytest.mark.asyncio
    async def test_fallback_message(self):
        repository = DefaultAuthRepository(FailingIdentity(), None)

        assert await repository.login("a@b.com", "x") == Error("Login failed")


class TestLogout:
    """Test logout."""

    @pytest.mark.asyncio
    async def test_logout_ends_session(self, repository, identity):
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")

        result = await repository.logout()

        assert result == Success(None)
        assert identity.current_session is None

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, repository):
        """Test that logout without a session still succeeds."""
        assert await repository.logout() == Success(None)
        assert await repository.logout() == Success(None)

    @pytest.mark.asyncio
    async def test_fallback_message(self):
        repository = DefaultAuthRepository(FailingIdentity(), None)

        assert await repository.logout() == Error("Logout failed")


class TestStreams:
    """Test the current-user, authenticated and role streams."""

    @pytest.mark.asyncio
    async def test_current_user_follows_session(self, repository):
        """Test that the stream re-emits on every session change."""
        async with aclosing(repository.get_current_user()) as users:
            assert await anext(users) is None

            registered = await repository.register("a@b.com", "Passw0rd!", "Ann", "both")
            assert await anext(users) == registered.data

            await repository.logout()
            assert await anext(users) is None

    @pytest.mark.asyncio
    async def test_fresh_subscription_starts_at_current_value(self, repository):
        """Test that a new subscriber gets the present user, not history."""
        registered = await repository.register("a@b.com", "Passw0rd!", "Ann", "both")

        async with aclosing(repository.get_current_user()) as users:
            assert await anext(users) == registered.data

    @pytest.mark.asyncio
    async def test_authenticated_and_role(self, repository):
        """Test the companion streams."""
        await repository.register("a@b.com", "Passw0rd!", "Ann", "protected")

        async with aclosing(repository.is_user_authenticated()) as flags:
            assert await anext(flags) is True
        async with aclosing(repository.get_user_role()) as roles:
            assert await anext(roles) == "PROTECTED"

    @pytest.mark.asyncio
    async def test_authenticated_without_profile(self, repository, identity):
        """Test that session presence does not depend on the profile."""
        await identity.create_user("a@b.com", "Passw0rd!")

        async with aclosing(repository.is_user_authenticated()) as flags:
            assert await anext(flags) is True
        async with aclosing(repository.get_current_user()) as users:
            assert await anext(users) is None

    @pytest.mark.asyncio
    async def test_stream_close_unsubscribes(self, repository, identity):
        """Test that closing a stream detaches it from the provider."""
        users = repository.get_current_user()
        await anext(users)
        assert identity._session.subscriber_count == 1

        await users.aclose()

        assert identity._session.subscriber_count == 0


class TestScenarios:
    """End-to-end scenarios through the state container."""

    @pytest.mark.asyncio
    async def test_register_then_bad_login(self, repository):
        """Test registration, logout and a rejected login."""
        container = make_container(repository)

        await container.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        state = container.state.value
        assert state.is_authenticated is True
        assert state.user.name == "Ann"
        assert state.user.role == UserRole.MONITOR
        assert state.registration_success is True
        assert state.error is None

        await container.logout()
        await container.login("a@b.com", "wrong")
        state = await wait_for_state(
            container.state,
            lambda s: s.error is not None and not s.is_authenticated,
        )
        assert state.is_authenticated is False
        assert state.error is not None
        assert state.is_loading is False
        await container.close()

    @pytest.mark.asyncio
    async def test_revoked_session_reaches_ui(self, repository, identity):
        """Test that a session revoked elsewhere signs the UI out."""
        container = make_container(repository)
        await container.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        uid = identity.current_session.uid

        await identity.revoke_sessions(uid)
        await identity.verify_session()

        state = await wait_for_state(container.state, lambda s: not s.is_authenticated)
        assert state.user is None
        await container.close()

    @pytest.mark.asyncio
    async def test_login_without_profile_keeps_ui_signed_in(self, repository, database):
        """Test that the UI stays on the signed-in user after a failed login."""
        container = make_container(repository)
        await container.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        database.create_account("bob@b.com", "Passw0rd!")

        await container.login("bob@b.com", "Passw0rd!")
        await asyncio.sleep(0.05)

        state = container.state.value
        assert state.error == PROFILE_NOT_FOUND
        assert state.is_authenticated is True
        assert state.user.name == "Ann"
        await container.close()

    @pytest.mark.asyncio
    async def test_failed_register_keeps_ui_signed_in(self, repository, identity, documents):
        """Test that the UI stays on the signed-in user after a failed registration."""
        await repository.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        container = make_container(DefaultAuthRepository(identity, BrokenDocumentStore(documents)))
        await wait_for_state(container.state, lambda s: s.is_authenticated)

        await container.register("c@b.com", "Passw0rd!", "Cy", "both")
        await asyncio.sleep(0.05)

        state = container.state.value
        assert state.error == "Document store unavailable"
        assert state.is_authenticated is True
        assert state.user.name == "Ann"
        assert state.registration_success is False
        await container.close()

    @pytest.mark.asyncio
    async def test_failed_profile_write_surfaces_error(self, identity, documents):
        """Test that a partial registration ends in an error state."""
        repository = DefaultAuthRepository(identity, BrokenDocumentStore(documents))
        container = make_container(repository)

        await container.register("a@b.com", "Passw0rd!", "Ann", "monitor")
        await asyncio.sleep(0.05)

        state = container.state.value
        assert state.error == "Document store unavailable"
        assert state.is_authenticated is False
        assert state.registration_success is False

        await container.login("a@b.com", "Passw0rd!")
        assert container.state.value.error == USER_NOT_FOUND
        await container.close()

