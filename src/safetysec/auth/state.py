"""
Authentication state container.

AuthStateContainer owns the single AuthState a UI observes. Action methods
schedule work on the container's event loop and return immediately; their
outcome is only visible through the published state.
"""

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import Callable, Coroutine, Optional, Set

from loguru import logger

from .models import User
from .observable import MutableState, ObservableState
from .results import AuthResult, Error, Success
from .usecases import GetCurrentUserUseCase, LoginUseCase, LogoutUseCase, RegisterUseCase


@dataclass(frozen=True)
class AuthState:
    """
    Authentication state observed by the UI.

    Attributes:
        is_loading: An action is in flight
        user: Signed-in user's profile
        error: Message of the last failed action, until cleared
        is_authenticated: True iff user is set
        registration_success: Last successful action was a registration
    """
    is_loading: bool = False
    user: Optional[User] = None
    error: Optional[str] = None
    is_authenticated: bool = False
    registration_success: bool = False


class AuthStateContainer:
    """
    State machine behind the login, registration and logout screens.

    Must be created inside a running event loop; every mutation happens on
    that loop, one at a time. On construction the container subscribes to
    the current-user stream so that sessions ending elsewhere show up
    without an explicit action. Call close() when the owning screen or
    session ends.
    """

    def __init__(
        self,
        login_use_case: LoginUseCase,
        register_use_case: RegisterUseCase,
        logout_use_case: LogoutUseCase,
        get_current_user_use_case: GetCurrentUserUseCase,
    ):
        """
        Initialize container.

        Args:
            login_use_case: Sign-in action
            register_use_case: Registration action
            logout_use_case: Sign-out action
            get_current_user_use_case: Current-user stream to mirror
        """
        self._login_use_case = login_use_case
        self._register_use_case = register_use_case
        self._logout_use_case = logout_use_case
        self._get_current_user_use_case = get_current_user_use_case

        self._loop = asyncio.get_running_loop()
        self._state: MutableState[AuthState] = MutableState(AuthState())
        self._view = ObservableState(self._state)
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        self._current_user_task = self._loop.create_task(
            self._observe_current_user(), name="auth-current-user"
        )
        self._current_user_task.add_done_callback(self._task_done)

    @property
    def state(self) -> ObservableState[AuthState]:
        """Read-only published AuthState."""
        return self._view

    @property
    def closed(self) -> bool:
        return self._closed

    # ========================================================================
    # Actions
    # ========================================================================

    def login(self, email: str, password: str) -> Optional[asyncio.Task]:
        """
        Sign in.

        Returns:
            Scheduled task (None if the container is closed); the outcome is
            published through state
        """
        return self._launch(self._login(email, password), "login")

    def register(
        self,
        email: str,
        password: str,
        name: str,
        role: str
    ) -> Optional[asyncio.Task]:
        """
        Create an account.

        Returns:
            Scheduled task (None if the container is closed)
        """
        return self._launch(self._register(email, password, name, role), "register")

    def logout(self) -> Optional[asyncio.Task]:
        """
        Sign out. A successful logout resets the state to its initial value.

        Returns:
            Scheduled task (None if the container is closed)
        """
        return self._launch(self._logout(), "logout")

    def clear_error(self) -> None:
        """Clear the error message; nothing else changes."""
        self._state.update(lambda state: replace(state, error=None))

    async def join(self) -> None:
        """Wait until every in-flight action has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """
        Tear down the container.

        Cancels in-flight actions without rollback and ends the current-user
        subscription. Later actions are ignored.
        """
        if self._closed:
            return
        self._closed = True

        tasks = [*self._tasks, self._current_user_task]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Auth state container closed")

    # ========================================================================
    # Transitions
    # ========================================================================

    async def _login(self, email: str, password: str) -> None:
        self._state.update(lambda state: replace(state, is_loading=True, error=None))

        result = await self._login_use_case(email, password)

        self._resolve(result, lambda state, user: replace(
            state,
            is_loading=False,
            user=user,
            is_authenticated=True,
        ))

    async def _register(self, email: str, password: str, name: str, role: str) -> None:
        self._state.update(lambda state: replace(state, is_loading=True, error=None))

        result = await self._register_use_case(email, password, name, role)

        self._resolve(result, lambda state, user: replace(
            state,
            is_loading=False,
            user=user,
            is_authenticated=True,
            registration_success=True,
        ))

    async def _logout(self) -> None:
        self._state.update(lambda state: replace(state, is_loading=True))

        result = await self._logout_use_case()

        self._resolve(result, lambda state, _: AuthState())

    def _resolve(
        self,
        result: AuthResult,
        on_success: Callable[[AuthState, object], AuthState]
    ) -> None:
        """Publish the state an action result leads to."""
        if isinstance(result, Success):
            self._state.update(lambda state: on_success(state, result.data))
        elif isinstance(result, Error):
            self._state.update(lambda state: replace(
                state,
                is_loading=False,
                error=result.message,
            ))
        else:
            self._state.update(lambda state: replace(state, is_loading=True))

    async def _observe_current_user(self) -> None:
        async with aclosing(self._get_current_user_use_case()) as users:
            async for user in users:
                self._state.update(lambda state: replace(
                    state,
                    user=user,
                    is_authenticated=user is not None,
                ))

    # ========================================================================
    # Task bookkeeping
    # ========================================================================

    def _launch(self, coro: Coroutine, name: str) -> Optional[asyncio.Task]:
        if self._closed:
            logger.warning(f"Ignoring {name}: auth state container is closed")
            coro.close()
            return None

        task = self._loop.create_task(coro, name=f"auth-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Auth task {task.get_name()} failed")
