"""Per-client auth session state machine.

States: ``UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED``, and from
there ``REFRESHING -> AUTHENTICATED`` or ``EXPIRED -> UNAUTHENTICATED``.
``AUTHENTICATING``, ``REFRESHING`` and ``EXPIRED`` are never terminal.

Concurrent sign-in submissions share one provider request, and a refresh
already in flight is awaited rather than repeated.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from callscope.auth.provider import AuthProviderBase
from callscope.exceptions import (
    AuthError,
    AuthUnavailableError,
    SessionExpiredError,
    StaleRefreshTokenError,
)
from callscope.models.domain import AuthSession, User
from callscope.notifications import Notifier
from callscope.storage.client_storage import ClientStorage
from callscope.types import AuthState, NotificationLevel
from callscope.utils.clock import Clock, MonotonicClock

logger = structlog.get_logger(__name__)

SESSION_KEY = "auth.session"
LAST_PATH_KEY = "last_path"

UserLoader = Callable[[AuthSession], Awaitable[User]]
StateListener = Callable[[AuthState], None]


def is_auth_artifact(key: str) -> bool:
    return key.startswith("auth.") or "sb-" in key


def clear_auth_artifacts(storage: ClientStorage) -> list[str]:
    """Remove cached tokens and the saved path from client storage."""
    removed = storage.remove_matching(is_auth_artifact)
    if LAST_PATH_KEY in storage:
        storage.remove(LAST_PATH_KEY)
        removed.append(LAST_PATH_KEY)
    if removed:
        logger.debug("auth_artifacts_cleared", keys=removed)
    return removed


class ExpiryLatch:
    """Lets exactly one observer report a given expiry event."""

    def __init__(self) -> None:
        self._armed = False

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self) -> None:
        self._armed = True

    def disarm(self) -> None:
        self._armed = False

    def fire(self) -> bool:
        """Return True for the first caller after ``arm``; False afterwards."""
        if not self._armed:
            return False
        self._armed = False
        return True


class SessionStore:
    def __init__(
        self,
        provider: AuthProviderBase,
        load_user: UserLoader,
        storage: ClientStorage,
        notifier: Notifier,
        clock: Clock | None = None,
    ) -> None:
        self._provider = provider
        self._load_user = load_user
        self._storage = storage
        self._notifier = notifier
        self._clock = clock or MonotonicClock()
        self._state = AuthState.UNAUTHENTICATED
        self._session: AuthSession | None = None
        self._user: User | None = None
        self._last_refresh_at: float | None = None
        self._latch = ExpiryLatch()
        self._listeners: list[StateListener] = []
        self._sign_in_task: asyncio.Task[AuthSession] | None = None
        self._refresh_task: asyncio.Task[AuthSession] | None = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._state in (AuthState.AUTHENTICATED, AuthState.REFRESHING)

    @property
    def last_refresh_at(self) -> float | None:
        """Clock reading of the last successful sign-in or refresh."""
        return self._last_refresh_at

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: AuthState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.debug("auth_state_changed", previous=str(previous), state=str(state))
        for listener in list(self._listeners):
            listener(state)

    # -- sign in ---------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in, sharing the attempt with any submission already in flight."""
        task = self._sign_in_task
        if task is not None and not task.done():
            logger.info("sign_in_deduplicated")
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self._sign_in(email, password))
        self._sign_in_task = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._sign_in_task is task and task.done():
                self._sign_in_task = None

    async def _sign_in(self, email: str, password: str) -> AuthSession:
        # clean slate: nothing from a previous session may leak into this one
        self._latch.disarm()
        self._refresh_task = None
        self._drop_session()
        self._set_state(AuthState.AUTHENTICATING)
        succeeded = False
        try:
            try:
                session = await self._provider.sign_in_with_password(email, password)
            except StaleRefreshTokenError:
                logger.warning("sign_in_stale_token_retry")
                clear_auth_artifacts(self._storage)
                session = await self._provider.sign_in_with_password(email, password)
            user = await self._load_user(session)
            succeeded = True
        finally:
            if not succeeded:
                self._set_state(AuthState.UNAUTHENTICATED)

        self._accept(session)
        self._user = user
        self._notifier.language = user.language
        self._latch.arm()
        self._set_state(AuthState.AUTHENTICATED)
        logger.info("signed_in", user_id=user.id, role=str(user.role))
        return session

    # -- sign out --------------------------------------------------------

    async def sign_out(self) -> None:
        """Revoke the session best-effort, then clear local state."""
        session = self._session
        user_id = self._user.id if self._user else None
        self._latch.disarm()
        self._refresh_task = None
        if session is not None:
            try:
                await self._provider.sign_out(session.access_token)
            except AuthError as exc:
                logger.warning("sign_out_revoke_failed", code=exc.code, error=str(exc))
        self._drop_session()
        self._set_state(AuthState.UNAUTHENTICATED)
        logger.info("signed_out", user_id=user_id)

    # -- refresh ---------------------------------------------------------

    async def refresh_session(self) -> AuthSession:
        """Refresh the session; overlapping calls share one provider request."""
        task = self._refresh_task
        if task is not None and not task.done():
            logger.debug("refresh_deduplicated")
            return await asyncio.shield(task)

        if self._session is None or not self.is_authenticated:
            raise SessionExpiredError("no active session to refresh")

        task = asyncio.ensure_future(self._refresh(self._session))
        self._refresh_task = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._refresh_task is task and task.done():
                self._refresh_task = None

    async def _refresh(self, session: AuthSession) -> AuthSession:
        self._set_state(AuthState.REFRESHING)
        try:
            refreshed = await self._provider.refresh(session.refresh_token)
        except AuthUnavailableError:
            # provider unreachable: the current session may still be valid
            if self._session is session:
                self._set_state(AuthState.AUTHENTICATED)
            logger.warning("session_refresh_unavailable")
            raise
        except AuthError as exc:
            logger.info("session_refresh_rejected", code=exc.code)
            # a rejection for a session already replaced must not end the new one
            if self._session is session:
                self.expire(reason=exc.code)
            raise SessionExpiredError(str(exc)) from exc

        if self._session is not session:
            # signed out or replaced while the refresh was in flight
            raise SessionExpiredError("session changed during refresh")
        self._accept(refreshed)
        self._set_state(AuthState.AUTHENTICATED)
        logger.info("session_refreshed", user_id=refreshed.user_id)
        return refreshed

    async def ensure_valid(self) -> User:
        """Return the signed-in user, refreshing an access token past expiry."""
        if not self.is_authenticated or self._session is None or self._user is None:
            raise SessionExpiredError("not signed in")
        if self._session.expires_at <= time.time():
            await self.refresh_session()
        return self._user

    async def reload_user(self) -> User:
        """Re-read role and preferences for the current session."""
        session = self._session
        if session is None or not self.is_authenticated:
            raise SessionExpiredError("not signed in")
        user = await self._load_user(session)
        if self._session is not session:
            raise SessionExpiredError("session changed while reloading the user")
        if self._user is not None and self._user.role != user.role:
            logger.info(
                "user_role_changed",
                user_id=user.id,
                previous=str(self._user.role),
                role=str(user.role),
            )
        self._user = user
        self._notifier.language = user.language
        return user

    # -- expiry ----------------------------------------------------------

    def expire(self, reason: str = "session_lost") -> bool:
        """Record loss of the session outside an explicit sign-out.

        Any number of observers may call this for the same event; only the
        first queues the user notification. Returns whether this call did.
        """
        if not self._latch.fire():
            return False
        self._set_state(AuthState.EXPIRED)
        self._notifier.push("session_expired", NotificationLevel.WARNING)
        user_id = self._user.id if self._user else None
        self._drop_session()
        self._set_state(AuthState.UNAUTHENTICATED)
        logger.info("session_expired", user_id=user_id, reason=reason)
        return True

    # -- helpers ---------------------------------------------------------

    def _accept(self, session: AuthSession) -> None:
        self._session = session
        self._last_refresh_at = self._clock.now()
        self._storage.set(
            SESSION_KEY, {"user_id": session.user_id, "expires_at": session.expires_at}
        )

    def _drop_session(self) -> None:
        self._session = None
        self._user = None
        self._last_refresh_at = None
        clear_auth_artifacts(self._storage)
