"""Background session revalidation and inactivity sign-out.

``SessionWatchdog`` is driven by navigation events and its own periodic
loop, and reads time only through the injected clock:

- ``IDLE``: nothing scheduled (signed out or not on a protected page).
- ``SETTLING``: a protected page was entered; waits the settle delay so the
  page's own session hydration finishes before a background refresh.
- ``WATCHING``: the periodic loop is running. Every refresh interval it
  refreshes the session if the last refresh is old enough, and it signs
  the client out after the idle timeout, warning shortly before.
- ``STOPPED``: terminal for this session; a new sign-in restarts it.
"""

from __future__ import annotations

import asyncio

import structlog

from callscope.auth.session_store import SessionStore
from callscope.exceptions import AuthUnavailableError, SessionExpiredError
from callscope.notifications import Notifier
from callscope.types import AuthState, NotificationLevel, WatchdogState
from callscope.utils.clock import Clock, MonotonicClock

logger = structlog.get_logger(__name__)


class SessionWatchdog:
    def __init__(
        self,
        session: SessionStore,
        notifier: Notifier,
        clock: Clock | None = None,
        settle_delay: float = 0.5,
        refresh_interval: float = 600.0,
        min_refresh_age: float = 480.0,
        idle_timeout: float = 3600.0,
        idle_warning: float = 120.0,
        tick_interval: float = 30.0,
    ) -> None:
        self._session = session
        self._notifier = notifier
        self._clock = clock or MonotonicClock()
        self._settle_delay = settle_delay
        self._refresh_interval = refresh_interval
        self._min_refresh_age = min_refresh_age
        self._idle_timeout = idle_timeout
        self._idle_warning = idle_warning
        self._tick_interval = tick_interval

        self._state = WatchdogState.IDLE
        self._last_activity = self._clock.now()
        self._next_refresh_at = self._last_activity + refresh_interval
        self._warned = False
        self._settle_task: asyncio.Task[bool] | None = None
        self._loop_task: asyncio.Task[None] | None = None

        session.add_listener(self._on_auth_state)

    @property
    def state(self) -> WatchdogState:
        return self._state

    def record_activity(self) -> None:
        self._last_activity = self._clock.now()
        self._warned = False

    def on_navigate(self, path: str, protected: bool) -> asyncio.Task[bool] | None:
        """Note a navigation; schedule a settled refresh for protected pages.

        A newer navigation supersedes a settle still pending.
        """
        self.record_activity()
        if not protected or not self._session.is_authenticated:
            return None
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._state = WatchdogState.SETTLING
        self._settle_task = asyncio.ensure_future(self._settle_then_refresh(path))
        return self._settle_task

    async def _settle_then_refresh(self, path: str) -> bool:
        await self._clock.sleep(self._settle_delay)
        if not self._session.is_authenticated:
            self._state = WatchdogState.IDLE
            return False
        logger.debug("watchdog_settled", path=path)
        self.start()
        return await self.refresh_if_due()

    async def refresh_if_due(self) -> bool:
        """Refresh when the last refresh is at least the minimum age old."""
        if self._session.state is not AuthState.AUTHENTICATED:
            return False
        last = self._session.last_refresh_at
        age = self._clock.now() - last if last is not None else self._min_refresh_age
        if age < self._min_refresh_age:
            logger.debug("watchdog_refresh_skipped", age_seconds=round(age, 1))
            return False
        try:
            await self._session.refresh_session()
        except AuthUnavailableError:
            return False
        except SessionExpiredError:
            return False
        return True

    async def tick(self) -> None:
        """One pass of the periodic loop."""
        if not self._session.is_authenticated:
            self.stop()
            return
        now = self._clock.now()
        idle = now - self._last_activity
        if idle >= self._idle_timeout:
            logger.info("watchdog_idle_sign_out", idle_seconds=round(idle, 1))
            self.stop()
            self._notifier.push("session_inactive", NotificationLevel.WARNING)
            await self._session.sign_out()
            return
        if idle >= self._idle_timeout - self._idle_warning and not self._warned:
            self._warned = True
            self._notifier.push("session_expiring_soon", NotificationLevel.WARNING)
        if now >= self._next_refresh_at:
            self._next_refresh_at = now + self._refresh_interval
            await self.refresh_if_due()

    async def run(self) -> None:
        while self._state is WatchdogState.WATCHING:
            await self._clock.sleep(self._tick_interval)
            if self._state is not WatchdogState.WATCHING:
                break
            await self.tick()

    def start(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            self._state = WatchdogState.WATCHING
            return
        self._state = WatchdogState.WATCHING
        self._next_refresh_at = self._clock.now() + self._refresh_interval
        self._loop_task = asyncio.ensure_future(self.run())
        logger.debug("watchdog_started")

    def stop(self) -> None:
        self._state = WatchdogState.STOPPED
        current = asyncio.current_task() if _loop_running() else None
        for task in (self._settle_task, self._loop_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._settle_task = None
        self._loop_task = None
        logger.debug("watchdog_stopped")

    def _on_auth_state(self, state: AuthState) -> None:
        if state is AuthState.UNAUTHENTICATED and self._state is not WatchdogState.IDLE:
            self.stop()
        elif state is AuthState.AUTHENTICATED and self._state is WatchdogState.STOPPED:
            self._state = WatchdogState.IDLE
            self.record_activity()


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
