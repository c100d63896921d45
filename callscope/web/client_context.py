"""Server-side state of one browser client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from callscope.auth.session_store import SessionStore
from callscope.auth.watchdog import SessionWatchdog
from callscope.exceptions import SessionExpiredError
from callscope.models.domain import User
from callscope.notifications import Notifier
from callscope.scope.resolver import ScopeResolution
from callscope.scope.store import ScopeStore
from callscope.storage.client_storage import ClientStorage
from callscope.types import AuthState, Language

if TYPE_CHECKING:
    from callscope.web.dependencies import Services

logger = structlog.get_logger(__name__)


@dataclass
class ClientContext:
    client_id: str
    storage: ClientStorage
    notifier: Notifier
    session: SessionStore
    scope: ScopeStore
    watchdog: SessionWatchdog

    @property
    def language(self) -> Language:
        return self.notifier.language

    @property
    def user(self) -> User:
        user = self.session.user
        if user is None:
            raise SessionExpiredError("not signed in")
        return user

    async def load_scope(self, services: Services, reload_user: bool = True) -> ScopeResolution:
        """Re-read the user's role and accounts and re-resolve the selected scope."""
        user = await self.session.reload_user() if reload_user else self.user
        accounts = await services.directory.accounts_for(user)
        return self.scope.load(user, accounts)

    def close(self) -> None:
        self.watchdog.stop()


def build_client_context(client_id: str, services: Services) -> ClientContext:
    settings = services.settings
    storage = ClientStorage()
    notifier = Notifier(language=Language(settings.default_language))
    session = SessionStore(
        provider=services.auth_provider,
        load_user=services.load_user,
        storage=storage,
        notifier=notifier,
        clock=services.clock,
    )
    scope = ScopeStore(storage)
    watchdog = SessionWatchdog(
        session,
        notifier,
        clock=services.clock,
        settle_delay=settings.route_settle_delay_ms / 1000,
        refresh_interval=settings.session_refresh_interval_seconds,
        min_refresh_age=settings.session_refresh_min_age_seconds,
        idle_timeout=settings.idle_timeout_minutes * 60,
        idle_warning=settings.idle_warning_minutes * 60,
    )

    def _reset_scope(state: AuthState) -> None:
        if state in (AuthState.UNAUTHENTICATED, AuthState.AUTHENTICATING):
            scope.reset()

    session.add_listener(_reset_scope)
    logger.debug("client_context_created", client_id=client_id)
    return ClientContext(
        client_id=client_id,
        storage=storage,
        notifier=notifier,
        session=session,
        scope=scope,
        watchdog=watchdog,
    )
