"""Per-client selected-scope state.

``ScopeStore`` is the single writer of the selected scope. It resolves
requests through ``resolve_scope``, persists the resolved (not requested)
value as a hint, and bumps a generation counter on every change so work
started under the previous scope is cancelled and its result discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from callscope.exceptions import StaleScopeError
from callscope.messages import translate
from callscope.models.domain import User
from callscope.scope.resolver import (
    ALL_ACCOUNTS,
    NO_ACCOUNTS,
    AccountLike,
    EffectiveScope,
    ScopeResolution,
    resolve_scope,
)
from callscope.storage.client_storage import ClientStorage
from callscope.types import ScopeKind

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SCOPE_HINT_KEY = "selected_account_id"


@dataclass(frozen=True, slots=True)
class SelectorOption:
    value: str
    label: str


@dataclass(frozen=True, slots=True)
class SelectorView:
    """What the account selector should render."""

    options: list[SelectorOption] = field(default_factory=list)
    selected: str | None = None
    disabled: bool = False
    label: str | None = None
    no_accounts: bool = False


class ScopeStore:
    def __init__(self, storage: ClientStorage) -> None:
        self._storage = storage
        self._user: User | None = None
        self._accounts: tuple[AccountLike, ...] = ()
        self._resolution = ScopeResolution(scope=NO_ACCOUNTS)
        self._generation = 0
        self._inflight: set[asyncio.Task[object]] = set()

    @property
    def current(self) -> ScopeResolution:
        return self._resolution

    @property
    def scope(self) -> EffectiveScope:
        return self._resolution.scope

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def accounts(self) -> tuple[AccountLike, ...]:
        return self._accounts

    def load(self, user: User, accounts: Sequence[AccountLike]) -> ScopeResolution:
        """Resolve the persisted hint against a fresh account list."""
        self._user = user
        self._accounts = tuple(accounts)
        return self._apply(user, self._storage.get(SCOPE_HINT_KEY))

    def select(self, requested: str | None) -> ScopeResolution:
        """Resolve a scope chosen by the user."""
        if self._user is None:
            logger.warning("scope_select_before_load", requested=requested)
            return self._resolution
        return self._apply(self._user, requested)

    def reset(self) -> None:
        """Drop user and accounts; the scope falls back to ``NO_ACCOUNTS``."""
        self._user = None
        self._accounts = ()
        if self._resolution.scope != NO_ACCOUNTS:
            self._invalidate()
        self._resolution = ScopeResolution(scope=NO_ACCOUNTS)

    def _apply(self, user: User, requested: str | None) -> ScopeResolution:
        resolution = resolve_scope(user, self._accounts, requested)
        if resolution.downgraded:
            logger.info(
                "scope_downgraded",
                user_id=user.id,
                requested=requested,
                resolved=str(resolution.scope),
                reason=type(resolution.reason).__name__,
            )
        if resolution.scope != self._resolution.scope:
            self._invalidate()
        self._resolution = resolution

        hint = resolution.scope.hint
        if hint is None:
            self._storage.remove(SCOPE_HINT_KEY)
        else:
            self._storage.set(SCOPE_HINT_KEY, hint)
        logger.debug("scope_resolved", user_id=user.id, scope=str(resolution.scope))
        return resolution

    def _invalidate(self) -> None:
        self._generation += 1
        cancelled = 0
        for task in list(self._inflight):
            if not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.info(
                "scope_inflight_cancelled", generation=self._generation, cancelled=cancelled
            )

    async def run(self, operation: Callable[[EffectiveScope], Awaitable[T]]) -> T:
        """Run ``operation`` under the current scope.

        Raises ``StaleScopeError`` if the scope changes before the result is
        handed back, whether or not the operation had finished.
        """
        generation = self._generation
        task: asyncio.Task[T] = asyncio.ensure_future(operation(self.scope))
        self._inflight.add(task)  # type: ignore[arg-type]
        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                raise StaleScopeError("scope changed while the request was in flight") from None
            raise
        finally:
            self._inflight.discard(task)  # type: ignore[arg-type]
        if generation != self._generation:
            raise StaleScopeError("scope changed before the result was applied")
        return result

    def describe(self, language: str = "es") -> str:
        """Human-readable name of the active scope."""
        scope = self.scope
        if scope.kind is ScopeKind.ALL:
            return translate("all_accounts_label", language)
        if scope.kind is ScopeKind.NONE:
            return translate("no_accounts_label", language)
        name = next((a.name for a in self._accounts if a.id == scope.account_id), "")
        return f"{name} ({scope.account_id})" if name else str(scope.account_id)

    def selector_view(self, language: str = "es") -> SelectorView:
        if not self._accounts:
            return SelectorView(no_accounts=True, label=translate("no_accounts_label", language))
        if len(self._accounts) == 1:
            only = self._accounts[0]
            return SelectorView(
                options=[SelectorOption(value=only.id, label=only.name)],
                selected=only.id,
                disabled=True,
                label=translate("single_account_label", language, name=only.name),
            )
        options = [SelectorOption(value=a.id, label=a.name) for a in self._accounts]
        if self._user is not None and self._user.is_super_admin:
            all_label = translate("all_accounts_label", language)
            options.insert(0, SelectorOption(value=ALL_ACCOUNTS, label=all_label))
        return SelectorView(options=options, selected=self.scope.hint)
