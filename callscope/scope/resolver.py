"""Account scope resolution.

``resolve_scope`` is the only place that decides which account filter
applies to a user. It is a pure function of the user, the accounts that
user may see and the scope the client asked for; it performs no I/O.

Rules:

1. No accounts: the scope is ``NO_ACCOUNTS``, a terminal state.
2. Exactly one account: the scope is pinned to it whatever was requested.
3. Several accounts:
   - ``"all"`` is honoured only for superAdmin, otherwise it downgrades to
     the first account.
   - an account id is honoured only when it is one of the accounts,
     otherwise it downgrades to the user's default scope.
   - nothing requested yields the default scope (``"all"`` for superAdmin,
     else the first account).

Downgrades are reported on the result, never raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from callscope.exceptions import (
    IllegalAllRequestError,
    NoAccountsError,
    ScopeError,
    UnassignedAccountRequestError,
)
from callscope.models.domain import User
from callscope.types import ScopeKind

ALL_ACCOUNTS = "all"


class AccountLike(Protocol):
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class EffectiveScope:
    """The account filter every downstream query must apply."""

    kind: ScopeKind
    account_id: str | None = None

    @classmethod
    def for_account(cls, account_id: str) -> EffectiveScope:
        return cls(kind=ScopeKind.ACCOUNT, account_id=account_id)

    @property
    def is_all(self) -> bool:
        return self.kind is ScopeKind.ALL

    @property
    def is_empty(self) -> bool:
        return self.kind is ScopeKind.NONE

    @property
    def hint(self) -> str | None:
        """Value persisted as the selected-scope hint."""
        if self.kind is ScopeKind.ACCOUNT:
            return self.account_id
        if self.kind is ScopeKind.ALL:
            return ALL_ACCOUNTS
        return None

    def __str__(self) -> str:
        if self.kind is ScopeKind.ACCOUNT:
            return f"account:{self.account_id}"
        return str(self.kind)


ALL_SCOPE = EffectiveScope(kind=ScopeKind.ALL)
NO_ACCOUNTS = EffectiveScope(kind=ScopeKind.NONE)


@dataclass(frozen=True, slots=True)
class ScopeResolution:
    scope: EffectiveScope
    requested: str | None = None
    downgraded: bool = False
    reason: ScopeError | None = None


def default_scope(user: User, accounts: Sequence[AccountLike]) -> EffectiveScope:
    """Scope used when nothing (or nothing legal) was requested."""
    if not accounts:
        return NO_ACCOUNTS
    if len(accounts) == 1:
        return EffectiveScope.for_account(accounts[0].id)
    if user.is_super_admin:
        return ALL_SCOPE
    return EffectiveScope.for_account(accounts[0].id)


def resolve_scope(
    user: User,
    assigned_accounts: Sequence[AccountLike],
    requested: str | None,
) -> ScopeResolution:
    """Resolve the requested scope into a legal effective scope."""
    accounts = list(assigned_accounts)

    if not accounts:
        return ScopeResolution(
            scope=NO_ACCOUNTS,
            requested=requested,
            downgraded=requested is not None,
            reason=NoAccountsError(f"user {user.id} has no assigned accounts"),
        )

    account_ids = [a.id for a in accounts]

    if len(accounts) == 1:
        pinned = EffectiveScope.for_account(account_ids[0])
        if requested is None or requested == account_ids[0]:
            return ScopeResolution(scope=pinned, requested=requested)
        return ScopeResolution(
            scope=pinned,
            requested=requested,
            downgraded=True,
            reason=_illegal_request(user, requested),
        )

    if requested is None:
        return ScopeResolution(scope=default_scope(user, accounts))

    if requested == ALL_ACCOUNTS:
        if user.is_super_admin:
            return ScopeResolution(scope=ALL_SCOPE, requested=requested)
        return ScopeResolution(
            scope=EffectiveScope.for_account(account_ids[0]),
            requested=requested,
            downgraded=True,
            reason=_illegal_request(user, requested),
        )

    if requested in account_ids:
        return ScopeResolution(scope=EffectiveScope.for_account(requested), requested=requested)

    return ScopeResolution(
        scope=default_scope(user, accounts),
        requested=requested,
        downgraded=True,
        reason=_illegal_request(user, requested),
    )


def _illegal_request(user: User, requested: str) -> ScopeError:
    if requested == ALL_ACCOUNTS:
        return IllegalAllRequestError(f"all accounts is not selectable for user {user.id}")
    return UnassignedAccountRequestError(f"account {requested} is not assigned to user {user.id}")
