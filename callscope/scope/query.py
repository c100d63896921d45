"""Scoped query builder and runner.

Every read or write of account-scoped data goes through ``with_scope`` and
``ScopedQueryRunner`` so the account filter lives in exactly one place:

- concrete account scope: ``WHERE account_id = :id``
- ``ALL`` scope (superAdmin only): no account constraint. This is the only
  path that may produce an unfiltered statement.
- ``NO_ACCOUNTS``: the query short-circuits to an empty result and no
  database session is opened.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from callscope.exceptions import (
    NoAccountsError,
    TransientQueryError,
    UnassignedAccountRequestError,
    ValidationError,
)
from callscope.scope.resolver import EffectiveScope
from callscope.storage.errors import translate_db_errors
from callscope.types import ScopeKind
from callscope.utils.retry import retry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ScopedQuery(Generic[T]):
    """A statement paired with the scope whose filter has been applied to it."""

    statement: Any
    model: type[T]
    scope: EffectiveScope

    @property
    def short_circuit(self) -> bool:
        return self.scope.is_empty

    @property
    def table(self) -> str:
        return str(getattr(self.model, "__tablename__", self.model.__name__))

    @property
    def filter_description(self) -> str:
        if self.scope.kind is ScopeKind.ACCOUNT:
            return f"account_id = {self.scope.account_id}"
        if self.scope.kind is ScopeKind.ALL:
            return "unfiltered (all accounts)"
        return "short-circuit (no accounts)"


@dataclass(frozen=True)
class ScopedRows(Generic[T]):
    """Rows together with the scope they were fetched under."""

    scope: EffectiveScope
    rows: list[T] = field(default_factory=list)

    def __iter__(self) -> Iterator[T]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> T:
        return self.rows[index]


def with_scope(statement: Any, model: type[T], scope: EffectiveScope) -> ScopedQuery[T]:
    """Constrain ``statement`` to ``scope``.

    ``statement`` may be any SQLAlchemy construct with ``.where`` (select,
    update, delete); ``model`` must have an ``account_id`` column.
    """
    if scope.kind is ScopeKind.ACCOUNT:
        account_column = col(model.account_id)  # type: ignore[attr-defined]
        statement = statement.where(account_column == scope.account_id)
    return ScopedQuery(statement=statement, model=model, scope=scope)


def target_account(
    scope: EffectiveScope,
    requested_account_id: str | None = None,
    require_account: bool = True,
) -> str | None:
    """Account id a new row must be written to under ``scope``.

    Under the all-accounts scope a target must be named explicitly unless
    ``require_account`` is False, in which case the row is global.
    """
    if scope.kind is ScopeKind.NONE:
        raise NoAccountsError("cannot write without an assigned account")
    if scope.kind is ScopeKind.ACCOUNT:
        if requested_account_id and requested_account_id != scope.account_id:
            raise UnassignedAccountRequestError(
                f"account {requested_account_id} is outside the selected scope"
            )
        return str(scope.account_id)
    if not requested_account_id:
        if not require_account:
            return None
        raise ValidationError("account_id", "required when all accounts are selected")
    return requested_account_id


class ScopedQueryRunner:
    """Executes scoped queries with bounded retry of transient failures."""

    def __init__(
        self,
        engine: AsyncEngine,
        max_attempts: int = 3,
        delay_ms: int = 200,
    ) -> None:
        self._engine = engine
        retrying = retry(
            max_attempts=max_attempts,
            delay_ms=delay_ms,
            retry_on=(TransientQueryError,),
        )
        self._fetch = retrying(self._fetch_once)
        self._write = retrying(self._write_once)

    async def fetch(self, query: ScopedQuery[T]) -> ScopedRows[T]:
        if query.short_circuit:
            logger.info("scope_query_short_circuit", table=query.table)
            return ScopedRows(scope=query.scope)
        self._log_filter(query)
        rows = await self._fetch(query.statement)
        return ScopedRows(scope=query.scope, rows=rows)

    async def first(self, query: ScopedQuery[T]) -> T | None:
        result = await self.fetch(query)
        return result.rows[0] if result.rows else None

    async def execute(self, query: ScopedQuery[Any]) -> int:
        """Run a scoped update/delete and return the affected row count."""
        if query.short_circuit:
            logger.info("scope_query_short_circuit", table=query.table)
            return 0
        self._log_filter(query)
        return await self._write(query.statement)

    async def insert(self, scope: EffectiveScope, row: T, require_account: bool = True) -> T:
        """Insert ``row`` after checking its account against ``scope``.

        Inserts are not retried: a lost acknowledgement would duplicate rows.
        """
        row.account_id = target_account(  # type: ignore[attr-defined]
            scope, row.account_id, require_account  # type: ignore[attr-defined]
        )
        with translate_db_errors():
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        logger.info(
            "scoped_row_inserted",
            table=getattr(row, "__tablename__", type(row).__name__),
            account_id=row.account_id,  # type: ignore[attr-defined]
        )
        return row

    def _log_filter(self, query: ScopedQuery[Any]) -> None:
        logger.info(
            "scope_filter_applied",
            table=query.table,
            scope=str(query.scope),
            filter=query.filter_description,
        )

    async def _fetch_once(self, statement: Any) -> list[Any]:
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                result = await session.execute(statement)
                return list(result.scalars().all())

    async def _write_once(self, statement: Any) -> int:
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                result = await session.execute(statement)
                await session.commit()
                return int(result.rowcount or 0)
