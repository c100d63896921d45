"""Account directory: tenants and user/account assignments."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from callscope.exceptions import NotFoundError, QueryError, ValidationError
from callscope.models.database import Account, UserAccount, _utc_now
from callscope.models.domain import User
from callscope.storage.errors import translate_db_errors
from callscope.types import AccountStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


@dataclass
class BulkCreateResult:
    created: list[Account] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # name -> error code


def parse_account_names(text: str) -> list[str]:
    """Split a newline-separated list into stripped, non-blank names."""
    return [line.strip() for line in text.splitlines() if line.strip()]


class AccountDirectory:
    """PostgreSQL-backed store of accounts and their user assignments."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def list_all_accounts(self) -> list[Account]:
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                stmt = select(Account).order_by(col(Account.name))
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def list_assigned_accounts(self, user_id: str) -> list[Account]:
        """Accounts joined through ``user_accounts``, ordered by name."""
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                stmt = (
                    select(Account)
                    .join(UserAccount, col(UserAccount.account_id) == col(Account.id))
                    .where(col(UserAccount.user_id) == user_id)
                    .order_by(col(Account.name))
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def accounts_for(self, user: User) -> list[Account]:
        """Active accounts the scope resolver may choose from for ``user``.

        A superAdmin may see every active account; everyone else only the
        active accounts assigned to them.
        """
        if user.is_super_admin:
            accounts = await self.list_all_accounts()
        else:
            accounts = await self.list_assigned_accounts(user.id)
        active = [a for a in accounts if a.status == AccountStatus.ACTIVE]
        logger.debug(
            "accounts_resolved_for_user",
            user_id=user.id,
            role=str(user.role),
            total=len(accounts),
            active=len(active),
        )
        return active

    async def get_account(self, account_id: str) -> Account:
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                account = await session.get(Account, account_id)
        if account is None:
            raise NotFoundError(f"account {account_id} not found")
        return account

    async def create_account(self, name: str) -> Account:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name", "account name is required")
        with translate_db_errors():
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                account = Account(name=name)
                session.add(account)
                await session.commit()
                await session.refresh(account)
        logger.info("account_created", account_id=account.id, name=name)
        return account

    async def create_accounts(self, names: str | Iterable[str]) -> BulkCreateResult:
        """Create one account per name, reporting failures per name."""
        if isinstance(names, str):
            names = parse_account_names(names)
        outcome = BulkCreateResult()
        for name in names:
            try:
                outcome.created.append(await self.create_account(name))
            except (ValidationError, QueryError) as exc:
                outcome.failed[name] = exc.code
                logger.warning("account_create_failed", name=name, code=exc.code)
        logger.info(
            "accounts_bulk_created",
            created=len(outcome.created),
            failed=len(outcome.failed),
        )
        return outcome

    async def set_account_status(self, account_id: str, status: AccountStatus | str) -> Account:
        try:
            status = AccountStatus(status)
        except ValueError as exc:
            raise ValidationError("status", f"unknown account status {status!r}") from exc
        with translate_db_errors():
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                account = await session.get(Account, account_id)
                if account is None:
                    raise NotFoundError(f"account {account_id} not found")
                account.status = str(status)
                account.updated_at = _utc_now()
                session.add(account)
                await session.commit()
                await session.refresh(account)
        logger.info("account_status_changed", account_id=account_id, status=str(status))
        return account

    async def assign_user(self, user_id: str, account_id: str) -> bool:
        """Assign ``user_id`` to ``account_id``.

        Returns False when the pair already existed.
        """
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                if await session.get(Account, account_id) is None:
                    raise NotFoundError(f"account {account_id} not found")
                existing = await session.execute(
                    select(UserAccount).where(
                        col(UserAccount.user_id) == user_id,
                        col(UserAccount.account_id) == account_id,
                    )
                )
                if existing.scalars().first() is not None:
                    return False
                session.add(UserAccount(user_id=user_id, account_id=account_id))
                try:
                    await session.commit()
                except IntegrityError:
                    # lost a race with a concurrent assignment of the same pair
                    await session.rollback()
                    return False
        logger.info("user_assigned", user_id=user_id, account_id=account_id)
        return True

    async def unassign_user(self, user_id: str, account_id: str) -> bool:
        """Remove an assignment. Returns False when there was none."""
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                result = await session.execute(
                    delete(UserAccount).where(
                        col(UserAccount.user_id) == user_id,
                        col(UserAccount.account_id) == account_id,
                    )
                )
                await session.commit()
                removed = bool(result.rowcount)
        if removed:
            logger.info("user_unassigned", user_id=user_id, account_id=account_id)
        return removed

    async def bulk_assign(self, user_ids: Sequence[str], account_ids: Sequence[str]) -> int:
        """Assign every user to every account; returns new assignments made."""
        added = 0
        for user_id in user_ids:
            for account_id in account_ids:
                if await self.assign_user(user_id, account_id):
                    added += 1
        logger.info(
            "users_bulk_assigned",
            users=len(user_ids),
            accounts=len(account_ids),
            added=added,
        )
        return added
