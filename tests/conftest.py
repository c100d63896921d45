"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from callscope.auth.provider import AuthIdentity, AuthProviderBase
from callscope.config.settings import Settings
from callscope.exceptions import (
    InvalidCredentialsError,
    SessionExpiredError,
    StaleRefreshTokenError,
)
from callscope.llm.provider import LLMProviderBase, LLMResponse
from callscope.models.database import Account, Profile, UserAccount
from callscope.models.domain import AuthSession, ChatTurn
from callscope.scope.query import ScopedQueryRunner
from callscope.web.app import create_app
from callscope.web.dependencies import build_services

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock; ``sleep`` advances time and yields once."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)


class FakeAuthProvider(AuthProviderBase):
    """In-memory provider that records every call it receives."""

    def __init__(self, users: dict[str, tuple[str, str]] | None = None) -> None:
        # email -> (password, user_id)
        self.users = users or {}
        self.sign_in_calls = 0
        self.refresh_calls = 0
        self.sign_out_calls = 0
        self.sign_in_errors: list[Exception] = []
        self.refresh_error: Exception | None = None
        self.sign_out_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self._counter = 0
        self._refresh_tokens: dict[str, tuple[str, str]] = {}

    def _issue(self, user_id: str, email: str) -> AuthSession:
        self._counter += 1
        self._refresh_tokens[f"refresh-{self._counter}"] = (user_id, email)
        return AuthSession(
            user_id=user_id,
            email=email,
            access_token=f"access-{self._counter}",
            refresh_token=f"refresh-{self._counter}",
            expires_at=time.time() + 3600,
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        self.sign_in_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.sign_in_errors:
            raise self.sign_in_errors.pop(0)
        known = self.users.get(email)
        if known is None or known[0] != password:
            raise InvalidCredentialsError("Invalid login credentials")
        return self._issue(known[1], email)

    async def refresh(self, refresh_token: str) -> AuthSession:
        self.refresh_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.refresh_error is not None:
            raise self.refresh_error
        owner = self._refresh_tokens.pop(refresh_token, None)
        if owner is not None:
            return self._issue(*owner)
        raise StaleRefreshTokenError("Invalid Refresh Token: Refresh Token Not Found")

    async def sign_out(self, access_token: str) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error

    async def get_user(self, access_token: str) -> AuthIdentity:
        raise SessionExpiredError("not supported by the fake")


class FakeLLM(LLMProviderBase):
    def __init__(self, reply: str = "Respuesta de prueba") -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[ChatTurn],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        self.calls.append(
            {"messages": list(messages), "temperature": temperature, "max_tokens": max_tokens}
        )
        return LLMResponse(content=self.reply, model="fake-model", tokens_used=7)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


async def add_rows(engine: Any, *rows: Any) -> None:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        for row in rows:
            session.add(row)
        await session.commit()


async def seed_tenants(engine: Any) -> dict[str, Account]:
    """Accounts X, Y, Z (active) and W (inactive) with users:

    - ``agent-xy``: agent assigned to X and Y
    - ``agent-x``: agent assigned to X only
    - ``agent-none``: agent with no assignments
    - ``root``: superAdmin (no explicit assignments)
    """
    accounts = {
        "X": Account(id="acc-x", name="Xenon"),
        "Y": Account(id="acc-y", name="Yttrium"),
        "Z": Account(id="acc-z", name="Zinc"),
        "W": Account(id="acc-w", name="Wolfram", status="inactive"),
    }
    await add_rows(
        engine,
        *accounts.values(),
        Profile(id="agent-xy", email="xy@example.com", role="agent"),
        Profile(id="agent-x", email="x@example.com", role="agent"),
        Profile(id="agent-none", email="none@example.com", role="agent"),
        Profile(id="root", email="root@example.com", role="superAdmin"),
        UserAccount(user_id="agent-xy", account_id="acc-x"),
        UserAccount(user_id="agent-xy", account_id="acc-y"),
        UserAccount(user_id="agent-xy", account_id="acc-w"),
        UserAccount(user_id="agent-x", account_id="acc-x"),
    )
    return accounts


USERS = {
    "xy@example.com": ("pw-xy", "agent-xy"),
    "x@example.com": ("pw-x", "agent-x"),
    "none@example.com": ("pw-none", "agent-none"),
    "root@example.com": ("pw-root", "root"),
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def runner(async_engine) -> ScopedQueryRunner:
    return ScopedQueryRunner(async_engine, max_attempts=3, delay_ms=0)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret",
        debug=True,
        auth_mode="single",
        admin_email="admin@example.com",
        admin_password="admin-pw",
        openai_api_key=None,
        query_retry_delay_ms=0,
        route_settle_delay_ms=0,
    )


@pytest.fixture()
def auth_provider() -> FakeAuthProvider:
    return FakeAuthProvider(users=dict(USERS))


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
async def tenants(async_engine) -> dict[str, Account]:
    return await seed_tenants(async_engine)


@pytest.fixture()
def services(settings, async_engine, auth_provider, fake_llm):
    return build_services(
        settings,
        engine=async_engine,
        auth_provider=auth_provider,
        llm=fake_llm,
    )


@pytest.fixture()
def app(services):
    """Create a fresh app instance for tests."""
    return create_app(services)


@pytest.fixture()
async def http(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.state.services.clients.close_all()
