"""End-to-end HTTP flows over the ASGI app with an in-memory database."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from httpx import AsyncClient, Response
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

from callscope.exceptions import StaleRefreshTokenError
from callscope.models.database import Call, Feedback
from callscope.storage.repositories.accounts import AccountDirectory
from callscope.storage.repositories.users import ProfileRepository
from callscope.web.app import create_app
from callscope.web.dependencies import build_services
from conftest import FakeAuthProvider, FakeLLM, add_rows


async def _login(http: AsyncClient, email: str, password: str, **extra: str) -> Response:
    return await http.post("/api/auth/login", json={"email": email, "password": password, **extra})


@pytest.fixture()
async def calls(async_engine, tenants) -> None:
    await add_rows(
        async_engine,
        Call(id="call-x", account_id="acc-x", agent_name="Ana", date=datetime(2024, 5, 2)),
        Call(id="call-y", account_id="acc-y", agent_name="Bruno", date=datetime(2024, 5, 3)),
        Call(id="call-z", account_id="acc-z", agent_name="Carla", date=datetime(2024, 5, 4)),
        Feedback(id="fb-x", call_id="call-x", account_id="acc-x", score=8),
    )


@pytest.mark.integration
class TestLogin:
    async def test_login_resolves_scope(self, http, tenants) -> None:
        resp = await _login(http, "xy@example.com", "pw-xy")

        assert resp.status_code == 200
        data = resp.json()
        assert data["user"]["id"] == "agent-xy"
        assert data["redirect"] == "/analytics"
        assert data["scope"]["scope"] == "account:acc-x"
        options = [o["value"] for o in data["scope"]["selector"]["options"]]
        assert options == ["acc-x", "acc-y"]

    async def test_bad_credentials(self, http, tenants) -> None:
        resp = await _login(http, "xy@example.com", "wrong")
        assert resp.status_code == 401
        assert resp.json() == {
            "code": "invalid_credentials",
            "detail": "Credenciales incorrectas",
        }

    async def test_login_restores_safe_target_only(self, http, tenants) -> None:
        ok = await _login(http, "x@example.com", "pw-x", next="/calls/call-x")
        assert ok.json()["redirect"] == "/calls/call-x"

        unsafe = await _login(http, "x@example.com", "pw-x", next="https://evil.example.com/")
        assert unsafe.json()["redirect"] == "/analytics"

    async def test_double_submit_signs_in_once(
        self, http, tenants, auth_provider: FakeAuthProvider
    ) -> None:
        await http.get("/login")
        auth_provider.gate = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, auth_provider.gate.set)

        first, second = await asyncio.gather(
            _login(http, "xy@example.com", "pw-xy"),
            _login(http, "xy@example.com", "pw-xy"),
        )

        assert first.status_code == second.status_code == 200
        assert auth_provider.sign_in_calls == 1

    async def test_login_page_redirects_when_signed_in(self, http, tenants) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.get("/login", params={"next": "/behaviors"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/behaviors"


@pytest.mark.integration
class TestRouteGuard:
    async def test_page_redirects_to_login_with_target(self, http) -> None:
        resp = await http.get("/calls/call-x", params={"tab": "chat"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?next=/calls/call-x%3Ftab%3Dchat"

    async def test_api_answers_json_401(self, http) -> None:
        resp = await http.get("/api/calls")
        assert resp.status_code == 401
        assert resp.json()["code"] == "session_expired"

    async def test_page_shell_for_signed_in_user(self, http, tenants) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.get("/calls")
        assert resp.status_code == 200
        data = resp.json()
        assert data["page"] == "calls"
        assert data["user"]["id"] == "agent-xy"
        assert data["scope"]["kind"] == "account"

    async def test_landing_redirects(self, http, tenants) -> None:
        resp = await http.get("/")
        assert resp.headers["location"] == "/login"
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.get("/")
        assert resp.headers["location"] == "/analytics"


@pytest.mark.integration
class TestScopedData:
    async def test_agent_sees_only_selected_account(self, http, calls) -> None:
        await _login(http, "xy@example.com", "pw-xy")

        resp = await http.get("/api/calls")
        assert resp.json()["scope"] == "account:acc-x"
        assert [c["id"] for c in resp.json()["calls"]] == ["call-x"]

        await http.put("/api/scope", json={"account_id": "acc-y"})
        resp = await http.get("/api/calls")
        assert [c["id"] for c in resp.json()["calls"]] == ["call-y"]

    async def test_agent_all_request_is_downgraded(self, http, calls) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.put("/api/scope", json={"account_id": "all"})
        data = resp.json()
        assert data["scope"] == "account:acc-x"
        assert data["downgraded"] is True

        calls_resp = await http.get("/api/calls")
        assert {c["account_id"] for c in calls_resp.json()["calls"]} == {"acc-x"}

    async def test_unassigned_account_is_downgraded(self, http, calls) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.put("/api/scope", json={"account_id": "acc-z"})
        assert resp.json()["scope"] == "account:acc-x"
        assert resp.json()["downgraded"] is True

    async def test_super_admin_defaults_to_all(self, http, calls) -> None:
        await _login(http, "root@example.com", "pw-root")
        resp = await http.get("/api/calls")
        assert resp.json()["scope"] == "all"
        assert {c["id"] for c in resp.json()["calls"]} == {"call-x", "call-y", "call-z"}

    async def test_single_account_is_pinned(self, http, calls) -> None:
        await _login(http, "x@example.com", "pw-x")
        resp = await http.put("/api/scope", json={"account_id": "acc-y"})
        data = resp.json()
        assert data["scope"] == "account:acc-x"
        assert data["selector"]["disabled"] is True

    async def test_no_accounts_sees_nothing(self, http, calls) -> None:
        await _login(http, "none@example.com", "pw-none")
        scope = (await http.get("/api/scope")).json()
        assert scope["kind"] == "none"
        assert scope["selector"]["no_accounts"] is True

        resp = await http.get("/api/calls")
        assert resp.json()["calls"] == []

        create = await http.post("/api/behaviors", json={"name": "Saludo", "prompt": "p"})
        assert create.status_code == 403
        assert create.json()["code"] == "no_accounts"

    async def test_call_outside_scope_not_found(self, http, calls) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.get("/api/calls/call-y/feedback")
        assert resp.status_code == 404

        own = await http.get("/api/calls/call-x/feedback")
        assert [f["id"] for f in own.json()["feedback"]] == ["fb-x"]

    async def test_delete_only_in_scope(self, http, calls) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.post("/api/calls/delete", json={"ids": ["call-x", "call-y"]})
        assert resp.json() == {"deleted": 1}

    async def test_chat_answers_from_scope(self, http, calls, fake_llm: FakeLLM) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.post("/api/chat", json={"message": "¿Resumen?"})
        assert resp.status_code == 200
        assert resp.json()["scope"] == "account:acc-x"
        system = fake_llm.calls[0]["messages"][0].content
        assert "call-x" in system
        assert "call-y" not in system

        history = await http.get("/api/chat")
        assert [m["role"] for m in history.json()["messages"]] == ["user", "assistant"]

    async def test_blank_chat_message_is_422(self, http, calls) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.post("/api/chat", json={"message": "  "})
        assert resp.status_code == 422
        assert resp.json()["field"] == "message"


@pytest.mark.integration
class TestAccountsAdmin:
    async def test_agent_cannot_manage_accounts(self, http, tenants) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        assert (await http.get("/api/accounts")).status_code == 403
        mine = await http.get("/api/accounts/mine")
        assert [a["id"] for a in mine.json()] == ["acc-x", "acc-y"]

    async def test_super_admin_manages_accounts(self, http, tenants) -> None:
        await _login(http, "root@example.com", "pw-root")
        listed = await http.get("/api/accounts")
        assert len(listed.json()) == 4

        bulk = await http.post("/api/accounts/bulk", json={"names": "Helio\n\nNeon"})
        assert bulk.status_code == 201
        assert [a["name"] for a in bulk.json()["created"]] == ["Helio", "Neon"]

        assigned = await http.put("/api/accounts/acc-z/users/agent-none")
        assert assigned.json() == {"assigned": True}

        status = await http.patch("/api/accounts/acc-w/status", json={"status": "active"})
        assert status.json()["status"] == "active"

    async def test_revoked_account_is_dropped_on_next_page_load(
        self, http, async_engine, tenants
    ) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        await http.put("/api/scope", json={"account_id": "acc-y"})

        await AccountDirectory(async_engine).unassign_user("agent-xy", "acc-y")
        page = await http.get("/analytics")

        assert page.json()["scope"]["scope"] == "account:acc-x"
        assert page.json()["scope"]["downgraded"] is True

    async def test_revocation_applies_to_the_next_api_request(
        self, http, async_engine, calls
    ) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        await http.put("/api/scope", json={"account_id": "acc-y"})
        before = await http.get("/api/calls")
        assert [c["id"] for c in before.json()["calls"]] == ["call-y"]

        await AccountDirectory(async_engine).unassign_user("agent-xy", "acc-y")
        after = await http.get("/api/calls")

        assert after.json()["scope"] == "account:acc-x"
        assert {c["account_id"] for c in after.json()["calls"]} == {"acc-x"}

    async def test_demoted_super_admin_loses_all_scope(self, http, async_engine, calls) -> None:
        await _login(http, "root@example.com", "pw-root")
        assert (await http.get("/api/calls")).json()["scope"] == "all"

        await ProfileRepository(async_engine).upsert("root", "root@example.com")
        await AccountDirectory(async_engine).assign_user("root", "acc-z")

        resp = await http.get("/api/calls")
        assert resp.json()["scope"] == "account:acc-z"
        assert [c["id"] for c in resp.json()["calls"]] == ["call-z"]
        assert (await http.get("/api/accounts")).status_code == 403


@pytest.mark.integration
class TestSessionLoss:
    async def test_expiry_is_reported_once(
        self, http, tenants, auth_provider: FakeAuthProvider
    ) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        auth_provider.refresh_error = StaleRefreshTokenError("Refresh Token Not Found")

        refresh = await http.post("/api/auth/refresh")
        assert refresh.status_code == 401
        assert refresh.json()["code"] == "session_expired"

        assert (await http.get("/api/calls")).status_code == 401
        assert (await http.get("/calls")).status_code == 302

        notes = (await http.get("/api/notifications")).json()
        assert [n["code"] for n in notes] == ["session_expired"]
        assert (await http.get("/api/notifications")).json() == []

    async def test_logout_is_silent(self, http, tenants, auth_provider: FakeAuthProvider) -> None:
        await _login(http, "xy@example.com", "pw-xy")
        resp = await http.post("/api/auth/logout")
        assert resp.json() == {"status": "ok"}
        assert auth_provider.sign_out_calls == 1

        assert (await http.get("/api/auth/me")).status_code == 401
        assert (await http.get("/api/notifications")).json() == []

    async def test_me(self, http, tenants) -> None:
        await _login(http, "root@example.com", "pw-root")
        resp = await http.get("/api/auth/me")
        data = resp.json()
        assert data["user"]["role"] == "superAdmin"
        assert data["state"] == "authenticated"
        assert data["scope"]["scope"] == "all"


@pytest.mark.integration
class TestClientRegistration:
    async def test_cookieless_public_requests_register_no_client(self, app, http) -> None:
        for _ in range(20):
            http.cookies.clear()
            assert (await http.get("/api/notifications")).json() == []
            assert (await http.get("/")).status_code == 302
            assert (await http.get("/api/calls")).status_code == 401
        assert len(app.state.services.clients) == 0

    async def test_login_page_registers_one_client(self, app, http) -> None:
        await http.get("/login")
        await http.get("/login")
        assert len(app.state.services.clients) == 1


@pytest.mark.integration
class TestStartup:
    async def test_lifespan_creates_tables(self, settings, auth_provider, fake_llm) -> None:
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        app = create_app(
            build_services(settings, engine=engine, auth_provider=auth_provider, llm=fake_llm)
        )

        async with app.router.lifespan_context(app):
            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda sync: inspect(sync).get_table_names())

        await engine.dispose()
        assert {"accounts", "user_accounts", "calls", "chat_messages"} <= set(tables)
