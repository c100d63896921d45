"""Unit tests for the scoped call, behavior, prompt, feedback and chat queries."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from callscope.exceptions import (
    NoAccountsError,
    NotFoundError,
    UnassignedAccountRequestError,
    ValidationError,
)
from callscope.models.database import Behavior, Call, ChatMessage, Feedback, Prompt
from callscope.scope.resolver import ALL_SCOPE, NO_ACCOUNTS, EffectiveScope
from callscope.storage.repositories.behaviors import BehaviorQueries
from callscope.storage.repositories.calls import CallQueries
from callscope.storage.repositories.chat_messages import ChatMessageQueries
from callscope.storage.repositories.feedback import FeedbackQueries
from callscope.storage.repositories.prompts import PromptQueries
from callscope.types import ChatRole, PromptType
from conftest import add_rows

SCOPE_X = EffectiveScope.for_account("acc-x")
SCOPE_Y = EffectiveScope.for_account("acc-y")
BASE = datetime(2024, 5, 1, 9, 0)


def _prompt(prompt_id: str, account_id: str, prompt_type: str, active: bool = False) -> Prompt:
    return Prompt(
        id=prompt_id,
        account_id=account_id,
        name=prompt_id.upper(),
        content=f"content of {prompt_id}",
        type=prompt_type,
        active=active,
    )


@pytest.fixture()
async def calls_seeded(async_engine, tenants) -> None:
    await add_rows(
        async_engine,
        Call(id="x-old", account_id="acc-x", result="venta", date=BASE),
        Call(id="x-new", account_id="acc-x", result="no venta", date=BASE + timedelta(days=2)),
        Call(id="x-mid", account_id="acc-x", result="venta", date=BASE + timedelta(days=1)),
        Call(id="y-1", account_id="acc-y", result="venta", date=BASE),
        Feedback(id="fb-x", call_id="x-old", account_id="acc-x", score=7),
        Feedback(id="fb-y", call_id="y-1", account_id="acc-y", score=4),
        ChatMessage(
            id="m-x",
            account_id="acc-x",
            user_id="agent-xy",
            call_id="x-old",
            role="user",
            content="¿Qué tal?",
        ),
    )


@pytest.mark.unit
class TestCallQueries:
    async def test_list_recent_newest_first(self, runner, calls_seeded) -> None:
        rows = await CallQueries(runner).list_recent(SCOPE_X)
        assert [c.id for c in rows] == ["x-new", "x-mid", "x-old"]

    async def test_list_recent_limit(self, runner, calls_seeded) -> None:
        rows = await CallQueries(runner).list_recent(ALL_SCOPE, limit=2)
        assert len(rows) == 2

    async def test_result_counts(self, runner, calls_seeded) -> None:
        total, counts = await CallQueries(runner).result_counts(SCOPE_X)
        assert total == 3
        assert counts == {"venta": 2, "no venta": 1}

    async def test_result_counts_no_accounts(self, runner, calls_seeded) -> None:
        total, counts = await CallQueries(runner).result_counts(NO_ACCOUNTS)
        assert total == 0
        assert not counts

    async def test_get_outside_scope_is_not_found(self, runner, calls_seeded) -> None:
        queries = CallQueries(runner)
        assert (await queries.get(SCOPE_Y, "y-1")).account_id == "acc-y"
        with pytest.raises(NotFoundError):
            await queries.get(SCOPE_X, "y-1")

    async def test_delete_many_only_touches_scope(self, runner, calls_seeded) -> None:
        queries = CallQueries(runner)
        removed = await queries.delete_many(SCOPE_X, ["x-old", "y-1"])
        assert removed == 1
        assert (await queries.get(SCOPE_Y, "y-1")).id == "y-1"
        assert len(await FeedbackQueries(runner).for_call(SCOPE_X, "x-old")) == 0
        assert len(await FeedbackQueries(runner).for_call(SCOPE_Y, "y-1")) == 1
        history = await ChatMessageQueries(runner).history(SCOPE_X, "agent-xy", call_id="x-old")
        assert len(history) == 0

    async def test_delete_outside_scope_is_not_found(self, runner, calls_seeded) -> None:
        with pytest.raises(NotFoundError):
            await CallQueries(runner).delete(SCOPE_X, "y-1")

    async def test_delete_many_empty(self, runner) -> None:
        assert await CallQueries(runner).delete_many(SCOPE_X, []) == 0


@pytest.mark.unit
class TestBehaviorQueries:
    async def test_create_in_account_scope(self, runner, tenants) -> None:
        behaviors = BehaviorQueries(runner)
        created = await behaviors.create(SCOPE_X, "Saludo", "¿Saluda el agente?")
        assert created.account_id == "acc-x"
        assert [b.name for b in await behaviors.list_all(SCOPE_X)] == ["Saludo"]
        assert len(await behaviors.list_all(SCOPE_Y)) == 0

    async def test_create_under_all_requires_account(self, runner, tenants) -> None:
        behaviors = BehaviorQueries(runner)
        with pytest.raises(ValidationError):
            await behaviors.create(ALL_SCOPE, "Saludo", "prompt")
        created = await behaviors.create(ALL_SCOPE, "Saludo", "prompt", account_id="acc-y")
        assert created.account_id == "acc-y"

    async def test_create_rejected_without_accounts(self, runner) -> None:
        with pytest.raises(NoAccountsError):
            await BehaviorQueries(runner).create(NO_ACCOUNTS, "Saludo", "prompt")

    async def test_create_into_other_account_rejected(self, runner, tenants) -> None:
        with pytest.raises(UnassignedAccountRequestError):
            await BehaviorQueries(runner).create(SCOPE_X, "Saludo", "prompt", account_id="acc-y")

    async def test_create_validates_fields(self, runner) -> None:
        with pytest.raises(ValidationError) as excinfo:
            await BehaviorQueries(runner).create(SCOPE_X, "Saludo", "  ")
        assert excinfo.value.field == "prompt"

    async def test_update_and_delete(self, async_engine, runner, tenants) -> None:
        await add_rows(async_engine, Behavior(id="b-y", account_id="acc-y", name="Y", prompt="p"))
        behaviors = BehaviorQueries(runner)

        with pytest.raises(NotFoundError):
            await behaviors.update(SCOPE_X, "b-y", name="hijacked")
        updated = await behaviors.update(SCOPE_Y, "b-y", is_active=False)
        assert updated.is_active is False

        with pytest.raises(NotFoundError):
            await behaviors.delete(SCOPE_X, "b-y")
        await behaviors.delete(SCOPE_Y, "b-y")
        assert len(await behaviors.list_all(ALL_SCOPE)) == 0

    async def test_update_rejects_unknown_fields(self, runner) -> None:
        with pytest.raises(ValidationError) as excinfo:
            await BehaviorQueries(runner).update(SCOPE_X, "b-1", account_id="acc-y")
        assert excinfo.value.field == "account_id"


@pytest.mark.unit
class TestPromptQueries:
    async def test_activate_deactivates_siblings_in_same_account(
        self, async_engine, runner, tenants
    ) -> None:
        await add_rows(
            async_engine,
            _prompt("p-1", "acc-x", "summary", active=True),
            _prompt("p-2", "acc-x", "summary"),
            _prompt("p-3", "acc-x", "feedback", active=True),
            _prompt("p-4", "acc-y", "summary", active=True),
        )
        prompts = PromptQueries(runner)

        activated = await prompts.activate(SCOPE_X, "p-2")

        assert activated.active is True
        states = {p.id: p.active for p in await prompts.list_all(ALL_SCOPE)}
        assert states == {"p-1": False, "p-2": True, "p-3": True, "p-4": True}

    async def test_activate_outside_scope(self, async_engine, runner, tenants) -> None:
        await add_rows(
            async_engine,
            _prompt("p-4", "acc-y", "summary"),
        )
        with pytest.raises(NotFoundError):
            await PromptQueries(runner).activate(SCOPE_X, "p-4")

    async def test_create_and_filter_by_type(self, runner, tenants) -> None:
        prompts = PromptQueries(runner)
        created = await prompts.create(SCOPE_X, "Resumen", "Resume la llamada", "summary")
        assert created.active is False
        assert len(await prompts.list_all(SCOPE_X, PromptType.SUMMARY)) == 1
        assert len(await prompts.list_all(SCOPE_X, "feedback")) == 0

    async def test_unknown_type_rejected(self, runner) -> None:
        with pytest.raises(ValidationError) as excinfo:
            await PromptQueries(runner).create(SCOPE_X, "X", "y", "haiku")
        assert excinfo.value.field == "type"


@pytest.mark.unit
class TestChatMessageQueries:
    async def test_history_oldest_first_and_per_conversation(
        self, async_engine, runner, tenants
    ) -> None:
        await add_rows(
            async_engine,
            *[
                ChatMessage(
                    account_id="acc-x",
                    user_id="agent-xy",
                    role="user",
                    content=f"general {i}",
                    timestamp=BASE + timedelta(minutes=i),
                )
                for i in range(3)
            ],
            ChatMessage(
                account_id="acc-x",
                user_id="agent-xy",
                call_id="c-1",
                role="user",
                content="sobre la llamada",
                timestamp=BASE,
            ),
            ChatMessage(
                account_id="acc-x",
                user_id="agent-x",
                role="user",
                content="de otro usuario",
                timestamp=BASE,
            ),
        )
        chat = ChatMessageQueries(runner)

        general = await chat.history(SCOPE_X, "agent-xy", limit=2)
        assert [m.content for m in general] == ["general 1", "general 2"]
        per_call = await chat.history(SCOPE_X, "agent-xy", call_id="c-1")
        assert [m.content for m in per_call] == ["sobre la llamada"]

    async def test_general_chat_under_all_scope_has_no_account(self, runner) -> None:
        message = await ChatMessageQueries(runner).append(
            ALL_SCOPE, "root", ChatRole.USER, "Resumen global"
        )
        assert message.account_id is None

    async def test_call_chat_under_all_scope_needs_account(self, runner) -> None:
        with pytest.raises(ValidationError):
            await ChatMessageQueries(runner).append(
                ALL_SCOPE, "root", ChatRole.USER, "¿Y esta?", call_id="c-1"
            )
