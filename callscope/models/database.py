"""SQLModel database table models."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _loads_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    value = json.loads(raw)
    return [str(v) for v in value] if isinstance(value, list) else []


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str = Field(index=True)
    status: str = Field(default="active")  # active | inactive
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(primary_key=True)  # auth provider user id
    email: str = ""
    full_name: str | None = None
    role: str = Field(default="agent")
    language: str = Field(default="es")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class UserAccount(SQLModel, table=True):
    __tablename__ = "user_accounts"
    __table_args__ = (UniqueConstraint("user_id", "account_id"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    user_id: str = Field(index=True)
    account_id: str = Field(foreign_key="accounts.id", index=True)
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Account-scoped domain data (every table carries account_id)
# ---------------------------------------------------------------------------


class Call(SQLModel, table=True):
    __tablename__ = "calls"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    account_id: str | None = Field(default=None, foreign_key="accounts.id", index=True)
    title: str = ""
    agent_name: str = ""
    date: datetime = Field(default_factory=_utc_now, index=True)
    duration: int = Field(default=0)  # seconds
    status: str = Field(default="pending")
    result: str | None = None  # venta | no venta
    product: str | None = None  # fijo | móvil
    summary: str | None = None
    transcription: str | None = None
    audio_url: str = ""
    created_at: datetime = Field(default_factory=_utc_now)


class Behavior(SQLModel, table=True):
    __tablename__ = "behaviors"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    account_id: str | None = Field(default=None, foreign_key="accounts.id", index=True)
    name: str
    description: str | None = None
    prompt: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Prompt(SQLModel, table=True):
    __tablename__ = "prompts"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    account_id: str | None = Field(default=None, foreign_key="accounts.id", index=True)
    name: str
    content: str
    type: str = Field(index=True)  # summary | feedback
    active: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Feedback(SQLModel, table=True):
    __tablename__ = "feedback"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    account_id: str | None = Field(default=None, foreign_key="accounts.id", index=True)
    call_id: str = Field(foreign_key="calls.id", index=True)
    score: int = Field(default=0)
    sentiment: str | None = None
    positive_json: str | None = None
    negative_json: str | None = None
    opportunities_json: str | None = None
    topics_json: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def positive(self) -> list[str]:
        return _loads_list(self.positive_json)

    @property
    def negative(self) -> list[str]:
        return _loads_list(self.negative_json)

    @property
    def opportunities(self) -> list[str]:
        return _loads_list(self.opportunities_json)

    @property
    def topics(self) -> list[str]:
        return _loads_list(self.topics_json)


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    account_id: str | None = Field(default=None, foreign_key="accounts.id", index=True)
    user_id: str = Field(index=True)
    call_id: str | None = Field(default=None, index=True)
    role: str  # user | assistant
    content: str
    timestamp: datetime = Field(default_factory=_utc_now)
