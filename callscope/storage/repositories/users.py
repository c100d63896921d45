"""Profile repository: maps auth user ids to roles and preferences."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from callscope.models.database import Profile, _utc_now
from callscope.models.domain import User
from callscope.storage.errors import translate_db_errors
from callscope.types import Language, UserRole

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def profile_to_user(user_id: str, profile: Profile | None, email: str = "") -> User:
    """Build a ``User``; unknown or missing values fall back to agent/es."""
    if profile is None:
        return User(id=user_id, email=email)
    try:
        role = UserRole(profile.role)
    except ValueError:
        logger.warning("profile_unknown_role", user_id=user_id, role=profile.role)
        role = UserRole.AGENT
    try:
        language = Language(profile.language)
    except ValueError:
        language = Language.ES
    return User(
        id=user_id,
        email=profile.email or email,
        role=role,
        display_name=profile.full_name or "",
        language=language,
    )


class ProfileRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, user_id: str) -> Profile | None:
        with translate_db_errors():
            async with AsyncSession(self._engine) as session:
                return await session.get(Profile, user_id)

    async def load_user(self, user_id: str, email: str = "") -> User:
        profile = await self.get(user_id)
        if profile is None:
            logger.info("profile_missing", user_id=user_id)
        return profile_to_user(user_id, profile, email)

    async def upsert(
        self,
        user_id: str,
        email: str,
        role: UserRole = UserRole.AGENT,
        full_name: str | None = None,
        language: Language = Language.ES,
    ) -> Profile:
        with translate_db_errors():
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                profile = await session.get(Profile, user_id)
                if profile is None:
                    profile = Profile(id=user_id)
                profile.email = email
                profile.role = str(role)
                profile.full_name = full_name
                profile.language = str(language)
                profile.updated_at = _utc_now()
                session.add(profile)
                await session.commit()
                await session.refresh(profile)
        logger.info("profile_saved", user_id=user_id, role=str(role))
        return profile
