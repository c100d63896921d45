"""Shared service container and FastAPI dependency accessors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from callscope.ai.chat import ChatService
from callscope.auth.provider import AuthProviderBase
from callscope.auth.single import SingleUserAuthProvider
from callscope.auth.supabase import SupabaseAuthProvider
from callscope.config.settings import SINGLE_USER_ID, Settings, get_settings
from callscope.exceptions import LLMProviderError
from callscope.llm.factory import create_llm_provider
from callscope.llm.provider import LLMProviderBase
from callscope.models.domain import AuthSession, User
from callscope.scope.query import ScopedQueryRunner
from callscope.storage.database import get_engine
from callscope.storage.repositories.accounts import AccountDirectory
from callscope.storage.repositories.behaviors import BehaviorQueries
from callscope.storage.repositories.calls import CallQueries
from callscope.storage.repositories.chat_messages import ChatMessageQueries
from callscope.storage.repositories.feedback import FeedbackQueries
from callscope.storage.repositories.prompts import PromptQueries
from callscope.storage.repositories.users import ProfileRepository
from callscope.types import Language, UserRole
from callscope.utils.clock import Clock, MonotonicClock
from callscope.web.auth.guard import RouteGuard
from callscope.web.auth.session import ClientRegistry
from callscope.web.client_context import build_client_context

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def create_auth_provider(settings: Settings) -> AuthProviderBase:
    """Create the auth provider selected by ``auth_mode``."""
    if settings.auth_mode == "supabase":
        return SupabaseAuthProvider(
            url=settings.supabase_url or "",
            anon_key=settings.supabase_anon_key or "",
        )
    if not (settings.admin_email and settings.admin_password):
        logger.warning("single_user_credentials_missing")
    return SingleUserAuthProvider(
        email=settings.admin_email or "",
        password=settings.admin_password or "",
    )


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    auth_provider: AuthProviderBase
    llm: LLMProviderBase | None
    clock: Clock
    profiles: ProfileRepository
    directory: AccountDirectory
    runner: ScopedQueryRunner
    calls: CallQueries
    behaviors: BehaviorQueries
    prompts: PromptQueries
    feedback: FeedbackQueries
    chat_messages: ChatMessageQueries
    guard: RouteGuard
    clients: ClientRegistry = field(init=False)

    async def load_user(self, session: AuthSession) -> User:
        """Resolve the signed-in user's role and preferences."""
        if self.settings.auth_mode == "single" and session.user_id == SINGLE_USER_ID:
            return User(
                id=session.user_id,
                email=session.email,
                role=UserRole.SUPER_ADMIN,
                display_name=session.email,
                language=Language(self.settings.default_language),
            )
        return await self.profiles.load_user(session.user_id, session.email)

    def chat_service(self) -> ChatService:
        if self.llm is None:
            raise LLMProviderError("no LLM provider configured")
        return ChatService(
            llm=self.llm,
            calls=self.calls,
            feedback=self.feedback,
            chat=self.chat_messages,
            settings=self.settings,
        )


def build_services(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    auth_provider: AuthProviderBase | None = None,
    llm: LLMProviderBase | None = None,
    clock: Clock | None = None,
) -> Services:
    settings = settings or get_settings()
    engine = engine or get_engine()
    if llm is None and settings.openai_api_key:
        llm = create_llm_provider(settings)
    runner = ScopedQueryRunner(
        engine,
        max_attempts=settings.query_max_attempts,
        delay_ms=settings.query_retry_delay_ms,
    )
    services = Services(
        settings=settings,
        engine=engine,
        auth_provider=auth_provider or create_auth_provider(settings),
        llm=llm,
        clock=clock or MonotonicClock(),
        profiles=ProfileRepository(engine),
        directory=AccountDirectory(engine),
        runner=runner,
        calls=CallQueries(runner),
        behaviors=BehaviorQueries(runner),
        prompts=PromptQueries(runner),
        feedback=FeedbackQueries(runner),
        chat_messages=ChatMessageQueries(runner),
        guard=RouteGuard(default_landing=settings.default_landing_path),
    )
    services.clients = ClientRegistry(
        settings.secret_key,
        factory=lambda client_id: build_client_context(client_id, services),
        max_clients=settings.max_clients,
    )
    logger.info("services_built", auth_mode=settings.auth_mode, llm=llm is not None)
    return services


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services
