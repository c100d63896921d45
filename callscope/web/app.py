"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from callscope.config.logging import setup_logging
from callscope.config.settings import get_settings
from callscope.exceptions import (
    AuthError,
    AuthorizationDeniedError,
    AuthUnavailableError,
    CallScopeError,
    IllegalAllRequestError,
    LLMProviderError,
    NoAccountsError,
    NotFoundError,
    QueryError,
    RateLimitedError,
    ScopeError,
    ScopeMismatchError,
    StaleScopeError,
    TransientQueryError,
    UnassignedAccountRequestError,
    ValidationError,
)
from callscope.messages import translate
from callscope.storage.database import init_db
from callscope.web.auth.session import require_session
from callscope.web.dependencies import Services, build_services
from callscope.web.middleware import RequestIDMiddleware
from callscope.web.routes.accounts import router as accounts_router
from callscope.web.routes.auth import router as auth_router
from callscope.web.routes.behaviors import router as behaviors_router
from callscope.web.routes.calls import router as calls_router
from callscope.web.routes.chat import router as chat_router
from callscope.web.routes.feedback import router as feedback_router
from callscope.web.routes.notifications import router as notifications_router
from callscope.web.routes.pages import router as pages_router
from callscope.web.routes.prompts import router as prompts_router
from callscope.web.routes.scope import router as scope_router

logger = structlog.get_logger(__name__)

# most specific first; the first isinstance match wins
_STATUS_BY_ERROR: tuple[tuple[type[CallScopeError], int], ...] = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (AuthorizationDeniedError, 403),
    (TransientQueryError, 503),
    (QueryError, 500),
    (StaleScopeError, 409),
    (ScopeMismatchError, 409),
    (NoAccountsError, 403),
    (UnassignedAccountRequestError, 403),
    (IllegalAllRequestError, 403),
    (ScopeError, 400),
    (RateLimitedError, 429),
    (AuthUnavailableError, 503),
    (AuthError, 401),
    (LLMProviderError, 502),
)


def status_for(exc: CallScopeError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def create_app(services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    services = services or build_services(get_settings())
    settings = services.settings
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await init_db(services.engine)
        logger.info("app_started", auth_mode=settings.auth_mode)
        yield
        services.clients.close_all()
        logger.info("app_shutdown")

    app = FastAPI(
        title="CallScope",
        description="Account-scoped call analytics backend",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # Redirect 401s to /login for browser page requests; return JSON for API
    @app.exception_handler(401)
    async def auth_redirect_handler(
        request: Request, exc: HTTPException
    ) -> RedirectResponse | JSONResponse:
        decision = services.guard.check(
            request.url.path, authenticated=False, query=request.url.query
        )
        if decision.redirect is not None:
            return RedirectResponse(url=decision.redirect, status_code=decision.status_code)
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": "session_expired", "detail": exc.detail},
        )

    @app.exception_handler(CallScopeError)
    async def callscope_error_handler(request: Request, exc: CallScopeError) -> JSONResponse:
        status = status_for(exc)
        language = getattr(request.state, "language", settings.default_language)
        content: dict[str, object] = {"code": exc.code, "detail": translate(exc.code, language)}
        if isinstance(exc, ValidationError):
            content["field"] = exc.field
        log = logger.error if status >= 500 else logger.info
        # provider and driver text is logged, never returned
        log("request_failed", code=exc.code, status=status, error=str(exc))
        return JSONResponse(status_code=status, content=content)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    # Public routes (no session required)
    app.include_router(auth_router)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        from callscope.web.health import check_health

        return await check_health(services)

    # Protected routes (API returns 401, pages redirect to /login)
    protected = [
        scope_router,
        accounts_router,
        calls_router,
        behaviors_router,
        prompts_router,
        feedback_router,
        chat_router,
        pages_router,
    ]
    for router in protected:
        app.include_router(router, dependencies=[Depends(require_session)])

    # Readable after a session is lost so the expiry notice can be shown
    app.include_router(notifications_router)

    logger.info("app_created", auth_mode=settings.auth_mode)
    return app
