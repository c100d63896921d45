"""Protected-route policy and post-login redirect targets."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, urlsplit

import structlog

logger = structlog.get_logger(__name__)

PROTECTED_PAGES = (
    "/analytics",
    "/calls",
    "/agents",
    "/workforce",
    "/chat",
    "/behaviors",
    "/prompts",
    "/users",
    "/accounts",
    "/settings",
)
PUBLIC_API_PATHS = frozenset(
    {"/api/auth/login", "/api/auth/logout", "/api/health", "/api/notifications"}
)
LOGIN_PATH = "/login"
# never stored as a post-login target; restoring them would loop
NEVER_PRESERVED = frozenset({LOGIN_PATH, "/"})


@dataclass(frozen=True, slots=True)
class GuardDecision:
    allowed: bool
    redirect: str | None = None
    status_code: int = 200


class RouteGuard:
    def __init__(self, default_landing: str = "/analytics") -> None:
        self.default_landing = default_landing

    def is_api(self, path: str) -> bool:
        return path.startswith("/api/")

    def is_protected(self, path: str) -> bool:
        if self.is_api(path):
            return path not in PUBLIC_API_PATHS
        return any(path == page or path.startswith(page + "/") for page in PROTECTED_PAGES)

    def check(self, path: str, authenticated: bool, query: str = "") -> GuardDecision:
        """Decide whether a navigation may proceed.

        Unauthenticated page requests redirect to sign-in with the target
        preserved; API requests are answered with 401 instead.
        """
        if authenticated or not self.is_protected(path):
            return GuardDecision(allowed=True)
        if self.is_api(path):
            return GuardDecision(allowed=False, status_code=401)
        logger.info("route_guard_redirect", path=path)
        return GuardDecision(allowed=False, redirect=self.login_url(path, query), status_code=302)

    def preserve_target(self, path: str, query: str = "") -> str | None:
        """The ``path?query`` to come back to after sign-in, if any."""
        target = f"{path}?{query}" if query else path
        return target if self._is_restorable(target) else None

    def login_url(self, path: str, query: str = "") -> str:
        target = self.preserve_target(path, query)
        if target is None:
            return LOGIN_PATH
        return f"{LOGIN_PATH}?next={quote(target, safe='/')}"

    def restore_target(self, candidate: str | None) -> str:
        """Where to send the user after sign-in."""
        if candidate and self._is_restorable(candidate):
            return candidate
        return self.default_landing

    def _is_restorable(self, target: str) -> bool:
        if not target.startswith("/") or target.startswith("//") or "\\" in target:
            return False
        if "undefined" in target:
            return False
        parts = urlsplit(target)
        if parts.scheme or parts.netloc:
            return False
        return parts.path not in NEVER_PRESERVED and not self.is_api(parts.path)
