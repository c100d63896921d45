"""Exception hierarchy for callscope.

Every error carries a stable ``code`` that ``callscope.messages`` maps to
localized user-facing text. Raw provider text never leaves the service.
"""


class CallScopeError(Exception):
    """Base exception for all callscope errors."""

    code = "internal_error"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthError(CallScopeError):
    """Raised when the auth provider rejects or cannot serve a request."""

    code = "auth_error"


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"


class EmailUnconfirmedError(AuthError):
    code = "email_unconfirmed"


class RateLimitedError(AuthError):
    code = "rate_limited"


class StaleRefreshTokenError(AuthError):
    code = "stale_refresh_token"


class SessionExpiredError(AuthError):
    code = "session_expired"


class AuthUnavailableError(AuthError):
    """The auth provider could not be reached."""

    code = "auth_unavailable"


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


class ScopeError(CallScopeError):
    """Raised (or recorded) when a requested account scope is not legal."""

    code = "scope_error"


class IllegalAllRequestError(ScopeError):
    code = "illegal_all_request"


class UnassignedAccountRequestError(ScopeError):
    code = "unassigned_account"


class NoAccountsError(ScopeError):
    code = "no_accounts"


class ScopeMismatchError(ScopeError):
    """Rows fetched under one scope were handed to a consumer of another."""

    code = "scope_mismatch"


class StaleScopeError(ScopeError):
    """The scope changed while a scoped operation was in flight."""

    code = "stale_scope"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class QueryError(CallScopeError):
    """Raised when a storage query fails."""

    code = "query_error"


class TransientQueryError(QueryError):
    code = "network_transient"


class AuthorizationDeniedError(QueryError):
    code = "authorization_denied"


class NotFoundError(QueryError):
    code = "not_found"


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class ValidationError(CallScopeError):
    """Field-level validation failure."""

    code = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class LLMProviderError(CallScopeError):
    """Raised when an LLM provider call fails."""

    code = "llm_error"


class ConfigError(CallScopeError):
    """Raised when configuration is invalid."""

    code = "config_error"
