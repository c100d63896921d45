"""Enums and type aliases for callscope."""

from enum import StrEnum


class UserRole(StrEnum):
    SUPER_ADMIN = "superAdmin"
    ADMIN = "admin"
    QUALITY_ANALYST = "qualityAnalyst"
    SUPERVISOR = "supervisor"
    AGENT = "agent"


class Language(StrEnum):
    ES = "es"
    EN = "en"


class AccountStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AuthState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


class WatchdogState(StrEnum):
    IDLE = "idle"
    SETTLING = "settling"
    WATCHING = "watching"
    STOPPED = "stopped"


class ScopeKind(StrEnum):
    ACCOUNT = "account"
    ALL = "all"
    NONE = "none"


class PromptType(StrEnum):
    SUMMARY = "summary"
    FEEDBACK = "feedback"


class ChatRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class NotificationLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
