"""Abstract auth provider interface."""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from callscope.models.domain import AuthSession


class AuthIdentity(BaseModel):
    id: str
    email: str = ""


class AuthProviderBase(ABC):
    """Password sign-in, token refresh and revocation.

    Implementations raise ``AuthError`` subclasses only; transport
    failures surface as ``AuthUnavailableError``.
    """

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Exchange credentials for a session."""

    @abstractmethod
    async def refresh(self, refresh_token: str) -> AuthSession:
        """Exchange a refresh token for a new session."""

    @abstractmethod
    async def sign_out(self, access_token: str) -> None:
        """Revoke the session behind ``access_token``."""

    @abstractmethod
    async def get_user(self, access_token: str) -> AuthIdentity:
        """Verify ``access_token`` and return its owner."""
