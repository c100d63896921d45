"""Inter-module data contracts (not persisted directly)."""

from pydantic import BaseModel, ConfigDict

from callscope.types import Language, UserRole


class User(BaseModel):
    """The signed-in user as seen by the scope resolver."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str = ""
    role: UserRole = UserRole.AGENT
    display_name: str = ""
    language: Language = Language.ES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN


class AuthSession(BaseModel):
    """Tokens handed out by the auth provider."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str = ""
    access_token: str
    refresh_token: str
    expires_at: float  # unix epoch seconds


class ChatTurn(BaseModel):
    role: str
    content: str
