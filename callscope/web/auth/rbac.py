"""Role-based access control dependencies."""

from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException

from callscope.messages import translate
from callscope.types import UserRole
from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext

logger = structlog.get_logger(__name__)


async def require_super_admin(
    client: ClientContext = Depends(require_scope),
) -> ClientContext:
    """Require the superAdmin role."""
    user = client.session.user
    if user is None or user.role != UserRole.SUPER_ADMIN:
        logger.warning(
            "super_admin_required",
            user_id=user.id if user else None,
            role=str(user.role) if user else None,
        )
        raise HTTPException(
            status_code=403, detail=translate("authorization_denied", client.language)
        )
    return client
