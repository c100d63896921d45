"""Pending user notifications (toasts)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from callscope.web.auth.session import find_client
from callscope.web.client_context import ClientContext

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def drain_notifications(
    client: ClientContext | None = Depends(find_client),
) -> list[dict[str, Any]]:
    if client is None:
        return []
    return [
        {
            "level": str(n.level),
            "code": n.code,
            "message": n.message,
            "created_at": n.created_at,
        }
        for n in client.notifier.drain()
    ]
