"""Protected page shells.

Each page answers with the bootstrap payload the SPA renders from: the
page name, the user, the scope selector and pending notifications. A page
load re-resolves the scope against fresh account assignments.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from callscope.auth.session_store import LAST_PATH_KEY
from callscope.web.auth.guard import PROTECTED_PAGES
from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import scope_payload, user_payload

router = APIRouter(tags=["pages"])


async def page_shell(
    request: Request,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    path = request.url.path
    target = services.guard.preserve_target(path, request.url.query)
    if target is not None:
        client.storage.set(LAST_PATH_KEY, target)
    client.watchdog.on_navigate(path, protected=services.guard.is_protected(path))
    return {
        "page": path.strip("/").split("/", 1)[0],
        "path": path,
        "user": user_payload(client.user),
        "scope": scope_payload(client.scope, client.language),
        "notifications": [n.message for n in client.notifier.drain()],
    }


for _page in PROTECTED_PAGES:
    router.add_api_route(_page, page_shell, methods=["GET"], include_in_schema=False)
    router.add_api_route(
        _page + "/{rest:path}", page_shell, methods=["GET"], include_in_schema=False
    )
