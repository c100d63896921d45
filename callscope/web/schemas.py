"""Response payload helpers shared by the routes."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlmodel import SQLModel

from callscope.models.database import Feedback
from callscope.models.domain import User
from callscope.scope.resolver import ScopeResolution
from callscope.scope.store import ScopeStore
from callscope.types import Language


def dump(row: SQLModel) -> dict[str, Any]:
    data = row.model_dump(mode="json")
    if isinstance(row, Feedback):
        for key in ("positive", "negative", "opportunities", "topics"):
            data.pop(f"{key}_json", None)
            data[key] = getattr(row, key)
    return data


def dump_rows(rows: Iterable[SQLModel]) -> list[dict[str, Any]]:
    return [dump(r) for r in rows]


def user_payload(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "role": str(user.role),
        "display_name": user.display_name,
        "language": str(user.language),
    }


def scope_payload(store: ScopeStore, language: Language | str) -> dict[str, Any]:
    resolution: ScopeResolution = store.current
    scope = resolution.scope
    view = store.selector_view(str(language))
    return {
        "scope": str(scope),
        "kind": str(scope.kind),
        "account_id": scope.account_id,
        "label": store.describe(str(language)),
        "requested": resolution.requested,
        "downgraded": resolution.downgraded,
        "selector": {
            "options": [{"value": o.value, "label": o.label} for o in view.options],
            "selected": view.selected,
            "disabled": view.disabled,
            "label": view.label,
            "no_accounts": view.no_accounts,
        },
    }
