"""Per-client key/value storage.

Holds what a browser would keep in local storage: cached auth artifacts,
the last requested path and the selected-scope hint. Everything here is a
hint; nothing read from it is trusted without revalidation.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any


class ClientStorage:
    """In-memory key/value store owned by a single client context."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def remove_matching(self, predicate: Callable[[str], bool]) -> list[str]:
        """Remove every key matching ``predicate`` and return the removed keys."""
        removed = [key for key in self._data if predicate(key)]
        for key in removed:
            del self._data[key]
        return removed

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))
