"""Translation of driver and SQLAlchemy failures into query errors."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from callscope.exceptions import AuthorizationDeniedError, QueryError, TransientQueryError

# Postgres insufficient_privilege; RLS violations also surface with this text
_PERMISSION_MARKERS = ("permission denied", "row-level security", "42501")

_DB_FAILURES = (DBAPIError, PoolTimeoutError, OSError, TimeoutError)
_TRANSIENT = (OperationalError, InterfaceError, PoolTimeoutError, OSError, TimeoutError)


def map_db_error(exc: BaseException) -> QueryError:
    """Classify ``exc`` as transient, authorization or generic query failure."""
    text = str(getattr(exc, "orig", None) or exc).lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return AuthorizationDeniedError(text)
    if isinstance(exc, _TRANSIENT):
        return TransientQueryError(text)
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransientQueryError(text)
    return QueryError(text)


@contextmanager
def translate_db_errors() -> Iterator[None]:
    try:
        yield
    except _DB_FAILURES as exc:
        raise map_db_error(exc) from exc
