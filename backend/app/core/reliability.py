"""
Reliability Utilities.

Maps connection-level database failures onto the domain's StoreUnavailableError
so callers can tell "store down, retry the idempotent operation" apart from
domain errors.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from backend.app.core.exceptions import StoreUnavailableError


def is_store_unavailable(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """
    Re-raise connection failures inside the block as StoreUnavailableError.

    Usage:
        with store_errors("check_consistency"):
            result = await db.execute(query)
    """
    try:
        yield
    except DBAPIError as exc:
        if is_store_unavailable(exc):
            raise StoreUnavailableError(operation) from exc
        raise
