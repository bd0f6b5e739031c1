"""Error taxonomy shared by services and the API layer.

Services raise these instead of leaking driver or ORM exceptions. The
API layer maps each class to an HTTP status through ``status_code``.
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError, NoResultFound


class TrackingError(Exception):
    """Base exception for tracking service errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.code.replace("_", " ")
        super().__init__(self.detail)


class NotFoundError(TrackingError):
    """Raised when a referenced record doesn't exist (or is soft-deleted)."""

    status_code = 404
    code = "not_found"


class InvalidRequestError(TrackingError):
    """Raised when input is malformed, e.g. an unparseable timestamp."""

    status_code = 400
    code = "invalid_request"


class UnauthorizedError(TrackingError):
    """Raised when the caller cannot be identified."""

    status_code = 401
    code = "unauthorized"


class DuplicateKeyError(TrackingError):
    """Raised when a unique constraint is violated."""

    status_code = 409
    code = "duplicate_key"


class InternalError(TrackingError):
    """Raised for persistence failures and other unexpected conditions."""


def is_unique_violation(exc: BaseException) -> bool:
    """Check whether a database error came from a unique constraint."""
    message = str(exc).lower()
    return (
        "duplicate key value violates unique constraint" in message
        or "unique constraint failed" in message
    )


def wrap_db_error(exc: BaseException) -> TrackingError:
    """Translate a persistence exception into the service taxonomy.

    Args:
        exc: Exception raised by a repository call

    Returns:
        The matching TrackingError. Callers raise it ``from exc``.
    """
    if isinstance(exc, TrackingError):
        return exc
    if isinstance(exc, NoResultFound):
        return NotFoundError()
    if isinstance(exc, IntegrityError) and is_unique_violation(exc):
        return DuplicateKeyError()
    return InternalError()


@contextmanager
def translate_db_errors() -> Iterator[None]:
    """Re-raise anything escaping the block as a TrackingError.

    Usage:
        with translate_db_errors():
            event = await repo.get_event_by_id(event_id)
    """
    try:
        yield
    except TrackingError:
        raise
    except Exception as e:
        raise wrap_db_error(e) from e
