"""
Storage exceptions shared by the SQL and in-memory stores.

The API layer renders all of them as ``Internal`` (500); the auth service
turns an IntegrityError on user creation into a Conflict.
"""
from typing import Any, Dict, Optional


class DatabaseError(Exception):
    """A storage operation failed.

    Args:
        message: What failed, for operators
        context: Structured details for the logs
        original_exception: The driver or SQLAlchemy error, when there is one
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.context = context or {}
        self.original_exception = original_exception


class ConnectionError(DatabaseError):
    """The database was unreachable. Reads may be retried."""


class IntegrityError(DatabaseError):
    """A unique or foreign-key constraint rejected a write."""


class TimeoutError(DatabaseError):
    """A store call ran past the store's configured timeout."""


__all__ = ["DatabaseError", "ConnectionError", "IntegrityError", "TimeoutError"]
