"""
CityGuard database module.

Async SQLAlchemy engine/session handling, the declarative base shared by the
auth tables, storage exceptions and the retry/timeout decorators used by the
SQL-backed stores.
"""
from .models.base import Base, TimestampMixin
from .session import Database
from .exceptions import DatabaseError, ConnectionError, IntegrityError, TimeoutError
from .utils import retry_on_db_error, with_timeout

__all__ = [
    'Database', 'Base', 'TimestampMixin',
    'DatabaseError', 'ConnectionError', 'IntegrityError', 'TimeoutError',
    'retry_on_db_error', 'with_timeout',
]
