"""
Declarative base for the auth tables.
"""
from __future__ import annotations
from datetime import datetime

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ...utils.datetime import get_current_time

# Stable constraint names so the schema diffs cleanly across databases
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all CityGuard tables."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    def __repr__(self) -> str:
        # Column values minus anything that looks like a credential
        columns = [
            f"{column.key}={getattr(self, column.key)!r}"
            for column in self.__table__.columns
            if "hash" not in column.key
        ]
        return f"{type(self).__name__}({', '.join(columns)})"


class TimestampMixin:
    """``created_at``/``updated_at`` as naive UTC, matching the stores' clock."""
    created_at: Mapped[datetime] = mapped_column(default=get_current_time, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=get_current_time, onupdate=get_current_time, nullable=False
    )
