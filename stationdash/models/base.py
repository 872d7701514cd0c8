"""
Base database model with common fields and functionality.

Forecast tables use composite natural keys, so the shared base only
contributes the created_at/updated_at bookkeeping columns.
"""

from typing import Any

from sqlalchemy import Column, DateTime
from sqlalchemy.ext.declarative import declared_attr
from sqlalchemy.sql import func

from stationdash.database import Base


class TimestampedModel(Base):
    """
    Abstract base adding created_at and updated_at columns.
    """

    __abstract__ = True

    @declared_attr
    def created_at(cls):
        """Timestamp when record was created."""
        return Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @declared_attr
    def updated_at(cls):
        """Timestamp when record was last updated."""
        return Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:
        """String representation of the model instance."""
        keys = ", ".join(
            f"{c.name}={getattr(self, c.name)!r}" for c in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({keys})>"

    def dict(self) -> dict[str, Any]:
        """Convert model instance to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}
