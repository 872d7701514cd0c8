"""
Base CRUD operations.

This module contains generic operations shared by the model-specific CRUD
classes. Forecast tables are keyed by composite natural keys and written
with insert-or-update, so the base exposes a dialect-aware upsert instead
of create/update.
"""

from typing import Any, Dict, Generic, List, Sequence, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from stationdash.database import Base

ModelType = TypeVar("ModelType", bound=Base)

_INSERT_BY_DIALECT = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class CRUDBase(Generic[ModelType]):
    """
    Base CRUD operations class.

    Provides generic operations that can be used by specific model CRUD classes.
    """

    def __init__(self, model: Type[ModelType]):
        """
        Initialize CRUD operations for a specific model.

        Args:
            model: The SQLAlchemy model class
        """
        self.model = model

    @property
    def key_columns(self) -> List[str]:
        """Names of the primary key columns, in table order."""
        return [c.name for c in self.model.__table__.primary_key.columns]

    async def upsert(
        self,
        db: AsyncSession,
        *,
        rows: Sequence[Dict[str, Any]],
        commit: bool = True,
    ) -> int:
        """
        Insert rows, updating non-key columns when the primary key exists.

        Args:
            db: Database session
            rows: Column dictionaries, each containing every key column
            commit: Commit after the statement

        Returns:
            Number of rows written

        Raises:
            NotImplementedError: Dialect has no ON CONFLICT support here
        """
        if not rows:
            return 0

        dialect = db.get_bind().dialect.name
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

        keys = self.key_columns
        stmt = insert(self.model).values(list(rows))
        update_columns = {
            name: stmt.excluded[name]
            for name in rows[0].keys()
            if name not in keys
        }
        update_columns["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=keys, set_=update_columns)

        await db.execute(stmt)
        if commit:
            await db.commit()
        return len(rows)
