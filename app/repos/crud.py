"""Generic SQLAlchemy repository.

Every table in the platform gets the same handful of operations, so one
class parameterized by the row type covers them. Services wrap a
``CrudRepo`` per table and add the checks that are specific to it.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.engine import Base

RowT = TypeVar("RowT", bound=Base)


class CrudRepo(Generic[RowT]):
    """Create/read/update/delete for one table inside the caller's session."""

    def __init__(self, session: AsyncSession, row_type: type[RowT]) -> None:
        self._session = session
        self._row_type = row_type

    @property
    def row_type(self) -> type[RowT]:
        return self._row_type

    async def get(self, row_id: Any) -> RowT | None:
        return await self._session.get(self._row_type, row_id)

    async def find_one(self, *where: ColumnElement[bool]) -> RowT | None:
        stmt = select(self._row_type).where(*where).limit(1)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def exists(self, *where: ColumnElement[bool]) -> bool:
        return await self.find_one(*where) is not None

    async def find_all(
        self,
        *where: ColumnElement[bool],
        order_by: Sequence[Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RowT]:
        stmt = select(self._row_type).where(*where)
        if order_by is None:
            order_by = list(self._row_type.__mapper__.primary_key)
        stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return list((await self._session.execute(stmt)).scalars().all())

    async def count(self, *where: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self._row_type).where(*where)
        return int((await self._session.execute(stmt)).scalar_one())

    async def add(self, **values: Any) -> RowT:
        row = self._row_type(**values)
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def update(self, row: RowT, values: dict[str, Any]) -> RowT:
        for key, value in values.items():
            setattr(row, key, value)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def delete(self, *where: ColumnElement[bool]) -> int:
        """Delete matching rows; the database applies ON DELETE actions."""
        result = await self._session.execute(delete(self._row_type).where(*where))
        return result.rowcount or 0

    async def delete_by_id(self, row_id: Any) -> bool:
        pk = self._row_type.__mapper__.primary_key[0]
        return await self.delete(pk == row_id) > 0
