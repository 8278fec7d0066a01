"""Native data store backed by SQLAlchemy Core on an ``AsyncEngine``.

Statements are built from lightweight ``table()``/``column()`` constructs, so
no ORM models or reflected ``Table`` objects are needed at request time.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import column as sa_column
from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import insert as sa_insert
from sqlalchemy import literal_column, select
from sqlalchemy import table as sa_table
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsertResult:
    record_id: Any = None


@dataclass(frozen=True)
class WriteResult:
    affected_rows: int = 0


class StoreHandle(Protocol):
    async def select(self, table: str, columns: Sequence[str], where: Mapping[str, Any], order_by: Mapping[str, str]) -> List[Dict[str, Any]]: ...

    async def select_bounded(self, table: str, columns: Sequence[str], bounds: Sequence[Optional[int]], where: Mapping[str, Any], order_by: Mapping[str, str]) -> List[Dict[str, Any]]: ...

    async def insert(self, table: str, values: Mapping[str, Any], primary_keys: Sequence[str] = ()) -> InsertResult: ...

    async def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> WriteResult: ...

    async def delete(self, table: str, where: Mapping[str, Any]) -> WriteResult: ...

    async def count(self, table: str, where: Mapping[str, Any]) -> int: ...

    async def release(self) -> None: ...


class Store(Protocol):
    async def acquire(self) -> StoreHandle: ...


def _table(name: str, *names: Any):
    cols: List[str] = []
    for group in names:
        for n in (group or ()):
            if n not in cols:
                cols.append(n)
    return sa_table(name, *(sa_column(c) for c in cols))


def _where_clause(tbl, where: Mapping[str, Any]):
    clauses = []
    for key, value in (where or {}).items():
        col = tbl.c[key]
        clauses.append(col.is_(None) if value is None else col == value)
    return clauses


def _order_clause(tbl, order_by: Mapping[str, str]):
    out = []
    for key, direction in (order_by or {}).items():
        col = tbl.c[key]
        out.append(col.desc() if str(direction).lower() == 'desc' else col.asc())
    return out


class SQLAlchemyHandle:
    """One connection-scoped handle; every call of a request goes through it."""

    def __init__(self, connection: AsyncConnection):
        self.connection = connection
        self._released = False

    def _select_stmt(self, table: str, columns: Sequence[str], where: Mapping[str, Any], order_by: Mapping[str, str]):
        tbl = _table(table, columns, (where or {}).keys(), (order_by or {}).keys())
        stmt = select(*(tbl.c[c] for c in columns)) if columns else select(literal_column('1'))
        stmt = stmt.select_from(tbl)
        clauses = _where_clause(tbl, where)
        if clauses:
            stmt = stmt.where(*clauses)
        order = _order_clause(tbl, order_by)
        if order:
            stmt = stmt.order_by(*order)
        return stmt

    async def _rows(self, stmt) -> List[Dict[str, Any]]:
        result = await self.connection.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def select(self, table, columns, where, order_by):
        return await self._rows(self._select_stmt(table, columns, where, order_by))

    async def select_bounded(self, table, columns, bounds, where, order_by):
        stmt = self._select_stmt(table, columns, where, order_by)
        bounds = list(bounds or [])
        limit = bounds[0] if bounds else None
        offset = bounds[1] if len(bounds) > 1 else None
        if limit:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return await self._rows(stmt)

    def _insert_stmt(self, table: str, values: Mapping[str, Any], returning: Sequence[str] = ()):
        tbl = _table(table, (values or {}).keys(), returning)
        stmt = sa_insert(tbl).values(**dict(values or {}))
        if returning:
            stmt = stmt.returning(*(tbl.c[c] for c in returning))
        return stmt

    async def insert(self, table, values, primary_keys=()):
        """Insert one row; the generated id comes from RETURNING or ``lastrowid``."""
        returning = tuple(primary_keys or ()) if self.connection.dialect.insert_returning else ()
        result = await self.connection.execute(self._insert_stmt(table, values, returning))
        if returning:
            row = result.first()
            record_id = row[0] if row is not None else None
        else:
            record_id = result.lastrowid
        await self.connection.commit()
        return InsertResult(record_id=record_id)

    async def update(self, table, values, where):
        tbl = _table(table, (values or {}).keys(), (where or {}).keys())
        stmt = sa_update(tbl).values(**dict(values or {}))
        clauses = _where_clause(tbl, where)
        if clauses:
            stmt = stmt.where(*clauses)
        result = await self.connection.execute(stmt)
        await self.connection.commit()
        return WriteResult(affected_rows=int(result.rowcount or 0))

    async def delete(self, table, where):
        tbl = _table(table, (where or {}).keys())
        stmt = sa_delete(tbl)
        clauses = _where_clause(tbl, where)
        if clauses:
            stmt = stmt.where(*clauses)
        result = await self.connection.execute(stmt)
        await self.connection.commit()
        return WriteResult(affected_rows=int(result.rowcount or 0))

    async def count(self, table, where):
        tbl = _table(table, (where or {}).keys())
        stmt = select(func.count()).select_from(tbl)
        clauses = _where_clause(tbl, where)
        if clauses:
            stmt = stmt.where(*clauses)
        result = await self.connection.execute(stmt)
        return int(result.scalar() or 0)

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.connection.close()


class SQLAlchemyStore:
    """Store over a caller-owned ``AsyncEngine``; the caller disposes it."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def acquire(self) -> SQLAlchemyHandle:
        connection = await self.engine.connect()
        return SQLAlchemyHandle(connection)


__all__ = ['InsertResult', 'WriteResult', 'StoreHandle', 'Store', 'SQLAlchemyHandle', 'SQLAlchemyStore']
