"""Memoized access to database metadata.

``MetadataAccessor`` exposes four declared operations (tables, columns,
foreign keys, primary keys). Each one goes through :func:`memoized`, which
collapses concurrent identical lookups into one in-flight fetch and only
stores successful results.

``SQLAlchemyIntrospector`` is the default backend: it reflects through the
SQLAlchemy ``Inspector`` on one lazily opened, shared ``AsyncConnection``.
"""
from __future__ import annotations

import asyncio
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from sqlalchemy import inspect
from sqlalchemy.exc import CompileError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.sqltypes import Integer

from .core.types import ColumnMeta, ForeignKeyMeta, TableMeta

_logger = logging.getLogger(__name__)

_MISSING = object()


class MetadataStore(Protocol):
    """Pluggable key -> value store for introspection results."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class InMemoryStore:
    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


def cache_key(operation: str, args: tuple) -> str:
    return f"{operation}:{json.dumps(list(args), default=str, sort_keys=True)}"


class Memoizer:
    """At-most-one-in-flight-per-key memoization over a :class:`MetadataStore`."""

    def __init__(self, store: Optional[MetadataStore] = None):
        self.store: MetadataStore = store if store is not None else InMemoryStore()
        self._inflight: Dict[str, asyncio.Future] = {}

    async def get_with_set(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        hit = self.store.get(key, _MISSING)
        if hit is not _MISSING:
            return hit
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fill(key, factory))
            self._inflight[key] = task

            def _forget(done: asyncio.Future, key: str = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)
        return await asyncio.shield(task)

    async def _fill(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        value = await factory()
        self.store.set(key, value)
        return value

    def in_flight(self) -> int:
        return len(self._inflight)


def memoized(operation: str):
    """Cache an accessor coroutine under ``(operation, args)``."""
    def deco(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args):
            key = cache_key(operation, args)
            return await self._memo.get_with_set(key, lambda: fn(self, *args))
        wrapper.__introql_operation__ = operation
        return wrapper
    return deco


class IntrospectionBackend(Protocol):
    async def list_tables(self) -> Dict[str, TableMeta]: ...

    async def list_columns(self, table: str) -> Dict[str, ColumnMeta]: ...

    async def list_foreign_keys(self, table: str) -> Dict[str, ForeignKeyMeta]: ...

    async def list_primary_keys(self, table: str) -> List[str]: ...

    async def release(self) -> None: ...


class MetadataAccessor:
    def __init__(self, backend: IntrospectionBackend, store: Optional[MetadataStore] = None):
        self.backend = backend
        self._memo = Memoizer(store)
        self._released = False

    @memoized('list_tables')
    async def list_tables(self) -> Dict[str, TableMeta]:
        return await self.backend.list_tables()

    @memoized('list_columns')
    async def list_columns(self, table: str) -> Dict[str, ColumnMeta]:
        return await self.backend.list_columns(table)

    @memoized('list_foreign_keys')
    async def list_foreign_keys(self, table: str) -> Dict[str, ForeignKeyMeta]:
        return await self.backend.list_foreign_keys(table)

    @memoized('list_primary_keys')
    async def list_primary_keys(self, table: str) -> List[str]:
        return await self.backend.list_primary_keys(table)

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.backend.release()


class SQLAlchemyIntrospector:
    """Introspection backend reflecting through SQLAlchemy's ``Inspector``."""

    def __init__(self, engine: AsyncEngine, schema: Optional[str] = None):
        self.engine = engine
        self.schema = schema
        self._connection: Optional[asyncio.Future] = None
        # AsyncConnection is not safe for concurrent use; serialize reflection calls.
        self._lock = asyncio.Lock()
        self._released = False

    async def _open(self) -> AsyncConnection:
        return await self.engine.connect()

    async def _conn(self) -> AsyncConnection:
        if self._connection is None:
            self._connection = asyncio.ensure_future(self._open())
        return await asyncio.shield(self._connection)

    async def _reflect(self, fn: Callable[..., Any]) -> Any:
        conn = await self._conn()
        async with self._lock:
            return await conn.run_sync(fn)

    async def list_tables(self) -> Dict[str, TableMeta]:
        schema = self.schema

        def _tables(sync_conn):
            insp = inspect(sync_conn)
            out: Dict[str, TableMeta] = {}
            for name in insp.get_table_names(schema=schema):
                try:
                    comment = insp.get_table_comment(name, schema=schema).get('text')
                except NotImplementedError:
                    comment = None
                out[name] = TableMeta(name=name, comment=comment or None)
            return out

        return await self._reflect(_tables)

    async def list_columns(self, table: str) -> Dict[str, ColumnMeta]:
        schema = self.schema

        def _columns(sync_conn):
            insp = inspect(sync_conn)
            pk = (insp.get_pk_constraint(table, schema=schema) or {}).get('constrained_columns') or []
            out: Dict[str, ColumnMeta] = {}
            for col in insp.get_columns(table, schema=schema):
                name = col['name']
                out[name] = ColumnMeta(
                    name=name,
                    type=_native_type(col.get('type'), sync_conn.dialect),
                    nullable=bool(col.get('nullable', True)),
                    comment=col.get('comment') or None,
                    primary_key=name in pk,
                    generated=_is_generated(col, pk),
                )
            return out

        return await self._reflect(_columns)

    async def list_foreign_keys(self, table: str) -> Dict[str, ForeignKeyMeta]:
        schema = self.schema

        def _foreign_keys(sync_conn):
            insp = inspect(sync_conn)
            out: Dict[str, ForeignKeyMeta] = {}
            for fk in insp.get_foreign_keys(table, schema=schema):
                local = fk.get('constrained_columns') or []
                remote = fk.get('referred_columns') or []
                base_name = fk.get('name') or f"{table}_{'_'.join(local)}_fkey"
                for i, (column, referenced) in enumerate(zip(local, remote)):
                    name = base_name if len(local) == 1 else f"{base_name}_{i}"
                    out[name] = ForeignKeyMeta(
                        name=name,
                        table=table,
                        column=column,
                        referenced_table=fk['referred_table'],
                        referenced_column=referenced,
                    )
            return out

        return await self._reflect(_foreign_keys)

    async def list_primary_keys(self, table: str) -> List[str]:
        schema = self.schema

        def _primary_keys(sync_conn):
            pk = inspect(sync_conn).get_pk_constraint(table, schema=schema) or {}
            return list(pk.get('constrained_columns') or [])

        return await self._reflect(_primary_keys)

    async def release(self) -> None:
        if self._released or self._connection is None:
            self._released = True
            return
        self._released = True
        pending = self._connection
        if pending.done() and (pending.cancelled() or pending.exception() is not None):
            # never connected
            return
        conn = await pending
        await conn.close()


def _native_type(sa_type: Any, dialect: Any) -> str:
    if sa_type is None:
        return ''
    try:
        return str(sa_type.compile(dialect=dialect))
    except CompileError:
        # NullType and friends have no DDL form
        return str(sa_type.__class__.__name__)


def _is_generated(col: Dict[str, Any], pk: List[str]) -> bool:
    if col.get('default') is not None or col.get('computed') or col.get('identity'):
        return True
    auto = col.get('autoincrement')
    if auto is True:
        return True
    if auto is False:
        return False
    # Single integer primary keys are row-id aliases / serials on every supported dialect
    return len(pk) == 1 and col['name'] in pk and isinstance(col.get('type'), Integer)


__all__ = [
    'MetadataStore', 'InMemoryStore', 'Memoizer', 'memoized', 'cache_key',
    'IntrospectionBackend', 'MetadataAccessor', 'SQLAlchemyIntrospector',
]
