"""Connection-scoped execution of planned operations.

Failures during :meth:`ExecutionContext.run` come back as an
:class:`OperationResult` with ``error`` set; they are not raised. Code that
already holds a handle (resolvers inside one request) uses :func:`dispatch`,
which raises normally.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional

from .core.planner import CountOperation, DeleteOperation, InsertOperation, SelectOperation, UpdateOperation
from .sql.store import Store, StoreHandle

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationResult:
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ExecutionContext:
    def __init__(self, store: Store):
        self.store = store

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[StoreHandle]:
        """Acquire one handle and release it on every exit path."""
        handle = await self.store.acquire()
        try:
            yield handle
        finally:
            await handle.release()

    async def dispatch(self, handle: StoreHandle, op: Any) -> Any:
        return await dispatch(handle, op)

    async def run(self, op: Any) -> OperationResult:
        try:
            async with self.connection() as handle:
                value = await dispatch(handle, op)
        except Exception as exc:
            _logger.error("%s on %s failed: %s", getattr(op, 'name', type(op).__name__), getattr(op, 'table', '?'), exc)
            return OperationResult(error=exc)
        return OperationResult(value=value)


async def dispatch(handle: StoreHandle, op: Any) -> Any:
    """Perform ``op`` (and its follow-up select) on ``handle``."""
    if isinstance(op, SelectOperation):
        return await _select(handle, op)
    if isinstance(op, InsertOperation):
        result = await handle.insert(op.table, op.values, op.primary_keys)
        follow = op.follow_up(result.record_id)
        if follow is None:
            return None
        rows = await _select(handle, follow)
        return rows[0] if rows else None
    if isinstance(op, UpdateOperation):
        await handle.update(op.table, op.values, op.where)
        rows = await _select(handle, op.follow_up())
        return rows[0] if rows else None
    if isinstance(op, DeleteOperation):
        result = await handle.delete(op.table, op.where)
        return result.affected_rows > 0
    if isinstance(op, CountOperation):
        return await handle.count(op.table, op.where)
    raise TypeError(f"Unsupported operation: {op!r}")


async def _select(handle: StoreHandle, op: SelectOperation) -> List[Any]:
    _logger.debug("%s %s columns=%s where=%s", op.name, op.table, op.columns, op.where)
    if op.bounded:
        return await handle.select_bounded(op.table, op.columns, op.bounds, op.where, op.order_by)
    return await handle.select(op.table, op.columns, op.where, op.order_by)


__all__ = ['OperationResult', 'ExecutionContext', 'dispatch']
