"""Selection-aware planning of native store operations.

The planner never touches the database. Given an entity, the caller's
selection tree and declarative arguments it produces a small operation value
describing exactly which native primitive to call, with which columns and
which filter/order/bounds. :mod:`introql.execution` performs the calls.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .selection import Selection
from .type_mapper import to_python
from .types import Entity, EntityGraph, RelationshipField, ScalarKind

_logger = logging.getLogger(__name__)

# Kinds whose filter strings are passed through verbatim.
_UNCOERCED = (ScalarKind.STRING, ScalarKind.JSON, ScalarKind.ENUMERATION)


@dataclass(frozen=True)
class QueryArgs:
    where: Optional[Mapping[str, Any]] = None
    order_by: Optional[Mapping[str, Any]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass(frozen=True)
class SelectOperation:
    table: str
    columns: Tuple[str, ...]
    where: Dict[str, Any] = field(default_factory=dict)
    order_by: Dict[str, str] = field(default_factory=dict)
    limit: Optional[int] = None
    offset: Optional[int] = None

    @property
    def bounded(self) -> bool:
        # zero limit/offset collapse to "no bound"
        return bool(self.limit) or bool(self.offset)

    @property
    def bounds(self) -> Tuple[Optional[int], ...]:
        if not self.bounded:
            return ()
        limit = self.limit or None
        if self.offset:
            return (limit, self.offset)
        return (limit,)

    @property
    def name(self) -> str:
        return 'select_bounded' if self.bounded else 'select'


@dataclass(frozen=True)
class InsertOperation:
    table: str
    values: Dict[str, Any]
    columns: Tuple[str, ...]
    primary_keys: Tuple[str, ...]

    name = 'insert'

    def follow_up(self, record_id: Any) -> Optional[SelectOperation]:
        """Select returning the canonical inserted row.

        Primary-key values from the input win over the generated id. Without a
        primary key the row can't be identified and nothing is selected.
        """
        if not self.primary_keys:
            return None
        where: Dict[str, Any] = {}
        for pk in self.primary_keys:
            supplied = self.values.get(pk)
            where[pk] = supplied if supplied is not None else record_id
        return SelectOperation(table=self.table, columns=self.columns, where=where)


@dataclass(frozen=True)
class UpdateOperation:
    table: str
    values: Dict[str, Any]
    where: Dict[str, Any]
    columns: Tuple[str, ...]

    name = 'update'

    def follow_up(self) -> SelectOperation:
        return SelectOperation(table=self.table, columns=self.columns, where=dict(self.where))


@dataclass(frozen=True)
class DeleteOperation:
    table: str
    where: Dict[str, Any]

    name = 'delete'


@dataclass(frozen=True)
class CountOperation:
    table: str
    where: Dict[str, Any]

    name = 'count'


class QueryPlanner:
    """Plans native operations against an immutable :class:`EntityGraph`."""

    def __init__(self, graph: EntityGraph):
        self.graph = graph

    # ---------- projection ----------
    def project(self, entity: Entity, selection: Selection) -> Tuple[str, ...]:
        """Minimal column list for one level of ``selection``.

        Leaves contribute their own column. Relationship requests contribute
        only their driving column so the relationship can be resolved later;
        the relationship's name is never sent to the store.
        """
        columns: List[str] = []
        for child in selection.children:
            if child.name.startswith('__'):
                continue
            rel = entity.relationship(child.name)
            if rel is not None:
                col = rel.local_column
            else:
                f = entity.field(child.name)
                if f is None:
                    _logger.debug("Ignoring unknown field '%s' on %s", child.name, entity.name)
                    continue
                col = f.column
            if col not in columns:
                columns.append(col)
        if not columns:
            # e.g. only __typename was requested; the store still needs a column
            fallback = entity.primary_keys or entity.columns[:1]
            columns.extend(fallback)
        return tuple(columns)

    # ---------- argument normalization ----------
    def coerce_where(self, entity: Entity, where: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, value in (where or {}).items():
            f = entity.field_for_column(key) or entity.field(key)
            if f is None:
                out[key] = value
                continue
            if f.type.kind in _UNCOERCED:
                out[f.column] = value
            else:
                out[f.column] = to_python(f.type.kind, value)
        return out

    def normalize_order(self, entity: Entity, order_by: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for key, direction in (order_by or {}).items():
            if direction is None:
                continue
            f = entity.field_for_column(key) or entity.field(key)
            column = f.column if f is not None else key
            value = str(getattr(direction, 'value', direction)).lower()
            out[column] = 'desc' if value == 'desc' else 'asc'
        return out

    def values_for(self, entity: Entity, values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, value in (values or {}).items():
            f = entity.field_for_column(key) or entity.field(key)
            out[f.column if f is not None else key] = value
        return out

    # ---------- reads ----------
    def plan_select(self, entity: Entity, selection: Selection, args: Optional[QueryArgs] = None) -> SelectOperation:
        args = args or QueryArgs()
        op = SelectOperation(
            table=entity.table_name,
            columns=self.project(entity, selection),
            where=self.coerce_where(entity, args.where),
            order_by=self.normalize_order(entity, args.order_by),
            limit=args.limit,
            offset=args.offset,
        )
        _logger.debug("Planned %s on %s columns=%s", op.name, op.table, op.columns)
        return op

    def plan_relation(
        self,
        relationship: RelationshipField,
        parent_row: Mapping[str, Any],
        selection: Selection,
        args: Optional[QueryArgs] = None,
    ) -> Optional[SelectOperation]:
        """Traverse ``relationship`` from ``parent_row``.

        The implicit join predicate is merged with the caller's filter; the
        caller's keys win on conflict. Returns None when the parent has no
        value in the driving column (nothing can match).
        """
        args = args or QueryArgs()
        value = parent_row.get(relationship.local_column)
        if value is None:
            return None
        target = self.graph.target_of(relationship)
        where: Dict[str, Any] = {relationship.target_column: value}
        where.update(self.coerce_where(target, args.where))
        return SelectOperation(
            table=target.table_name,
            columns=self.project(target, selection),
            where=where,
            order_by=self.normalize_order(target, args.order_by),
            limit=args.limit,
            offset=args.offset,
        )

    def plan_count(self, entity: Entity, where: Optional[Mapping[str, Any]] = None) -> CountOperation:
        return CountOperation(table=entity.table_name, where=self.coerce_where(entity, where))

    # ---------- writes ----------
    def plan_insert(self, entity: Entity, values: Mapping[str, Any], selection: Selection) -> InsertOperation:
        return InsertOperation(
            table=entity.table_name,
            values=self.values_for(entity, values),
            columns=self.project(entity, selection),
            primary_keys=entity.primary_keys,
        )

    def plan_update(
        self,
        entity: Entity,
        values: Mapping[str, Any],
        where: Optional[Mapping[str, Any]],
        selection: Selection,
    ) -> UpdateOperation:
        return UpdateOperation(
            table=entity.table_name,
            values=self.values_for(entity, values),
            where=self.coerce_where(entity, where),
            columns=self.project(entity, selection),
        )

    def plan_delete(self, entity: Entity, where: Optional[Mapping[str, Any]] = None) -> DeleteOperation:
        return DeleteOperation(table=entity.table_name, where=self.coerce_where(entity, where))


__all__ = [
    'QueryArgs', 'QueryPlanner',
    'SelectOperation', 'InsertOperation', 'UpdateOperation', 'DeleteOperation', 'CountOperation',
]
