"""Entity construction and graph assembly.

``build_entity`` is pure: one table plus its columns in, one :class:`Entity`
out. ``assemble_graph`` registers every generated type name in a single
registry and fails loudly on collisions. ``build_entity_graph`` drives both
from a :class:`~introql.metadata.MetadataAccessor`, fanning out per table.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import NameCollisionError, SchemaBuildError
from .naming import RESERVED_TYPE_NAMES, sanitize_name, type_names_for
from .type_mapper import map_type
from .types import (
    FILTER_TYPE,
    ORDER_BY_TYPE,
    ColumnMeta,
    Entity,
    EntityField,
    EntityGraph,
    ForeignKeyMeta,
    Shape,
    ShapeField,
    TableMeta,
)
from .wiring import wire

_logger = logging.getLogger("introql")


def exposed_columns(
    table: str,
    columns: Mapping[str, ColumnMeta],
    subset: Optional[Sequence[str]] = None,
) -> List[ColumnMeta]:
    if subset is None:
        return list(columns.values())
    out: List[ColumnMeta] = []
    for name in subset:
        col = columns.get(name)
        if col is None:
            _logger.warning("Column '%s' configured for table '%s' does not exist; skipping", name, table)
            continue
        out.append(col)
    return out


def build_entity(
    table: TableMeta,
    columns: Mapping[str, ColumnMeta],
    subset: Optional[Sequence[str]] = None,
    primary_keys: Iterable[str] = (),
) -> Entity:
    """Build the entity for ``table`` and its five generated shapes.

    Object and insert shapes honor the column's nullability (insert also lets
    generated columns be omitted); update fields are always optional so
    partial updates can be expressed; where fields are plain strings and
    order fields are ``OrderBy``.
    """
    names = type_names_for(table.name)
    cols = exposed_columns(table.name, columns, subset)
    exposed = {c.name for c in cols}
    extra_pks = [pk for pk in primary_keys if pk in exposed]

    fields: List[EntityField] = []
    seen: Dict[str, str] = {}
    pks: List[str] = []
    for col in cols:
        fname = sanitize_name(col.name)
        if fname in seen:
            raise NameCollisionError(
                fname, f"column '{table.name}.{seen[fname]}'", f"column '{table.name}.{col.name}'"
            )
        seen[fname] = col.name
        is_pk = bool(col.primary_key) or col.name in extra_pks
        if is_pk and col.name not in pks:
            pks.append(col.name)
        fields.append(EntityField(
            name=fname,
            column=col.name,
            type=map_type(col.type, table=table.name, column=col.name),
            nullable=bool(col.nullable),
            comment=col.comment,
            primary_key=is_pk,
            generated=bool(col.generated),
        ))

    def _shape(name: str, make) -> Shape:
        return Shape(name=name, fields=tuple(make(f) for f in fields), description=table.comment)

    return Entity(
        table=table,
        fields=tuple(fields),
        primary_keys=tuple(pks),
        name=names['object'],
        object_shape=_shape(names['object'], lambda f: ShapeField(
            f.name, f.column, f.type, required=not f.nullable, description=f.comment)),
        insert_shape=_shape(names['insert'], lambda f: ShapeField(
            f.name, f.column, f.type, required=not f.nullable and not f.generated, description=f.comment)),
        update_shape=_shape(names['update'], lambda f: ShapeField(
            f.name, f.column, f.type, required=False, description=f.comment)),
        where_shape=_shape(names['where'], lambda f: ShapeField(
            f.name, f.column, FILTER_TYPE, required=False, description=f.comment)),
        order_shape=_shape(names['order'], lambda f: ShapeField(
            f.name, f.column, ORDER_BY_TYPE, required=False, description=f.comment)),
    )


def assemble_graph(entities: Iterable[Entity], foreign_keys: Iterable[ForeignKeyMeta] = ()) -> EntityGraph:
    """Register all generated names and freeze the entities into a graph."""
    owners: Dict[str, str] = {name: 'a built-in type' for name in RESERVED_TYPE_NAMES}

    def _register(name: str, owner: str) -> None:
        if name in owners:
            raise NameCollisionError(name, owners[name], owner)
        owners[name] = owner

    by_table: Dict[str, Entity] = {}
    for entity in sorted(entities, key=lambda e: e.table_name):
        for shape in entity.shapes():
            _register(shape.name, f"table '{entity.table_name}'")
        for spec in entity.enumerations():
            _register(spec.name, f"enumeration of table '{entity.table_name}'")
        by_table[entity.table_name] = entity
    return EntityGraph(entities=by_table, foreign_keys=tuple(foreign_keys))


async def _build_table(accessor, table: TableMeta, subset: Optional[Sequence[str]]) -> Tuple[Entity, List[ForeignKeyMeta]]:
    columns = await accessor.list_columns(table.name)
    primary_keys = await accessor.list_primary_keys(table.name)
    entity = build_entity(table, columns, subset, primary_keys)
    # Columns are settled before foreign keys are considered for this table.
    foreign_keys = await accessor.list_foreign_keys(table.name)
    exposed = set(entity.columns)
    kept = [fk for fk in foreign_keys.values() if fk.column in exposed]
    return entity, kept


async def build_entity_graph(accessor, config=None) -> EntityGraph:
    """Introspect, build and wire the complete entity graph.

    The accessor's introspection connection is released exactly once, after
    every table has been processed.
    """
    restricted = list(config.tables) if config is not None and config.tables else None
    try:
        tables = await accessor.list_tables()
        names = restricted if restricted is not None else list(tables.keys())
        jobs = []
        for name in names:
            table = tables.get(name)
            if table is None:
                _logger.warning("Configured table '%s' was not found in the database; skipping", name)
                continue
            subset = config.fields_for(name) if config is not None else None
            jobs.append((name, _build_table(accessor, table, subset)))
        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
    finally:
        await accessor.release()

    entities: List[Entity] = []
    foreign_keys: List[ForeignKeyMeta] = []
    for (name, _), result in zip(jobs, results):
        if isinstance(result, SchemaBuildError):
            raise result
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            _logger.error("Failed to build table '%s': %s", name, result, exc_info=result)
            continue
        entity, fks = result
        entities.append(entity)
        foreign_keys.extend(fks)

    graph = assemble_graph(entities, foreign_keys)
    return wire(graph, foreign_keys)


__all__ = ['build_entity', 'exposed_columns', 'assemble_graph', 'build_entity_graph']
