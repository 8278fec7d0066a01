from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Set

from .naming import sanitize_name, strip_id_suffix, unique_name
from .types import Entity, EntityGraph, ForeignKeyMeta, RelationshipField

_logger = logging.getLogger(__name__)


def _pick_name(preferred: str, fallback: str, taken: Set[str]) -> str:
    """First free name among ``preferred``, ``fallback`` and numbered fallbacks."""
    preferred = sanitize_name(preferred)
    if preferred not in taken:
        return preferred
    return unique_name(sanitize_name(fallback), taken)


def wire(graph: EntityGraph, foreign_keys: Iterable[ForeignKeyMeta]) -> EntityGraph:
    """Return a new graph with both directions of every usable foreign key.

    The source entity gets a forward field listing referenced rows and the
    referenced entity gets a reverse field listing source rows. Edges whose
    endpoints or columns aren't exposed are skipped. Already-wired edges are
    left alone, so wiring the same metadata twice changes nothing.
    """
    foreign_keys = list(foreign_keys)
    relationships: Dict[str, List[RelationshipField]] = {
        e.table_name: list(e.relationships) for e in graph
    }
    taken: Dict[str, Set[str]] = {e.table_name: set(e.field_names()) for e in graph}
    wired: Dict[str, Set[tuple]] = {
        t: {r.edge_key() for r in rels} for t, rels in relationships.items()
    }

    for fk in sorted(set(foreign_keys), key=ForeignKeyMeta.sort_key):
        source = graph.get(fk.table)
        target = graph.get(fk.referenced_table)
        if source is None or target is None:
            _logger.debug("Skipping foreign key %s: %s -> %s is not exposed", fk.name, fk.table, fk.referenced_table)
            continue
        if fk.column not in source.columns or fk.referenced_column not in target.columns:
            _logger.debug("Skipping foreign key %s: column not exposed", fk.name)
            continue

        forward_key = (fk.name, 'forward', fk.column, fk.referenced_column)
        if forward_key not in wired[source.table_name]:
            name = _pick_name(
                strip_id_suffix(fk.column) or fk.referenced_table,
                f"{fk.referenced_table}_by_{fk.column}",
                taken[source.table_name],
            )
            relationships[source.table_name].append(RelationshipField(
                name=name,
                owner=source.table_name,
                target=target.table_name,
                local_column=fk.column,
                target_column=fk.referenced_column,
                foreign_key=fk.name,
                direction='forward',
            ))
            taken[source.table_name].add(name)
            wired[source.table_name].add(forward_key)

        reverse_key = (fk.name, 'reverse', fk.referenced_column, fk.column)
        if reverse_key not in wired[target.table_name]:
            name = _pick_name(fk.table, f"{fk.table}_by_{fk.column}", taken[target.table_name])
            relationships[target.table_name].append(RelationshipField(
                name=name,
                owner=target.table_name,
                target=source.table_name,
                local_column=fk.referenced_column,
                target_column=fk.column,
                foreign_key=fk.name,
                direction='reverse',
            ))
            taken[target.table_name].add(name)
            wired[target.table_name].add(reverse_key)

    entities: Dict[str, Entity] = {}
    for entity in graph:
        rels = tuple(relationships[entity.table_name])
        entities[entity.table_name] = entity if rels == entity.relationships else replace(entity, relationships=rels)
    merged = tuple(dict.fromkeys(tuple(graph.foreign_keys) + tuple(foreign_keys)))
    return EntityGraph(entities=entities, foreign_keys=merged)


__all__ = ['wire']
