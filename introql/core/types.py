"""Data model shared by the builder, wirer, planner and schema compiler.

Everything here is a frozen dataclass: once the entity graph is assembled it is
read concurrently by every request and never mutated.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple


class ScalarKind(str, Enum):
    INTEGER = 'Int'
    UNSIGNED_INTEGER = 'UnsignedInt'
    FLOAT = 'Float'
    UNSIGNED_FLOAT = 'UnsignedFloat'
    BOOLEAN = 'Boolean'
    STRING = 'String'
    DATE = 'Date'
    TIME = 'Time'
    DATETIME = 'DateTime'
    TIMESTAMP = 'Timestamp'
    JSON = 'JSON'
    BIG_INTEGER = 'BigInt'
    ENUMERATION = 'Enum'


@dataclass(frozen=True)
class EnumMember:
    alias: str
    value: str


@dataclass(frozen=True)
class EnumerationSpec:
    name: str
    members: Tuple[EnumMember, ...]

    def aliases(self) -> Tuple[str, ...]:
        return tuple(m.alias for m in self.members)

    def values(self) -> Tuple[str, ...]:
        return tuple(m.value for m in self.members)


@dataclass(frozen=True)
class MappedType:
    kind: ScalarKind
    native: str = ''
    enumeration: Optional[EnumerationSpec] = None


# Two-valued ordering enumeration shared by every order_by shape.
ORDER_BY = EnumerationSpec(
    name='OrderBy',
    members=(EnumMember('asc', 'asc'), EnumMember('desc', 'desc')),
)
ORDER_BY_TYPE = MappedType(ScalarKind.ENUMERATION, native='OrderBy', enumeration=ORDER_BY)
FILTER_TYPE = MappedType(ScalarKind.STRING, native='String')


@dataclass(frozen=True)
class TableMeta:
    name: str
    comment: Optional[str] = None


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    type: str
    nullable: bool = True
    comment: Optional[str] = None
    primary_key: bool = False
    generated: bool = False


@dataclass(frozen=True)
class ForeignKeyMeta:
    name: str
    table: str
    column: str
    referenced_table: str
    referenced_column: str

    def sort_key(self) -> Tuple[str, str, str, str, str]:
        return (self.table, self.column, self.referenced_table, self.referenced_column, self.name)


@dataclass(frozen=True)
class EntityField:
    """One exposed column of an entity."""
    name: str
    column: str
    type: MappedType
    nullable: bool
    comment: Optional[str] = None
    primary_key: bool = False
    generated: bool = False


@dataclass(frozen=True)
class ShapeField:
    name: str
    column: str
    type: MappedType
    required: bool
    description: Optional[str] = None


@dataclass(frozen=True)
class Shape:
    name: str
    fields: Tuple[ShapeField, ...]
    description: Optional[str] = None

    def by_name(self) -> Dict[str, ShapeField]:
        return {f.name: f for f in self.fields}


@dataclass(frozen=True)
class RelationshipField:
    """Collection-valued field traversing one foreign key.

    ``local_column`` lives on the owning entity and drives the join;
    ``target_column`` is matched against it on ``target``.
    """
    name: str
    owner: str
    target: str
    local_column: str
    target_column: str
    foreign_key: str
    direction: str  # 'forward' | 'reverse'

    def edge_key(self) -> Tuple[str, str, str, str]:
        return (self.foreign_key, self.direction, self.local_column, self.target_column)


@dataclass(frozen=True)
class Entity:
    table: TableMeta
    fields: Tuple[EntityField, ...]
    primary_keys: Tuple[str, ...]
    object_shape: Shape
    insert_shape: Shape
    update_shape: Shape
    where_shape: Shape
    order_shape: Shape
    name: str
    relationships: Tuple[RelationshipField, ...] = ()

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(f.column for f in self.fields)

    @property
    def identifiable(self) -> bool:
        return bool(self.primary_keys)

    def field(self, name: str) -> Optional[EntityField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_for_column(self, column: str) -> Optional[EntityField]:
        for f in self.fields:
            if f.column == column:
                return f
        return None

    def relationship(self, name: str) -> Optional[RelationshipField]:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None

    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields) + tuple(r.name for r in self.relationships)

    def shapes(self) -> Tuple[Shape, ...]:
        return (self.object_shape, self.insert_shape, self.update_shape, self.where_shape, self.order_shape)

    def enumerations(self) -> Tuple[EnumerationSpec, ...]:
        out = []
        for f in self.fields:
            if f.type.enumeration is not None:
                out.append(f.type.enumeration)
        return tuple(out)

    def identity_filter(self, row: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Primary-key filter for ``row``; None when the entity has no key."""
        if not self.primary_keys:
            return None
        return {pk: row.get(pk) for pk in self.primary_keys}


@dataclass(frozen=True)
class EntityGraph:
    entities: Mapping[str, Entity]
    foreign_keys: Tuple[ForeignKeyMeta, ...] = ()

    def __post_init__(self):
        if not isinstance(self.entities, MappingProxyType):
            object.__setattr__(self, 'entities', MappingProxyType(dict(self.entities)))

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities.values())

    def __len__(self) -> int:
        return len(self.entities)

    def __contains__(self, table: object) -> bool:
        return table in self.entities

    def entity(self, table: str) -> Entity:
        try:
            return self.entities[table]
        except KeyError:
            raise KeyError(f"Unknown entity '{table}'") from None

    def get(self, table: str) -> Optional[Entity]:
        return self.entities.get(table)

    def target_of(self, relationship: RelationshipField) -> Entity:
        return self.entity(relationship.target)


__all__ = [
    'ScalarKind', 'EnumMember', 'EnumerationSpec', 'MappedType',
    'ORDER_BY', 'ORDER_BY_TYPE', 'FILTER_TYPE',
    'TableMeta', 'ColumnMeta', 'ForeignKeyMeta',
    'EntityField', 'ShapeField', 'Shape', 'RelationshipField', 'Entity', 'EntityGraph',
]
