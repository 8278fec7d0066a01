"""Compile an :class:`~introql.core.types.EntityGraph` into a Strawberry schema.

Compilation is the second phase of the build: the graph is already complete
and immutable, so every generated type can be created up front and every
cross reference resolved without depending on table order.

Types are assembled the same way throughout: create plain classes first,
attach fields and ``__annotations__``, then decorate with
``strawberry.type`` / ``strawberry.input`` once everything is in place.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional, Set

import strawberry
from strawberry.schema.config import StrawberryConfig
from strawberry.types import Info

from .core.naming import python_attr, sanitize_name
from .core.planner import QueryArgs, QueryPlanner
from .core.selection import selection_from_info
from .core.type_mapper import to_python
from .core.types import ORDER_BY, Entity, EntityField, EntityGraph, MappedType, RelationshipField, Shape, ShapeField
from .errors import IntroQLError, NameCollisionError, SchemaBuildError
from .execution import dispatch
from .scalars import OrderBy, python_type_for

_logger = logging.getLogger(__name__)

UNSET = getattr(strawberry, 'UNSET')

# Key under which the request's store handle travels in the GraphQL context.
HANDLE_KEY = 'store_handle'

_ARG_DESC_WHERE = "Equality filter; every given field must match"
_ARG_DESC_ORDER_BY = "Sort direction per field"
_ARG_DESC_LIMIT = "Maximum number of rows; 0 means no limit"
_ARG_DESC_OFFSET = "Number of rows to skip"


def handle_from(info: Any) -> Any:
    ctx = getattr(info, 'context', None)
    if isinstance(ctx, Mapping):
        handle = ctx.get(HANDLE_KEY)
    else:
        handle = getattr(ctx, HANDLE_KEY, None)
    if handle is None:
        raise IntroQLError("No store handle in context; execute the schema through GraphExecutor")
    return handle


class SchemaCompiler:
    """Turns an entity graph into a ``strawberry.Schema``."""

    def __init__(self, graph: EntityGraph, planner: Optional[QueryPlanner] = None):
        self.graph = graph
        self.planner = planner or QueryPlanner(graph)
        self.types: Dict[str, Any] = {}
        self.enums: Dict[str, Any] = {}
        # shape name -> {python attribute -> shape field}
        self._input_fields: Dict[str, Dict[str, ShapeField]] = {}

    # ---------- helpers ----------
    def _enum_for(self, mapped: MappedType) -> Any:
        spec = mapped.enumeration
        if spec is None:
            return None
        if spec == ORDER_BY:
            return OrderBy
        cached = self.enums.get(spec.name)
        if cached is None:
            py_enum = Enum(spec.name, [(m.alias, m.value) for m in spec.members])  # type: ignore[misc]
            cached = strawberry.enum(py_enum, name=spec.name)  # type: ignore
            self.enums[spec.name] = cached
        return cached

    def _annotation(self, mapped: MappedType, required: bool) -> Any:
        base = self._enum_for(mapped)
        if base is None:
            base = python_type_for(mapped.kind)
        return base if required else Optional[base]

    def input_to_dict(self, obj: Any, shape: Shape) -> Optional[Dict[str, Any]]:
        """Column-keyed dict of the values the caller actually provided."""
        if obj is None or obj is UNSET:
            return None
        out: Dict[str, Any] = {}
        for attr, sf in self._input_fields.get(shape.name, {}).items():
            value = getattr(obj, attr, UNSET)
            if value is UNSET:
                continue
            if isinstance(value, Enum):
                value = value.value
            out[sf.column] = value
        return out

    def _args(self, entity: Entity, where: Any, order_by: Any, limit: Any, offset: Any) -> QueryArgs:
        return QueryArgs(
            where=self.input_to_dict(where, entity.where_shape),
            order_by=self.input_to_dict(order_by, entity.order_shape),
            limit=limit,
            offset=offset,
        )

    def _list_args(self, entity: Entity) -> Dict[str, Any]:
        return {
            'where': Annotated[Optional[self.types[entity.where_shape.name]], strawberry.argument(description=_ARG_DESC_WHERE)],
            'order_by': Annotated[Optional[self.types[entity.order_shape.name]], strawberry.argument(description=_ARG_DESC_ORDER_BY)],
            'limit': Annotated[Optional[int], strawberry.argument(description=_ARG_DESC_LIMIT)],
            'offset': Annotated[Optional[int], strawberry.argument(description=_ARG_DESC_OFFSET)],
        }

    # ---------- inputs ----------
    def _build_input(self, shape: Shape) -> None:
        cls = self.types[shape.name]
        anns: Dict[str, Any] = {}
        attrs: Dict[str, ShapeField] = {}
        taken: Set[str] = set()
        # required first so the generated dataclass keeps a valid field order
        for sf in sorted(shape.fields, key=lambda f: not f.required):
            attr = python_attr(sf.name, taken)
            taken.add(attr)
            anns[attr] = self._annotation(sf.type, sf.required)
            if sf.required:
                setattr(cls, attr, strawberry.field(name=sf.name, description=sf.description))
            else:
                setattr(cls, attr, strawberry.field(name=sf.name, default=UNSET, description=sf.description))
            attrs[attr] = sf
        cls.__annotations__ = anns
        self._input_fields[shape.name] = attrs

    # ---------- objects ----------
    def _make_column_resolver(self, field: EntityField, annotation: Any):
        column = field.column
        kind = field.type.kind
        enum_cls = self._enum_for(field.type)

        def _resolver(root):
            value = root.get(column) if isinstance(root, Mapping) else getattr(root, column, None)
            if value is None:
                return None
            if enum_cls is not None:
                try:
                    return enum_cls(value)
                except ValueError:
                    _logger.warning("Value %r of %s is not a member of %s", value, column, enum_cls.__name__)
                    return None
            return to_python(kind, value)

        _resolver.__annotations__ = {'return': annotation}
        return _resolver

    def _make_relation_resolver(self, rel: RelationshipField, annotation: Any):
        target = self.graph.target_of(rel)
        planner = self.planner
        compiler = self

        async def _resolver(root, info, where=None, order_by=None, limit=None, offset=None):
            args = compiler._args(target, where, order_by, limit, offset)
            parent = root if isinstance(root, Mapping) else vars(root)
            op = planner.plan_relation(rel, parent, selection_from_info(info), args)
            if op is None:
                return []
            return await dispatch(handle_from(info), op)

        anns: Dict[str, Any] = {'info': Info}
        anns.update(self._list_args(target))
        anns['return'] = annotation
        _resolver.__annotations__ = anns
        return _resolver

    def _build_object(self, entity: Entity) -> None:
        cls = self.types[entity.name]
        anns: Dict[str, Any] = {}
        taken: Set[str] = set()
        shape_fields = entity.object_shape.by_name()
        for f in entity.fields:
            sf = shape_fields[f.name]
            attr = python_attr(f.name, taken)
            taken.add(attr)
            ann = self._annotation(f.type, sf.required)
            anns[attr] = ann
            setattr(cls, attr, strawberry.field(
                resolver=self._make_column_resolver(f, ann), name=f.name, description=f.comment))
        for rel in entity.relationships:
            target = self.graph.target_of(rel)
            attr = python_attr(rel.name, taken)
            taken.add(attr)
            ann = List[self.types[target.name]]  # type: ignore[index]
            anns[attr] = ann
            setattr(cls, attr, strawberry.field(
                resolver=self._make_relation_resolver(rel, ann),
                name=rel.name,
                description=f"{target.table_name} rows where {rel.target_column} matches {rel.local_column}",
            ))
        cls.__annotations__ = anns

    # ---------- roots ----------
    def _make_select_resolver(self, entity: Entity):
        planner = self.planner
        compiler = self

        async def _resolver(info, where=None, order_by=None, limit=None, offset=None):
            args = compiler._args(entity, where, order_by, limit, offset)
            op = planner.plan_select(entity, selection_from_info(info), args)
            return await dispatch(handle_from(info), op)

        anns: Dict[str, Any] = {'info': Info}
        anns.update(self._list_args(entity))
        anns['return'] = List[self.types[entity.name]]  # type: ignore[index]
        _resolver.__annotations__ = anns
        return _resolver

    def _make_count_resolver(self, entity: Entity):
        planner = self.planner
        compiler = self

        async def _resolver(info, where=None):
            op = planner.plan_count(entity, compiler.input_to_dict(where, entity.where_shape))
            return await dispatch(handle_from(info), op)

        _resolver.__annotations__ = {
            'info': Info,
            'where': Annotated[Optional[self.types[entity.where_shape.name]], strawberry.argument(description=_ARG_DESC_WHERE)],
            'return': Optional[int],
        }
        return _resolver

    def _make_insert_resolver(self, entity: Entity):
        planner = self.planner
        compiler = self

        async def _resolver(info, values):
            data = compiler.input_to_dict(values, entity.insert_shape) or {}
            op = planner.plan_insert(entity, data, selection_from_info(info))
            return await dispatch(handle_from(info), op)

        _resolver.__annotations__ = {
            'info': Info,
            'values': Annotated[self.types[entity.insert_shape.name], strawberry.argument(name=sanitize_name(entity.table_name))],
            'return': Optional[self.types[entity.name]],
        }
        return _resolver

    def _make_update_resolver(self, entity: Entity):
        planner = self.planner
        compiler = self

        async def _resolver(info, values, where=None):
            data = compiler.input_to_dict(values, entity.update_shape) or {}
            filters = compiler.input_to_dict(where, entity.where_shape)
            op = planner.plan_update(entity, data, filters, selection_from_info(info))
            return await dispatch(handle_from(info), op)

        _resolver.__annotations__ = {
            'info': Info,
            'values': Annotated[self.types[entity.update_shape.name], strawberry.argument(name=sanitize_name(entity.table_name))],
            'where': Annotated[Optional[self.types[entity.where_shape.name]], strawberry.argument(description=_ARG_DESC_WHERE)],
            'return': Optional[self.types[entity.name]],
        }
        return _resolver

    def _make_delete_resolver(self, entity: Entity):
        planner = self.planner
        compiler = self

        async def _resolver(info, where=None):
            op = planner.plan_delete(entity, compiler.input_to_dict(where, entity.where_shape))
            return await dispatch(handle_from(info), op)

        _resolver.__annotations__ = {
            'info': Info,
            'where': Annotated[Optional[self.types[entity.where_shape.name]], strawberry.argument(description=_ARG_DESC_WHERE)],
            'return': Optional[bool],
        }
        return _resolver

    def _build_root(self, name: str, doc: str, makers: List[tuple]) -> Any:
        plain = type(name, (), {'__doc__': doc})
        setattr(plain, '__module__', __name__)
        anns: Dict[str, Any] = {}
        owners: Dict[str, str] = {}
        for gql_name, table, resolver in makers:
            if gql_name in owners:
                raise NameCollisionError(gql_name, f"{name} field of table '{owners[gql_name]}'", f"{name} field of table '{table}'")
            owners[gql_name] = table
            attr = python_attr(gql_name, set(anns))
            anns[attr] = resolver.__annotations__['return']
            setattr(plain, attr, strawberry.field(resolver=resolver, name=gql_name))
        plain.__annotations__ = anns
        return strawberry.type(plain)

    # ---------- entry point ----------
    def compile(self, *, strawberry_config: Optional[StrawberryConfig] = None) -> strawberry.Schema:
        if not len(self.graph):
            raise SchemaBuildError("No tables to expose; the schema would be empty")

        # 1) plain classes for every shape
        for entity in self.graph:
            for shape in entity.shapes():
                plain = type(shape.name, (), {'__doc__': shape.description})
                setattr(plain, '__module__', __name__)
                self.types[shape.name] = plain

        # 2) fields
        for entity in self.graph:
            for shape in (entity.insert_shape, entity.update_shape, entity.where_shape, entity.order_shape):
                self._build_input(shape)
            self._build_object(entity)

        # 3) decorate all types now
        for entity in self.graph:
            for shape in (entity.insert_shape, entity.update_shape, entity.where_shape, entity.order_shape):
                self.types[shape.name] = strawberry.input(self.types[shape.name], name=shape.name, description=shape.description)  # type: ignore
            self.types[entity.name] = strawberry.type(self.types[entity.name], name=entity.name, description=entity.object_shape.description)  # type: ignore

        queries: List[tuple] = []
        mutations: List[tuple] = []
        for entity in self.graph:
            base = sanitize_name(entity.table_name)
            queries.append((base, entity.table_name, self._make_select_resolver(entity)))
            queries.append((f"count_{base}", entity.table_name, self._make_count_resolver(entity)))
            mutations.append((f"insert_{base}", entity.table_name, self._make_insert_resolver(entity)))
            mutations.append((f"update_{base}", entity.table_name, self._make_update_resolver(entity)))
            mutations.append((f"delete_{base}", entity.table_name, self._make_delete_resolver(entity)))

        query = self._build_root('Query', 'Generated read operations.', queries)
        mutation = self._build_root('Mutation', 'Generated write operations.', mutations)
        _logger.debug("Compiled schema with %d entities", len(self.graph))
        return strawberry.Schema(
            query=query,
            mutation=mutation,
            config=strawberry_config or StrawberryConfig(auto_camel_case=False),
        )


def compile_schema(graph: EntityGraph, planner: Optional[QueryPlanner] = None, **kwargs) -> strawberry.Schema:
    return SchemaCompiler(graph, planner).compile(**kwargs)


__all__ = ['SchemaCompiler', 'compile_schema', 'handle_from', 'HANDLE_KEY']
