"""Public entry point: introspect a database and serve it as a GraphQL source."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import strawberry
from graphql import GraphQLError
from sqlalchemy.ext.asyncio import AsyncEngine
from strawberry.types import ExecutionResult

from .core.builder import build_entity_graph
from .core.planner import QueryPlanner
from .core.types import Entity, EntityGraph
from .execution import ExecutionContext
from .metadata import MetadataAccessor, MetadataStore, SQLAlchemyIntrospector
from .schema import HANDLE_KEY, SchemaCompiler
from .sql.store import SQLAlchemyStore, Store

_logger = logging.getLogger("introql")


class GraphExecutor:
    """Runs GraphQL operations with one store handle per request.

    Every resolver of the request (root fields and nested relationships)
    reaches the same handle through ``info.context``. The handle is released
    once the operation completes, whatever the outcome.
    """

    def __init__(self, schema: strawberry.Schema, context: ExecutionContext):
        self.schema = schema
        self.context = context

    async def execute(
        self,
        query: str,
        variable_values: Optional[Dict[str, Any]] = None,
        context_value: Optional[Mapping[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> ExecutionResult:
        try:
            async with self.context.connection() as handle:
                ctx: Dict[str, Any] = dict(context_value or {})
                ctx[HANDLE_KEY] = handle
                return await self.schema.execute(
                    query,
                    variable_values=variable_values,
                    context_value=ctx,
                    operation_name=operation_name,
                )
        except Exception as exc:
            _logger.error("GraphQL execution failed: %s", exc)
            return ExecutionResult(data=None, errors=[GraphQLError(str(exc), original_error=exc)])


@dataclass(frozen=True)
class MergeConfig:
    """How a gateway can re-fetch one entity by its primary key."""
    selection_set: str
    key_args: Callable[[Mapping[str, Any]], Dict[str, Any]]
    values_from_results: Callable[[Any], Any] = lambda results: results


def merge_config_for(entity: Entity) -> Optional[MergeConfig]:
    if not entity.identifiable:
        return None
    pks = entity.primary_keys
    fields = [entity.field_for_column(pk) for pk in pks]
    selection = "{ " + " ".join(f.name for f in fields if f is not None) + " }"

    def _key_args(obj: Mapping[str, Any]) -> Dict[str, Any]:
        return {"where": {pk: obj.get(pk) for pk in pks}}

    def _first(results: Any) -> Any:
        if isinstance(results, list):
            return results[0] if results else None
        return results

    return MergeConfig(selection_set=selection, key_args=_key_args, values_from_results=_first)


@dataclass
class GraphSource:
    schema: strawberry.Schema
    graph: EntityGraph
    executor: GraphExecutor
    merge: Dict[str, MergeConfig] = field(default_factory=dict)

    async def execute(self, query: str, **kwargs) -> ExecutionResult:
        return await self.executor.execute(query, **kwargs)


async def build_source(
    engine: AsyncEngine,
    config: Any = None,
    metadata_store: Optional[MetadataStore] = None,
    store: Optional[Store] = None,
) -> GraphSource:
    """Introspect ``engine`` and compile a ready-to-serve :class:`GraphSource`.

    The caller owns ``engine`` and is responsible for disposing it.
    """
    schema_name = getattr(config, 'schema', None) if config is not None else None
    accessor = MetadataAccessor(SQLAlchemyIntrospector(engine, schema=schema_name), metadata_store)
    graph = await build_entity_graph(accessor, config)
    planner = QueryPlanner(graph)
    schema = SchemaCompiler(graph, planner).compile()
    executor = GraphExecutor(schema, ExecutionContext(store or SQLAlchemyStore(engine)))
    merge: Dict[str, MergeConfig] = {}
    for entity in graph:
        cfg = merge_config_for(entity)
        if cfg is not None:
            merge[entity.name] = cfg
    _logger.info("Built GraphQL source with %d tables", len(graph))
    return GraphSource(schema=schema, graph=graph, executor=executor, merge=merge)


__all__ = ['GraphExecutor', 'GraphSource', 'MergeConfig', 'merge_config_for', 'build_source']
