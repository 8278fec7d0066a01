"""introql public API and lightweight lazy exports.

Importing the package stays cheap: Strawberry and SQLAlchemy are only pulled
in when one of the exported names is first accessed.

Exposes:
- build_source, GraphSource, GraphExecutor, MergeConfig
- IntroQLConfig, TableFields
- SchemaCompiler, compile_schema
- build_entity_graph, EntityGraph, QueryPlanner
- MetadataAccessor, SQLAlchemyIntrospector, SQLAlchemyStore, ExecutionContext
- IntroQLError, SchemaBuildError, NameCollisionError
"""
from __future__ import annotations

_EXPORTS = {
    'build_source': '.source',
    'GraphSource': '.source',
    'GraphExecutor': '.source',
    'MergeConfig': '.source',
    'IntroQLConfig': '.config',
    'TableFields': '.config',
    'SchemaCompiler': '.schema',
    'compile_schema': '.schema',
    'build_entity_graph': '.core.builder',
    'EntityGraph': '.core.types',
    'QueryPlanner': '.core.planner',
    'MetadataAccessor': '.metadata',
    'SQLAlchemyIntrospector': '.metadata',
    'SQLAlchemyStore': '.sql.store',
    'ExecutionContext': '.execution',
    'OperationResult': '.execution',
    'IntroQLError': '.errors',
    'SchemaBuildError': '.errors',
    'NameCollisionError': '.errors',
}


def __getattr__(name: str):  # PEP 562 lazy exports
    import importlib as _importlib
    module = _EXPORTS.get(name)
    if module is None:
        raise AttributeError(name)
    return getattr(_importlib.import_module(module, __name__), name)


__all__ = list(_EXPORTS)
