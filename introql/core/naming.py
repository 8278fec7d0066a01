from __future__ import annotations

import keyword
import re
from typing import Iterable, Optional, Set

__all__ = [
    'sanitize_name',
    'enum_alias',
    'python_attr',
    'unique_name',
    'strip_id_suffix',
    'type_names_for',
    'RESERVED_TYPE_NAMES',
]

_invalid_chars = re.compile(r'[^_0-9A-Za-z]')
_id_suffix = re.compile(r'(?:_id|_ID|Id)$')

# Built-in scalars, roots and shared enums every compiled schema already defines.
RESERVED_TYPE_NAMES = frozenset({
    'Query', 'Mutation', 'Subscription',
    'String', 'Int', 'Float', 'Boolean', 'ID',
    'JSON', 'Date', 'Time', 'DateTime', 'Timestamp',
    'BigInt', 'UnsignedInt', 'UnsignedFloat', 'OrderBy',
})

_GRAPHQL_ENUM_RESERVED = frozenset({'true', 'false', 'null'})


def sanitize_name(name: str) -> str:
    """Return a GraphQL-safe identifier for ``name``.

    Invalid characters become underscores, a leading digit gets an underscore
    prefix and the reserved ``__`` introspection prefix is collapsed.
    """
    out = _invalid_chars.sub('_', str(name or '').strip())
    if not out:
        return '_'
    if out[0].isdigit():
        out = '_' + out
    while out.startswith('__'):
        out = out[1:]
    return out


def enum_alias(value: str) -> str:
    """GraphQL enum member name for a literal value.

    Aliases always start with a letter so they stay valid Python Enum member
    names as well (no ``_sunder_`` clashes).
    """
    alias = _invalid_chars.sub('_', str(value))
    if not alias or not ('a' <= alias[0].lower() <= 'z'):
        alias = 'v' + alias
    if alias in _GRAPHQL_ENUM_RESERVED:
        alias = alias + '_'
    return alias


def python_attr(name: str, taken: Optional[Set[str]] = None) -> str:
    """Attribute name used on generated Strawberry classes for a GraphQL field."""
    attr = name if name.isidentifier() and not keyword.iskeyword(name) else f"{name}_"
    if taken is not None:
        attr = unique_name(attr, taken)
    return attr


def unique_name(base: str, taken: Iterable[str]) -> str:
    taken = set(taken)
    if base not in taken:
        return base
    i = 2
    while f"{base}_{i}" in taken:
        i += 1
    return f"{base}_{i}"


def strip_id_suffix(column: str) -> Optional[str]:
    """``team_id`` -> ``team``; None when nothing meaningful is left."""
    stripped = _id_suffix.sub('', column)
    if not stripped or stripped == column:
        return None
    return stripped


def type_names_for(table: str) -> dict:
    return {
        'object': sanitize_name(table),
        'insert': sanitize_name(table + '_InsertInput'),
        'update': sanitize_name(table + '_UpdateInput'),
        'where': sanitize_name(table + '_WhereInput'),
        'order': sanitize_name(table + '_OrderByInput'),
    }
