"""Native column type -> abstract scalar kind.

The lookup table started from MySQL's type names and was extended with the
spellings SQLite and PostgreSQL report through SQLAlchemy reflection.
"""
from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .naming import enum_alias, sanitize_name, unique_name
from .types import EnumMember, EnumerationSpec, MappedType, ScalarKind

_logger = logging.getLogger(__name__)

SCALARS: Dict[str, ScalarKind] = {
    'bigint': ScalarKind.BIG_INTEGER,
    'bigint unsigned': ScalarKind.BIG_INTEGER,
    'bigserial': ScalarKind.BIG_INTEGER,
    'int8': ScalarKind.BIG_INTEGER,
    'binary': ScalarKind.STRING,
    'bit': ScalarKind.INTEGER,
    'blob': ScalarKind.STRING,
    'bool': ScalarKind.BOOLEAN,
    'boolean': ScalarKind.BOOLEAN,
    'bytea': ScalarKind.STRING,
    'char': ScalarKind.STRING,
    'character': ScalarKind.STRING,
    'character varying': ScalarKind.STRING,
    'clob': ScalarKind.STRING,
    'date': ScalarKind.DATE,
    'datetime': ScalarKind.DATETIME,
    'dec': ScalarKind.FLOAT,
    'dec unsigned': ScalarKind.UNSIGNED_FLOAT,
    'decimal': ScalarKind.FLOAT,
    'decimal unsigned': ScalarKind.UNSIGNED_FLOAT,
    'double': ScalarKind.FLOAT,
    'double unsigned': ScalarKind.UNSIGNED_FLOAT,
    'double precision': ScalarKind.FLOAT,
    'float': ScalarKind.FLOAT,
    'float unsigned': ScalarKind.UNSIGNED_FLOAT,
    'float4': ScalarKind.FLOAT,
    'float8': ScalarKind.FLOAT,
    'int': ScalarKind.INTEGER,
    'int unsigned': ScalarKind.UNSIGNED_INTEGER,
    'int2': ScalarKind.INTEGER,
    'int4': ScalarKind.INTEGER,
    'integer': ScalarKind.INTEGER,
    'integer unsigned': ScalarKind.UNSIGNED_INTEGER,
    'json': ScalarKind.JSON,
    'jsonb': ScalarKind.JSON,
    'longblob': ScalarKind.STRING,
    'longtext': ScalarKind.STRING,
    'mediumblob': ScalarKind.STRING,
    'mediumint': ScalarKind.INTEGER,
    'mediumint unsigned': ScalarKind.UNSIGNED_INTEGER,
    'mediumtext': ScalarKind.STRING,
    'nchar': ScalarKind.STRING,
    'numeric': ScalarKind.FLOAT,
    'numeric unsigned': ScalarKind.UNSIGNED_FLOAT,
    'nvarchar': ScalarKind.STRING,
    'real': ScalarKind.FLOAT,
    'serial': ScalarKind.INTEGER,
    'smallint': ScalarKind.INTEGER,
    'smallint unsigned': ScalarKind.UNSIGNED_INTEGER,
    'smallserial': ScalarKind.INTEGER,
    'text': ScalarKind.STRING,
    'time': ScalarKind.TIME,
    'timestamp': ScalarKind.TIMESTAMP,
    'timestamptz': ScalarKind.TIMESTAMP,
    'tinyblob': ScalarKind.STRING,
    'tinyint': ScalarKind.INTEGER,
    'tinyint unsigned': ScalarKind.UNSIGNED_INTEGER,
    'tinytext': ScalarKind.STRING,
    'uuid': ScalarKind.STRING,
    'varbinary': ScalarKind.STRING,
    'varchar': ScalarKind.STRING,
    'year': ScalarKind.INTEGER,
}

_ENUM_BASES = ('enum', 'set')


def split_native_type(native: str) -> Tuple[str, Optional[str], List[str]]:
    """Split ``"decimal(10,2) unsigned"`` into ``('decimal', '10,2', ['unsigned'])``."""
    text = str(native or '').strip()
    detail: Optional[str] = None
    if '(' in text:
        head, rest = text.split('(', 1)
        detail, _, tail = rest.partition(')')
        # enum literals may contain ')' themselves; keep everything up to the last one
        if rest.count(')') > 1:
            detail, _, tail = rest.rpartition(')')
    else:
        head, tail = text, ''
    modifiers = [m.lower() for m in tail.split()]
    base = ' '.join(head.lower().split())
    for flag in ('unsigned', 'zerofill'):
        if base.endswith(' ' + flag):
            base = base[: -len(flag) - 1].strip()
            modifiers.append(flag)
    return base, detail, modifiers


def parse_enum_members(detail: Optional[str]) -> List[str]:
    if not detail:
        return []
    return [part.replace("'", '').replace('"', '').strip() for part in detail.split(',')]


def enumeration_for(table: str, column: str, literals: List[str]) -> EnumerationSpec:
    taken: set = set()
    members = []
    for literal in literals:
        alias = unique_name(enum_alias(literal), taken)
        taken.add(alias)
        members.append(EnumMember(alias=alias, value=literal))
    return EnumerationSpec(name=sanitize_name(f"{table}_{column}"), members=tuple(members))


def map_type(native: str, *, table: str = '', column: str = '') -> MappedType:
    """Map a native type string to a :class:`MappedType`. Never raises.

    Nullability is not handled here; the entity builder applies it.
    """
    try:
        base, detail, modifiers = split_native_type(native)
    except Exception:  # pragma: no cover - str() on arbitrary input
        base, detail, modifiers = '', None, []
    if base in _ENUM_BASES:
        literals = parse_enum_members(detail)
        if literals:
            spec = enumeration_for(table, column, literals)
            return MappedType(ScalarKind.ENUMERATION, native=str(native), enumeration=spec)
        _logger.warning("%s has no member list. It will be mapped to String as a fallback.", base)
        return MappedType(ScalarKind.STRING, native=str(native))
    kind = None
    if 'unsigned' in modifiers:
        kind = SCALARS.get(f"{base} unsigned")
    if kind is None:
        kind = SCALARS.get(base)
    if kind is None and ' ' in base:
        kind = SCALARS.get(base.split(' ', 1)[0])
    if kind is None:
        _logger.warning(
            "%s couldn't be mapped to a type. It will be mapped to JSON as a fallback.",
            base or native,
        )
        kind = ScalarKind.JSON
    return MappedType(kind, native=str(native))


def to_python(kind: ScalarKind, value: Any) -> Any:
    """Coerce a raw driver value or a where-filter string to ``kind``.

    Best-effort: values that can't be coerced are returned unchanged.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [to_python(kind, v) for v in value]
    try:
        if kind in (ScalarKind.INTEGER, ScalarKind.UNSIGNED_INTEGER, ScalarKind.BIG_INTEGER):
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (str, Decimal)):
                return int(value)
            return value
        if kind in (ScalarKind.FLOAT, ScalarKind.UNSIGNED_FLOAT):
            if isinstance(value, (str, Decimal)):
                return float(value)
            return value
        if kind is ScalarKind.BOOLEAN:
            if isinstance(value, str):
                lv = value.strip().lower()
                if lv in ('true', 't', '1', 'yes', 'y'):
                    return True
                if lv in ('false', 'f', '0', 'no', 'n'):
                    return False
                return value
            return bool(value)
        if kind is ScalarKind.DATETIME:
            if isinstance(value, str):
                return datetime.fromisoformat(value.replace('Z', '+00:00'))
            return value
        if kind is ScalarKind.TIMESTAMP:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
            if isinstance(value, str):
                if value.strip().lstrip('-').isdigit():
                    return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)
                return datetime.fromisoformat(value.replace('Z', '+00:00'))
            return value
        if kind is ScalarKind.DATE:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, str):
                return date.fromisoformat(value[:10])
            return value
        if kind is ScalarKind.TIME:
            if isinstance(value, str):
                return time.fromisoformat(value)
            if isinstance(value, timedelta):
                return (datetime.min + value).time()
            return value
        if kind is ScalarKind.JSON:
            if isinstance(value, (bytes, bytearray)):
                value = value.decode('utf-8')
            if isinstance(value, str):
                try:
                    return json.loads(value)
                except ValueError:
                    return value
            return value
        if kind is ScalarKind.STRING:
            if isinstance(value, (bytes, bytearray, memoryview)):
                return bytes(value).decode('utf-8', errors='replace')
            if not isinstance(value, str):
                return str(value)
            return value
    except (TypeError, ValueError, ArithmeticError):
        return value
    return value


__all__ = ['SCALARS', 'map_type', 'to_python', 'split_native_type', 'parse_enum_members', 'enumeration_for']
