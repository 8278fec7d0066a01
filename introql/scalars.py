from __future__ import annotations

import datetime as _dt
from enum import Enum
from typing import Any, Dict, NewType

import strawberry
from strawberry.scalars import JSON as ST_JSON

from .core.types import ScalarKind


def _to_int(value: Any) -> int:
    return int(value)


def _to_unsigned_int(value: Any) -> int:
    out = int(value)
    if out < 0:
        raise ValueError(f"UnsignedInt cannot represent negative value: {value!r}")
    return out


def _to_unsigned_float(value: Any) -> float:
    out = float(value)
    if out < 0:
        raise ValueError(f"UnsignedFloat cannot represent negative value: {value!r}")
    return out


def _timestamp_out(value: Any) -> Any:
    if isinstance(value, _dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=_dt.timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, _dt.date):
        return int(_dt.datetime(value.year, value.month, value.day, tzinfo=_dt.timezone.utc).timestamp() * 1000)
    return int(value)


def _timestamp_in(value: Any) -> _dt.datetime:
    if isinstance(value, str) and not value.strip().lstrip('-').isdigit():
        return _dt.datetime.fromisoformat(value.replace('Z', '+00:00'))
    return _dt.datetime.fromtimestamp(int(value) / 1000.0, tz=_dt.timezone.utc)


BigInt = strawberry.scalar(
    NewType("BigInt", int),
    serialize=_to_int,
    parse_value=_to_int,
    description="64-bit integer",
)

UnsignedInt = strawberry.scalar(
    NewType("UnsignedInt", int),
    serialize=_to_unsigned_int,
    parse_value=_to_unsigned_int,
    description="Non-negative integer",
)

UnsignedFloat = strawberry.scalar(
    NewType("UnsignedFloat", float),
    serialize=_to_unsigned_float,
    parse_value=_to_unsigned_float,
    description="Non-negative floating point number",
)

Timestamp = strawberry.scalar(
    NewType("Timestamp", _dt.datetime),
    serialize=_timestamp_out,
    parse_value=_timestamp_in,
    description="Point in time as milliseconds since the Unix epoch",
)


class _OrderByEnum(Enum):
    asc = 'asc'
    desc = 'desc'


OrderBy = strawberry.enum(_OrderByEnum, name="OrderBy")  # type: ignore


_SCALAR_TYPES: Dict[ScalarKind, Any] = {
    ScalarKind.INTEGER: int,
    ScalarKind.UNSIGNED_INTEGER: UnsignedInt,
    ScalarKind.FLOAT: float,
    ScalarKind.UNSIGNED_FLOAT: UnsignedFloat,
    ScalarKind.BOOLEAN: bool,
    ScalarKind.STRING: str,
    ScalarKind.DATE: _dt.date,
    ScalarKind.TIME: _dt.time,
    ScalarKind.DATETIME: _dt.datetime,
    ScalarKind.TIMESTAMP: Timestamp,
    ScalarKind.JSON: ST_JSON,
    ScalarKind.BIG_INTEGER: BigInt,
}


def python_type_for(kind: ScalarKind) -> Any:
    """Python/Strawberry annotation for a non-enumeration scalar kind."""
    try:
        return _SCALAR_TYPES[kind]
    except KeyError:
        raise ValueError(f"No scalar type for kind {kind!r}") from None


__all__ = ['BigInt', 'UnsignedInt', 'UnsignedFloat', 'Timestamp', 'OrderBy', 'python_type_for']
