"""Handler configuration.

Only ``tables`` and ``table_fields`` influence the generated schema; the
connection settings just help callers create the engine they pass to
:func:`introql.build_source`.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

_ENV_PATTERN = re.compile(r'\{env\.([A-Za-z_][A-Za-z0-9_]*)\}')

_DEFAULT_DRIVER = 'mysql+aiomysql'


def interpolate(value: Any, env: Optional[Mapping[str, str]] = None) -> Any:
    """Replace ``{env.NAME}`` placeholders; unknown names become empty strings."""
    if not isinstance(value, str):
        return value
    env = os.environ if env is None else env
    return _ENV_PATTERN.sub(lambda m: env.get(m.group(1), ''), value)


@dataclass(frozen=True)
class TableFields:
    table: str
    fields: List[str]


@dataclass
class IntroQLConfig:
    tables: Optional[List[str]] = None
    table_fields: List[TableFields] = field(default_factory=list)
    database_url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    driver: str = _DEFAULT_DRIVER
    schema: Optional[str] = None
    debug: bool = False

    def fields_for(self, table: str) -> Optional[List[str]]:
        """Configured column subset for ``table``; None exposes every column."""
        for tf in self.table_fields:
            if tf.table == table:
                return list(tf.fields)
        return None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> 'IntroQLConfig':
        """Build from a plain mapping, e.g. a parsed YAML handler section.

        Both ``table_fields`` and ``tableFields`` are accepted; string values
        may reference environment variables as ``{env.NAME}``.
        """
        raw_fields = data.get('table_fields', data.get('tableFields')) or []
        table_fields = [
            TableFields(table=str(item['table']), fields=[str(f) for f in item.get('fields') or []])
            for item in raw_fields
        ]
        port = interpolate(data.get('port'), env)
        tables = data.get('tables')
        return cls(
            tables=[str(t) for t in tables] if tables else None,
            table_fields=table_fields,
            database_url=interpolate(data.get('database_url', data.get('databaseUrl')), env) or None,
            host=interpolate(data.get('host'), env) or None,
            port=int(port) if port not in (None, '') else None,
            user=interpolate(data.get('user'), env) or None,
            password=interpolate(data.get('password'), env) or None,
            database=interpolate(data.get('database'), env) or None,
            driver=interpolate(data.get('driver'), env) or _DEFAULT_DRIVER,
            schema=interpolate(data.get('schema'), env) or None,
            debug=bool(data.get('debug', False)),
        )

    @classmethod
    def from_env(cls, prefix: str = 'INTROQL_') -> 'IntroQLConfig':
        """Read ``<prefix>DATABASE_URL``, ``<prefix>TABLES`` (comma separated), etc.

        A ``.env`` file in the working directory is loaded first.
        """
        load_dotenv()

        def _get(name: str) -> Optional[str]:
            value = os.getenv(prefix + name)
            return value if value not in (None, '') else None

        tables = _get('TABLES')
        data: Dict[str, Any] = {
            'database_url': _get('DATABASE_URL'),
            'host': _get('HOST'),
            'port': _get('PORT'),
            'user': _get('USER'),
            'password': _get('PASSWORD'),
            'database': _get('DATABASE'),
            'driver': _get('DRIVER'),
            'schema': _get('SCHEMA'),
            'debug': (_get('DEBUG') or '').lower() in ('1', 'true', 'yes'),
            'tables': [t.strip() for t in tables.split(',') if t.strip()] if tables else None,
        }
        return cls.from_mapping(data)

    def url(self) -> URL:
        if self.database_url:
            return make_url(self.database_url)
        return URL.create(
            self.driver,
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def create_engine(self, **kwargs) -> AsyncEngine:
        """New ``AsyncEngine`` for these settings; the caller disposes it."""
        kwargs.setdefault('echo', self.debug)
        return create_async_engine(self.url(), **kwargs)


__all__ = ['IntroQLConfig', 'TableFields', 'interpolate']
