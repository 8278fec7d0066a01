"""SQLAlchemyHandle statement building, checked per dialect without a server."""

import pytest
from sqlalchemy.dialects import mysql, postgresql

from introql.sql.store import SQLAlchemyHandle


class _Result:
    def __init__(self, row=None, lastrowid=None):
        self._row = row
        self.lastrowid = lastrowid

    def first(self):
        return self._row


class _Connection:
    def __init__(self, dialect, result):
        self.dialect = dialect
        self.result = result
        self.statements = []
        self.commits = 0

    async def execute(self, stmt):
        self.statements.append(stmt)
        return self.result

    async def commit(self):
        self.commits += 1

    def sql(self, i=0):
        return " ".join(str(self.statements[i].compile(dialect=self.dialect)).split())


@pytest.mark.asyncio
async def test_insert_returns_generated_key_on_returning_dialects():
    conn = _Connection(postgresql.dialect(), _Result(row=(42,)))
    result = await SQLAlchemyHandle(conn).insert('users', {'name': 'Ann'}, ('id',))
    assert 'RETURNING users.id' in conn.sql()
    assert result.record_id == 42
    assert conn.commits == 1


@pytest.mark.asyncio
async def test_insert_uses_lastrowid_without_returning_support():
    conn = _Connection(mysql.dialect(), _Result(lastrowid=7))
    result = await SQLAlchemyHandle(conn).insert('users', {'name': 'Ann'}, ('id',))
    assert 'RETURNING' not in conn.sql()
    assert result.record_id == 7


@pytest.mark.asyncio
async def test_insert_without_primary_key_skips_returning():
    conn = _Connection(postgresql.dialect(), _Result(lastrowid=None))
    result = await SQLAlchemyHandle(conn).insert('audit_log', {'event': 'login'})
    assert 'RETURNING' not in conn.sql()
    assert result.record_id is None
