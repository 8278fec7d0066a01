"""Test configuration and fixtures for introql."""

import os

import pytest
from dotenv import load_dotenv
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import create_async_engine

from tests.models import Base, Post, Team, User, audit_log

# Try to load environment variables from .env file
load_dotenv()


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Create a test database engine for each test function.

    Uses INTROQL_TEST_DATABASE_URL when set, otherwise a SQLite file in the
    test's temporary directory (a file, so separate connections share data).
    """
    test_db_url = os.getenv('INTROQL_TEST_DATABASE_URL')
    if test_db_url:
        engine = create_async_engine(test_db_url, echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    else:
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'introql.db'}", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    yield engine

    if test_db_url:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        except Exception as e:
            print(f"Failed to clean up external database: {e}")
    await engine.dispose()


@pytest.fixture(scope="function")
async def populated_db(engine):
    """Two teams, three users and a few posts."""
    async with engine.begin() as conn:
        await conn.execute(insert(Team.__table__), [
            {'id': 5, 'name': 'Core'},
            {'id': 6, 'name': 'Docs'},
        ])
        await conn.execute(insert(User.__table__), [
            {'id': 10, 'name': 'Bob', 'email': 'bob@example.com', 'team_id': 5},
            {'id': 11, 'name': 'Cid', 'email': None, 'team_id': 5},
            {'id': 12, 'name': 'Dee', 'email': 'dee@example.com', 'team_id': None},
        ])
        await conn.execute(insert(Post.__table__), [
            {'id': 100, 'title': 'Hello', 'author_id': 10, 'reviewer_id': 11},
            {'id': 101, 'title': 'Again', 'author_id': 10, 'reviewer_id': None},
            {'id': 102, 'title': 'Notes', 'author_id': 12, 'reviewer_id': 10},
        ])
        await conn.execute(insert(audit_log), [{'event': 'seed', 'detail': 'initial'}])
    return engine


@pytest.fixture(scope="function")
async def source(populated_db):
    from introql import build_source

    return await build_source(populated_db)


@pytest.fixture(scope="function")
def captured_sql(engine):
    """List of SELECT statements executed on ``engine`` while the test runs."""
    from sqlalchemy import event

    statements = []

    def _capture(conn, cursor, statement, parameters, context, executemany):  # noqa: ANN001
        if str(statement).lstrip().upper().startswith("SELECT"):
            statements.append(str(statement))

    sync_engine = engine.sync_engine
    event.listen(sync_engine, "before_cursor_execute", _capture)
    yield statements
    event.remove(sync_engine, "before_cursor_execute", _capture)
