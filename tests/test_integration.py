"""End-to-end tests: reflect the SQLite test database and run GraphQL against it."""

import pytest

from introql import build_source
from introql.config import IntroQLConfig, TableFields
from introql.source import GraphExecutor
from introql.execution import ExecutionContext
from tests.fakes import FakeStore


def _norm(sql):
    return " ".join(sql.split()).lower().replace('"', '')


def _selects_from(statements, table):
    return [_norm(s) for s in statements if f" from {table}" in _norm(s)]


def _user_selects(statements):
    return _selects_from(statements, "users")


@pytest.mark.asyncio
async def test_insert_then_query_with_relationship(source, captured_sql):
    res = await source.execute(
        'mutation { insert_users(users: {id: 1, name: "Ann", team_id: 5}) { id name team_id } }'
    )
    assert res.errors is None, res.errors
    assert res.data['insert_users'] == {'id': 1, 'name': 'Ann', 'team_id': 5}

    captured_sql.clear()
    res = await source.execute('query { users(where: {id: "1"}) { name team { id } } }')
    assert res.errors is None, res.errors
    assert res.data == {'users': [{'name': 'Ann', 'team': [{'id': 5}]}]}

    outer = _user_selects(captured_sql)
    assert len(outer) == 1, captured_sql
    assert outer[0].split(" from ")[0] == "select users.name, users.team_id"


@pytest.mark.asyncio
async def test_relationship_projection_never_selects_field_name(source, captured_sql):
    captured_sql.clear()
    res = await source.execute('{ posts { title author { name } } }')
    assert res.errors is None, res.errors
    posts_sql = _selects_from(captured_sql, "posts")
    assert posts_sql[0].split(" from ")[0] == "select posts.title, posts.author_id"


@pytest.mark.asyncio
async def test_reverse_relationships(source):
    res = await source.execute('''
        query {
          teams(order_by: {id: asc}) {
            name
            users(order_by: {id: asc}) { name }
          }
        }
    ''')
    assert res.errors is None, res.errors
    assert res.data['teams'] == [
        {'name': 'Core', 'users': [{'name': 'Bob'}, {'name': 'Cid'}]},
        {'name': 'Docs', 'users': []},
    ]


@pytest.mark.asyncio
async def test_two_foreign_keys_to_same_table(source):
    res = await source.execute('''
        query {
          users(where: {id: "10"}) {
            posts(order_by: {id: asc}) { title }
            posts_by_reviewer_id { title reviewer { name } }
          }
        }
    ''')
    assert res.errors is None, res.errors
    bob = res.data['users'][0]
    assert bob['posts'] == [{'title': 'Hello'}, {'title': 'Again'}]
    assert bob['posts_by_reviewer_id'] == [{'title': 'Notes', 'reviewer': [{'name': 'Bob'}]}]


@pytest.mark.asyncio
async def test_null_foreign_key_resolves_to_empty_list(source):
    res = await source.execute('{ users(where: {id: "12"}) { name team { id } } }')
    assert res.errors is None, res.errors
    assert res.data['users'] == [{'name': 'Dee', 'team': []}]


@pytest.mark.asyncio
async def test_relationship_arguments(source):
    res = await source.execute('''
        { teams(where: {id: "5"}) { users(where: {name: "Cid"}) { id } } }
    ''')
    assert res.errors is None, res.errors
    assert res.data['teams'][0]['users'] == [{'id': 11}]


@pytest.mark.asyncio
async def test_pagination(source, captured_sql):
    captured_sql.clear()
    res = await source.execute('{ users(order_by: {id: desc}, limit: 1, offset: 1) { id } }')
    assert res.errors is None, res.errors
    assert res.data['users'] == [{'id': 11}]
    assert 'limit' in _user_selects(captured_sql)[0]

    captured_sql.clear()
    res = await source.execute('{ users(order_by: {id: asc}, limit: 0, offset: 0) { id } }')
    assert [u['id'] for u in res.data['users']] == [10, 11, 12]
    assert 'limit' not in _user_selects(captured_sql)[0]


@pytest.mark.asyncio
async def test_null_filter_matches_missing_values(source):
    res = await source.execute('{ users(where: {email: null}) { name } }')
    assert res.errors is None, res.errors
    assert res.data['users'] == [{'name': 'Cid'}]


@pytest.mark.asyncio
async def test_count(source):
    res = await source.execute('{ all: count_users by_team: count_users(where: {team_id: "5"}) }')
    assert res.errors is None, res.errors
    assert res.data == {'all': 3, 'by_team': 2}


@pytest.mark.asyncio
async def test_update_returns_reselected_row(source):
    res = await source.execute(
        'mutation { update_users(users: {email: "cid@example.com"}, where: {id: "11"}) { id email } }'
    )
    assert res.errors is None, res.errors
    assert res.data['update_users'] == {'id': 11, 'email': 'cid@example.com'}


@pytest.mark.asyncio
async def test_delete_reports_affected_rows(source):
    res = await source.execute('mutation { delete_posts(where: {id: "101"}) }')
    assert res.errors is None, res.errors
    assert res.data == {'delete_posts': True}

    res = await source.execute('mutation { delete_posts(where: {id: "101"}) }')
    assert res.errors is None, res.errors
    assert res.data == {'delete_posts': False}


@pytest.mark.asyncio
async def test_insert_with_generated_id(source):
    res = await source.execute('mutation { insert_teams(teams: {name: "Ops"}) { id name } }')
    assert res.errors is None, res.errors
    row = res.data['insert_teams']
    assert row['name'] == 'Ops'
    assert isinstance(row['id'], int) and row['id'] not in (5, 6)


@pytest.mark.asyncio
async def test_table_without_primary_key(source):
    res = await source.execute('mutation { insert_audit_log(audit_log: {event: "login"}) { event } }')
    assert res.errors is None, res.errors
    assert res.data == {'insert_audit_log': None}

    res = await source.execute('{ audit_log(order_by: {event: asc}) { event detail } }')
    assert res.errors is None, res.errors
    assert res.data['audit_log'] == [{'event': 'login', 'detail': None}, {'event': 'seed', 'detail': 'initial'}]
    assert 'audit_log' not in source.merge


@pytest.mark.asyncio
async def test_datetime_columns_are_parsed(source):
    res = await source.execute('{ posts(where: {id: "100"}) { created_at } }')
    assert res.errors is None, res.errors
    assert res.data['posts'][0]['created_at'] is not None


@pytest.mark.asyncio
async def test_native_failure_becomes_graphql_error(source):
    res = await source.execute('mutation { insert_posts(posts: {title: "x", author_id: 10, id: 100}) { id } }')
    assert res.errors is not None
    assert res.data is None or res.data.get('insert_posts') is None


@pytest.mark.asyncio
async def test_acquire_failure_is_returned_as_errors(source):
    executor = GraphExecutor(source.schema, ExecutionContext(FakeStore(fail_acquire=True)))
    res = await executor.execute('{ users { id } }')
    assert res.data is None
    assert res.errors and 'no connection' in str(res.errors[0])


@pytest.mark.asyncio
async def test_one_handle_per_request(source):
    store = FakeStore(rows={'users': [{'name': 'Ann', 'team_id': 5}], 'teams': [{'id': 5}]})
    executor = GraphExecutor(source.schema, ExecutionContext(store))
    res = await executor.execute('{ users { name team { id } } }')
    assert res.errors is None, res.errors
    assert len(store.handles) == 1
    assert store.released == 1
    assert [c[0] for c in store.calls] == ['select', 'select']


@pytest.mark.asyncio
async def test_merge_config(source):
    cfg = source.merge['users']
    assert cfg.selection_set == '{ id }'
    assert cfg.key_args({'id': 10, 'name': 'Bob'}) == {'where': {'id': 10}}
    assert cfg.values_from_results([{'id': 10}]) == {'id': 10}


@pytest.mark.asyncio
async def test_configured_subset(populated_db):
    config = IntroQLConfig(tables=['users', 'teams'], table_fields=[TableFields('users', ['id', 'name', 'team_id'])])
    source = await build_source(populated_db, config)
    assert set(source.graph.entities) == {'users', 'teams'}
    res = await source.execute('{ users(where: {id: "10"}) { name team { name } } }')
    assert res.errors is None, res.errors
    assert res.data['users'] == [{'name': 'Bob', 'team': [{'name': 'Core'}]}]
    res = await source.execute('{ users { email } }')
    assert res.errors is not None
