import pytest

from introql.core.builder import assemble_graph, build_entity
from introql.core.planner import QueryArgs, QueryPlanner
from introql.core.selection import Selection
from introql.core.types import ColumnMeta, TableMeta
from introql.core.wiring import wire
from tests.fakes import users_teams_metadata


@pytest.fixture
def graph():
    tables, columns, primary_keys, foreign_keys = users_teams_metadata()
    entities = [build_entity(tables[t], columns[t], None, primary_keys[t]) for t in tables]
    fks = [fk for t in tables for fk in foreign_keys[t].values()]
    return wire(assemble_graph(entities), fks)


@pytest.fixture
def planner(graph):
    return QueryPlanner(graph)


def sel(**fields):
    return Selection.from_fields(fields)


def test_projection_uses_driving_column_for_relationships(planner, graph):
    users = graph.entity('users')
    op = planner.plan_select(users, sel(name={}, team={'id': {}}))
    assert op.columns == ('name', 'team_id')
    assert 'team' not in op.columns


def test_reverse_relationship_projects_local_key(planner, graph):
    teams = graph.entity('teams')
    op = planner.plan_select(teams, sel(name={}, users={'name': {}}))
    assert op.columns == ('name', 'id')


def test_projection_deduplicates_columns(planner, graph):
    users = graph.entity('users')
    op = planner.plan_select(users, sel(team_id={}, team={'name': {}}, posts={'id': {}}, id={}))
    assert op.columns == ('team_id', 'id')


def test_projection_falls_back_to_primary_key(planner, graph):
    users = graph.entity('users')
    assert planner.plan_select(users, sel(__typename={})).columns == ('id',)


def test_projection_without_primary_key_uses_first_column():
    log = build_entity(TableMeta('log'), {'msg': ColumnMeta('msg', 'text'), 'at': ColumnMeta('at', 'datetime')})
    planner = QueryPlanner(assemble_graph([log]))
    assert planner.project(log, sel(__typename={})) == ('msg',)


@pytest.mark.parametrize(
    "args,name,bounds",
    [
        (QueryArgs(), 'select', ()),
        (QueryArgs(limit=0, offset=0), 'select', ()),
        (QueryArgs(limit=10), 'select_bounded', (10,)),
        (QueryArgs(limit=10, offset=0), 'select_bounded', (10,)),
        (QueryArgs(limit=10, offset=20), 'select_bounded', (10, 20)),
        (QueryArgs(offset=5), 'select_bounded', (None, 5)),
    ],
)
def test_pagination_selects_native_operation(planner, graph, args, name, bounds):
    op = planner.plan_select(graph.entity('users'), sel(id={}), args)
    assert op.name == name
    assert op.bounds == bounds


def test_where_is_coerced_by_column_kind(planner, graph):
    op = planner.plan_select(graph.entity('users'), sel(id={}), QueryArgs(where={'id': '1', 'name': '007'}))
    assert op.where == {'id': 1, 'name': '007'}


def test_order_is_normalized(planner, graph):
    op = planner.plan_select(graph.entity('users'), sel(id={}), QueryArgs(order_by={'name': 'DESC', 'id': 'asc', 'email': None}))
    assert op.order_by == {'name': 'desc', 'id': 'asc'}


def test_relation_plan_merges_join_predicate(planner, graph):
    rel = graph.entity('users').relationship('team')
    op = planner.plan_relation(rel, {'team_id': 5}, sel(id={}, name={}), QueryArgs(where={'name': 'Core'}, limit=1))
    assert op.table == 'teams'
    assert op.where == {'id': 5, 'name': 'Core'}
    assert op.columns == ('id', 'name')
    assert op.name == 'select_bounded'


def test_relation_plan_caller_filter_wins(planner, graph):
    rel = graph.entity('teams').relationship('users')
    op = planner.plan_relation(rel, {'id': 5}, sel(name={}), QueryArgs(where={'team_id': '6'}))
    assert op.where == {'team_id': 6}


def test_relation_without_parent_value_plans_nothing(planner, graph):
    rel = graph.entity('users').relationship('team')
    assert planner.plan_relation(rel, {'team_id': None}, sel(id={})) is None


def test_insert_follow_up_prefers_supplied_key(planner, graph):
    users = graph.entity('users')
    op = planner.plan_insert(users, {'id': 1, 'name': 'Ann', 'team_id': 5}, sel(name={}))
    assert op.values == {'id': 1, 'name': 'Ann', 'team_id': 5}
    follow = op.follow_up(99)
    assert follow.where == {'id': 1}
    assert follow.columns == ('name',)


def test_insert_follow_up_uses_generated_id(planner, graph):
    op = planner.plan_insert(graph.entity('users'), {'name': 'Ann'}, sel(id={}))
    assert op.follow_up(42).where == {'id': 42}


def test_insert_without_primary_key_has_no_follow_up():
    log = build_entity(TableMeta('log'), {'msg': ColumnMeta('msg', 'text')})
    planner = QueryPlanner(assemble_graph([log]))
    assert planner.plan_insert(log, {'msg': 'x'}, sel(msg={})).follow_up(1) is None


def test_update_reselects_with_same_filter(planner, graph):
    op = planner.plan_update(graph.entity('users'), {'name': 'Bo'}, {'id': '1'}, sel(name={}))
    assert op.where == {'id': 1}
    follow = op.follow_up()
    assert follow.where == {'id': 1}
    assert follow.name == 'select'


def test_delete_and_count_filter_only(planner, graph):
    users = graph.entity('users')
    assert planner.plan_delete(users, {'id': '1'}).where == {'id': 1}
    count = planner.plan_count(users, {'team_id': '5'})
    assert count.where == {'team_id': 5}
    assert count.name == 'count'


def test_planning_does_not_modify_graph(planner, graph):
    before = {e.table_name: e for e in graph}
    planner.plan_select(graph.entity('users'), sel(name={}, team={'id': {}}), QueryArgs(where={'id': '1'}))
    assert {e.table_name: e for e in graph} == before
