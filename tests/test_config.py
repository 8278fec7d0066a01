from introql.config import IntroQLConfig, TableFields, interpolate


def test_interpolate_env_placeholders():
    env = {'DB_HOST': 'db.local', 'DB_PORT': '3307'}
    assert interpolate('{env.DB_HOST}:{env.DB_PORT}', env) == 'db.local:3307'
    assert interpolate('{env.MISSING}', env) == ''
    assert interpolate(5, env) == 5


def test_from_mapping_accepts_handler_keys():
    env = {'DB_USER': 'root', 'DB_PORT': '3307'}
    config = IntroQLConfig.from_mapping({
        'host': 'localhost',
        'port': '{env.DB_PORT}',
        'user': '{env.DB_USER}',
        'password': 'secret',
        'database': 'shop',
        'tables': ['users', 'teams'],
        'tableFields': [{'table': 'users', 'fields': ['id', 'name']}],
    }, env=env)
    assert config.port == 3307
    assert config.user == 'root'
    assert config.tables == ['users', 'teams']
    assert config.table_fields == [TableFields('users', ['id', 'name'])]
    assert config.fields_for('users') == ['id', 'name']
    assert config.fields_for('teams') is None


def test_url_from_parts_and_from_database_url():
    config = IntroQLConfig(host='localhost', port=3306, user='root', password='pw', database='shop')
    url = config.url()
    assert url.drivername == 'mysql+aiomysql'
    assert url.host == 'localhost' and url.port == 3306 and url.database == 'shop'

    config = IntroQLConfig(database_url='sqlite+aiosqlite:///tmp.db')
    assert config.url().drivername == 'sqlite+aiosqlite'


def test_from_env(monkeypatch):
    monkeypatch.setenv('INTROQL_DATABASE_URL', 'sqlite+aiosqlite:///x.db')
    monkeypatch.setenv('INTROQL_TABLES', 'users, teams')
    monkeypatch.setenv('INTROQL_DEBUG', 'true')
    config = IntroQLConfig.from_env()
    assert config.database_url == 'sqlite+aiosqlite:///x.db'
    assert config.tables == ['users', 'teams']
    assert config.debug is True


def test_empty_config_exposes_everything():
    config = IntroQLConfig()
    assert config.tables is None
    assert config.fields_for('anything') is None
