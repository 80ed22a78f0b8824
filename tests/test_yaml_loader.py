import pytest

from beeorm.registry import Registry
from beeorm.yaml_loader import ConfigError, init_by_yaml


def _config():
    return {
        "default": {
            "mysql": {
                "uri": "root:root@tcp(localhost:3377)/test",
                "connMaxLifetime": 30,
                "maxOpenConnections": 10,
                "maxIdleConnections": 5,
                "defaultEncoding": "utf8",
                "defaultCollate": "general_ci",
                "ignoredTables": ["skip_me"],
            },
            "redis": "localhost:6385:0",
            "local_cache": 1000,
        },
        "second": {
            "redis": "localhost:6385:1?user=user&password=password",
        },
        "socket": {"redis": "/var/run/redis.sock:3"},
        "sentinel_pool": {
            "sentinel": {"mymaster:2": [":26379", "localhost:26380"]},
        },
    }


def test_valid_config_registers_everything():
    registry = Registry()
    init_by_yaml(registry, _config())

    mysql = registry.mysql_pools["default"]
    assert mysql.database_name == "test"
    assert mysql.data_source_name == "root:root@tcp(localhost:3377)/test"
    assert mysql.options.conn_max_lifetime == 30
    assert mysql.options.max_open_connections == 10
    assert mysql.options.max_idle_connections == 5
    assert mysql.options.default_encoding == "utf8"
    assert mysql.options.default_collate == "general_ci"
    assert mysql.options.ignored_tables == ["skip_me"]

    assert registry.local_caches["default"].limit == 1000

    default_redis = registry.redis_pools["default"]
    assert default_redis.address == "localhost:6385"
    assert default_redis.db == 0


def test_redis_credentials_from_query():
    registry = Registry()
    init_by_yaml(registry, _config())
    pool = registry.redis_pools["second"]
    assert pool.db == 1
    assert pool.address == "localhost:6385"
    assert pool.client.connection_pool.connection_kwargs["username"] == "user"


def test_redis_socket_address():
    registry = Registry()
    init_by_yaml(registry, _config())
    pool = registry.redis_pools["socket"]
    assert pool.address == "/var/run/redis.sock"
    assert pool.db == 3


def test_sentinel_pool():
    registry = Registry()
    init_by_yaml(registry, _config())
    pool = registry.redis_pools["sentinel_pool"]
    assert pool.db == 2
    assert pool.address == "[:26379 localhost:26380]"


def test_plugin_hook_receives_data():
    class Plugin:
        def __init__(self):
            self.calls = []

        def init_registry_from_yaml(self, registry, data):
            self.calls.append((registry, data))

    plugin = Plugin()
    registry = Registry()
    registry.register_plugin(plugin)
    data = {"default": {"local_cache": 10}}
    init_by_yaml(registry, data)
    assert plugin.calls == [(registry, data)]


@pytest.mark.parametrize(
    "data, message",
    [
        ({"test": "invalid"}, "orm yaml key orm is not valid"),
        ({"default": {"mysql": []}}, "orm yaml key default is not valid"),
        ({"default": {"redis": "invalid"}}, "redis uri 'invalid' is not valid"),
        (
            {"default": {"redis": "invalid:invalid:invalid"}},
            "redis uri 'invalid:invalid:invalid' is not valid",
        ),
        ({"default": {"redis": [1]}}, "redis uri '[1]' is not valid"),
        (
            {"default": {"sentinel": {"test": "wrong"}}},
            "sentinel 'map[test:wrong]' is not valid",
        ),
        (
            {"default": {"sentinel": {"master:wrong": []}}},
            "sentinel db 'map[master:wrong:[]]' is not valid",
        ),
        (
            {"default": {"mysql": {"defaultEncoding": 23}}},
            "orm value for defaultEncoding: 23 is not valid",
        ),
    ],
)
def test_invalid_config(data, message):
    with pytest.raises(ConfigError) as error:
        init_by_yaml(Registry(), data)
    assert str(error.value) == message


def test_local_cache_limit_must_be_int():
    with pytest.raises(ConfigError) as error:
        init_by_yaml(Registry(), {"default": {"local_cache": "big"}})
    assert str(error.value) == "orm value for default: big is not valid"