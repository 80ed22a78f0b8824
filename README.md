# beeorm

Building blocks for an entity ORM backed by MySQL and Redis.

| Module | What it gives you |
| --- | --- |
| `beeorm.where` | `Where`: SQL conditions with positional parameters |
| `beeorm.registry` | `Registry`, `MySQLOptions`, `MySQLConfig`, `RedisOptions`, `RedisPoolConfig`, `LocalCacheConfig` |
| `beeorm.yaml_loader` | `init_by_yaml`, `ConfigError` |
| `beeorm.redis_streams` | `RedisStreamCommands`: stream commands with query logging |
| `beeorm.redis_lists` | `RedisCollectionCommands`: list, sorted-set and set commands |
| `beeorm.redis_cache` | `RedisCache`: everything above plus keys, hashes, counters and scripts |
| `beeorm.redis_pipeline` | `RedisPipeline` and its result handles |
| `beeorm.columns` | `Field`, `check_struct`, `check_column`, the `handle_*` helpers, index SQL |
| `beeorm.alters` | `TableSQLSchemaDefinition`, `get_schema_changes`, `Alter` and helpers |
| `beeorm.utils` | `hash_string`, `DuplicatedKeyError` |

## Install

```
pip install beeorm
```

## Building conditions

```python
from beeorm.where import Where

where = Where("1 AND Field = ? AND Field2 IN ?", 2, ["a", "b"])
str(where)               # "1 AND Field = ? AND Field2 IN (?,?)"
where.get_parameters()   # [2, "a", "b"]

where.append(" AND Field3 = ?", "c")   # a space is added if the fragment lacks one
where.set_parameter(3, "b2")           # 1-based; out of range raises IndexError
where.set_parameters("x", "y")         # replaces all parameters
```

A list or tuple parameter replaces the next `IN ?` with the matching number
of placeholders and is spread into the parameter list.

## The registry

```python
from beeorm.registry import Registry, MySQLOptions, RedisOptions

registry = Registry()
registry.register_mysql("user:password@tcp(localhost:3306)/db", "default", MySQLOptions())
registry.register_redis("localhost:6379", 0, "default", None)
registry.register_local_cache("default", 1000)
registry.set_option("some_option", True)
```

`register_mysql` records the pool, takes the database name from the part of
the data source name after the last `/`, and fills in `utf8mb4` and
`0900_ai_ci` when no encoding or collation is given. `register_redis` creates
a `redis.Redis` client (a unix socket when the address ends in `.sock`, a
Sentinel master when `RedisOptions.sentinels` is set); the pool is kept in
`registry.redis_pools`. `register_entity` accepts dataclasses (or instances
of them) and raises `TypeError` for anything else.

### From YAML data

`init_by_yaml` reads an already parsed mapping of pool code to settings:

```python
from beeorm.yaml_loader import init_by_yaml, ConfigError

init_by_yaml(registry, {
    "default": {
        "mysql": {"uri": "user:password@tcp(localhost:3306)/db", "maxOpenConnections": 10},
        "redis": "localhost:6379:0",
        "local_cache": 1000,
    },
    "sessions": {
        "sentinel": {"mymaster:1": ["localhost:26379"]},
    },
})
```

Recognised `mysql` keys are `uri`, `connMaxLifetime`, `maxOpenConnections`,
`maxIdleConnections`, `defaultEncoding`, `defaultCollate` and `ignoredTables`.
A Redis URI is `host:port:db` (or `socket.sock:db`), optionally followed by
`?user=...&password=...`. A bad entry raises `ConfigError` with a message such
as `redis uri 'invalid' is not valid`. Registered plugins that have an
`init_registry_from_yaml(registry, data)` method are called afterwards.

## Redis commands

```python
from beeorm.redis_cache import RedisCache

pool = registry.redis_pools["default"]
cache = RedisCache(pool, pool.client)

cache.set("greeting", "hello", 10)      # expiration in seconds or a timedelta; 0 keeps forever
cache.get("greeting")                  # ("hello", True)
cache.get("missing")                   # ("", False)
cache.hset("user:1", "name", "Tom", "age", "16")
cache.hmget("user:1", "name", "nope")  # {"name": "Tom", "nope": None}
cache.incr_with_expire("hits", 60)
cache.get_set("report", 30, lambda: {"rows": 3})   # msgpack-encoded cache of the provider's value
```

Commands whose reply may be absent return a `(value, found)` pair: `get`,
`hget`, `rpop`, `spop`, `evalsha`. `lpop`, `lmove`, `blmove` and `zscore`
raise `KeyError` when there is nothing to return. `xgroup_create` and
`xgroup_create_mkstream` return `("OK", existed)` instead of failing on an
existing group; `xinfo_groups` returns `[]` for a stream that does not exist.
Redis errors are raised as the `redis` library's exceptions.

### Query logging

```python
class Printer:
    def handle(self, entry):
        print(entry["operation"], entry["query"], entry["microseconds"])

cache.register_query_logger(Printer())
```

Each entry is a dict with `source`, `pool`, `operation`, `query`,
`microseconds`, `miss` and, on failure, `error`.

### Pipelines

```python
from beeorm.redis_pipeline import RedisPipeline

pipeline = RedisPipeline(cache)
pipeline.set("a", "1", 0)
got = pipeline.get("a")
counter = pipeline.hincrby("stats", "views", 1)
pipeline.execute()
got.result()        # ("1", True)
counter.result()    # an int
```

`execute` sends everything queued in one round trip and raises the first
failed command's error; reading a result before `execute` raises
`RuntimeError`.

## Columns and schema alters

```python
from beeorm.columns import Field, check_struct
from beeorm.registry import MySQLOptions

options = MySQLOptions(default_encoding="utf8mb4", default_collate="0900_ai_ci")
indexes = {}
columns = check_struct(
    [
        Field("ID", "uint64"),
        Field("Name", "string", tags={"index": "NameIndex"}),
    ],
    options, indexes, "", False, True,
)
# `ID` bigint unsigned NOT NULL
# `Name` varchar(255) CHARACTER SET utf8mb4 COLLATE utf8mb4_0900_ai_ci DEFAULT NULL
```

`Field.type_name` is a scalar name (`uint64`, `*int`, `string`, `bool`,
`float64`, `time.Time`, `[]uint8`, ...) or one of `struct`, `reference`,
`enum` and `set`. Tags such as `required`, `length`, `decimal`, `unsigned`,
`mediumint`, `time`, `index`, `unique` and `ignore` shape the result.
Unsupported types and bad tag values raise `ValueError`.

```python
from beeorm.alters import TableSQLSchemaDefinition, get_schema_changes, sort_alters

definition = TableSQLSchemaDefinition(
    database_name="db", table_name="User", pool="default", options=options,
    entity_columns=columns, entity_indexes=list(indexes.values()),
    db_create_schema=show_create_table_text,   # "" when the table does not exist
)
pre, alters, post = get_schema_changes(definition, table_is_empty=lambda: True)
for alter in sort_alters(alters):
    print(alter.sql, alter.safe, alter.pool)
```

With no existing table the result is a `CREATE TABLE` statement; otherwise
a single `ALTER TABLE` adds, changes or drops columns and indexes, or fixes
the engine and charset. `parse_create_table` and `indexes_from_rows` turn
`SHOW CREATE TABLE` and `SHOW INDEXES` output into definitions, and
`drop_table_alter` builds the statement for a table no entity uses.

## What this package does not do

There is no engine or ORM object here: nothing connects to MySQL, loads or
saves entities, searches, or runs the alters. `Registry` only records pool,
cache, entity and plugin settings (it opens Redis clients, not MySQL
connections), and `LocalCacheConfig` holds a code and a limit without any
in-memory cache behind it. Schema alters are computed from definitions and
database output you pass in; executing them is up to you.

## Tests

```
pip install -e .[test]
pytest
```