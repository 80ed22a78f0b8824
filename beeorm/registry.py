"""Registration of database pools, caches, entities and plugins."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Mapping

import redis
from redis.sentinel import Sentinel

DEFAULT_ENCODING = "utf8mb4"
DEFAULT_COLLATE = "0900_ai_ci"
_DEFAULT_REDIS_PORT = 6379


@dataclass
class MySQLOptions:
    """Connection pool and table options of a MySQL pool."""

    conn_max_lifetime: float = 0.0
    max_open_connections: int = 0
    max_idle_connections: int = 0
    default_encoding: str = ""
    default_collate: str = ""
    ignored_tables: list[str] = field(default_factory=list)


@dataclass
class MySQLConfig:
    code: str
    data_source_name: str
    database_name: str
    options: MySQLOptions


@dataclass
class RedisOptions:
    user: str = ""
    password: str = ""
    master: str = ""
    sentinels: list[str] = field(default_factory=list)
    sentinel_options: Mapping[str, Any] | None = None


@dataclass
class RedisPoolConfig:
    code: str
    client: redis.Redis
    address: str
    db: int


@dataclass
class LocalCacheConfig:
    code: str
    limit: int


def _host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, _DEFAULT_REDIS_PORT
    return host, int(port)


class Registry:
    """Collects everything an engine is built from."""

    def __init__(self) -> None:
        self.mysql_pools: dict[str, MySQLConfig] = {}
        self.local_caches: dict[str, LocalCacheConfig] = {}
        self.redis_pools: dict[str, RedisPoolConfig] = {}
        self.entities: dict[str, type] = {}
        self.plugins: list[Any] = []
        self.options: dict[str, Any] = {}

    def register_entity(self, *args: Any) -> None:
        """Register entity classes (or instances of them); each must be a dataclass."""
        for entity in args:
            entity_type = entity if isinstance(entity, type) else type(entity)
            if not dataclasses.is_dataclass(entity_type):
                raise TypeError(
                    f"invalid entity definition, must be struct, {entity_type.__name__} provided"
                )
            name = f"{entity_type.__module__}.{entity_type.__qualname__}"
            self.entities[name] = entity_type

    def register_plugin(self, *args: Any) -> None:
        self.plugins.extend(args)

    def register_mysql(
        self, data_source_name: str, pool_code: str, options: MySQLOptions | None
    ) -> None:
        options = options if options is not None else MySQLOptions()
        if not options.default_encoding:
            options.default_encoding = DEFAULT_ENCODING
        if not options.default_collate:
            options.default_collate = DEFAULT_COLLATE
        database_name = data_source_name.split("/")[-1].split("?")[0]
        self.mysql_pools[pool_code] = MySQLConfig(
            code=pool_code,
            data_source_name=data_source_name,
            database_name=database_name,
            options=options,
        )

    def register_local_cache(self, code: str, limit: int) -> None:
        self.local_caches[code] = LocalCacheConfig(code=code, limit=limit)

    def register_redis(
        self, address: str, db: int, pool_code: str, options: RedisOptions | None
    ) -> None:
        if options is not None and options.sentinels:
            if options.sentinel_options is not None:
                settings = dict(options.sentinel_options)
            else:
                settings = {"db": db}
                if options.user:
                    settings["username"] = options.user
                if options.password:
                    settings["password"] = options.password
            sentinel = Sentinel([_host_port(item) for item in options.sentinels])
            client = sentinel.master_for(options.master, **settings)
            label = "[" + " ".join(options.sentinels) + "]"
            self._add_redis(client, pool_code, label, db)
            return
        settings: dict[str, Any] = {"db": db}
        if options is not None:
            if options.user:
                settings["username"] = options.user
            if options.password:
                settings["password"] = options.password
        if address.endswith(".sock"):
            client = redis.Redis(unix_socket_path=address, **settings)
        else:
            host, port = _host_port(address)
            client = redis.Redis(host=host, port=port, **settings)
        self._add_redis(client, pool_code, address, db)

    def _add_redis(self, client: redis.Redis, code: str, address: str, db: int) -> None:
        self.redis_pools[code] = RedisPoolConfig(code=code, client=client, address=address, db=db)

    def set_option(self, key: str, value: Any) -> None:
        self.options[key] = value