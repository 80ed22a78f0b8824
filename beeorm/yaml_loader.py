"""Registry configuration from parsed YAML data."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs

from .registry import MySQLOptions, RedisOptions, Registry

_MAX_UINT64 = 2**64


class ConfigError(ValueError):
    """Raised when configuration data is not valid."""


def _format_value(value: Any) -> str:
    """Render a value the way error messages show it."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        items = sorted((_format_value(k), _format_value(v)) for k, v in value.items())
        return "map[" + " ".join(f"{k}:{v}" for k, v in items) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(item) for item in value) + "]"
    return str(value)


def _as_map(value: Any, key: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"orm yaml key {key} is not valid")
    return {_format_value(k): v for k, v in value.items()}


def _as_int(value: Any, key: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"orm value for {key}: {_format_value(value)} is not valid")
    return value


def _as_string(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"orm value for {key}: {_format_value(value)} is not valid")
    return value


def _as_strings(value: Any, key: str) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"orm value for {key}: {_format_value(value)} is not valid")
    return list(value)


def _parse_uint(text: str) -> int | None:
    if not text or not (text.isascii() and text.isdigit()):
        return None
    number = int(text)
    return number if number < _MAX_UINT64 else None


def _parse_query(text: str) -> dict[str, list[str]] | None:
    if ";" in text:
        return None
    return parse_qs(text, keep_blank_values=True)


def _load_mysql(registry: Registry, value: Any, key: str) -> None:
    definition = _as_map(value, key)
    uri = ""
    options = MySQLOptions()
    for name, item in definition.items():
        if name == "uri":
            uri = _as_string(item, "uri")
        elif name == "connMaxLifetime":
            options.conn_max_lifetime = float(_as_int(item, "connMaxLifetime"))
        elif name == "maxOpenConnections":
            options.max_open_connections = _as_int(item, "maxOpenConnections")
        elif name == "maxIdleConnections":
            options.max_idle_connections = _as_int(item, "maxIdleConnections")
        elif name == "defaultEncoding":
            options.default_encoding = _as_string(item, "defaultEncoding")
        elif name == "defaultCollate":
            options.default_collate = _as_string(item, "defaultCollate")
        elif name == "ignoredTables":
            options.ignored_tables = _as_strings(item, "ignoredTables")
    registry.register_mysql(uri, key, options)


def _load_redis(registry: Registry, value: Any, key: str) -> None:
    error = ConfigError(f"redis uri '{_format_value(value)}' is not valid")
    if not isinstance(value, str):
        raise error
    parts = value.split("?")
    elements = parts[0].split(":")
    is_socket = parts[0].find(".sock") > 0
    if len(elements) == 2:
        address, db_number = elements[0], elements[1]
    elif len(elements) == 3:
        if is_socket:
            address, db_number = elements[0], elements[1]
        else:
            address, db_number = elements[0] + ":" + elements[1], elements[2]
    elif len(elements) == 4:
        address, db_number = elements[0] + ":" + elements[1], elements[2]
    else:
        raise error
    db = _parse_uint(db_number)
    if db is None:
        raise error
    options = None
    if len(parts) == 2 and parts[1]:
        query = _parse_query(parts[1])
        if query is None:
            raise error
        if "user" in query and "password" in query:
            options = RedisOptions(user=query["user"][0], password=query["password"][0])
    registry.register_redis(address, db, key, options)


def _load_sentinel(registry: Registry, value: Any, key: str) -> None:
    definition = _as_map(value, key)
    for master, addresses in definition.items():
        if not isinstance(addresses, (list, tuple)):
            raise ConfigError(f"sentinel '{_format_value(value)}' is not valid")
        sentinels = [_format_value(item) for item in addresses]
        parts = master.split("?")
        elements = parts[0].split(":")
        name = elements[0]
        db = 0
        if len(elements) >= 2:
            parsed = _parse_uint(elements[1])
            if parsed is None:
                raise ConfigError(f"sentinel db '{_format_value(value)}' is not valid")
            db = parsed
        options = RedisOptions(master=name, sentinels=sentinels)
        if len(parts) == 2 and parts[1]:
            query = _parse_query(parts[1])
            if query is None:
                raise ConfigError(f"sentinel uri '{name}' is not valid")
            if "user" in query and "password" in query:
                options.user = query["user"][0]
                options.password = query["password"][0]
        registry.register_redis("", db, key, options)


def init_by_yaml(registry: Registry, data: Mapping[str, Any]) -> None:
    """Register pools and caches described by ``data`` (pool code -> settings)."""
    for raw_key, section in data.items():
        key = _format_value(raw_key)
        settings = _as_map(section, "orm")
        for name, value in settings.items():
            if name == "mysql":
                _load_mysql(registry, value, key)
            elif name == "redis":
                _load_redis(registry, value, key)
            elif name == "sentinel":
                _load_sentinel(registry, value, key)
            elif name == "local_cache":
                registry.register_local_cache(key, _as_int(value, key))
    for plugin in registry.plugins:
        hook = getattr(plugin, "init_registry_from_yaml", None)
        if callable(hook):
            hook(registry, data)