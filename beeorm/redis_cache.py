"""Key, hash, counter and scripting commands of a Redis pool."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable

import msgpack
import redis

from .redis_lists import RedisCollectionCommands
from .redis_streams import Duration, _decode, _format_duration, _milliseconds


def _pairs(args: tuple[Any, ...]) -> dict[Any, Any]:
    """Turn a single mapping or a flat ``key, value, ...`` sequence into a dict."""
    if len(args) == 1 and isinstance(args[0], Mapping):
        return dict(args[0])
    if len(args) % 2:
        raise ValueError("expected an even number of arguments (key, value pairs)")
    return dict(zip(args[::2], args[1::2]))


def _flat(values: dict[Any, Any]) -> str:
    return "".join(f" {key} {value}" for key, value in values.items())


def _expiry_ms(expiration: Duration) -> int | None:
    milliseconds = _milliseconds(expiration)
    return milliseconds if milliseconds > 0 else None


class RedisCache(RedisCollectionCommands):
    """All commands of one Redis pool; every call is reported to query loggers."""

    def _get_raw(self, key: str) -> Any:
        query = f"GET {key}"
        start = self._start()
        try:
            result = self.client.get(key)
        except redis.RedisError as exc:
            self._log("GET", query, start, error=exc)
            raise
        self._log("GET", query, start, miss=result is None)
        return result

    def get_set(self, key: str, expiration: Duration, provider: Callable[[], Any]) -> Any:
        """Return the cached value of ``key``, or store and return what ``provider`` gives."""
        raw = self._get_raw(key)
        if raw is None:
            value = provider()
            self.set(key, msgpack.packb(value, use_bin_type=True), expiration)
            return value
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        return msgpack.unpackb(raw, raw=False)

    def info(self, *args: str) -> dict[str, Any]:
        query = " ".join(["INFO", *args])
        return _decode(self._execute("INFO", query, lambda: self.client.info(*args)))

    def get(self, key: str) -> tuple[str, bool]:
        """Value of ``key``; the flag tells whether the key exists."""
        raw = self._get_raw(key)
        if raw is None:
            return "", False
        return _decode(raw), True

    def eval(self, script: str, keys: list[str], *args: Any) -> Any:
        query = f"EVAL {script} [{' '.join(keys)}] [{' '.join(str(a) for a in args)}]"
        result = self._execute(
            "EVAL", query, lambda: self.client.eval(script, len(keys), *keys, *args)
        )
        return _decode(result)

    def evalsha(self, sha1: str, keys: list[str], *args: Any) -> tuple[Any, bool]:
        """Run a loaded script; ``(None, False)`` when no script has that digest."""
        query = f"EVALSHA {sha1} [{' '.join(keys)}] [{' '.join(str(a) for a in args)}]"
        start = self._start()
        try:
            result = self.client.evalsha(sha1, len(keys), *keys, *args)
        except redis.RedisError as exc:
            self._log("EVALSHA", query, start, error=exc)
            if not self.script_exists(sha1):
                return None, False
            raise
        self._log("EVALSHA", query, start)
        return _decode(result), True

    def script_exists(self, sha1: str) -> bool:
        result = self._execute(
            "SCRIPTEXISTS", f"SCRIPTEXISTS {sha1}", lambda: self.client.script_exists(sha1)
        )
        return bool(result[0])

    def script_load(self, script: str) -> str:
        result = self._execute(
            "SCRIPTLOAD", f"SCRIPTLOAD {script}", lambda: self.client.script_load(script)
        )
        return _decode(result)

    def set(self, key: str, value: Any, expiration: Duration) -> None:
        """Store ``value``; an expiration of zero keeps it forever."""
        query = f"SET {key} {value} {_format_duration(expiration)}"
        self._execute(
            "SET", query, lambda: self.client.set(key, value, px=_expiry_ms(expiration))
        )

    def setnx(self, key: str, value: Any, expiration: Duration) -> bool:
        """Store ``value`` only if ``key`` is absent; return whether it was stored."""
        query = f"SET NX {key} {value} {_format_duration(expiration)}"
        result = self._execute(
            "SETNX",
            query,
            lambda: self.client.set(key, value, nx=True, px=_expiry_ms(expiration)),
        )
        return bool(result)

    def mset(self, *args: Any) -> None:
        mapping = _pairs(args)
        self._execute("MSET", "MSET" + _flat(mapping), lambda: self.client.mset(mapping))

    def mget(self, *args: str) -> list[Any]:
        """Values of the keys in order; missing keys give ``None``."""
        query = "MGET " + " ".join(args)
        start = self._start()
        try:
            result = self.client.mget(list(args))
        except redis.RedisError as exc:
            self._log("MGET", query, start, error=exc)
            raise
        values = _decode(list(result or []))
        self._log("MGET", query, start, miss=any(value is None for value in values))
        return values

    def delete(self, *args: str) -> None:
        self._execute("DEL", "DEL " + " ".join(args), lambda: self.client.delete(*args))

    def exists(self, *args: str) -> int:
        return int(
            self._execute("EXISTS", "EXISTS " + " ".join(args), lambda: self.client.exists(*args))
        )

    def type(self, key: str) -> str:
        return _decode(self._execute("TYPE", f"TYPE {key}", lambda: self.client.type(key)))

    def hset(self, key: str, *args: Any) -> None:
        """Set hash fields given as a mapping or as ``field, value, ...``."""
        mapping = _pairs(args)
        query = f"HSET {key} " + _flat(mapping)
        self._execute("HSET", query, lambda: self.client.hset(key, mapping=mapping))

    def hsetnx(self, key: str, field: str, value: Any) -> bool:
        query = f"HSETNX {key} {field}  {value}"
        return bool(
            self._execute("HSETNX", query, lambda: self.client.hsetnx(key, field, value))
        )

    def hdel(self, key: str, *args: str) -> None:
        query = f"HDEL {key} " + " ".join(args)
        self._execute("HDEL", query, lambda: self.client.hdel(key, *args))

    def hmget(self, key: str, *args: str) -> dict[str, Any]:
        """Values of the given fields; missing fields map to ``None``."""
        query = f"HMGET {key} " + " ".join(args)
        start = self._start()
        try:
            result = self.client.hmget(key, list(args))
        except redis.RedisError as exc:
            self._log("HMGET", query, start, error=exc)
            raise
        values = dict(zip(args, _decode(list(result or []))))
        self._log("HMGET", query, start, miss=any(v is None for v in values.values()))
        return values

    def hgetall(self, key: str) -> dict[str, str]:
        result = self._execute("HGETALL", f"HGETALL {key}", lambda: self.client.hgetall(key))
        return _decode(dict(result or {}))

    def hget(self, key: str, field: str) -> tuple[str, bool]:
        """Value of a hash field; the flag tells whether the field exists."""
        query = f"HGET {key} {field}"
        start = self._start()
        try:
            result = self.client.hget(key, field)
        except redis.RedisError as exc:
            self._log("HGET", query, start, error=exc)
            raise
        self._log("HGET", query, start, miss=result is None)
        if result is None:
            return "", False
        return _decode(result), True

    def hlen(self, key: str) -> int:
        return int(self._execute("HLEN", f"HLEN {key}", lambda: self.client.hlen(key)))

    def hincrby(self, key: str, field: str, incr: int) -> int:
        return int(
            self._execute(
                "HINCRBY",
                f"HINCRBY {key} {field} {incr}",
                lambda: self.client.hincrby(key, field, incr),
            )
        )

    def incrby(self, key: str, incr: int) -> int:
        return int(
            self._execute("INCRBY", f"INCRBY {key} {incr}", lambda: self.client.incrby(key, incr))
        )

    def incr(self, key: str) -> int:
        return int(self._execute("INCR", f"INCR {key}", lambda: self.client.incr(key)))

    def incr_with_expire(self, key: str, expire: Duration) -> int:
        """Increment ``key`` and (re)set its time to live in one round trip."""

        def run() -> list[Any]:
            pipe = self.client.pipeline(transaction=False)
            pipe.incr(key)
            pipe.pexpire(key, _milliseconds(expire))
            return pipe.execute()

        results = self._execute(
            "INCR_EXPIRE", f"INCR EXP {key} {_format_duration(expire)}", run
        )
        return int(results[0])

    def expire(self, key: str, expiration: Duration) -> bool:
        """Set the time to live of ``key``; False when the key does not exist."""
        query = f"EXPIRE {key} {_format_duration(expiration)}"
        return bool(
            self._execute(
                "EXPIRE", query, lambda: self.client.pexpire(key, _milliseconds(expiration))
            )
        )

    def flush_all(self) -> None:
        self._execute("FLUSHALL", "FLUSHALL", self.client.flushall)

    def flush_db(self) -> None:
        self._execute("FLUSHDB", "FLUSHDB", self.client.flushdb)