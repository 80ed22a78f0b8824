"""Batched Redis commands sent in one round trip."""

from __future__ import annotations

from typing import Any

import redis

from .redis_cache import RedisCache, _pairs
from .redis_streams import Duration, _decode, _format_duration, _milliseconds

_LOG_SEPARATOR = "\n\x1b[38;2;255;255;155m"
_NOT_EXECUTED = object()


def _listed(values: tuple[Any, ...] | list[Any]) -> str:
    return "[" + " ".join(str(value) for value in values) + "]"


class _PipelineResult:
    """Reply of one queued command, available once the pipeline has run."""

    def __init__(self) -> None:
        self._value: Any = _NOT_EXECUTED
        self._error: BaseException | None = None

    def _resolve(self, value: Any) -> None:
        if isinstance(value, BaseException):
            self._error = value
            self._value = None
        else:
            self._value = value

    def _raw(self) -> Any:
        if self._error is not None:
            raise self._error
        if self._value is _NOT_EXECUTED:
            raise RuntimeError("pipeline has not been executed")
        return self._value


class PipelineGet(_PipelineResult):
    def result(self) -> tuple[str, bool]:
        """Value of the key; the flag tells whether it existed."""
        value = self._raw()
        if value is None:
            return "", False
        return _decode(value), True


class PipelineString(_PipelineResult):
    def result(self) -> str:
        return _decode(self._raw())


class PipelineSlice(_PipelineResult):
    def result(self) -> list[str]:
        return _decode(list(self._raw() or []))


class PipelineInt(_PipelineResult):
    def result(self) -> int:
        return int(self._raw())


class PipelineBool(_PipelineResult):
    def result(self) -> bool:
        return bool(self._raw())


class RedisPipeline:
    """Queues commands for one pool and sends them together on ``execute``."""

    def __init__(self, cache: RedisCache) -> None:
        self._cache = cache
        self._pipe = cache.client.pipeline(transaction=False)
        self._pending: list[_PipelineResult] = []
        self._log: list[str] = []

    def __len__(self) -> int:
        return len(self._pending)

    def _queue(self, query: str, handle: _PipelineResult | None = None) -> Any:
        if self._cache._query_loggers:
            self._log.append(query)
        self._pending.append(handle if handle is not None else _PipelineResult())
        return handle

    def lpush(self, key: str, *args: Any) -> None:
        self._pipe.lpush(key, *args)
        self._queue(f"LPUSH {key} {_listed(args)}")

    def rpush(self, key: str, *args: Any) -> None:
        self._pipe.rpush(key, *args)
        self._queue(f"RPUSH {key} {_listed(args)}")

    def lset(self, key: str, index: int, value: Any) -> None:
        self._pipe.lset(key, index, value)
        self._queue(f"LSET {key} {index} {value}")

    def delete(self, *args: str) -> None:
        self._pipe.delete(*args)
        self._queue("DEL " + " ".join(args))

    def get(self, key: str) -> PipelineGet:
        self._pipe.get(key)
        return self._queue(f"GET {key}", PipelineGet())

    def lrange(self, key: str, start: int, stop: int) -> PipelineSlice:
        self._pipe.lrange(key, start, stop)
        return self._queue(f"LRANGE {key} {start} {stop}", PipelineSlice())

    def set(self, key: str, value: Any, expiration: Duration) -> None:
        milliseconds = _milliseconds(expiration)
        self._pipe.set(key, value, px=milliseconds if milliseconds > 0 else None)
        self._queue(f"SET {key} {value} {_format_duration(expiration)}")

    def sadd(self, key: str, *args: Any) -> None:
        self._pipe.sadd(key, *args)
        self._queue(f"SADD {key} {_listed(args)}")

    def srem(self, key: str, *args: Any) -> None:
        self._pipe.srem(key, *args)
        self._queue(f"SREM {key} {_listed(args)}")

    def mset(self, *args: Any) -> None:
        mapping = _pairs(args)
        self._pipe.mset(mapping)
        self._queue("MSET" + "".join(f" {k} {v}" for k, v in mapping.items()))

    def expire(self, key: str, expiration: Duration) -> PipelineBool:
        self._pipe.pexpire(key, _milliseconds(expiration))
        return self._queue(f"EXPIRE {key} {_format_duration(expiration)}", PipelineBool())

    def hincrby(self, key: str, field: str, incr: int) -> PipelineInt:
        self._pipe.hincrby(key, field, incr)
        return self._queue(f"HINCRBY {key} {field} {incr}", PipelineInt())

    def hset(self, key: str, *args: Any) -> None:
        mapping = _pairs(args)
        self._pipe.hset(key, mapping=mapping)
        self._queue(f"HSET {key} {_listed([item for pair in mapping.items() for item in pair])}")

    def hdel(self, key: str, *args: str) -> None:
        self._pipe.hdel(key, *args)
        self._queue(f"HDEL {key} " + " ".join(args))

    def xadd(self, stream: str, values: list[str]) -> PipelineString:
        """Append an entry built from ``field, value, ...``; the result is its id."""
        self._pipe.xadd(stream, _pairs(tuple(values)))
        return self._queue(f"XADD {stream} " + " ".join(values), PipelineString())

    def execute(self) -> None:
        """Send the queued commands; the first failed command's error is raised."""
        if not self._pending:
            return
        start = self._cache._start()
        pending, log = self._pending, self._log
        self._pending, self._log = [], []
        error: BaseException | None = None
        try:
            results = self._pipe.execute(raise_on_error=False)
        except redis.RedisError as exc:
            results = [exc] * len(pending)
        finally:
            self._pipe = self._cache.client.pipeline(transaction=False)
        for handle, value in zip(pending, results):
            handle._resolve(value)
            if error is None and isinstance(value, BaseException):
                error = value
        self._cache._log("PIPELINE EXEC", _LOG_SEPARATOR.join(log), start, error=error)
        if error is not None:
            raise error