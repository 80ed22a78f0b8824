"""Redis stream commands with query logging."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Callable, Mapping, Sequence, TypeVar, Union

import redis

from .registry import RedisPoolConfig

Duration = Union[float, int, timedelta]
T = TypeVar("T")


def _seconds(value: Duration) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _milliseconds(value: Duration) -> int:
    return int(round(_seconds(value) * 1000))


def _format_duration(value: Duration) -> str:
    return f"{_seconds(value):g}s"


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {_decode(k): _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_decode(item) for item in value)
    return value


class RedisStreamCommands:
    """Stream commands of one Redis pool; every call is reported to query loggers."""

    def __init__(self, config: RedisPoolConfig, client: redis.Redis) -> None:
        self.config = config
        self.client = client
        self._query_loggers: list[Any] = []

    @property
    def code(self) -> str:
        return self.config.code

    def register_query_logger(self, handler: Any) -> None:
        """Add a handler whose ``handle(entry)`` receives a dict per command."""
        self._query_loggers.append(handler)

    def _start(self) -> float | None:
        return time.perf_counter() if self._query_loggers else None

    def _log(
        self,
        operation: str,
        query: str,
        start: float | None,
        miss: bool = False,
        error: BaseException | None = None,
    ) -> None:
        if not self._query_loggers:
            return
        entry: dict[str, Any] = {
            "source": "redis",
            "pool": self.config.code,
            "operation": operation,
            "query": query,
            "microseconds": int((time.perf_counter() - start) * 1_000_000) if start else 0,
            "miss": miss,
        }
        if error is not None:
            entry["error"] = str(error)
        for handler in self._query_loggers:
            handler.handle(entry)

    def _execute(self, operation: str, query: str, command: Callable[[], T]) -> T:
        start = self._start()
        try:
            result = command()
        except redis.RedisError as exc:
            self._log(operation, query, start, error=exc)
            raise
        self._log(operation, query, start)
        return result

    def xtrim(self, stream: str, max_len: int) -> int:
        """Trim ``stream`` to exactly ``max_len`` entries; return how many were removed."""
        return self._execute(
            "XTREAM",
            f"XTREAM {stream} {max_len}",
            lambda: self.client.xtrim(stream, maxlen=max_len, approximate=False),
        )

    def xrange(self, stream: str, start: str, stop: str, count: int) -> list[tuple[str, dict]]:
        result = self._execute(
            "XTREAM",
            f"XRANGE {stream} {start} {stop} {count}",
            lambda: self.client.xrange(stream, min=start, max=stop, count=count or None),
        )
        return _decode(list(result or []))

    def xrevrange(self, stream: str, start: str, stop: str, count: int) -> list[tuple[str, dict]]:
        result = self._execute(
            "XREVRANGE",
            f"XREVRANGE {stream} {start} {stop} {count}",
            lambda: self.client.xrevrange(stream, max=start, min=stop, count=count or None),
        )
        return _decode(list(result or []))

    def xinfo_stream(self, stream: str) -> dict[str, Any]:
        result = self._execute(
            "XINFOSTREAM", f"XINFOSTREAM {stream}", lambda: self.client.xinfo_stream(stream)
        )
        return _decode(result)

    def xinfo_groups(self, stream: str) -> list[dict[str, Any]]:
        """Return the consumer groups of ``stream``; an absent stream has none."""
        query = f"XINFOGROUPS {stream}"
        start = self._start()
        try:
            result = self.client.xinfo_groups(stream)
        except redis.ResponseError as exc:
            self._log("XINFOGROUPS", query, start, error=exc)
            if str(exc) in ("no such key", "ERR no such key"):
                return []
            raise
        except redis.RedisError as exc:
            self._log("XINFOGROUPS", query, start, error=exc)
            raise
        self._log("XINFOGROUPS", query, start)
        return _decode(list(result or []))

    def _group_create(
        self, operation: str, label: str, stream: str, group: str, start: str, mkstream: bool
    ) -> tuple[str, bool]:
        query = f"{label} {stream} {group} {start}"
        began = self._start()
        try:
            self.client.xgroup_create(stream, group, id=start, mkstream=mkstream)
        except redis.ResponseError as exc:
            if str(exc).startswith("BUSYGROUP"):
                self._log(operation, query, began)
                return "OK", True
            self._log(operation, query, began, error=exc)
            raise
        except redis.RedisError as exc:
            self._log(operation, query, began, error=exc)
            raise
        self._log(operation, query, began)
        return "OK", False

    def xgroup_create(self, stream: str, group: str, start: str) -> tuple[str, bool]:
        """Create ``group``; the flag tells whether it already existed."""
        return self._group_create("XGROUPCREATE", "XGROUPCREATE", stream, group, start, False)

    def xgroup_create_mkstream(self, stream: str, group: str, start: str) -> tuple[str, bool]:
        """Create ``group`` and the stream if needed; the flag tells whether it existed."""
        return self._group_create(
            "XGROUPCREATEMKSTREAM", "XGROUPCRMKSM", stream, group, start, True
        )

    def xgroup_destroy(self, stream: str, group: str) -> int:
        return int(
            self._execute(
                "XGROUPCDESTROY",
                f"XGROUPCDESTROY {stream} {group}",
                lambda: self.client.xgroup_destroy(stream, group),
            )
        )

    def xread(
        self, streams: Mapping[str, str], count: int, block: Duration | None
    ) -> list[tuple[str, list]]:
        """Read from ``streams`` (name -> last id); ``block`` of None does not block."""
        names = " ".join([*streams.keys(), *streams.values()])
        block_ms = None if block is None else _milliseconds(block)
        result = self._execute(
            "XREAD",
            f"XREAD {names} COUNT {count} BLOCK {block_ms if block_ms is not None else -1}",
            lambda: self.client.xread(dict(streams), count=count or None, block=block_ms),
        )
        return _decode(list(result or []))

    def xdel(self, stream: str, *args: str) -> int:
        return int(
            self._execute(
                "XDEL",
                f"XDEL {stream} " + " ".join(args),
                lambda: self.client.xdel(stream, *args),
            )
        )

    def xgroup_del_consumer(self, stream: str, group: str, consumer: str) -> int:
        return int(
            self._execute(
                "XGROUPDELCONSUMER",
                f"XGROUPDELCONSUMER {stream} {group} {consumer}",
                lambda: self.client.xgroup_delconsumer(stream, group, consumer),
            )
        )

    def xreadgroup(
        self,
        group: str,
        consumer: str,
        streams: Mapping[str, str],
        count: int,
        block: Duration | None,
        noack: bool,
    ) -> list[tuple[str, list]]:
        """Read as ``consumer`` of ``group``; ``block`` of None does not block."""
        names = " ".join([*streams.keys(), *streams.values()])
        base = f"XREADGROUP {group} {consumer} STREAMS {names}"
        start = self._start()
        block_ms = None if block is None else _milliseconds(block)
        if block is not None:
            query = base + f" COUNT {count} BLOCK {_format_duration(block)} NOACK {str(noack).lower()}"
            self._log("XREADGROUP", query, start)
        try:
            result = self.client.xreadgroup(
                group, consumer, dict(streams), count=count or None, block=block_ms, noack=noack
            )
        except redis.RedisError as exc:
            if block is None:
                query = base + f" COUNT {count} NOACK {str(noack).lower()}"
                self._log("XREADGROUP", query, start, error=exc)
            raise
        if block is None:
            query = base + f" COUNT {count} NOACK {str(noack).lower()}"
            self._log("XREADGROUP", query, start)
        return _decode(list(result or []))

    def xpending(self, stream: str, group: str) -> dict[str, Any]:
        result = self._execute(
            "XPENDING",
            f"XPENDING {stream} {group}",
            lambda: self.client.xpending(stream, group),
        )
        return _decode(result)

    def xpending_ext(
        self,
        stream: str,
        group: str,
        start: str,
        end: str,
        count: int,
        consumer: str | None,
        idle: Duration | None,
    ) -> list[dict[str, Any]]:
        """Detailed pending entries, optionally for one consumer and minimum idle time."""
        kwargs: dict[str, Any] = {}
        if consumer:
            kwargs["consumername"] = consumer
        if idle:
            kwargs["idle"] = _milliseconds(idle)
        idle_text = _format_duration(idle) if idle else "0s"
        query = (
            f"XPENDINGEXT {stream} {group} {consumer or ''}"
            f" START {start} END {end} COUNT {count} IDLE {idle_text}"
        )
        result = self._execute(
            "XPENDINGEXT",
            query,
            lambda: self.client.xpending_range(stream, group, start, end, count, **kwargs),
        )
        return _decode(list(result or []))

    def xlen(self, stream: str) -> int:
        return int(self._execute("XLEN", f"XLEN {stream}", lambda: self.client.xlen(stream)))

    def _claim_query(
        self, label: str, stream: str, group: str, consumer: str, min_idle: Duration,
        messages: Sequence[str],
    ) -> str:
        return (
            f"{label} {stream} {group} {consumer}"
            f" MINIDLE {_format_duration(min_idle)} MESSAGES " + " ".join(messages)
        )

    def xclaim(
        self, stream: str, group: str, consumer: str, min_idle: Duration, messages: Sequence[str]
    ) -> list[tuple[str, dict]]:
        result = self._execute(
            "XCLAIM",
            self._claim_query("XCLAIM", stream, group, consumer, min_idle, messages),
            lambda: self.client.xclaim(
                stream, group, consumer, _milliseconds(min_idle), list(messages)
            ),
        )
        return _decode(list(result or []))

    def xclaim_just_id(
        self, stream: str, group: str, consumer: str, min_idle: Duration, messages: Sequence[str]
    ) -> list[str]:
        result = self._execute(
            "XCLAIMJUSTID",
            self._claim_query("XCLAIMJUSTID", stream, group, consumer, min_idle, messages),
            lambda: self.client.xclaim(
                stream, group, consumer, _milliseconds(min_idle), list(messages), justid=True
            ),
        )
        return _decode(list(result or []))

    def xack(self, stream: str, group: str, *args: str) -> int:
        return int(
            self._execute(
                "XACK",
                f"XACK {stream} {group} " + " ".join(args),
                lambda: self.client.xack(stream, group, *args),
            )
        )