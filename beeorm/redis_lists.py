"""Redis list, sorted-set and set commands with query logging."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Tuple, TypeVar, Union

import redis

from .redis_streams import Duration, RedisStreamCommands, _decode, _format_duration, _seconds

T = TypeVar("T")
Members = Union[Mapping[Any, float], Iterable[Tuple[Any, float]]]


def _score_pairs(members: Members) -> list[tuple[Any, float]]:
    items = members.items() if isinstance(members, Mapping) else members
    return [(member, float(score)) for member, score in items]


def _with_scores(result: Any) -> list[tuple[str, float]]:
    return [(_decode(member), float(score)) for member, score in (result or [])]


class RedisCollectionCommands(RedisStreamCommands):
    """List, sorted-set and set commands of one Redis pool."""

    def _execute_required(
        self, operation: str, query: str, key: str, command: Callable[[], T | None]
    ) -> T:
        """Run ``command``; a missing (nil) reply raises ``KeyError``."""
        start = self._start()
        try:
            result = command()
        except redis.RedisError as exc:
            self._log(operation, query, start, error=exc)
            raise
        if result is None:
            error = KeyError(key)
            self._log(operation, query, start, error=error)
            raise error
        self._log(operation, query, start)
        return result

    def _execute_optional(
        self, operation: str, query: str, command: Callable[[], Any]
    ) -> tuple[str, bool]:
        start = self._start()
        try:
            result = command()
        except redis.RedisError as exc:
            self._log(operation, query, start, error=exc)
            raise
        self._log(operation, query, start)
        if result is None:
            return "", False
        return _decode(result), True

    # Lists

    def lpush(self, key: str, *args: Any) -> int:
        query = " ".join(["LPUSH", key, *(str(value) for value in args)])
        return int(self._execute("LPUSH", query, lambda: self.client.lpush(key, *args)))

    def lpop(self, key: str) -> str:
        """Remove and return the first element; an empty list raises ``KeyError``."""
        result = self._execute_required(
            "LPOP", f"LPOP {key}", key, lambda: self.client.lpop(key)
        )
        return _decode(result)

    def rpush(self, key: str, *args: Any) -> int:
        query = " ".join(["RPUSH", key, *(str(value) for value in args)])
        return int(self._execute("RPUSH", query, lambda: self.client.rpush(key, *args)))

    def llen(self, key: str) -> int:
        return int(self._execute("LLEN", "LLEN", lambda: self.client.llen(key)))

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        result = self._execute(
            "LRANGE",
            f"LRANGE {key} {start} {stop}",
            lambda: self.client.lrange(key, start, stop),
        )
        return _decode(list(result or []))

    def lset(self, key: str, index: int, value: Any) -> None:
        self._execute(
            "LSET",
            f"LSET {key} {index} {value}",
            lambda: self.client.lset(key, index, value),
        )

    def rpop(self, key: str) -> tuple[str, bool]:
        """Remove the last element; the flag tells whether there was one."""
        return self._execute_optional("RPOP", "RPOP", lambda: self.client.rpop(key))

    def blmove(
        self, source: str, destination: str, src_pos: str, dest_pos: str, timeout: Duration
    ) -> str:
        """Blocking list move; raises ``KeyError`` when ``timeout`` passes with nothing moved."""
        query = (
            f"BLMOVE {source} {destination} {src_pos} {dest_pos} {_format_duration(timeout)}"
        )
        result = self._execute_required(
            "BLMOVE",
            query,
            source,
            lambda: self.client.blmove(
                source, destination, _seconds(timeout), src=src_pos, dest=dest_pos
            ),
        )
        return _decode(result)

    def lmove(self, source: str, destination: str, src_pos: str, dest_pos: str) -> str:
        """Move one element between lists; an empty ``source`` raises ``KeyError``."""
        result = self._execute_required(
            "LMOVE",
            f"LMOVE {source} {destination} {src_pos} {dest_pos}",
            source,
            lambda: self.client.lmove(source, destination, src=src_pos, dest=dest_pos),
        )
        return _decode(result)

    def lrem(self, key: str, count: int, value: Any) -> None:
        self._execute(
            "LREM", f"LREM {count} {value}", lambda: self.client.lrem(key, count, value)
        )

    def ltrim(self, key: str, start: int, stop: int) -> None:
        self._execute(
            "LTRIM",
            f"LTRIM {key} {start} {stop}",
            lambda: self.client.ltrim(key, start, stop),
        )

    # Sorted sets

    def zadd(self, key: str, members: Members) -> int:
        """Add members given as a member -> score mapping or (member, score) pairs."""
        pairs = _score_pairs(members)
        query = "ZADD " + key + "".join(f" {score:f} {member}" for member, score in pairs)
        mapping = dict(pairs)
        return int(self._execute("ZADD", query, lambda: self.client.zadd(key, mapping)))

    def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        result = self._execute(
            "ZREVRANGE",
            f"ZREVRANGE {key} {start} {stop}",
            lambda: self.client.zrevrange(key, start, stop),
        )
        return _decode(list(result or []))

    def zrevrange_with_scores(self, key: str, start: int, stop: int) -> list[tuple[str, float]]:
        result = self._execute(
            "ZREVRANGESCORE",
            f"ZREVRANGESCORE {key} {start} {stop}",
            lambda: self.client.zrevrange(key, start, stop, withscores=True),
        )
        return _with_scores(result)

    def zrange_with_scores(self, key: str, start: int, stop: int) -> list[tuple[str, float]]:
        result = self._execute(
            "ZRANGESCORE",
            f"ZRANGESCORE {key} {start} {stop}",
            lambda: self.client.zrange(key, start, stop, withscores=True),
        )
        return _with_scores(result)

    def zcard(self, key: str) -> int:
        return int(self._execute("ZCARD", f"ZCARD {key}", lambda: self.client.zcard(key)))

    def zcount(self, key: str, min_score: str, max_score: str) -> int:
        return int(
            self._execute(
                "ZCOUNT",
                f"ZCOUNT {key} {min_score} {max_score}",
                lambda: self.client.zcount(key, min_score, max_score),
            )
        )

    def zscore(self, key: str, member: str) -> float:
        """Score of ``member``; a missing member raises ``KeyError``."""
        result = self._execute_required(
            "ZSCORE",
            f"ZSCORE {key} {member}",
            member,
            lambda: self.client.zscore(key, member),
        )
        return float(result)

    # Sets

    def sadd(self, key: str, *args: Any) -> int:
        query = "SADD " + key + "".join(f" {member}" for member in args)
        return int(self._execute("SADD", query, lambda: self.client.sadd(key, *args)))

    def smembers(self, key: str) -> list[str]:
        result = self._execute(
            "SMEMBERS", f"SMEMBERS {key}", lambda: self.client.smembers(key)
        )
        return _decode(list(result or []))

    def sismember(self, key: str, member: Any) -> bool:
        return bool(
            self._execute(
                "SISMEMBER",
                f"SISMEMBER {key} {member}",
                lambda: self.client.sismember(key, member),
            )
        )

    def scard(self, key: str) -> int:
        return int(self._execute("SCARD", f"SCARD {key}", lambda: self.client.scard(key)))

    def spop(self, key: str) -> tuple[str, bool]:
        """Remove a random member; the flag tells whether the set had one."""
        return self._execute_optional("SPOP", f"SPOP {key}", lambda: self.client.spop(key))

    def spop_n(self, key: str, max_count: int) -> list[str]:
        result = self._execute(
            "SPOPN",
            f"SPOPN {key} {max_count}",
            lambda: self.client.spop(key, max_count),
        )
        return _decode(list(result or []))