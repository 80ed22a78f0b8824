import pytest
import redis

from beeorm.redis_cache import RedisCache
from beeorm.redis_pipeline import RedisPipeline
from beeorm.registry import RedisPoolConfig


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return queue

    def execute(self, raise_on_error=True):
        results = []
        for name, args, kwargs in self.calls:
            try:
                results.append(getattr(self.client, name)(*args, **kwargs))
            except Exception as exc:
                if raise_on_error:
                    raise
                results.append(exc)
        self.calls = []
        self.client.executions += 1
        return results


def _b(value):
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expires = {}
        self.executions = 0
        self.stream_ids = 0

    def _item(self, key, kind, create=None):
        item = self.data.get(_b(key))
        if item is None:
            if create is None:
                return None
            self.data[_b(key)] = (kind, create)
            return create
        if item[0] != kind:
            raise redis.ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return item[1]

    def get(self, key):
        return self._item(key, "string")

    def set(self, key, value, px=None, nx=False):
        self.data[_b(key)] = ("string", _b(value))
        if px:
            self.expires[_b(key)] = px
        return True

    def mset(self, mapping):
        for key, value in mapping.items():
            self.set(key, value)
        return True

    def delete(self, *keys):
        return sum(self.data.pop(_b(k), None) is not None for k in keys)

    def lpush(self, key, *values):
        items = self._item(key, "list", [])
        for value in values:
            items.insert(0, _b(value))
        return len(items)

    def rpush(self, key, *values):
        items = self._item(key, "list", [])
        items.extend(_b(v) for v in values)
        return len(items)

    def lset(self, key, index, value):
        items = self._item(key, "list")
        if items is None:
            raise redis.ResponseError("ERR no such key")
        items[index] = _b(value)
        return True

    def lrange(self, key, start, stop):
        items = self._item(key, "list") or []
        return items[start : stop + 1 if stop != -1 else None]

    def sadd(self, key, *members):
        items = self._item(key, "set", set())
        before = len(items)
        items.update(_b(m) for m in members)
        return len(items) - before

    def srem(self, key, *members):
        items = self._item(key, "set") or set()
        before = len(items)
        items.difference_update(_b(m) for m in members)
        return before - len(items)

    def smembers(self, key):
        return set(self._item(key, "set") or set())

    def pexpire(self, key, milliseconds):
        if _b(key) not in self.data:
            return False
        self.expires[_b(key)] = milliseconds
        return True

    def hincrby(self, key, field, amount=1):
        h = self._item(key, "hash", {})
        value = int(h.get(_b(field), b"0")) + amount
        h[_b(field)] = _b(value)
        return value

    def hset(self, key, mapping):
        h = self._item(key, "hash", {})
        h.update({_b(f): _b(v) for f, v in mapping.items()})
        return len(mapping)

    def hdel(self, key, *fields):
        h = self._item(key, "hash") or {}
        return sum(h.pop(_b(f), None) is not None for f in fields)

    def hgetall(self, key):
        return dict(self._item(key, "hash") or {})

    def xadd(self, name, fields):
        entries = self._item(name, "stream", [])
        self.stream_ids += 1
        entry_id = f"{self.stream_ids}-0".encode()
        entries.append((entry_id, {_b(k): _b(v) for k, v in fields.items()}))
        return entry_id

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class Recorder:
    def __init__(self):
        self.entries = []

    def handle(self, entry):
        self.entries.append(entry)


@pytest.fixture
def fake():
    return FakeRedis()


@pytest.fixture
def cache(fake):
    config = RedisPoolConfig(code="default", client=fake, address="localhost:6379", db=0)
    return RedisCache(config, fake)


def test_set_and_get_round_trip(cache):
    pipeline = RedisPipeline(cache)
    pipeline.set("k", "v", 0)
    handle = pipeline.get("k")
    missing = pipeline.get("nothing")
    pipeline.execute()
    assert handle.result() == ("v", True)
    assert missing.result() == ("", False)
    assert cache.get("k") == ("v", True)


def test_result_before_execute_raises(cache):
    pipeline = RedisPipeline(cache)
    handle = pipeline.get("k")
    with pytest.raises(RuntimeError):
        handle.result()


def test_empty_execute_sends_nothing(cache, fake):
    recorder = Recorder()
    cache.register_query_logger(recorder)
    RedisPipeline(cache).execute()
    assert fake.executions == 0
    assert recorder.entries == []


def test_lists(cache):
    pipeline = RedisPipeline(cache)
    pipeline.rpush("l", "a", "b")
    pipeline.lpush("l", "z")
    pipeline.lset("l", 1, "y")
    items = pipeline.lrange("l", 0, -1)
    pipeline.execute()
    assert items.result() == ["z", "y", "b"]
    assert len(pipeline) == 0


def test_sets_hashes_and_deletes(cache, fake):
    pipeline = RedisPipeline(cache)
    pipeline.sadd("s", "a", "b")
    pipeline.srem("s", "a")
    pipeline.hset("h", "f1", "v1", "f2", "v2")
    pipeline.hdel("h", "f1")
    pipeline.mset("m1", "x", "m2", "y")
    pipeline.delete("m2")
    counter = pipeline.hincrby("c", "n", 4)
    pipeline.execute()
    assert fake.smembers("s") == {b"b"}
    assert cache.hgetall("h") == {"f2": "v2"}
    assert cache.mget("m1", "m2") == ["x", None]
    assert counter.result() == 4


def test_expire_results(cache):
    cache.set("present", "v", 0)
    pipeline = RedisPipeline(cache)
    present = pipeline.expire("present", 5)
    absent = pipeline.expire("absent", 5)
    pipeline.execute()
    assert present.result() is True
    assert absent.result() is False


def test_xadd_returns_entry_id(cache, fake):
    pipeline = RedisPipeline(cache)
    first = pipeline.xadd("stream", ["name", "a"])
    second = pipeline.xadd("stream", ["name", "b"])
    pipeline.execute()
    ids = [entry_id.decode() for entry_id, _ in fake.data[b"stream"][1]]
    assert [first.result(), second.result()] == ids


def test_error_is_raised_and_kept_in_handle(cache):
    cache.set("text", "value", 0)
    pipeline = RedisPipeline(cache)
    bad = pipeline.hincrby("text", "f", 1)
    good = pipeline.get("text")
    with pytest.raises(redis.ResponseError, match="WRONGTYPE"):
        pipeline.execute()
    with pytest.raises(redis.ResponseError):
        bad.result()
    assert good.result() == ("value", True)


def test_pipeline_is_reusable_after_execute(cache):
    pipeline = RedisPipeline(cache)
    pipeline.set("a", "1", 0)
    pipeline.execute()
    handle = pipeline.get("a")
    pipeline.execute()
    assert handle.result() == ("1", True)


def test_execute_logs_queued_commands(cache):
    recorder = Recorder()
    cache.register_query_logger(recorder)
    pipeline = RedisPipeline(cache)
    pipeline.set("k", "v", 1)
    pipeline.get("k")
    pipeline.execute()
    entries = [e for e in recorder.entries if e["operation"] == "PIPELINE EXEC"]
    assert len(entries) == 1
    assert entries[0]["query"].split("\n\x1b[38;2;255;255;155m") == ["SET k v 1s", "GET k"]
    pipeline.execute()
    assert len([e for e in recorder.entries if e["operation"] == "PIPELINE EXEC"]) == 1