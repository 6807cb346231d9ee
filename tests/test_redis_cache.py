import time

import pytest

from mosdns.redis_cache import (
    KV,
    RedisCache,
    RedisCacheOpts,
    pack_redis_data,
    unpack_redis_value,
)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def set(self, key, value, px=None):
        self.ops.append((key, value, px))

    def execute(self):
        return [self.client.set(key, value, px=px) for key, value, px in self.ops]


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.fail_set = False
        self.ping_ok = True
        self.fail_dbsize = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, px=None):
        if self.fail_set:
            raise ConnectionError("down")
        self.data[key] = bytes(value)
        self.ttls[key] = px
        return True

    def ping(self):
        if not self.ping_ok:
            raise ConnectionError("down")
        return True

    def dbsize(self):
        if self.fail_dbsize:
            raise ConnectionError("down")
        return len(self.data)

    def pipeline(self):
        return FakePipeline(self)


class FakeCloser:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def make_cache(client, closer=None):
    return RedisCache(RedisCacheOpts(client=client, client_closer=closer))


def test_redis_value_round_trip():
    stored = time.time()
    expires = stored + 1
    value = bytes(1024)
    data = pack_redis_data(stored, expires, value)
    got_stored, got_expires, got_value = unpack_redis_value(data)
    assert got_stored == int(stored)
    assert got_expires == int(expires)
    assert got_value == value


def test_pack_layout():
    assert pack_redis_data(1, 2, b"xy") == bytes(7) + b"\x01" + bytes(7) + b"\x02xy"


def test_unpack_too_short():
    with pytest.raises(ValueError):
        unpack_redis_value(b"\x00" * 15)


def test_opts_require_client():
    with pytest.raises(ValueError):
        RedisCache(RedisCacheOpts())


def test_store_and_get():
    client = FakeRedis()
    cache = make_cache(client)
    now = time.time()
    cache.store("k", b"value", now, now + 60)
    item = cache.get("k")
    assert item.value == b"value"
    assert item.stored_time == float(int(now))
    assert item.expiration_time == float(int(now + 60))
    assert 0 < client.ttls["k"] <= 60_000
    cache.close()


def test_get_missing():
    cache = make_cache(FakeRedis())
    assert cache.get("missing") is None
    cache.close()


def test_get_corrupt_value():
    client = FakeRedis()
    client.data["k"] = b"short"
    cache = make_cache(client)
    assert cache.get("k") is None
    cache.close()


def test_expired_store_skipped():
    client = FakeRedis()
    cache = make_cache(client)
    cache.store("k", b"v", time.time() - 10, time.time() - 1)
    assert client.data == {}
    cache.close()


def test_batch_store():
    client = FakeRedis()
    cache = make_cache(client)
    now = time.time()
    cache.batch_store(
        [
            KV("a", b"1", now, now + 60),
            KV("b", b"2", now, now - 1),
            KV("c", b"3", now, now + 60),
        ]
    )
    assert sorted(client.data) == ["a", "c"]
    assert cache.get("c").value == b"3"
    cache.close()


def test_len():
    client = FakeRedis()
    cache = make_cache(client)
    now = time.time()
    cache.store("a", b"", now, now + 60)
    cache.store("b", b"", now, now + 60)
    assert len(cache) == 2
    client.fail_dbsize = True
    assert len(cache) == 0
    cache.close()


def test_close_closes_client_closer():
    closer = FakeCloser()
    cache = make_cache(FakeRedis(), closer)
    cache.close()
    assert closer.closed is True


def test_error_disables_cache():
    client = FakeRedis()
    now = time.time()
    client.data["k"] = pack_redis_data(now, now + 60, b"v")
    client.fail_set = True
    client.ping_ok = False
    cache = make_cache(client)
    cache.store("x", b"v", now, now + 60)
    assert cache.get("k") is None
    cache.close()


def test_cache_recovers_after_ping():
    client = FakeRedis()
    now = time.time()
    client.data["k"] = pack_redis_data(now, now + 60, b"v")
    client.fail_set = True
    cache = make_cache(client)
    cache.store("x", b"v", now, now + 60)
    deadline = time.monotonic() + 3
    item = None
    while time.monotonic() < deadline:
        item = cache.get("k")
        if item is not None:
            break
        time.sleep(0.02)
    assert item.value == b"v"
    cache.close()