"""A cache backend stored in redis."""

from __future__ import annotations

import logging
import math
import random
import struct
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

from .cache import Backend, CacheItem

_HEADER = struct.Struct(">qq")
_PING_TIMEOUT = 0.5
_LEN_TIMEOUT = 0.05
_MAX_BACKOFF = 30.0


def pack_redis_data(stored_time: float, expiration_time: float, value: bytes) -> bytes:
    """Pack both times (whole epoch seconds) and value into one blob."""
    return (
        _HEADER.pack(math.floor(stored_time), math.floor(expiration_time))
        + bytes(value)
    )


def unpack_redis_value(data: bytes) -> tuple[int, int, bytes]:
    """Split a blob made by pack_redis_data into (stored, expiration, value)."""
    if len(data) < _HEADER.size:
        raise ValueError("data is too short")
    stored_time, expiration_time = _HEADER.unpack_from(data)
    return stored_time, expiration_time, bytes(data[_HEADER.size :])


@dataclass
class RedisCacheOpts:
    """Options of RedisCache.

    client is a redis client offering get, set(key, value, px=...), ping,
    dbsize and pipeline. client_closer, if given, is closed by
    RedisCache.close. client_timeout (seconds, default 1) bounds each call.
    """

    client: Any = None
    client_closer: Any = None
    client_timeout: float = 0.0
    logger: logging.Logger | None = None

    def init(self) -> None:
        """Validate the options and fill in defaults."""
        if self.client is None:
            raise ValueError("nil client")
        if self.client_timeout == 0:
            self.client_timeout = 1.0
        if self.logger is None:
            self.logger = logging.getLogger(__name__)


@dataclass
class KV:
    """One entry of a batch store."""

    key: str
    value: bytes
    stored_time: float
    expiration_time: float


class RedisCache(Backend):
    """A cache backend that keeps entries in redis.

    After a client error the cache disables itself and pings redis in the
    background with growing backoff until it answers again.
    """

    def __init__(self, opts: RedisCacheOpts) -> None:
        opts.init()
        self._opts = opts
        self._logger: logging.Logger = opts.logger
        self._disabled = False
        self._state_lock = threading.Lock()
        self._closed = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="redis-cache")

    def _call(self, timeout: float, func: Callable[..., Any], *args, **kwargs) -> Any:
        return self._executor.submit(func, *args, **kwargs).result(timeout=timeout)

    def _is_disabled(self) -> bool:
        with self._state_lock:
            return self._disabled

    def _disable_client(self) -> None:
        with self._state_lock:
            if self._disabled:
                return
            self._disabled = True
        self._logger.warning("redis temporarily disabled")
        threading.Thread(target=self._recover_loop, name="redis-cache-ping", daemon=True).start()

    def _recover_loop(self) -> None:
        backoff = 0.1
        while not self._closed.wait(backoff):
            try:
                self._call(_PING_TIMEOUT, self._opts.client.ping)
            except Exception as exc:
                if backoff >= _MAX_BACKOFF:
                    backoff = _MAX_BACKOFF
                else:
                    backoff += random.random() + 1.0
                self._logger.warning("redis ping failed: %s, next ping in %.1fs", exc, backoff)
                continue
            with self._state_lock:
                self._disabled = False
            return

    def get(self, key: str) -> CacheItem | None:
        if self._is_disabled():
            return None
        try:
            data = self._call(self._opts.client_timeout, self._opts.client.get, key)
        except Exception as exc:
            self._logger.warning("redis get: %s", exc)
            self._disable_client()
            return None
        if data is None:
            return None
        try:
            stored_time, expiration_time, value = unpack_redis_value(data)
        except ValueError as exc:
            self._logger.warning("redis data unpack error: %s", exc)
            return None
        return CacheItem(value, float(stored_time), float(expiration_time))

    def store(
        self, key: str, value: bytes, stored_time: float, expiration_time: float
    ) -> None:
        if self._is_disabled():
            return
        ttl = expiration_time - time.time()
        # For redis a zero ttl means no expiration, so skip such entries.
        if ttl <= 0:
            return
        data = pack_redis_data(stored_time, expiration_time, value)
        try:
            self._call(
                self._opts.client_timeout,
                self._opts.client.set,
                key,
                data,
                px=max(1, int(ttl * 1000)),
            )
        except Exception as exc:
            self._logger.warning("redis set: %s", exc)
            self._disable_client()

    def batch_store(self, kvs: list[KV]) -> None:
        """Store several entries through one redis pipeline."""
        if self._is_disabled():
            return

        def run() -> Any:
            pipeline = self._opts.client.pipeline()
            for kv in kvs:
                ttl = kv.expiration_time - time.time()
                if ttl <= 0:
                    continue
                data = pack_redis_data(kv.stored_time, kv.expiration_time, kv.value)
                pipeline.set(kv.key, data, px=max(1, int(ttl * 1000)))
            return pipeline.execute()

        try:
            self._call(self._opts.client_timeout, run)
        except Exception as exc:
            self._logger.warning("redis pipeline set: %s", exc)
            self._disable_client()

    def close(self) -> None:
        """Stop background work and close the client closer, if any."""
        self._closed.set()
        self._executor.shutdown(wait=False)
        if self._opts.client_closer is not None:
            self._opts.client_closer.close()

    def __len__(self) -> int:
        try:
            return int(self._call(_LEN_TIMEOUT, self._opts.client.dbsize))
        except Exception as exc:
            self._logger.error("dbsize: %s", exc)
            return 0