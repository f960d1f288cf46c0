"""
erp_services.cache -- Read-through cache for list reads.

Values are stored as JSON with a TTL (``setex``).  Redis errors are logged
and treated as a miss, so the store behind the loader stays the source of
truth; writers invalidate keys explicitly after changing the store.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import redis

from erp_kernel.logging_config import get_logger

logger = get_logger("services.cache")


class ReadThroughCache:
    """JSON read-through cache over a synchronous ``redis.Redis`` client."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 300, prefix: str = "erp:"):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._client = client
        self._ttl = ttl_seconds
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 300, prefix: str = "erp:") -> "ReadThroughCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds, prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, calling ``loader`` on a miss.

        ``loader`` must return a JSON-serializable value.
        """
        full_key = self._key(key)
        try:
            raw = self._client.get(full_key)
        except redis.RedisError:
            logger.warning("cache_read_failed", extra={"cache_key": full_key}, exc_info=True)
            raw = None
        if raw is not None:
            logger.debug("cache_hit", extra={"cache_key": full_key})
            return json.loads(raw)

        value = loader()
        try:
            self._client.setex(full_key, self._ttl, json.dumps(value))
        except redis.RedisError:
            logger.warning("cache_write_failed", extra={"cache_key": full_key}, exc_info=True)
        return value

    def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        full_keys = [self._key(k) for k in keys]
        try:
            self._client.delete(*full_keys)
        except redis.RedisError:
            logger.warning(
                "cache_invalidate_failed", extra={"cache_keys": full_keys}, exc_info=True
            )
