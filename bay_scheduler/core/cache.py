import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import redis

from bay_scheduler.core.config import settings


class TTLCache(ABC):
    """Expendable key/value store for read-heavy analytics responses."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class InMemoryTTLCache(TTLCache):
    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl_seconds, value)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisTTLCache(TTLCache):
    def __init__(self, redis_url: str, prefix: str = "cache") -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
            decode_responses=True,
        )
        self._prefix = prefix

    def get(self, key: str) -> Any | None:
        raw = self._client.get(f"{self._prefix}:{key}")
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._client.set(f"{self._prefix}:{key}", json.dumps(value), ex=ttl_seconds)

    def reset(self) -> None:
        keys = self._client.keys(f"{self._prefix}:*")
        if keys:
            self._client.delete(*keys)


class FallbackTTLCache(TTLCache):
    def __init__(self, primary: TTLCache, fallback: TTLCache) -> None:
        self._primary = primary
        self._fallback = fallback

    def get(self, key: str) -> Any | None:
        try:
            return self._primary.get(key)
        except redis.RedisError:
            return self._fallback.get(key)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._primary.set(key, value, ttl_seconds)
        except redis.RedisError:
            self._fallback.set(key, value, ttl_seconds)

    def reset(self) -> None:
        try:
            self._primary.reset()
        except redis.RedisError:
            pass
        self._fallback.reset()


def _build_cache() -> TTLCache:
    backend = settings.cache_backend.strip().lower()
    memory = InMemoryTTLCache()
    if backend == "redis":
        return FallbackTTLCache(primary=RedisTTLCache(redis_url=settings.cache_redis_url), fallback=memory)
    return memory


analytics_cache: TTLCache = _build_cache()
