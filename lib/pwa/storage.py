# =============================================================================
# lib/pwa/storage.py - Visitor State Storage
# =============================================================================
# Key/value state for the install prompt and rollout, split into two scopes
# that mirror the browser's storage areas:
#
#   local    per visitor, long lived   (impressions, installed, variant, rollout id)
#   session  per browsing session      (page views, minimized, dismissed)
#
# Backends:
#   MemoryStorage  process-local dict (default, single worker)
#   RedisStorage   shared across workers via REDIS_URL
#
# SafeStorage wraps a backend for one scope. Every backend failure is logged
# and treated as "empty": reads return None and writes are dropped.
# =============================================================================

import logging
import threading
from functools import lru_cache
from typing import Protocol

import redis

from app.config import settings

logger = logging.getLogger(__name__)

LOCAL_TTL_SECONDS = 365 * 24 * 3600
SESSION_TTL_SECONDS = 12 * 3600


class StorageBackend(Protocol):
    """Minimal string key/value interface the PWA modules need."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage. TTLs are ignored."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RedisStorage:
    """Redis-backed storage with a key prefix."""

    def __init__(self, client: redis.Redis, prefix: str = "ku:pwa:") -> None:
        self._client = client
        self._prefix = prefix

    def get(self, key: str) -> str | None:
        value = self._client.get(self._prefix + key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._client.set(self._prefix + key, value, ex=ttl_seconds)

    def delete(self, key: str) -> None:
        self._client.delete(self._prefix + key)


class SafeStorage:
    """
    One scope of visitor state over a backend.

    Never raises: storage problems (Redis down, bad data) degrade to the
    same behaviour as a visitor with no stored state.
    """

    def __init__(
        self,
        backend: StorageBackend,
        namespace: str,
        ttl_seconds: int | None = None,
    ) -> None:
        self._backend = backend
        self._namespace = namespace
        self._ttl = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> str | None:
        try:
            return self._backend.get(self._key(key))
        except Exception as e:
            logger.debug(f"PWA storage read failed for {key}: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        try:
            self._backend.set(self._key(key), value, self._ttl)
        except Exception as e:
            logger.debug(f"PWA storage write failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._backend.delete(self._key(key))
        except Exception as e:
            logger.debug(f"PWA storage delete failed for {key}: {e}")


def local_storage(backend: StorageBackend, visitor_id: str) -> SafeStorage:
    return SafeStorage(backend, f"local:{visitor_id}", LOCAL_TTL_SECONDS)


def session_storage(backend: StorageBackend, session_id: str) -> SafeStorage:
    return SafeStorage(backend, f"session:{session_id}", SESSION_TTL_SECONDS)


@lru_cache
def get_state_backend() -> StorageBackend:
    """
    Backend selected by PWA_STATE_BACKEND.

    Cached so every request shares one MemoryStorage (or one Redis pool).
    """
    if settings.PWA_STATE_BACKEND == "redis":
        logger.info("PWA visitor state stored in Redis")
        return RedisStorage(redis.Redis.from_url(settings.REDIS_URL, decode_responses=True))
    return MemoryStorage()
