"""
Cache Service - Redis-backed cache for derived attendance statistics

Writers never wait on recomputation: a state transition only calls
``invalidate`` for the affected tags, and the next read recomputes.
Every Redis failure degrades to a cache miss and is logged, never raised.
"""
import logging
import json
from typing import Any, Callable, Iterable, Optional
import redis
from geoattend.config import settings
from geoattend.enums import CacheTag

logger = logging.getLogger(__name__)

# Tags touched by any attendance record mutation
ATTENDANCE_TAGS = (CacheTag.attendance, CacheTag.analytics)
EVENT_TAGS = (CacheTag.events, CacheTag.analytics)


class CacheInvalidator:
    """
    Port used by the submission and verification services.

    Implementations mark cached aggregates for the given tags as stale.
    They must not raise.
    """

    def invalidate(self, *tags: CacheTag) -> None:
        raise NotImplementedError


class NullCacheInvalidator(CacheInvalidator):
    """Invalidator for deployments without a shared cache"""

    def invalidate(self, *tags: CacheTag) -> None:
        logger.debug(f"Cache invalidation skipped (no cache): {[t.value for t in tags]}")


class RedisCache(CacheInvalidator):
    """
    Tagged key/value cache.

    Each cached key is also added to one Redis set per tag; invalidating a
    tag deletes every member key and the set itself. Tag sets carry the TTL
    of the most recent write, so a missed member can only outlive an
    invalidation by its own TTL.
    """

    def __init__(self, client: Optional[redis.Redis] = None, prefix: Optional[str] = None):
        self._redis_client: Optional[redis.Redis] = client
        self._prefix = prefix or settings.CACHE_KEY_PREFIX

    def _get_redis(self) -> Optional[redis.Redis]:
        """Get Redis client for caching"""
        if self._redis_client is None:
            try:
                self._redis_client = redis.from_url(
                    settings.REDIS_URL,
                    decode_responses=True,
                    socket_connect_timeout=settings.CACHE_SOCKET_TIMEOUT_SEC,
                    socket_timeout=settings.CACHE_SOCKET_TIMEOUT_SEC
                )
                self._redis_client.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable for statistics cache: {e}")
                self._redis_client = None
        return self._redis_client

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _tag_key(self, tag: CacheTag) -> str:
        return f"{self._prefix}:tag:{tag.value}"

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value, None on miss or when Redis is down"""
        try:
            r = self._get_redis()
            if r:
                cached = r.get(self._key(key))
                if cached is not None:
                    return json.loads(cached)
        except Exception as e:
            logger.warning(f"Cache read error for {key}: {e}")
        return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Iterable[CacheTag] = ()
    ) -> None:
        """Cache a JSON-serializable value under ``key`` for ``ttl`` seconds"""
        ttl = ttl or settings.CACHE_DEFAULT_TTL_SEC
        try:
            r = self._get_redis()
            if not r:
                return
            full_key = self._key(key)
            r.setex(full_key, ttl, json.dumps(value, default=str))
            for tag in tags:
                tag_key = self._tag_key(tag)
                r.sadd(tag_key, full_key)
                r.expire(tag_key, ttl)
        except Exception as e:
            logger.warning(f"Cache write error for {key}: {e}")

    def get_or_set(
        self,
        key: str,
        loader: Callable[[], Any],
        ttl: Optional[int] = None,
        tags: Iterable[CacheTag] = ()
    ) -> Any:
        """Read-through helper: return the cached value or compute and store it"""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value, ttl=ttl, tags=tags)
        return value

    def invalidate(self, *tags: CacheTag) -> None:
        """Mark every key under ``tags`` as stale"""
        try:
            r = self._get_redis()
            if not r:
                return
            for tag in tags:
                tag_key = self._tag_key(tag)
                members = r.smembers(tag_key)
                if members:
                    r.delete(*members)
                r.delete(tag_key)
            logger.debug(f"Invalidated cache tags {[t.value for t in tags]}")
        except Exception as e:
            logger.warning(f"Cache invalidation error for {[t.value for t in tags]}: {e}")


# Singleton instance
cache_service = RedisCache()
