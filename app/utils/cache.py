"""
Redis cache for extracted source text

Sources are immutable once registered, so their normalized text can be
cached by reference. When Redis is unreachable the cache degrades to a
no-op and extraction simply reads the content store every time.
"""
import json
import logging
from typing import Any, Callable, Optional

import redis

from app.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """JSON values in Redis keyed by content reference"""

    def __init__(self, url: Optional[str] = None):
        self.redis_client = None
        try:
            client = redis.from_url(
                url or settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
            client.ping()
            self.redis_client = client
            logger.info("Redis connection established")
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable ({str(e)}), content caching disabled")

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def content_key(self, source_type: str, source_id: str) -> str:
        """Key for the extracted text of one source reference"""
        return f"content:{source_type}:{source_id}"

    def _run(self, operation: str, key: str, call: Callable[[], Any], default: Any) -> Any:
        # Cache errors never fail a request
        if not self.enabled:
            return default
        try:
            return call()
        except redis.RedisError as e:
            logger.error(f"Cache {operation} failed for {key}: {str(e)}")
            return default

    def get(self, key: str) -> Optional[Any]:
        """Decoded value, or None on miss"""
        raw = self._run("get", key, lambda: self.redis_client.get(key), None)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value for ttl seconds (CONTENT_CACHE_TTL by default)"""
        ttl = ttl or settings.CONTENT_CACHE_TTL
        payload = json.dumps(value)
        return bool(self._run("set", key, lambda: self.redis_client.setex(key, ttl, payload), False))

    def delete(self, key: str) -> bool:
        return bool(self._run("delete", key, lambda: self.redis_client.delete(key), False))


# Global instance
cache_service = CacheService()
