"""
Best-effort response cache over Redis.

Every operation swallows and logs Redis errors; a missing or broken cache
only costs a database round trip.
"""

import json
from typing import Any, Awaitable, Callable, Optional

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger
from eventrelay.utils.serialization import json_dumps

logger = get_logger("cache_service")

KEY_PREFIX = "api:"
DEFAULT_TTL = 300


def cache_key_for(request: Request) -> str:
    """``api:<path>[?<query>]``"""
    query = request.url.query
    return f"{KEY_PREFIX}{request.url.path}{'?' + query if query else ''}"


class CacheService:
    def __init__(self, url: Optional[str] = None, enabled: bool = True):
        self.url = url
        self.enabled = enabled
        self.client: Optional[Redis] = None
        self._connected = False

    async def connect(self) -> bool:
        if not self.enabled or not self.url:
            logger.info("Cache disabled; running without Redis")
            return False
        try:
            self.client = Redis.from_url(self.url, decode_responses=True)
            await self.client.ping()
            self._connected = True
            logger.info("Connected to Redis cache")
        except (RedisError, OSError) as e:
            self._connected = False
            logger.warning(f"Redis unavailable, continuing without cache: {e}")
        return self._connected

    def is_connected(self) -> bool:
        return self.client is not None and self._connected

    async def close(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            self.client = None
            self._connected = False

    async def get(self, key: str) -> Any:
        if not self.is_connected():
            return None
        try:
            raw = await self.client.get(key)
            return json.loads(raw) if raw is not None else None
        except (RedisError, OSError, ValueError) as e:
            logger.error(f"Cache get failed for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        if not self.is_connected():
            return False
        try:
            await self.client.set(key, json_dumps(value), ex=ttl)
            return True
        except (RedisError, OSError, TypeError) as e:
            logger.error(f"Cache set failed for key {key}: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        if not self.is_connected() or not keys:
            return 0
        try:
            return await self.client.delete(*keys)
        except (RedisError, OSError) as e:
            logger.error(f"Cache delete failed for keys {keys}: {e}")
            return 0

    async def delete_by_pattern(self, pattern: str) -> int:
        if not self.is_connected():
            return 0
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if not keys:
                return 0
            return await self.client.delete(*keys)
        except (RedisError, OSError) as e:
            logger.error(f"Cache pattern delete failed for {pattern}: {e}")
            return 0

    async def invalidate_resource(self, base_path: str, resource_id: Optional[str] = None) -> None:
        """Drop cached GETs for ``base_path`` (e.g. ``/api/destinations``) after a mutation."""
        keys = [f"{KEY_PREFIX}{base_path}"]
        if resource_id:
            keys.append(f"{KEY_PREFIX}{base_path}/{resource_id}")
        await self.delete(*keys)
        await self.delete_by_pattern(f"{KEY_PREFIX}{base_path}*")

    async def cached_response(
        self,
        request: Request,
        loader: Callable[[], Awaitable[dict]],
        ttl: int = DEFAULT_TTL,
    ) -> dict:
        """Serve a GET body from cache, or build it with ``loader`` and store it."""
        key = cache_key_for(request)
        cached = await self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        body = await loader()
        if isinstance(body, dict) and body.get("success", True):
            await self.set(key, body, ttl)
        return body


cache_service = CacheService(settings.REDIS_URL, enabled=settings.CACHE_ENABLED)
