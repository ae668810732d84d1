import json
import logging
from typing import Any

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class CacheLayer:
    """
    Two-tier read cache for aggregate view models.

    L1: Process-local TTLCache (fast, limited size, short TTL)
    L2: Redis (shared between workers, per-key TTL)

    Values are stored JSON-serialized and returned as decoded on a hit.
    Every operation is best-effort: Redis failures are logged and counted,
    never raised. Invalidation deletes keys, it never writes replacements.
    """

    def __init__(self, settings: Settings | None = None, redis: Redis | None = None):
        self._settings = settings
        self._redis: Redis | None = redis
        self.l1: TTLCache | None = None
        self._initialized = False

        # Stats tracking
        self.stats = {
            "l1_hits": 0,
            "l2_hits": 0,
            "misses": 0,
            "errors": 0,
        }

    async def init_cache(self):
        """Create L1 and connect Redis once; an unreachable Redis leaves L1 only."""
        if self._initialized:
            return

        if self._settings is None:
            self._settings = get_settings()

        settings = self._settings

        # Initialize L1 Cache
        if self.l1 is None:
            self.l1 = TTLCache(maxsize=settings.l1_maxsize, ttl=settings.l1_ttl_seconds)

        try:
            if self._redis is None:
                self._redis = Redis.from_url(
                    settings.redis_dsn,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=settings.redis_pool_size,
                    socket_connect_timeout=5,
                    socket_keepalive=True,
                    health_check_interval=30,
                )

                await self._redis.ping()
                logger.info("Redis connection established")

        except (RedisError, OSError) as e:
            logger.error("Redis initialization failed, running L1 only: %s", e)
            self._redis = None

        self._initialized = True
        logger.info("Cache layer initialized")

    def _key(self, tier: str, key: str) -> str:
        return f"{self._settings.cache_namespace}{tier}:{key}"

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    async def get(self, key: str) -> Any | None:
        """
        Look a key up in L1, then L2.

        Returns:
            The cached value, or None on a miss or a Redis error
        """
        await self.init_cache()

        l1_key = self._key("l1", key)

        if l1_key in self.l1:
            self.stats["l1_hits"] += 1
            logger.debug("L1 hit key=%s", key)
            return self.l1[l1_key]

        if self._redis:
            try:
                raw = await self._redis.get(self._key("l2", key))
                if raw is not None:
                    self.stats["l2_hits"] += 1
                    logger.debug("L2 hit key=%s", key)
                    value = self._decode(raw)
                    self.l1[l1_key] = value
                    return value
            except RedisError as e:
                logger.error("Redis GET error key=%s: %s", key, e)
                self.stats["errors"] += 1

        self.stats["misses"] += 1
        logger.debug("Cache miss key=%s", key)
        return None

    async def set(self, key: str, value: Any, ttl: int):
        """
        Store a value in both cache layers.

        Args:
            key: Cache key (will be namespaced automatically)
            value: JSON-serializable value
            ttl: L2 time-to-live in seconds
        """
        await self.init_cache()

        try:
            data = self._encode(value)
        except (TypeError, ValueError) as e:
            logger.error("Serialization failed key=%s: %s", key, e)
            self.stats["errors"] += 1
            return

        # L1 holds the decoded form so hits match L2 hits exactly
        self.l1[self._key("l1", key)] = json.loads(data)

        if self._redis:
            try:
                await self._redis.set(self._key("l2", key), data, ex=ttl)
                logger.debug("Stored in L2 key=%s ttl=%s", key, ttl)
            except RedisError as e:
                logger.error("Redis SET error key=%s: %s", key, e)
                self.stats["errors"] += 1

    async def delete(self, *keys: str):
        """
        Delete keys from both cache layers in one round trip.

        A failed Redis delete is logged and ignored; the TTL bounds how long
        a missed invalidation can be served.
        """
        if not keys:
            return
        await self.init_cache()

        for key in keys:
            self.l1.pop(self._key("l1", key), None)

        if self._redis:
            try:
                await self._redis.delete(*(self._key("l2", k) for k in keys))
                logger.debug("Deleted from both layers keys=%s", keys)
            except RedisError as e:
                logger.error("Redis DELETE error keys=%s: %s", keys, e)
                self.stats["errors"] += 1

    async def close(self):
        if self._redis:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error("Error closing Redis: %s", e)

    def get_stats(self) -> dict:
        total = sum([self.stats["l1_hits"], self.stats["l2_hits"], self.stats["misses"]])

        return {
            **self.stats,
            "redis": self._redis is not None,
            "l1_size": len(self.l1) if self.l1 else 0,
            "l1_maxsize": self.l1.maxsize if self.l1 else 0,
            "hit_rate": (
                (self.stats["l1_hits"] + self.stats["l2_hits"]) / total if total > 0 else 0
            ),
        }


# One per worker process
cache_layer = CacheLayer()
