import json
import logging
from typing import Any, Optional
import redis.asyncio as redis
from app.core.config import settings

logger = logging.getLogger(__name__)

class RedisClient:
    """
    Thin wrapper over redis.asyncio with a key namespace.

    Every key is stored under `settings.REDIS_KEY_PREFIX` so several
    deployments can share one Redis database.
    """

    def __init__(self, url: str = None, prefix: str = None):
        self.url = url or settings.REDIS_URL
        self.prefix = settings.REDIS_KEY_PREFIX if prefix is None else prefix
        self.redis = None

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def _client(self):
        if not self.redis:
            await self.connect()
        return self.redis

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
            await self.redis.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            self.redis = None
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise

    async def disconnect(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis disconnected")

    async def get_json(self, key: str) -> Optional[Any]:
        """Decoded JSON value, None when the key is absent"""
        raw = await (await self._client()).get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set_json(self, key: str, value: Any, expire: int = None):
        client = await self._client()
        return await client.set(self._key(key), json.dumps(value, default=str), ex=expire)

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys in a single round trip"""
        if not keys:
            return 0
        client = await self._client()
        return await client.delete(*(self._key(key) for key in keys))

    async def ping(self) -> bool:
        return await (await self._client()).ping()

# Global Redis client instance
redis_client = RedisClient()
