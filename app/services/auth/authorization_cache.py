import json
import time
import uuid
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.redis import RedisClient
from app.models.auth.user_role import UserRole

logger = logging.getLogger(__name__)


class CacheKeys:
    """Key layout for derived authorization views"""

    @staticmethod
    def role_permissions(role_id: int) -> str:
        return f"role:{role_id}"

    @staticmethod
    def role_menus(role_id: int) -> str:
        return f"role:{role_id}:menus"

    @staticmethod
    def user_permissions(user_id: int) -> str:
        return f"user:{user_id}"

    @staticmethod
    def user_menus(user_id: int) -> str:
        return f"user:{user_id}:menus"

    # Deleting this key invalidates every cached menu view at once
    MENU_GENERATION = "menus:generation"

    @classmethod
    def for_role(cls, role_id: int) -> Tuple[str, str]:
        return cls.role_permissions(role_id), cls.role_menus(role_id)

    @classmethod
    def for_user(cls, user_id: int) -> Tuple[str, str]:
        return cls.user_permissions(user_id), cls.user_menus(user_id)


class CacheBackend(ABC):
    """Storage port behind AuthorizationCache"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> None:
        ...


class RedisCacheBackend(CacheBackend):
    """JSON values in Redis with a TTL"""

    def __init__(self, client: RedisClient):
        self.client = client

    async def get(self, key: str) -> Optional[Any]:
        return await self.client.get_json(key)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.client.set_json(key, value, expire=ttl_seconds)

    async def delete(self, *keys: str) -> None:
        await self.client.delete(*keys)


class InMemoryCacheBackend(CacheBackend):
    """Process-local backend for tests and single-node development"""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        # key -> time.monotonic() deadline
        self.expires_at: Dict[str, float] = {}

    async def get(self, key: str) -> Optional[Any]:
        if self.expires_at.get(key, float("inf")) <= time.monotonic():
            await self.delete(key)
            return None
        value = self.store.get(key)
        # Hand out copies so callers cannot mutate cached state
        return json.loads(json.dumps(value)) if value is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.store[key] = json.loads(json.dumps(value, default=str))
        self.expires_at[key] = time.monotonic() + ttl_seconds

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self.store.pop(key, None)
            self.expires_at.pop(key, None)


class AuthorizationCache:
    """
    Advisory cache of resolved role and user authorization views.

    A miss always means "recompute from the stores"; entries are deleted,
    never patched in place. Failures degrade to a miss on read and to a
    logged warning on invalidation since the database stays authoritative.
    """

    def __init__(self, backend: CacheBackend, ttl_seconds: Optional[int] = None):
        self.backend = backend
        self.ttl_seconds = ttl_seconds or settings.AUTH_CACHE_TTL_SECONDS

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self.backend.get(key)
        except (RedisError, OSError, ValueError) as e:
            logger.warning(f"Authorization cache read failed for {key}: {str(e)}")
            return None

    async def put(self, key: str, value: Any) -> None:
        try:
            await self.backend.set(key, value, self.ttl_seconds)
        except (RedisError, OSError, TypeError) as e:
            logger.warning(f"Authorization cache write failed for {key}: {str(e)}")

    async def invalidate(self, *keys: str) -> bool:
        """Delete entries; returns False when the backend failed"""
        if not keys:
            return True
        try:
            await self.backend.delete(*keys)
            logger.debug(f"Authorization cache invalidated: {', '.join(keys)}")
            return True
        except (RedisError, OSError) as e:
            logger.warning(f"Authorization cache invalidation failed for {', '.join(keys)}: {str(e)}")
            return False

    async def menu_generation(self) -> str:
        """
        Current menu-structure generation, created on first use

        Menu views are stored together with the generation they were built
        from; a structural menu change deletes the generation so every
        stored view stops matching, including views of users with no roles.
        """
        generation = await self.get(CacheKeys.MENU_GENERATION)
        if generation is None:
            generation = uuid.uuid4().hex
            await self.put(CacheKeys.MENU_GENERATION, generation)
        return generation

    async def invalidate_menu_tree(self) -> bool:
        return await self.invalidate(CacheKeys.MENU_GENERATION)

    async def invalidate_user(self, user_id: int) -> bool:
        return await self.invalidate(*CacheKeys.for_user(user_id))

    async def invalidate_users(self, user_ids: Iterable[int]) -> bool:
        keys: List[str] = []
        for user_id in sorted(set(user_ids)):
            keys.extend(CacheKeys.for_user(user_id))
        return await self.invalidate(*keys)

    async def invalidate_users_of_role(self, role_id: int, session: AsyncSession) -> bool:
        """
        Invalidate the role entries and the entries of every user holding the role

        Must be called after the mutating transaction has committed so the
        enumeration sees the committed assignments.
        """
        keys = list(CacheKeys.for_role(role_id))
        try:
            result = await session.execute(
                select(UserRole.user_id).where(
                    UserRole.role_id == role_id,
                    UserRole.is_active == True,
                    UserRole.is_deleted == False
                )
            )
            user_ids = set(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Could not enumerate users of role {role_id} for invalidation: {str(e)}")
            await self.invalidate(*keys)
            return False

        for user_id in sorted(user_ids):
            keys.extend(CacheKeys.for_user(user_id))
        return await self.invalidate(*keys)


_authorization_cache: Optional[AuthorizationCache] = None


def get_authorization_cache() -> AuthorizationCache:
    """Process-wide cache chosen by settings.CACHE_BACKEND"""
    global _authorization_cache
    if _authorization_cache is None:
        if settings.CACHE_BACKEND == "memory":
            backend = InMemoryCacheBackend()
        else:
            from app.core.redis import redis_client
            backend = RedisCacheBackend(redis_client)
        _authorization_cache = AuthorizationCache(backend)
    return _authorization_cache
