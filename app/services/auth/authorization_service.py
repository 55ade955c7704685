import logging
from typing import Any, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.auth.permissions import PermissionChecker
from app.models.auth.permission import Permission
from app.models.auth.role import Role
from app.models.auth.role_permission import RolePermission
from app.models.auth.user_role import UserRole
from app.models.shared.enums import EntityStatus
from app.services.auth.authorization_cache import AuthorizationCache, CacheKeys

logger = logging.getLogger(__name__)

class AuthorizationService:
    """Resolved permission sets for roles and users, read through the cache"""

    def __init__(self, session: AsyncSession, cache: AuthorizationCache):
        self.session = session
        self.cache = cache

    async def get_role_permissions(self, role_id: int) -> Dict[str, Any]:
        """
        Effective permissions of one role

        An inactive or deleted role grants nothing. Only active permissions count.
        """
        key = CacheKeys.role_permissions(role_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        result = await self.session.execute(
            select(Permission.id, Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(
                RolePermission.role_id == role_id,
                Role.status == EntityStatus.ACTIVE,
                Role.is_deleted == False,
                Permission.status == EntityStatus.ACTIVE,
                Permission.is_deleted == False
            )
            .order_by(Permission.name)
        )
        rows = result.all()
        view = {
            "permission_ids": [row.id for row in rows],
            "permissions": [row.name for row in rows],
        }
        await self.cache.put(key, view)
        return view

    async def get_user_role_ids(self, user_id: int) -> List[int]:
        """Active, non-deleted roles the user holds"""
        result = await self.session.execute(
            select(UserRole.role_id)
            .join(Role, Role.id == UserRole.role_id)
            .where(
                UserRole.user_id == user_id,
                UserRole.is_active == True,
                UserRole.is_deleted == False,
                Role.status == EntityStatus.ACTIVE,
                Role.is_deleted == False
            )
        )
        return sorted(set(result.scalars().all()))

    async def get_user_permissions(self, user_id: int) -> Dict[str, Any]:
        """Union of the permission sets of every role the user holds"""
        key = CacheKeys.user_permissions(user_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        role_ids = await self.get_user_role_ids(user_id)
        permissions: Dict[int, str] = {}
        for role_id in role_ids:
            role_view = await self.get_role_permissions(role_id)
            permissions.update(zip(role_view["permission_ids"], role_view["permissions"]))

        view = {
            "roles": role_ids,
            "permission_ids": sorted(permissions),
            "permissions": sorted(permissions.values()),
        }
        await self.cache.put(key, view)
        logger.debug(f"Resolved {len(permissions)} permissions for user {user_id}")
        return view

    async def get_permission_checker(self, user_id: int) -> PermissionChecker:
        view = await self.get_user_permissions(user_id)
        return PermissionChecker(view["permissions"])

    async def user_can(self, user_id: int, permission_name: str) -> bool:
        checker = await self.get_permission_checker(user_id)
        return checker.can(permission_name)
