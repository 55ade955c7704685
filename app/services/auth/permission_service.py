import logging
from typing import Any, Dict, Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import desc, func, or_, select
from app.auth.actor import Actor
from app.core.exceptions import (
    AlreadyExistsError,
    AuthorizationDeniedError,
    BaseAppException,
    HasDependentsError,
    InvalidHierarchyError,
    NotFoundError,
    StorageFailureError,
    SystemProtectedError,
)
from app.core.logging import log_user_action
from app.models.auth.menu import Menu
from app.models.auth.permission import Permission
from app.models.auth.role import Role
from app.models.auth.role_permission import RolePermission
from app.models.shared.enums import EntityStatus
from app.schemas.auth.permission import PermissionCreate, PermissionResponse, PermissionUpdate
from app.services.auth.authorization_cache import AuthorizationCache
from app.services.auth.hierarchy_validator import HierarchyIndex

logger = logging.getLogger(__name__)

# Changes to these fields alter resolved permission sets
EFFECTIVE_FIELDS = {"name", "status"}

class PermissionService:
    def __init__(self, session: AsyncSession, cache: Optional[AuthorizationCache] = None):
        self.session = session
        self.cache = cache

    async def get_permission(self, permission_id: int) -> Optional[Permission]:
        """Get permission by ID"""
        result = await self.session.execute(
            select(Permission).where(
                Permission.id == permission_id,
                Permission.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_permission_by_name(self, name: str) -> Optional[Permission]:
        """Get permission by name"""
        result = await self.session.execute(
            select(Permission).where(
                Permission.name == name,
                Permission.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def _lock_permission(self, permission_id: int) -> Permission:
        result = await self.session.execute(
            select(Permission)
            .where(
                Permission.id == permission_id,
                Permission.is_deleted == False
            )
            .with_for_update()
        )
        permission = result.scalar_one_or_none()
        if not permission:
            raise NotFoundError(f"Permission {permission_id} not found")
        return permission

    async def _load_index(self) -> HierarchyIndex:
        result = await self.session.execute(
            select(Permission.id, Permission.parent_id).where(Permission.is_deleted == False)
        )
        return HierarchyIndex.from_rows(result.all())

    async def _check_parent(self, permission_id: Optional[int], parent_id: int) -> None:
        """Validate a parent inside the caller's write transaction"""
        parent = await self._lock_permission(parent_id)
        index = await self._load_index()
        if permission_id is not None and index.would_cycle(permission_id, parent.id):
            raise InvalidHierarchyError(
                f"Permission {parent.id} cannot be the parent of permission {permission_id}"
            )

    async def _role_ids_holding(self, permission_id: int) -> List[int]:
        result = await self.session.execute(
            select(RolePermission.role_id).where(RolePermission.permission_id == permission_id)
        )
        return sorted(set(result.scalars().all()))

    async def create_permission(self, permission_create: PermissionCreate, actor: Actor) -> Permission:
        """Create new permission"""
        try:
            existing_permission = await self.get_permission_by_name(permission_create.name)
            if existing_permission:
                raise AlreadyExistsError(f"Permission name '{permission_create.name}' already exists")

            if permission_create.parent_id is not None:
                # Trivial for a new node, still checked for copy/import flows
                await self._check_parent(None, permission_create.parent_id)

            db_permission = Permission(
                **permission_create.model_dump(),
                is_system=False,
                created_by=actor.id,
            )

            self.session.add(db_permission)
            await self.session.commit()

            logger.info(f"Permission created: {permission_create.name}")
            log_user_action(actor.id, "create", "permission", db_permission.id)
            return db_permission

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating permission: {str(e)}")
            raise StorageFailureError("Error creating permission")

    async def update_permission(
        self,
        permission_id: int,
        permission_update: PermissionUpdate,
        actor: Actor
    ) -> Permission:
        """Update permission, re-validating the parent chain when it moves"""
        try:
            permission = await self._lock_permission(permission_id)

            if permission.is_system and not actor.is_elevated:
                logger.warning(f"Actor {actor.id} denied update of system permission {permission.name}")
                raise AuthorizationDeniedError("System permissions can only be edited by an elevated actor")

            update_data = permission_update.model_dump(exclude_unset=True)

            if "name" in update_data and update_data["name"] != permission.name:
                existing_permission = await self.get_permission_by_name(update_data["name"])
                if existing_permission:
                    raise AlreadyExistsError(f"Permission name '{update_data['name']}' already exists")

            if "parent_id" in update_data and update_data["parent_id"] != permission.parent_id:
                if update_data["parent_id"] is not None:
                    await self._check_parent(permission.id, update_data["parent_id"])

            affects_roles = any(
                field in update_data and update_data[field] != getattr(permission, field)
                for field in EFFECTIVE_FIELDS
            )

            for field, value in update_data.items():
                setattr(permission, field, value)
            permission.updated_by = actor.id

            role_ids = await self._role_ids_holding(permission.id) if affects_roles else []
            await self.session.commit()

            logger.info(f"Permission updated: {permission.name}")
            log_user_action(actor.id, "update", "permission", permission.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error updating permission: {str(e)}")
            raise StorageFailureError("Error updating permission")

        await self._invalidate_roles(role_ids)
        return permission

    async def delete_permission(self, permission_id: int, actor: Actor) -> bool:
        """Soft delete a childless, role-free permission"""
        try:
            permission = await self._lock_permission(permission_id)

            if permission.is_system and not actor.is_elevated:
                logger.warning(f"Actor {actor.id} denied delete of system permission {permission.name}")
                raise SystemProtectedError("Cannot delete system permission")

            child_count = await self.session.scalar(
                select(func.count(Permission.id)).where(
                    Permission.parent_id == permission.id,
                    Permission.is_deleted == False
                )
            )
            if child_count:
                raise HasDependentsError(f"Permission has {child_count} child permissions")

            role_count = await self.session.scalar(
                select(func.count(RolePermission.id)).where(RolePermission.permission_id == permission.id)
            )
            if role_count:
                raise HasDependentsError(f"Permission is assigned to {role_count} roles")

            menu_count = await self.session.scalar(
                select(func.count(Menu.id)).where(
                    Menu.required_permission_id == permission.id,
                    Menu.is_deleted == False
                )
            )
            if menu_count:
                raise HasDependentsError(f"Permission is required by {menu_count} menus")

            permission.is_deleted = True
            permission.status = EntityStatus.INACTIVE
            permission.updated_by = actor.id

            await self.session.commit()
            logger.info(f"Permission deleted: {permission.name}")
            log_user_action(actor.id, "delete", "permission", permission.id)

            return True

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error deleting permission: {str(e)}")
            raise StorageFailureError("Error deleting permission")

    async def get_permissions(
        self,
        page_index: int = 1,
        page_size: int = 20,
        module: Optional[str] = None,
        action: Optional[str] = None,
        status: Optional[EntityStatus] = None,
        search: Optional[str] = None  # Search by name or display name
    ) -> Dict[str, Any]:
        conditions = [
            Permission.is_deleted == False
        ]

        # Add filters
        if module:
            conditions.append(Permission.module == module)
        if action:
            conditions.append(Permission.action == action)
        if status is not None:
            conditions.append(Permission.status == status)
        if search:
            search_term = f"%{search}%"
            conditions.append(
                or_(
                    Permission.name.ilike(search_term),
                    Permission.display_name.ilike(search_term)
                )
            )

        total_count = await self.session.scalar(
            select(func.count(Permission.id)).where(*conditions)
        )

        # Calculate offset
        skip = (page_index - 1) * page_size

        permissions = await self.session.scalars(
            select(Permission)
            .where(*conditions)
            .order_by(desc(Permission.id))
            .offset(skip)
            .limit(page_size)
        )

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total_count or 0,
            "data": permissions.all()
        }

    async def get_permission_roles(self, permission_id: int) -> List[Role]:
        """Roles currently holding a permission"""
        if not await self.get_permission(permission_id):
            raise NotFoundError(f"Permission {permission_id} not found")

        result = await self.session.execute(
            select(Role)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .where(
                RolePermission.permission_id == permission_id,
                Role.is_deleted == False
            )
            .order_by(Role.level, Role.name)
        )
        return result.scalars().all()

    async def resolve_tree(
        self,
        module: Optional[str] = None,
        root_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Permissions grouped by module with children nested per node

        Nodes are ordered by (module, group, sort_order, display_name). A node
        whose parent is outside the filtered set is shown as a root.
        """
        conditions = [Permission.is_deleted == False]
        if module:
            conditions.append(Permission.module == module)

        result = await self.session.execute(select(Permission).where(*conditions))
        permissions = sorted(
            result.scalars().all(),
            key=lambda p: (p.module, p.group or "", p.sort_order, p.display_name)
        )

        if root_id is not None:
            index = HierarchyIndex.from_rows((p.id, p.parent_id) for p in permissions)
            if root_id not in index:
                raise NotFoundError(f"Permission {root_id} not found")
            keep = {root_id, *index.descendants(root_id)}
            permissions = [p for p in permissions if p.id in keep]

        nodes = {
            p.id: {**PermissionResponse.model_validate(p).model_dump(mode="json"), "children": []}
            for p in permissions
        }

        groups: Dict[str, List[Dict[str, Any]]] = {}
        for p in permissions:
            node = nodes[p.id]
            if p.id != root_id and p.parent_id in nodes:
                nodes[p.parent_id]["children"].append(node)
            else:
                groups.setdefault(p.module, []).append(node)

        return [{"module": name, "permissions": roots} for name, roots in groups.items()]

    async def _invalidate_roles(self, role_ids: List[int]) -> None:
        if not self.cache:
            return
        for role_id in role_ids:
            await self.cache.invalidate_users_of_role(role_id, self.session)
