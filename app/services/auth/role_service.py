import logging
from typing import Any, Dict, Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import delete, func, or_, select
from app.auth.actor import Actor
from app.core.exceptions import (
    AlreadyExistsError,
    AuthorizationDeniedError,
    BaseAppException,
    HasUsersError,
    NotFoundError,
    StorageFailureError,
    SystemProtectedError,
)
from app.core.logging import log_user_action
from app.models.auth.menu_role import MenuRole
from app.models.auth.permission import Permission
from app.models.auth.role import Role
from app.models.auth.role_permission import RolePermission
from app.models.auth.user_role import UserRole
from app.models.shared.enums import EntityStatus
from app.schemas.auth.role import PermissionMatrix, PermissionMatrixRow, RoleCreate, RoleResponse, RoleUpdate
from app.services.auth.authorization_cache import AuthorizationCache

logger = logging.getLogger(__name__)

class RoleService:
    def __init__(self, session: AsyncSession, cache: Optional[AuthorizationCache] = None):
        self.session = session
        self.cache = cache

    async def get_role(self, role_id: int) -> Optional[Role]:
        """Get role by ID"""
        result = await self.session.execute(
            select(Role).where(
                Role.id == role_id,
                Role.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        """Get role by name"""
        result = await self.session.execute(
            select(Role).where(
                Role.name == name,
                Role.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def _lock_role(self, role_id: int) -> Role:
        result = await self.session.execute(
            select(Role)
            .where(
                Role.id == role_id,
                Role.is_deleted == False
            )
            .with_for_update()
        )
        role = result.scalar_one_or_none()
        if not role:
            raise NotFoundError(f"Role {role_id} not found")
        return role

    async def create_role(self, role_create: RoleCreate, actor: Actor) -> Role:
        """Create new role"""
        try:
            existing_role = await self.get_role_by_name(role_create.name)
            if existing_role:
                raise AlreadyExistsError(f"Role name '{role_create.name}' already exists")

            db_role = Role(
                **role_create.model_dump(),
                is_system=False,
                created_by=actor.id,
            )

            self.session.add(db_role)
            await self.session.commit()

            logger.info(f"Role created: {role_create.name}")
            log_user_action(actor.id, "create", "role", db_role.id)
            return db_role

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating role: {str(e)}")
            raise StorageFailureError("Error creating role")

    async def update_role(self, role_id: int, role_update: RoleUpdate, actor: Actor) -> Role:
        """Update role"""
        try:
            role = await self._lock_role(role_id)

            if role.is_system and not actor.is_elevated:
                logger.warning(f"Actor {actor.id} denied update of system role {role.name}")
                raise AuthorizationDeniedError("System roles can only be edited by an elevated actor")

            update_data = role_update.model_dump(exclude_unset=True)

            # Check if name is being changed and if new name already exists
            if "name" in update_data and update_data["name"] != role.name:
                existing_role = await self.get_role_by_name(update_data["name"])
                if existing_role:
                    raise AlreadyExistsError(f"Role name '{update_data['name']}' already exists")

            status_changed = "status" in update_data and update_data["status"] != role.status

            for field, value in update_data.items():
                setattr(role, field, value)
            role.updated_by = actor.id

            await self.session.commit()

            logger.info(f"Role updated: {role.name}")
            log_user_action(actor.id, "update", "role", role.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error updating role: {str(e)}")
            raise StorageFailureError("Error updating role")

        # An inactive role grants nothing, so its holders must recompute
        if status_changed and self.cache:
            await self.cache.invalidate_users_of_role(role.id, self.session)
        return role

    async def delete_role(self, role_id: int, actor: Actor) -> bool:
        """Soft delete a role nobody holds"""
        try:
            role = await self._lock_role(role_id)

            if role.is_system and not actor.is_elevated:
                logger.warning(f"Actor {actor.id} denied delete of system role {role.name}")
                raise SystemProtectedError("Cannot delete system role")

            user_count = await self.session.scalar(
                select(func.count(UserRole.id)).where(
                    UserRole.role_id == role.id,
                    UserRole.is_active == True,
                    UserRole.is_deleted == False
                )
            )
            if user_count:
                raise HasUsersError(f"Role is assigned to {user_count} users")

            # Junction rows go with the role so they never block permission deletes
            await self.session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
            await self.session.execute(delete(MenuRole).where(MenuRole.role_id == role.id))

            role.is_deleted = True
            role.status = EntityStatus.INACTIVE
            role.updated_by = actor.id

            await self.session.commit()
            logger.info(f"Role deleted: {role.name}")
            log_user_action(actor.id, "delete", "role", role.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error deleting role: {str(e)}")
            raise StorageFailureError("Error deleting role")

        if self.cache:
            await self.cache.invalidate_users_of_role(role_id, self.session)
            await self.cache.invalidate_menu_tree()
        return True

    async def get_roles(
        self,
        page_index: int = 1,
        page_size: int = 100,
        search: Optional[str] = None,
        status: Optional[EntityStatus] = None
    ) -> Dict[str, Any]:
        """Get paginated list of roles"""
        conditions = [Role.is_deleted == False]

        if search:
            search_term = f"%{search}%"
            conditions.append(or_(Role.name.ilike(search_term), Role.display_name.ilike(search_term)))
        if status is not None:
            conditions.append(Role.status == status)

        total_count = await self.session.scalar(
            select(func.count(Role.id)).where(*conditions)
        )

        # Calculate offset
        skip = (page_index - 1) * page_size

        roles = await self.session.scalars(
            select(Role)
            .where(*conditions)
            .order_by(Role.level, Role.name)
            .offset(skip)
            .limit(page_size)
        )

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total_count or 0,
            "data": roles.all()
        }

    async def get_assigned_permissions(self, role_id: int) -> List[Permission]:
        """
        Get permissions that ARE assigned to this role

        Args:
            role_id: ID of the role

        Returns:
            List of Permission objects assigned to the role
        """
        result = await self.session.execute(
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(
                RolePermission.role_id == role_id,
                Permission.is_deleted == False
            )
            .order_by(Permission.module, Permission.sort_order, Permission.name)
        )
        return result.scalars().all()

    async def get_unassigned_permissions(self, role_id: int) -> List[Permission]:
        """
        Get active permissions that are NOT assigned to this role (for dropdown)
        """
        assigned = select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
        result = await self.session.execute(
            select(Permission).where(
                Permission.status == EntityStatus.ACTIVE,
                Permission.is_deleted == False,
                ~Permission.id.in_(assigned)
            ).order_by(Permission.module, Permission.sort_order, Permission.name)
        )
        return result.scalars().all()

    async def get_role_user_ids(self, role_id: int) -> List[int]:
        """Users currently holding the role"""
        result = await self.session.execute(
            select(UserRole.user_id).where(
                UserRole.role_id == role_id,
                UserRole.is_active == True,
                UserRole.is_deleted == False
            )
        )
        return sorted(set(result.scalars().all()))

    async def get_permission_matrix(self) -> PermissionMatrix:
        """Active permissions against active roles"""
        roles = (await self.session.scalars(
            select(Role)
            .where(Role.is_deleted == False, Role.status == EntityStatus.ACTIVE)
            .order_by(Role.level, Role.name)
        )).all()

        permissions = (await self.session.scalars(
            select(Permission)
            .where(Permission.is_deleted == False, Permission.status == EntityStatus.ACTIVE)
            .order_by(Permission.module, Permission.group, Permission.sort_order)
        )).all()

        result = await self.session.execute(
            select(RolePermission.role_id, RolePermission.permission_id)
        )
        pairs = {tuple(row) for row in result.all()}

        rows = [
            PermissionMatrixRow(
                permission_id=permission.id,
                permission_name=permission.name,
                display_name=permission.display_name,
                module=permission.module,
                group=permission.group,
                roles={role.id: (role.id, permission.id) in pairs for role in roles},
            )
            for permission in permissions
        ]
        return PermissionMatrix(
            roles=[RoleResponse.model_validate(role) for role in roles],
            rows=rows,
        )
