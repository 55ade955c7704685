"""
Role-permission, role-user and menu-role assignment.

Every operation is one transaction. The invalidation cascade runs only
after commit() returns and only when the operation changed something:
the role entries, the entries of every user currently holding the role,
and the menu views derived from it.
"""

import logging
from typing import Iterable, List, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import delete, select
from app.auth.actor import Actor
from app.core.exceptions import (
    AuthorizationDeniedError,
    BaseAppException,
    NotFoundError,
    StorageFailureError,
)
from app.core.logging import log_user_action
from app.models.auth.menu import Menu
from app.models.auth.menu_role import MenuRole
from app.models.auth.permission import Permission
from app.models.auth.role import Role
from app.models.auth.role_permission import RolePermission
from app.models.auth.user_role import UserRole
from app.models.shared.enums import EntityStatus, GrantAction
from app.schemas.auth.role import AssignmentResult
from app.services.auth.authorization_cache import AuthorizationCache

logger = logging.getLogger(__name__)


class AssignmentService:
    def __init__(self, session: AsyncSession, cache: AuthorizationCache):
        self.session = session
        self.cache = cache

    # ------------------------------------------------------------------
    # Loading and guards
    # ------------------------------------------------------------------

    async def _lock_role(self, role_id: int) -> Role:
        result = await self.session.execute(
            select(Role)
            .where(Role.id == role_id, Role.is_deleted == False)
            .with_for_update()
        )
        role = result.scalar_one_or_none()
        if not role:
            raise NotFoundError(f"Role {role_id} not found")
        return role

    async def _lock_menus(self, menu_ids: Iterable[int]) -> List[Menu]:
        wanted = set(menu_ids)
        result = await self.session.execute(
            select(Menu)
            .where(Menu.id.in_(wanted), Menu.is_deleted == False)
            .with_for_update()
        )
        menus = result.scalars().all()
        missing = wanted - {menu.id for menu in menus}
        if missing:
            raise NotFoundError(f"Menus not found: {sorted(missing)}")
        return menus

    @staticmethod
    def _guard_role(role: Role, actor: Actor) -> None:
        if role.is_system and not actor.is_elevated:
            logger.warning(f"Actor {actor.id} denied change to system role {role.name}")
            raise AuthorizationDeniedError(f"Cannot modify system role {role.name}")

    @staticmethod
    def _guard_menu(menu: Menu, actor: Actor) -> None:
        if menu.is_system_menu and not actor.is_elevated:
            logger.warning(f"Actor {actor.id} denied change to system menu {menu.name}")
            raise AuthorizationDeniedError("Cannot modify system menu grants")

    async def _current_permission_ids(self, role_id: int) -> Set[int]:
        result = await self.session.execute(
            select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
        )
        return set(result.scalars().all())

    async def _require_active_permissions(self, permission_ids: Set[int]) -> None:
        if not permission_ids:
            return
        result = await self.session.execute(
            select(Permission.id).where(
                Permission.id.in_(permission_ids),
                Permission.status == EntityStatus.ACTIVE,
                Permission.is_deleted == False
            )
        )
        missing = permission_ids - set(result.scalars().all())
        if missing:
            raise NotFoundError(f"Permissions not found or inactive: {sorted(missing)}")

    async def _require_roles(self, role_ids: Set[int]) -> List[Role]:
        result = await self.session.execute(
            select(Role).where(Role.id.in_(role_ids), Role.is_deleted == False)
        )
        roles = result.scalars().all()
        missing = role_ids - {role.id for role in roles}
        if missing:
            raise NotFoundError(f"Roles not found: {sorted(missing)}")
        return roles

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error during {operation}: {str(e)}")
            raise StorageFailureError(f"Error during {operation}")

    async def _cascade_role(self, role_id: int, menus_changed: bool = False) -> None:
        await self.cache.invalidate_users_of_role(role_id, self.session)
        if menus_changed:
            await self.cache.invalidate_menu_tree()

    # ------------------------------------------------------------------
    # Role <-> permission
    # ------------------------------------------------------------------

    async def assign_permission(self, role_id: int, permission_id: int, actor: Actor) -> AssignmentResult:
        """Idempotently add one permission to a role"""
        try:
            role = await self._lock_role(role_id)
            self._guard_role(role, actor)
            await self._require_active_permissions({permission_id})

            if permission_id in await self._current_permission_ids(role_id):
                await self.session.rollback()
                return AssignmentResult(target_id=role_id, unchanged=1)

            self.session.add(RolePermission(role_id=role_id, permission_id=permission_id, created_by=actor.id))
            await self._commit("permission assignment")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error assigning permission to role: {str(e)}")
            raise StorageFailureError("Error assigning permission")

        logger.info(f"Permission {permission_id} assigned to role {role_id}")
        log_user_action(actor.id, "assign_permission", "role", role_id, permission_id=permission_id)
        await self._cascade_role(role_id)
        return AssignmentResult(target_id=role_id, added=1)

    async def remove_permission(self, role_id: int, permission_id: int, actor: Actor) -> AssignmentResult:
        """Idempotently remove one permission from a role"""
        try:
            role = await self._lock_role(role_id)
            self._guard_role(role, actor)

            exists = await self.session.scalar(
                select(Permission.id).where(Permission.id == permission_id, Permission.is_deleted == False)
            )
            if not exists:
                raise NotFoundError(f"Permission {permission_id} not found")

            if permission_id not in await self._current_permission_ids(role_id):
                await self.session.rollback()
                return AssignmentResult(target_id=role_id, unchanged=1)

            await self.session.execute(
                delete(RolePermission).where(
                    RolePermission.role_id == role_id,
                    RolePermission.permission_id == permission_id
                )
            )
            await self._commit("permission removal")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error removing permission from role: {str(e)}")
            raise StorageFailureError("Error removing permission")

        logger.info(f"Permission {permission_id} removed from role {role_id}")
        log_user_action(actor.id, "remove_permission", "role", role_id, permission_id=permission_id)
        await self._cascade_role(role_id)
        return AssignmentResult(target_id=role_id, removed=1)

    async def bulk_assign(self, role_id: int, permission_ids: List[int], actor: Actor) -> AssignmentResult:
        """
        Add many permissions in one batch with a single cascade

        Only the set difference against current assignments is inserted.
        """
        requested = set(permission_ids)
        try:
            role = await self._lock_role(role_id)
            self._guard_role(role, actor)

            current = await self._current_permission_ids(role_id)
            new_ids = requested - current
            await self._require_active_permissions(new_ids)

            if not new_ids:
                await self.session.rollback()
                return AssignmentResult(target_id=role_id, unchanged=len(requested))

            self.session.add_all([
                RolePermission(role_id=role_id, permission_id=pid, created_by=actor.id)
                for pid in sorted(new_ids)
            ])
            await self._commit("bulk permission assignment")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error assigning multiple permissions: {str(e)}")
            raise StorageFailureError("Error assigning permissions")

        logger.info(f"{len(new_ids)} permissions assigned to role {role_id}")
        log_user_action(actor.id, "bulk_assign", "role", role_id, added=len(new_ids))
        await self._cascade_role(role_id)
        return AssignmentResult(target_id=role_id, added=len(new_ids), unchanged=len(requested & current))

    async def sync_permissions(self, role_id: int, permission_ids: List[int], actor: Actor) -> AssignmentResult:
        """Replace the role's permission set with exactly the given ids"""
        requested = set(permission_ids)
        try:
            role = await self._lock_role(role_id)
            self._guard_role(role, actor)

            current = await self._current_permission_ids(role_id)
            to_add = requested - current
            to_remove = current - requested
            await self._require_active_permissions(to_add)

            if not to_add and not to_remove:
                await self.session.rollback()
                return AssignmentResult(target_id=role_id, unchanged=len(current))

            if to_remove:
                await self.session.execute(
                    delete(RolePermission).where(
                        RolePermission.role_id == role_id,
                        RolePermission.permission_id.in_(to_remove)
                    )
                )
            self.session.add_all([
                RolePermission(role_id=role_id, permission_id=pid, created_by=actor.id)
                for pid in sorted(to_add)
            ])
            await self._commit("permission sync")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error synchronizing role permissions: {str(e)}")
            raise StorageFailureError("Error synchronizing permissions")

        logger.info(f"Role {role_id} permissions synchronized: +{len(to_add)} -{len(to_remove)}")
        log_user_action(actor.id, "sync_permissions", "role", role_id, added=len(to_add), removed=len(to_remove))
        await self._cascade_role(role_id)
        return AssignmentResult(
            target_id=role_id,
            added=len(to_add),
            removed=len(to_remove),
            unchanged=len(current & requested),
        )

    # ------------------------------------------------------------------
    # Role <-> user
    # ------------------------------------------------------------------

    async def assign_role_to_user(self, user_id: int, role_id: int, actor: Actor) -> AssignmentResult:
        try:
            role = await self._lock_role(role_id)
            self._guard_role(role, actor)

            result = await self.session.execute(
                select(UserRole).where(
                    UserRole.user_id == user_id,
                    UserRole.role_id == role_id,
                    UserRole.is_deleted == False
                )
            )
            user_role = result.scalar_one_or_none()

            if user_role and user_role.is_active:
                await self.session.rollback()
                return AssignmentResult(target_id=user_id, unchanged=1)

            if user_role:
                user_role.is_active = True
                user_role.assigned_by = actor.id
            else:
                self.session.add(UserRole(user_id=user_id, role_id=role_id, assigned_by=actor.id))
            await self._commit("role assignment")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error assigning role to user: {str(e)}")
            raise StorageFailureError("Error assigning role")

        logger.info(f"Role {role_id} assigned to user {user_id}")
        log_user_action(actor.id, "assign_role", "user", user_id, role_id=role_id)
        await self.cache.invalidate_user(user_id)
        return AssignmentResult(target_id=user_id, added=1)

    async def revoke_role_from_user(self, user_id: int, role_id: int, actor: Actor) -> AssignmentResult:
        try:
            role = await self._lock_role(role_id)
            self._guard_role(role, actor)

            result = await self.session.execute(
                select(UserRole).where(
                    UserRole.user_id == user_id,
                    UserRole.role_id == role_id,
                    UserRole.is_active == True,
                    UserRole.is_deleted == False
                )
            )
            user_role = result.scalar_one_or_none()
            if not user_role:
                await self.session.rollback()
                return AssignmentResult(target_id=user_id, unchanged=1)

            user_role.is_active = False
            await self._commit("role revocation")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error revoking role from user: {str(e)}")
            raise StorageFailureError("Error revoking role")

        logger.info(f"Role {role_id} revoked from user {user_id}")
        log_user_action(actor.id, "revoke_role", "user", user_id, role_id=role_id)
        await self.cache.invalidate_user(user_id)
        return AssignmentResult(target_id=user_id, removed=1)

    # ------------------------------------------------------------------
    # Menu <-> role visibility grants
    # ------------------------------------------------------------------

    async def _menu_role_ids(self, menu_id: int) -> Set[int]:
        result = await self.session.execute(
            select(MenuRole.role_id).where(MenuRole.menu_id == menu_id)
        )
        return set(result.scalars().all())

    async def sync_menu_roles(self, menu_id: int, role_ids: List[int], actor: Actor) -> AssignmentResult:
        """Replace the roles that may see a menu"""
        requested = set(role_ids)
        try:
            menu, = await self._lock_menus([menu_id])
            self._guard_menu(menu, actor)
            await self._require_roles(requested)

            current = await self._menu_role_ids(menu_id)
            to_add = requested - current
            to_remove = current - requested
            if not to_add and not to_remove:
                await self.session.rollback()
                return AssignmentResult(target_id=menu_id, unchanged=len(current))

            for role in await self._require_roles(to_add | to_remove):
                self._guard_role(role, actor)

            if to_remove:
                await self.session.execute(
                    delete(MenuRole).where(MenuRole.menu_id == menu_id, MenuRole.role_id.in_(to_remove))
                )
            self.session.add_all([
                MenuRole(menu_id=menu_id, role_id=rid, created_by=actor.id) for rid in sorted(to_add)
            ])
            await self._commit("menu role sync")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error assigning menu roles: {str(e)}")
            raise StorageFailureError("Error assigning menu roles")

        logger.info(f"Menu {menu_id} roles synchronized: +{len(to_add)} -{len(to_remove)}")
        log_user_action(actor.id, "sync_roles", "menu", menu_id, added=len(to_add), removed=len(to_remove))
        for role_id in sorted(to_add | to_remove):
            await self._cascade_role(role_id)
        # A menu switching between unrestricted and restricted affects everyone
        await self.cache.invalidate_menu_tree()
        return AssignmentResult(
            target_id=menu_id,
            added=len(to_add),
            removed=len(to_remove),
            unchanged=len(current & requested),
        )

    async def remove_menu_role(self, menu_id: int, role_id: int, actor: Actor) -> AssignmentResult:
        try:
            menu, = await self._lock_menus([menu_id])
            self._guard_menu(menu, actor)
            role, = await self._require_roles({role_id})
            self._guard_role(role, actor)

            if role_id not in await self._menu_role_ids(menu_id):
                await self.session.rollback()
                return AssignmentResult(target_id=menu_id, unchanged=1)

            await self.session.execute(
                delete(MenuRole).where(MenuRole.menu_id == menu_id, MenuRole.role_id == role_id)
            )
            await self._commit("menu role removal")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error removing menu role: {str(e)}")
            raise StorageFailureError("Error removing menu role")

        logger.info(f"Role {role_id} removed from menu {menu_id}")
        log_user_action(actor.id, "remove_role", "menu", menu_id, role_id=role_id)
        await self._cascade_role(role_id, menus_changed=True)
        return AssignmentResult(target_id=menu_id, removed=1)

    async def bulk_menu_roles(
        self,
        menu_ids: List[int],
        role_ids: List[int],
        action: GrantAction,
        actor: Actor
    ) -> AssignmentResult:
        """Grant or revoke the same roles on many menus at once"""
        requested_roles = set(role_ids)
        added = removed = unchanged = 0
        try:
            menus = await self._lock_menus(menu_ids)
            for menu in menus:
                self._guard_menu(menu, actor)
            for role in await self._require_roles(requested_roles):
                self._guard_role(role, actor)

            result = await self.session.execute(
                select(MenuRole.menu_id, MenuRole.role_id).where(
                    MenuRole.menu_id.in_([menu.id for menu in menus]),
                    MenuRole.role_id.in_(requested_roles)
                )
            )
            pairs = {tuple(row) for row in result.all()}

            wanted = {(menu.id, role_id) for menu in menus for role_id in requested_roles}
            if action == GrantAction.ASSIGN:
                new_pairs = sorted(wanted - pairs)
                self.session.add_all([
                    MenuRole(menu_id=menu_id, role_id=role_id, created_by=actor.id)
                    for menu_id, role_id in new_pairs
                ])
                added = len(new_pairs)
                unchanged = len(pairs)
            else:
                for menu_id, role_id in sorted(pairs):
                    await self.session.execute(
                        delete(MenuRole).where(MenuRole.menu_id == menu_id, MenuRole.role_id == role_id)
                    )
                removed = len(pairs)
                unchanged = len(wanted - pairs)

            if not added and not removed:
                await self.session.rollback()
                return AssignmentResult(target_id=None, unchanged=unchanged)

            await self._commit("bulk menu role assignment")

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to perform bulk menu role assignment: {str(e)}")
            raise StorageFailureError("Error in bulk menu role assignment")

        logger.info(f"Bulk menu role {action.value}: menus={sorted(set(menu_ids))} roles={sorted(requested_roles)}")
        log_user_action(actor.id, f"bulk_{action.value}_roles", "menu", None, added=added, removed=removed)
        for role_id in sorted(requested_roles):
            await self._cascade_role(role_id)
        await self.cache.invalidate_menu_tree()
        return AssignmentResult(target_id=None, added=added, removed=removed, unchanged=unchanged)
