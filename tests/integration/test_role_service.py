import pytest
from app.core.exceptions import (
    AlreadyExistsError,
    AuthorizationDeniedError,
    HasUsersError,
    NotFoundError,
    SystemProtectedError,
)
from app.models.auth.role import Role
from app.models.shared.enums import EntityStatus
from app.schemas.auth.role import RoleCreate, RoleUpdate
from app.services.auth.authorization_cache import CacheKeys
from app.services.auth.authorization_service import AuthorizationService
from app.services.auth.assignment_service import AssignmentService
from app.services.auth.menu_service import MenuService
from app.services.auth.permission_service import PermissionService
from app.services.auth.role_service import RoleService
from tests.factories import create_menu, create_permission, create_role, give_role, grant, mark_system

@pytest.mark.asyncio
class TestRoleService:
    async def test_create_role(self, session, cache, admin):
        role = await RoleService(session, cache).create_role(
            RoleCreate(name="editor", display_name="Editor"), admin
        )
        assert role.id is not None
        assert role.is_system is False
        assert role.level == 100

    async def test_duplicate_name_rejected(self, session, cache, admin):
        await create_role(session, "editor")
        with pytest.raises(AlreadyExistsError):
            await RoleService(session, cache).create_role(RoleCreate(name="editor", display_name="Again"), admin)

    async def test_rename_to_existing_name_rejected(self, session, cache, admin):
        await create_role(session, "editor")
        viewer_id = await create_role(session, "viewer")
        with pytest.raises(AlreadyExistsError):
            await RoleService(session, cache).update_role(viewer_id, RoleUpdate(name="editor"), admin)

    async def test_update_missing_role(self, session, cache, admin):
        with pytest.raises(NotFoundError):
            await RoleService(session, cache).update_role(404, RoleUpdate(display_name="X"), admin)

    async def test_system_role_guards(self, session, cache, admin, editor):
        role_id = await create_role(session, "super_admin")
        await mark_system(session, Role, role_id)
        service = RoleService(session, cache)

        with pytest.raises(AuthorizationDeniedError):
            await service.update_role(role_id, RoleUpdate(display_name="Root"), editor)
        with pytest.raises(SystemProtectedError):
            await service.delete_role(role_id, editor)

        # SystemProtected is also an authorization denial
        with pytest.raises(AuthorizationDeniedError):
            await service.delete_role(role_id, editor)

        assert await service.get_role(role_id) is not None

    async def test_delete_blocked_while_users_hold_role(self, session, cache, admin):
        role_id = await create_role(session, "editor")
        await give_role(session, cache, 10, role_id)
        service = RoleService(session, cache)

        with pytest.raises(HasUsersError):
            await service.delete_role(role_id, admin)

        await AssignmentService(session, cache).revoke_role_from_user(10, role_id, admin)
        assert await service.delete_role(role_id, admin) is True
        assert await service.get_role(role_id) is None

    async def test_delete_drops_grants(self, session, cache, admin):
        permission_id = await create_permission(session, "content.edit")
        role_id = await create_role(session, "editor")
        await grant(session, cache, role_id, [permission_id])
        menu_id = await create_menu(session, cache, "content")
        await AssignmentService(session, cache).sync_menu_roles(menu_id, [role_id], admin)

        await RoleService(session, cache).delete_role(role_id, admin)

        # The permission is no longer held, so it can be deleted
        assert await PermissionService(session, cache).delete_permission(permission_id, admin) is True
        assert await MenuService(session, cache).get_menu_role_ids(menu_id) == []

    async def test_deactivation_invalidates_holders(self, session, cache, admin):
        permission_id = await create_permission(session, "content.edit")
        role_id = await create_role(session, "editor")
        await grant(session, cache, role_id, [permission_id])
        await give_role(session, cache, 10, role_id)

        reader = AuthorizationService(session, cache)
        assert (await reader.get_user_permissions(10))["permissions"] == ["content.edit"]

        await RoleService(session, cache).update_role(role_id, RoleUpdate(status=EntityStatus.INACTIVE), admin)

        assert await cache.get(CacheKeys.user_permissions(10)) is None
        view = await reader.get_user_permissions(10)
        assert view["roles"] == []
        assert view["permissions"] == []

    async def test_get_roles(self, session, cache):
        await create_role(session, "viewer", level=50)
        await create_role(session, "editor", level=20)
        await create_role(session, "auditor", level=50)

        page = await RoleService(session, cache).get_roles()
        assert page["count"] == 3
        assert [r.name for r in page["data"]] == ["editor", "auditor", "viewer"]

        found = await RoleService(session, cache).get_roles(search="edit")
        assert [r.name for r in found["data"]] == ["editor"]

    async def test_assigned_and_unassigned_permissions(self, session, cache):
        edit_id = await create_permission(session, "content.edit")
        view_id = await create_permission(session, "content.view")
        role_id = await create_role(session, "editor")
        await grant(session, cache, role_id, [edit_id])
        service = RoleService(session, cache)

        assert [p.id for p in await service.get_assigned_permissions(role_id)] == [edit_id]
        assert [p.id for p in await service.get_unassigned_permissions(role_id)] == [view_id]

    async def test_permission_matrix(self, session, cache):
        edit_id = await create_permission(session, "content.edit")
        view_id = await create_permission(session, "content.view")
        editor_id = await create_role(session, "editor", level=20)
        viewer_id = await create_role(session, "viewer", level=50)
        await grant(session, cache, editor_id, [edit_id, view_id])
        await grant(session, cache, viewer_id, [view_id])

        matrix = await RoleService(session, cache).get_permission_matrix()
        assert [r.id for r in matrix.roles] == [editor_id, viewer_id]

        rows = {row.permission_id: row.roles for row in matrix.rows}
        assert rows[edit_id] == {editor_id: True, viewer_id: False}
        assert rows[view_id] == {editor_id: True, viewer_id: True}
