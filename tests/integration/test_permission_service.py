import pytest
from app.core.exceptions import (
    AlreadyExistsError,
    AuthorizationDeniedError,
    HasDependentsError,
    InvalidHierarchyError,
    NotFoundError,
    SystemProtectedError,
)
from app.models.auth.permission import Permission
from app.models.shared.enums import EntityStatus
from app.schemas.auth.permission import PermissionCreate, PermissionUpdate
from app.services.auth.authorization_cache import CacheKeys
from app.services.auth.authorization_service import AuthorizationService
from app.services.auth.permission_service import PermissionService
from tests.factories import create_menu, create_permission, create_role, give_role, grant, mark_system

@pytest.mark.asyncio
class TestPermissionService:
    """Permission tree mutations"""

    async def test_create_permission(self, session, cache, admin):
        service = PermissionService(session, cache)
        permission = await service.create_permission(
            PermissionCreate(name="content.edit", display_name="Edit Content", module="content", action="edit"),
            admin,
        )

        assert permission.id is not None
        assert permission.is_system is False
        assert permission.status == EntityStatus.ACTIVE
        assert permission.created_by == admin.id

    async def test_duplicate_name_rejected(self, session, cache, admin):
        await create_permission(session, "content.edit")

        with pytest.raises(AlreadyExistsError):
            await PermissionService(session, cache).create_permission(
                PermissionCreate(name="content.edit", display_name="Again", module="content", action="edit"),
                admin,
            )

    async def test_name_reusable_after_delete(self, session, cache, admin):
        permission_id = await create_permission(session, "content.edit")
        service = PermissionService(session, cache)
        await service.delete_permission(permission_id, admin)

        new_id = await create_permission(session, "content.edit")
        assert new_id != permission_id

    async def test_create_with_missing_parent(self, session, cache, admin):
        with pytest.raises(NotFoundError):
            await create_permission(session, "content.edit", parent_id=999)

    async def test_child_cannot_become_parent(self, session, cache, admin):
        edit_id = await create_permission(session, "content.edit")
        draft_id = await create_permission(session, "content.edit.draft", parent_id=edit_id)

        service = PermissionService(session, cache)
        with pytest.raises(InvalidHierarchyError):
            await service.update_permission(edit_id, PermissionUpdate(parent_id=draft_id), admin)

        # Unchanged after the rejected move
        edit = await service.get_permission(edit_id)
        draft = await service.get_permission(draft_id)
        assert edit.parent_id is None
        assert draft.parent_id == edit_id

    async def test_self_parent_rejected(self, session, cache, admin):
        edit_id = await create_permission(session, "content.edit")
        with pytest.raises(InvalidHierarchyError):
            await PermissionService(session, cache).update_permission(
                edit_id, PermissionUpdate(parent_id=edit_id), admin
            )

    async def test_move_to_root(self, session, cache, admin):
        edit_id = await create_permission(session, "content.edit")
        draft_id = await create_permission(session, "content.edit.draft", parent_id=edit_id)

        draft = await PermissionService(session, cache).update_permission(
            draft_id, PermissionUpdate(parent_id=None), admin
        )
        assert draft.parent_id is None

    async def test_system_permission_requires_elevation(self, session, cache, admin, editor):
        permission_id = await create_permission(session, "admin.access")
        await mark_system(session, Permission, permission_id)
        service = PermissionService(session, cache)

        with pytest.raises(AuthorizationDeniedError):
            await service.update_permission(permission_id, PermissionUpdate(display_name="X"), editor)
        with pytest.raises(SystemProtectedError):
            await service.delete_permission(permission_id, editor)

        updated = await service.update_permission(permission_id, PermissionUpdate(display_name="X"), admin)
        assert updated.display_name == "X"

    async def test_delete_blocked_by_children(self, session, cache, admin):
        edit_id = await create_permission(session, "content.edit")
        await create_permission(session, "content.edit.draft", parent_id=edit_id)

        with pytest.raises(HasDependentsError):
            await PermissionService(session, cache).delete_permission(edit_id, admin)

    async def test_delete_blocked_by_roles(self, session, cache, admin):
        permission_id = await create_permission(session, "content.edit")
        role_id = await create_role(session, "editor")
        await grant(session, cache, role_id, [permission_id])

        with pytest.raises(HasDependentsError):
            await PermissionService(session, cache).delete_permission(permission_id, admin)

    async def test_delete_blocked_by_menus(self, session, cache, admin):
        permission_id = await create_permission(session, "reports.view")
        await create_menu(session, cache, "reports", required_permission_id=permission_id)

        with pytest.raises(HasDependentsError):
            await PermissionService(session, cache).delete_permission(permission_id, admin)

    async def test_delete_tombstones(self, session, cache, admin):
        permission_id = await create_permission(session, "content.edit")
        service = PermissionService(session, cache)

        assert await service.delete_permission(permission_id, admin) is True
        assert await service.get_permission(permission_id) is None
        page = await service.get_permissions()
        assert page["count"] == 0

    async def test_rename_invalidates_holders(self, session, cache, admin):
        permission_id = await create_permission(session, "content.edit")
        role_id = await create_role(session, "editor")
        await grant(session, cache, role_id, [permission_id])
        await give_role(session, cache, 10, role_id)

        reader = AuthorizationService(session, cache)
        assert (await reader.get_user_permissions(10))["permissions"] == ["content.edit"]

        await PermissionService(session, cache).update_permission(
            permission_id, PermissionUpdate(name="content.write"), admin
        )
        assert await cache.get(CacheKeys.user_permissions(10)) is None
        assert await cache.get(CacheKeys.role_permissions(role_id)) is None
        assert (await reader.get_user_permissions(10))["permissions"] == ["content.write"]

    async def test_get_permissions_filters(self, session, cache):
        await create_permission(session, "content.edit")
        await create_permission(session, "content.view")
        await create_permission(session, "users.view")
        service = PermissionService(session, cache)

        by_module = await service.get_permissions(module="content")
        assert by_module["count"] == 2

        by_search = await service.get_permissions(search="users")
        assert [p.name for p in by_search["data"]] == ["users.view"]

        paged = await service.get_permissions(page_index=2, page_size=2)
        assert paged["count"] == 3
        assert len(paged["data"]) == 1

    async def test_resolve_tree(self, session, cache):
        manage_id = await create_permission(session, "users.manage")
        await create_permission(session, "users.view", parent_id=manage_id, sort_order=1)
        await create_permission(session, "content.edit")

        tree = await PermissionService(session, cache).resolve_tree()
        modules = {group["module"]: group["permissions"] for group in tree}

        assert set(modules) == {"users", "content"}
        assert len(modules["users"]) == 1
        assert modules["users"][0]["name"] == "users.manage"
        assert [c["name"] for c in modules["users"][0]["children"]] == ["users.view"]

    async def test_resolve_subtree(self, session, cache):
        manage_id = await create_permission(session, "users.manage")
        view_id = await create_permission(session, "users.view", parent_id=manage_id)
        await create_permission(session, "users.view.own", parent_id=view_id)

        tree = await PermissionService(session, cache).resolve_tree(root_id=view_id)
        root = tree[0]["permissions"][0]
        assert root["name"] == "users.view"
        assert [c["name"] for c in root["children"]] == ["users.view.own"]

    async def test_permission_roles(self, session, cache):
        permission_id = await create_permission(session, "content.edit")
        role_id = await create_role(session, "editor")
        await grant(session, cache, role_id, [permission_id])

        roles = await PermissionService(session, cache).get_permission_roles(permission_id)
        assert [r.id for r in roles] == [role_id]
