import pytest
from typing import AsyncGenerator
from fastapi import status
from httpx import ASGITransport, AsyncClient
from main import app
from app.api.dependencies import get_cache
from app.core.config import settings
from app.core.database import get_async_session

ADMIN_HEADERS = {"X-Actor-Id": "1", "X-Actor-Elevated": "true"}
EDITOR_HEADERS = {"X-Actor-Id": "2"}

@pytest.fixture
async def client(session_maker, cache) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the in-memory database and cache"""
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

async def post(client, url, payload=None, headers=ADMIN_HEADERS):
    response = await client.post(url, json=payload, headers=headers)
    assert response.status_code in (200, 201), response.text
    return response.json()

@pytest.mark.asyncio
class TestActor:
    async def test_missing_actor(self, client: AsyncClient):
        response = await client.get("/api/v1/roles/")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_invalid_actor(self, client: AsyncClient):
        response = await client.get("/api/v1/roles/", headers={"X-Actor-Id": "abc"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

@pytest.mark.asyncio
class TestPermissionsApi:
    async def test_create_and_list(self, client: AsyncClient):
        created = await post(client, "/api/v1/permissions/", {
            "name": "content.edit", "display_name": "Edit Content", "module": "content", "action": "edit",
        })
        assert created["is_system"] is False

        response = await client.get("/api/v1/permissions/", headers=EDITOR_HEADERS)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["count"] == 1

    async def test_invalid_name(self, client: AsyncClient):
        response = await client.post("/api/v1/permissions/", json={
            "name": "bad name", "display_name": "Bad", "module": "content", "action": "edit",
        }, headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_cycle_is_unprocessable(self, client: AsyncClient):
        edit = await post(client, "/api/v1/permissions/", {
            "name": "content.edit", "display_name": "Edit", "module": "content", "action": "edit",
        })
        draft = await post(client, "/api/v1/permissions/", {
            "name": "content.edit.draft", "display_name": "Draft", "module": "content",
            "action": "edit.draft", "parent_id": edit["id"],
        })

        response = await client.put(
            f"/api/v1/permissions/{edit['id']}", json={"parent_id": draft["id"]}, headers=ADMIN_HEADERS
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        hierarchy = await client.get("/api/v1/permissions/hierarchy", headers=ADMIN_HEADERS)
        group = hierarchy.json()[0]
        assert group["module"] == "content"
        assert group["permissions"][0]["children"][0]["name"] == "content.edit.draft"

    async def test_not_found(self, client: AsyncClient):
        response = await client.get("/api/v1/permissions/999", headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_404_NOT_FOUND

@pytest.mark.asyncio
class TestRolesApi:
    async def test_assignment_flow(self, client: AsyncClient):
        permission = await post(client, "/api/v1/permissions/", {
            "name": "content.edit", "display_name": "Edit", "module": "content", "action": "edit",
        })
        role = await post(client, "/api/v1/roles/", {"name": "editor", "display_name": "Editor"})

        result = await post(client, f"/api/v1/roles/{role['id']}/assign-permissions", {
            "permission_ids": [permission["id"]],
        })
        assert result["added"] == 1

        synced = await client.put(
            f"/api/v1/roles/{role['id']}/sync-permissions",
            json={"permission_ids": [permission["id"]]},
            headers=ADMIN_HEADERS,
        )
        assert synced.json()["added"] == 0
        assert synced.json()["removed"] == 0

        detail = await client.get(f"/api/v1/roles/{role['id']}", headers=ADMIN_HEADERS)
        assert [p["name"] for p in detail.json()["permissions"]] == ["content.edit"]

        await post(client, f"/api/v1/roles/{role['id']}/users/10")
        response = await client.delete(f"/api/v1/roles/{role['id']}", headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_409_CONFLICT

        matrix = await client.get("/api/v1/roles/matrix", headers=ADMIN_HEADERS)
        assert matrix.json()["rows"][0]["roles"] == {str(role["id"]): True}

    async def test_single_permission_endpoints(self, client: AsyncClient):
        permission = await post(client, "/api/v1/permissions/", {
            "name": "content.view", "display_name": "View", "module": "content", "action": "view",
        })
        role = await post(client, "/api/v1/roles/", {"name": "viewer", "display_name": "Viewer"})

        added = await client.post(
            f"/api/v1/roles/{role['id']}/assign-permission",
            params={"permission_id": permission["id"]},
            headers=ADMIN_HEADERS,
        )
        assert added.json()["added"] == 1

        unassigned = await client.get(f"/api/v1/roles/{role['id']}/unassigned-permissions", headers=ADMIN_HEADERS)
        assert unassigned.json() == []

        removed = await client.delete(
            f"/api/v1/roles/{role['id']}/remove-permission",
            params={"permission_id": permission["id"]},
            headers=ADMIN_HEADERS,
        )
        assert removed.json()["removed"] == 1

@pytest.mark.asyncio
class TestUsersApi:
    async def test_effective_permissions(self, client: AsyncClient):
        permission = await post(client, "/api/v1/permissions/", {
            "name": "content.edit", "display_name": "Edit", "module": "content", "action": "edit",
        })
        role = await post(client, "/api/v1/roles/", {"name": "editor", "display_name": "Editor"})
        await post(client, f"/api/v1/roles/{role['id']}/assign-permissions", {"permission_ids": [permission["id"]]})
        await post(client, f"/api/v1/roles/{role['id']}/users/10")

        view = await client.get("/api/v1/users/10/permissions", headers=EDITOR_HEADERS)
        assert view.json() == {
            "user_id": 10, "roles": [role["id"]], "permission_ids": [permission["id"]], "permissions": ["content.edit"],
        }

        allowed = await client.get("/api/v1/users/10/can", params={"permission": "content.edit"}, headers=EDITOR_HEADERS)
        assert allowed.json()["allowed"] is True

        denied = await client.get("/api/v1/users/20/can", params={"permission": "content.edit"}, headers=EDITOR_HEADERS)
        assert denied.json()["allowed"] is False

@pytest.mark.asyncio
class TestMenusApi:
    async def test_depth_limit(self, client: AsyncClient):
        settings = await post(client, "/api/v1/menus/", {"name": "settings", "title": "Settings"})
        users = await post(client, "/api/v1/menus/", {"name": "users", "title": "Users", "parent_id": settings["id"]})
        roles = await post(client, "/api/v1/menus/", {"name": "roles", "title": "Roles", "parent_id": users["id"]})
        assert roles["level"] == 2

        response = await client.post(
            "/api/v1/menus/", json={"name": "deep", "title": "Deep", "parent_id": roles["id"]}, headers=ADMIN_HEADERS
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        crumbs = await client.get(f"/api/v1/menus/{roles['id']}/breadcrumb", headers=ADMIN_HEADERS)
        assert [c["title"] for c in crumbs.json()] == ["Settings", "Users", "Roles"]

    async def test_null_title_is_unprocessable(self, client: AsyncClient):
        menu = await post(client, "/api/v1/menus/", {"name": "settings", "title": "Settings"})

        response = await client.put(f"/api/v1/menus/{menu['id']}", json={"title": None}, headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        role = await post(client, "/api/v1/roles/", {"name": "editor", "display_name": "Editor"})
        response = await client.put(f"/api/v1/roles/{role['id']}", json={"name": None}, headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_visible_tree(self, client: AsyncClient):
        role = await post(client, "/api/v1/roles/", {"name": "admin", "display_name": "Admin"})
        settings = await post(client, "/api/v1/menus/", {"name": "settings", "title": "Settings"})
        await post(client, "/api/v1/menus/", {"name": "reports", "title": "Reports"})
        await post(client, f"/api/v1/roles/{role['id']}/users/10")

        response = await client.put(
            f"/api/v1/menus/{settings['id']}/roles", json={"role_ids": [role["id"]]}, headers=ADMIN_HEADERS
        )
        assert response.json()["added"] == 1

        visible = await client.get("/api/v1/menus/visible/10", headers=EDITOR_HEADERS)
        assert [m["title"] for m in visible.json()] == ["Settings", "Reports"]

        visible = await client.get("/api/v1/menus/visible/20", headers=EDITOR_HEADERS)
        assert [m["title"] for m in visible.json()] == ["Reports"]

    async def test_reorder_and_duplicate(self, client: AsyncClient):
        first = await post(client, "/api/v1/menus/", {"name": "first", "title": "First"})
        second = await post(client, "/api/v1/menus/", {"name": "second", "title": "Second"})

        response = await client.put("/api/v1/menus/reorder", json={"items": [
            {"id": first["id"], "sort_order": 2}, {"id": second["id"], "sort_order": 1},
        ]}, headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_200_OK

        copy = await post(client, f"/api/v1/menus/{first['id']}/duplicate")
        assert copy["name"] == "first_copy"
        assert copy["is_active"] is False
        assert copy["sort_order"] == 3

        toggled = await post(client, f"/api/v1/menus/{copy['id']}/toggle-active")
        assert toggled["is_active"] is True

        response = await client.delete(f"/api/v1/menus/{copy['id']}", headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_200_OK

@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "CACHE_BACKEND", "memory")
        response = await client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert "components" in response.json()

    async def test_request_id_is_echoed(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "CACHE_BACKEND", "memory")
        response = await client.get("/health", headers={"X-Request-Id": "req-42"})
        assert response.headers["X-Request-Id"] == "req-42"
        assert "X-Process-Time" in response.headers

        response = await client.get("/health")
        assert len(response.headers["X-Request-Id"]) == 32
