import os
import sys
import asyncio
import logging

# Add project root to Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
sys.path.insert(0, project_root)

from sqlalchemy import select

logger = logging.getLogger(__name__)


def _permission(name, display_name, group, sort_order, is_system=False, description=None):
    module, action = name.split(".", 1)
    return {
        "name": name,
        "display_name": display_name,
        "description": description or display_name,
        "module": module,
        "action": action,
        "group": group,
        "sort_order": sort_order,
        "is_system": is_system,
    }

permissions_data = [
    # =================== ADMINISTRATION ===================
    _permission("admin.access", "Admin Access", "Administration", 1, True, "Access to admin panel"),

    # =================== USER MANAGEMENT ===================
    _permission("users.manage", "Manage Users", "User Management", 10, True, "Full user management access"),
    _permission("users.view", "View Users", "User Management", 11),
    _permission("users.create", "Create Users", "User Management", 12),
    _permission("users.edit", "Edit Users", "User Management", 13),
    _permission("users.delete", "Delete Users", "User Management", 14),

    # =================== ROLE MANAGEMENT ===================
    _permission("roles.manage", "Manage Roles", "Role Management", 20, True, "Full role management access"),
    _permission("roles.view", "View Roles", "Role Management", 21),
    _permission("roles.create", "Create Roles", "Role Management", 22),
    _permission("roles.edit", "Edit Roles", "Role Management", 23),
    _permission("roles.delete", "Delete Roles", "Role Management", 24),

    # =================== PERMISSION MANAGEMENT ===================
    _permission("permissions.manage", "Manage Permissions", "Permission Management", 30, True),
    _permission("permissions.view", "View Permissions", "Permission Management", 31),

    # =================== MENU MANAGEMENT ===================
    _permission("menus.manage", "Manage Menus", "Menu Management", 40, True, "Full menu management access"),
    _permission("menus.view", "View Menus", "Menu Management", 41),
    _permission("menus.create", "Create Menus", "Menu Management", 42),
    _permission("menus.edit", "Edit Menus", "Menu Management", 43),
    _permission("menus.delete", "Delete Menus", "Menu Management", 44),

    # =================== REPORTS & SYSTEM ===================
    _permission("reports.view", "View Reports", "Reports", 60),
    _permission("reports.export", "Export Reports", "Reports", 61),
    _permission("system.configure", "Configure System", "System", 70, True),
    _permission("system.logs", "View System Logs", "System", 71),
]

# '<module>.manage' is the parent of every other permission in its module
PARENT_ACTION = "manage"

roles_data = [
    {
        "name": "super_admin",
        "display_name": "Super Administrator",
        "description": "Full system access and control",
        "level": 1,
        "is_system": True,
        "permissions": "*",
    },
    {
        "name": "admin",
        "display_name": "Administrator",
        "description": "Management access to users, roles and menus",
        "level": 10,
        "is_system": True,
        "permissions": [
            "admin.access", "users.manage", "users.view", "users.create", "users.edit",
            "roles.view", "permissions.view", "menus.manage", "menus.view", "menus.create",
            "menus.edit", "reports.view", "reports.export",
        ],
    },
    {
        "name": "user",
        "display_name": "User",
        "description": "Regular user",
        "level": 100,
        "is_default": True,
        "permissions": ["reports.view"],
    },
]

# Parents are listed before children
menus_data = [
    # =================== LEVEL 0 ===================
    {"name": "dashboard", "title": "Dashboard", "url": "/dashboard", "icon": "fas fa-tachometer-alt",
     "sort_order": 1, "is_system_menu": True},
    {"name": "administration", "title": "Administration", "icon": "fas fa-cogs", "type": "dropdown",
     "sort_order": 2, "is_system_menu": True, "permission": "admin.access", "roles": ["super_admin", "admin"]},
    {"name": "reports", "title": "Reports", "icon": "fas fa-chart-bar", "type": "dropdown",
     "sort_order": 3, "permission": "reports.view"},

    # =================== LEVEL 1 ===================
    {"name": "user_management", "title": "User Management", "icon": "fas fa-users", "type": "dropdown",
     "parent": "administration", "sort_order": 1, "is_system_menu": True, "roles": ["super_admin", "admin"]},
    {"name": "system_settings", "title": "System Settings", "icon": "fas fa-sliders-h", "type": "dropdown",
     "parent": "administration", "sort_order": 2, "is_system_menu": True, "roles": ["super_admin"]},
    {"name": "analytics", "title": "Analytics", "url": "/reports/analytics", "icon": "fas fa-chart-line",
     "parent": "reports", "sort_order": 1},
    {"name": "export_data", "title": "Export Data", "url": "/reports/export", "icon": "fas fa-download",
     "parent": "reports", "sort_order": 2, "permission": "reports.export"},

    # =================== LEVEL 2 ===================
    {"name": "users", "title": "Users", "url": "/admin/users", "icon": "fas fa-user",
     "parent": "user_management", "sort_order": 1, "is_system_menu": True, "permission": "users.manage"},
    {"name": "roles", "title": "Roles", "url": "/admin/roles", "icon": "fas fa-user-tag",
     "parent": "user_management", "sort_order": 2, "is_system_menu": True, "permission": "roles.manage"},
    {"name": "permissions", "title": "Permissions", "url": "/admin/permissions", "icon": "fas fa-key",
     "parent": "user_management", "sort_order": 3, "is_system_menu": True, "permission": "permissions.manage"},
    {"name": "menu_management", "title": "Menu Management", "url": "/admin/menus", "icon": "fas fa-bars",
     "parent": "system_settings", "sort_order": 1, "is_system_menu": True, "permission": "menus.manage"},
]

# =================== SEEDING SCRIPT ===================
async def seed_permissions(session):
    """Seed permissions, skipping names that already exist"""
    from app.models.auth.permission import Permission

    by_name = {}
    for permission_data in permissions_data:
        result = await session.execute(
            select(Permission).where(
                Permission.name == permission_data["name"],
                Permission.is_deleted == False
            )
        )
        permission = result.scalar_one_or_none()
        if not permission:
            permission = Permission(**permission_data)
            session.add(permission)
        by_name[permission.name] = permission

    await session.flush()

    for permission in by_name.values():
        parent = by_name.get(f"{permission.module}.{PARENT_ACTION}")
        if permission.parent_id is None and parent is not None and parent is not permission:
            permission.parent_id = parent.id

    await session.commit()
    return by_name

async def seed_roles(session, permissions):
    """Seed roles and their permission sets"""
    from app.models.auth.role import Role
    from app.models.auth.role_permission import RolePermission

    by_name = {}
    for role_data in roles_data:
        role_data = dict(role_data)
        granted = role_data.pop("permissions")

        result = await session.execute(
            select(Role).where(Role.name == role_data["name"], Role.is_deleted == False)
        )
        role = result.scalar_one_or_none()
        if role:
            by_name[role.name] = role
            continue

        role = Role(**role_data)
        session.add(role)
        await session.flush()

        names = permissions.keys() if granted == "*" else granted
        session.add_all([
            RolePermission(role_id=role.id, permission_id=permissions[name].id) for name in names
        ])
        by_name[role.name] = role

    await session.commit()
    return by_name

async def seed_menus(session, permissions, roles):
    """Seed the navigation tree with its role grants"""
    from app.models.auth.menu import Menu
    from app.models.auth.menu_role import MenuRole
    from app.models.shared.enums import MenuType

    by_name = {}
    for menu_data in menus_data:
        menu_data = dict(menu_data)
        parent_name = menu_data.pop("parent", None)
        permission_name = menu_data.pop("permission", None)
        role_names = menu_data.pop("roles", [])
        menu_type = MenuType(menu_data.pop("type", "link"))

        result = await session.execute(
            select(Menu).where(Menu.name == menu_data["name"], Menu.is_deleted == False)
        )
        menu = result.scalar_one_or_none()
        if menu:
            by_name[menu.name] = menu
            continue

        parent = by_name.get(parent_name)
        menu = Menu(
            **menu_data,
            type=menu_type,
            parent_id=parent.id if parent else None,
            level=parent.level + 1 if parent else 0,
            required_permission_id=permissions[permission_name].id if permission_name else None,
        )
        session.add(menu)
        await session.flush()

        session.add_all([
            MenuRole(menu_id=menu.id, role_id=roles[role_name].id) for role_name in role_names
        ])
        by_name[menu.name] = menu

    await session.commit()
    return by_name

async def seed_rbac(session):
    permissions = await seed_permissions(session)
    roles = await seed_roles(session, permissions)
    menus = await seed_menus(session, permissions, roles)
    logger.info(f"RBAC seed: {len(permissions)} permissions, {len(roles)} roles, {len(menus)} menus")
    return permissions, roles, menus


# =================== USAGE EXAMPLE ===================
from app.core.database import get_async_session

async def main():
    """Main function to run the RBAC seeding process"""
    try:
        async for session in get_async_session():
            permissions, roles, menus = await seed_rbac(session)
            print(f"✅ Seeded {len(permissions)} permissions, {len(roles)} roles, {len(menus)} menus")
            break  # Only process one session
    except Exception as e:
        print(f"❌ Failed to seed RBAC data: {str(e)}")

# This makes the script runnable
if __name__ == "__main__":
    asyncio.run(main())
