# app/models/auth/__init__.py

# Import models in dependency order
from .permission import Permission
from .role import Role
from .role_permission import RolePermission
from .user_role import UserRole
from .menu import Menu, MAX_MENU_LEVEL
from .menu_role import MenuRole

# Make sure all models are available
__all__ = [
    "Permission",
    "Role",
    "RolePermission",
    "UserRole",
    "Menu",
    "MenuRole",
    "MAX_MENU_LEVEL",
]
