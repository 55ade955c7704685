from app.models.auth.permission import Permission
from app.models.auth.role_permission import RolePermission
from app.models.auth.role import Role
from app.models.auth.user_role import UserRole
from app.models.auth.menu import Menu
from app.models.auth.menu_role import MenuRole
