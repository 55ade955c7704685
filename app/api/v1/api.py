from fastapi import APIRouter
from app.api.v1.endpoints.auth import menus, permissions, roles, users

api_router = APIRouter()

# Authorization routes
api_router.include_router(permissions.router, prefix="/permissions", tags=["Permissions"])
api_router.include_router(roles.router, prefix="/roles", tags=["Roles"])
api_router.include_router(menus.router, prefix="/menus", tags=["Menus"])
api_router.include_router(users.router, prefix="/users", tags=["User Authorization"])
