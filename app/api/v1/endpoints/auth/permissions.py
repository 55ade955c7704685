import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_actor, get_cache
from app.auth.actor import Actor
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.models.shared.enums import EntityStatus
from app.schemas.auth.permission import (
    PermissionCreate,
    PermissionModuleGroup,
    PermissionResponse,
    PermissionUpdate,
)
from app.schemas.auth.role import RoleResponse
from app.schemas.common.pagination import PaginatedResponse
from app.services.auth.authorization_cache import AuthorizationCache
from app.services.auth.permission_service import PermissionService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission_create: PermissionCreate,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Create new permission
    """
    try:
        permission_service = PermissionService(session, cache)
        return await permission_service.create_permission(permission_create, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Create permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create permission"
        )

@router.get("/", response_model=PaginatedResponse[PermissionResponse])
async def get_permissions(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=1000),
    module: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    status_filter: Optional[EntityStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search in name and display name"),
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Get paginated list of permissions
    """
    try:
        permission_service = PermissionService(session)
        return await permission_service.get_permissions(
            page_index=page_index,
            page_size=page_size,
            module=module,
            action=action,
            status=status_filter,
            search=search
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get permissions error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get permissions"
        )

@router.get("/hierarchy", response_model=List[PermissionModuleGroup])
async def get_permission_hierarchy(
    module: Optional[str] = Query(None),
    root_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Permission tree grouped by module
    """
    try:
        permission_service = PermissionService(session)
        return await permission_service.resolve_tree(module=module, root_id=root_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get permission hierarchy error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get permission hierarchy"
        )

@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: int,
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    try:
        permission_service = PermissionService(session)
        permission = await permission_service.get_permission(permission_id)
        if not permission:
            raise NotFoundError("Permission not found")
        return permission

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get permission"
        )

@router.put("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: int,
    permission_update: PermissionUpdate,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Update permission; moving it re-validates the parent chain
    """
    try:
        permission_service = PermissionService(session, cache)
        return await permission_service.update_permission(permission_id, permission_update, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update permission"
        )

@router.delete("/{permission_id}")
async def delete_permission(
    permission_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        permission_service = PermissionService(session, cache)
        await permission_service.delete_permission(permission_id, actor)
        return {"message": "Permission deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Delete permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete permission"
        )

@router.get("/{permission_id}/roles", response_model=List[RoleResponse])
async def get_permission_roles(
    permission_id: int,
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Roles that currently hold the permission
    """
    try:
        permission_service = PermissionService(session)
        return await permission_service.get_permission_roles(permission_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get permission roles error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get permission roles"
        )
