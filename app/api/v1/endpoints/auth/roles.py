import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_actor, get_cache
from app.auth.actor import Actor
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.models.shared.enums import EntityStatus
from app.schemas.auth.menu import MenuTreeNode
from app.schemas.auth.permission import PermissionResponse
from app.schemas.auth.role import (
    AssignmentResult,
    PermissionIdsRequest,
    PermissionMatrix,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
)
from app.schemas.common.pagination import PaginatedResponse
from app.services.auth.assignment_service import AssignmentService
from app.services.auth.authorization_cache import AuthorizationCache
from app.services.auth.menu_service import MenuService
from app.services.auth.role_service import RoleService

router = APIRouter()
logger = logging.getLogger(__name__)

# ============================================================================
# ROLE CRUD ENDPOINTS
# ============================================================================

@router.post("/", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_create: RoleCreate,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Create new role
    """
    try:
        role_service = RoleService(session, cache)
        return await role_service.create_role(role_create, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Create role error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create role"
        )

@router.get("/", response_model=PaginatedResponse[RoleResponse])
async def get_roles(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    search: Optional[str] = Query(None),
    status_filter: Optional[EntityStatus] = Query(None, alias="status"),
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Get roles list with pagination
    """
    try:
        role_service = RoleService(session)
        return await role_service.get_roles(
            page_index=page_index,
            page_size=page_size,
            search=search,
            status=status_filter
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get roles error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get roles"
        )

@router.get("/matrix", response_model=PermissionMatrix)
async def get_permission_matrix(
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Active permissions against active roles
    """
    try:
        role_service = RoleService(session)
        return await role_service.get_permission_matrix()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get permission matrix error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get permission matrix"
        )

@router.get("/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: int,
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Get role by ID with its assigned permissions
    """
    try:
        role_service = RoleService(session)
        role = await role_service.get_role(role_id)
        if not role:
            raise NotFoundError("Role not found")

        permissions = await role_service.get_assigned_permissions(role_id)
        return RoleWithPermissions(
            **RoleResponse.model_validate(role).model_dump(),
            permissions=[PermissionResponse.model_validate(p) for p in permissions]
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get role error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get role"
        )

@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_update: RoleUpdate,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Update role
    """
    try:
        role_service = RoleService(session, cache)
        return await role_service.update_role(role_id, role_update, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update role error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update role"
        )

@router.delete("/{role_id}")
async def delete_role(
    role_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Delete role that no user holds
    """
    try:
        role_service = RoleService(session, cache)
        await role_service.delete_role(role_id, actor)
        return {"message": "Role deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Delete role error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete role"
        )

# ============================================================================
# PERMISSION ASSIGNMENT ENDPOINTS
# ============================================================================

@router.post("/{role_id}/assign-permission", response_model=AssignmentResult)
async def assign_permission_to_role(
    role_id: int,
    permission_id: int = Query(..., description="Permission ID to assign"),
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Assign a single permission to role (no-op if already assigned)
    """
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.assign_permission(role_id, permission_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Assign permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign permission"
        )

@router.delete("/{role_id}/remove-permission", response_model=AssignmentResult)
async def remove_permission_from_role(
    role_id: int,
    permission_id: int = Query(..., description="Permission ID to remove"),
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Remove a single permission from role
    """
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.remove_permission(role_id, permission_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Remove permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove permission"
        )

@router.post("/{role_id}/assign-permissions", response_model=AssignmentResult)
async def assign_multiple_permissions(
    role_id: int,
    assignment: PermissionIdsRequest,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Add multiple permissions in one batch; already assigned ones are skipped

    Example:
    ```json
    {
        "permission_ids": [1, 2, 3, 4, 5]
    }
    ```
    """
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.bulk_assign(role_id, assignment.permission_ids, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Bulk assign permissions error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign permissions"
        )

@router.put("/{role_id}/sync-permissions", response_model=AssignmentResult)
async def sync_role_permissions(
    role_id: int,
    assignment: PermissionIdsRequest,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Replace the role's permissions with exactly the given set
    """
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.sync_permissions(role_id, assignment.permission_ids, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Sync permissions error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync permissions"
        )

@router.get("/{role_id}/assigned-permissions", response_model=List[PermissionResponse])
async def get_assigned_permissions(
    role_id: int,
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    try:
        role_service = RoleService(session)
        if not await role_service.get_role(role_id):
            raise NotFoundError("Role not found")
        return await role_service.get_assigned_permissions(role_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get assigned permissions error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get assigned permissions"
        )

@router.get("/{role_id}/unassigned-permissions", response_model=List[PermissionResponse])
async def get_unassigned_permissions(
    role_id: int,
    session: AsyncSession = Depends(get_async_session),
    actor: Actor = Depends(get_actor)
):
    """
    Active permissions the role does not hold yet (for dropdowns)
    """
    try:
        role_service = RoleService(session)
        if not await role_service.get_role(role_id):
            raise NotFoundError("Role not found")
        return await role_service.get_unassigned_permissions(role_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get unassigned permissions error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get unassigned permissions"
        )

@router.get("/{role_id}/menus", response_model=List[MenuTreeNode])
async def get_role_menus(
    role_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Menu tree a holder of this role would see
    """
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.resolve_visible_for_role(role_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get role menus error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get role menus"
        )

# ============================================================================
# USER ASSIGNMENT ENDPOINTS
# ============================================================================

@router.post("/{role_id}/users/{user_id}", response_model=AssignmentResult)
async def assign_role_to_user(
    role_id: int,
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.assign_role_to_user(user_id, role_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Assign role to user error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign role"
        )

@router.delete("/{role_id}/users/{user_id}", response_model=AssignmentResult)
async def revoke_role_from_user(
    role_id: int,
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.revoke_role_from_user(user_id, role_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Revoke role from user error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke role"
        )
