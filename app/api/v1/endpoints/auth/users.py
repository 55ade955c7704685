import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_actor, get_cache
from app.auth.actor import Actor
from app.core.database import get_async_session
from app.schemas.auth.role import PermissionCheckResult, UserPermissions
from app.services.auth.authorization_cache import AuthorizationCache
from app.services.auth.authorization_service import AuthorizationService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/{user_id}/permissions", response_model=UserPermissions)
async def get_user_permissions(
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Roles and effective permissions of a user (served from cache when warm)
    """
    try:
        authorization_service = AuthorizationService(session, cache)
        view = await authorization_service.get_user_permissions(user_id)
        return UserPermissions(user_id=user_id, **view)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get user permissions error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get user permissions"
        )

@router.get("/{user_id}/can", response_model=PermissionCheckResult)
async def check_user_permission(
    user_id: int,
    permission: str = Query(..., min_length=1, description="Permission name, e.g. 'users.edit'"),
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        authorization_service = AuthorizationService(session, cache)
        allowed = await authorization_service.user_can(user_id, permission)
        return PermissionCheckResult(user_id=user_id, permission=permission, allowed=allowed)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Check user permission error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check permission"
        )
