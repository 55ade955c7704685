import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_actor, get_cache
from app.auth.actor import Actor
from app.core.database import get_async_session
from app.core.exceptions import NotFoundError
from app.schemas.auth.menu import (
    BreadcrumbItem,
    BulkMenuRolesRequest,
    MenuCreate,
    MenuReorderRequest,
    MenuResponse,
    MenuRolesRequest,
    MenuTreeNode,
    MenuUpdate,
)
from app.schemas.auth.role import AssignmentResult
from app.schemas.common.pagination import PaginatedResponse
from app.services.auth.assignment_service import AssignmentService
from app.services.auth.authorization_cache import AuthorizationCache
from app.services.auth.menu_service import MenuService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/", response_model=MenuResponse, status_code=status.HTTP_201_CREATED)
async def create_menu(
    menu_create: MenuCreate,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Create menu (at most three levels deep)
    """
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.create_menu(menu_create, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Create menu error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create menu"
        )

@router.get("/", response_model=PaginatedResponse[MenuResponse])
async def get_menus(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=1000),
    level: Optional[int] = Query(None, ge=0, le=2),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.get_menus(
            page_index=page_index,
            page_size=page_size,
            level=level,
            is_active=is_active,
            search=search
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get menus error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get menus"
        )

@router.get("/hierarchy", response_model=List[MenuTreeNode])
async def get_menu_hierarchy(
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Full menu tree for administration, inactive menus included
    """
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.get_hierarchy()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get menu hierarchy error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get menu hierarchy"
        )

@router.get("/visible/{user_id}", response_model=List[MenuTreeNode])
async def get_visible_menus(
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Menu tree the given user may see
    """
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.resolve_visible_for(user_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get visible menus error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get visible menus"
        )

@router.put("/reorder", response_model=List[MenuResponse])
async def reorder_menus(
    reorder: MenuReorderRequest,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Set sort orders for several menus at once

    Example:
    ```json
    {
        "items": [{"id": 3, "sort_order": 1}, {"id": 2, "sort_order": 2}]
    }
    ```
    """
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.reorder(reorder.items, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Reorder menus error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reorder menus"
        )

@router.post("/bulk-roles", response_model=AssignmentResult)
async def bulk_menu_roles(
    request: BulkMenuRolesRequest,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Grant or revoke the same roles on several menus
    """
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.bulk_menu_roles(
            request.menu_ids, request.role_ids, request.action, actor
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Bulk menu roles error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update menu roles"
        )

@router.get("/{menu_id}", response_model=MenuTreeNode)
async def get_menu(
    menu_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        menu_service = MenuService(session, cache)
        menu = await menu_service.get_menu(menu_id)
        if not menu:
            raise NotFoundError("Menu not found")

        return MenuTreeNode(
            **MenuResponse.model_validate(menu).model_dump(),
            role_ids=await menu_service.get_menu_role_ids(menu_id)
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get menu error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get menu"
        )

@router.put("/{menu_id}", response_model=MenuResponse)
async def update_menu(
    menu_id: int,
    menu_update: MenuUpdate,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Update menu; a parent change moves the whole subtree
    """
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.update_menu(menu_id, menu_update, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update menu error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update menu"
        )

@router.delete("/{menu_id}")
async def delete_menu(
    menu_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        menu_service = MenuService(session, cache)
        await menu_service.delete_menu(menu_id, actor)
        return {"message": "Menu deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Delete menu error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete menu"
        )

@router.post("/{menu_id}/duplicate", response_model=MenuResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_menu(
    menu_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.duplicate(menu_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Duplicate menu error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to duplicate menu"
        )

@router.post("/{menu_id}/toggle-active", response_model=MenuResponse)
async def toggle_menu_active(
    menu_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.toggle_active(menu_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Toggle menu error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to toggle menu"
        )

@router.get("/{menu_id}/breadcrumb", response_model=List[BreadcrumbItem])
async def get_menu_breadcrumb(
    menu_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        menu_service = MenuService(session, cache)
        return await menu_service.get_breadcrumb(menu_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get breadcrumb error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get breadcrumb"
        )

@router.put("/{menu_id}/roles", response_model=AssignmentResult)
async def sync_menu_roles(
    menu_id: int,
    request: MenuRolesRequest,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    """
    Replace the roles allowed to see the menu; an empty list makes it unrestricted
    """
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.sync_menu_roles(menu_id, request.role_ids, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Sync menu roles error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign menu roles"
        )

@router.delete("/{menu_id}/roles/{role_id}", response_model=AssignmentResult)
async def remove_menu_role(
    menu_id: int,
    role_id: int,
    session: AsyncSession = Depends(get_async_session),
    cache: AuthorizationCache = Depends(get_cache),
    actor: Actor = Depends(get_actor)
):
    try:
        assignment_service = AssignmentService(session, cache)
        return await assignment_service.remove_menu_role(menu_id, role_id, actor)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Remove menu role error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove menu role"
        )
