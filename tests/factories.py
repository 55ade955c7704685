from typing import List, Optional
from sqlalchemy import update
from app.auth.actor import Actor
from app.models.auth.menu import Menu
from app.schemas.auth.menu import MenuCreate
from app.schemas.auth.permission import PermissionCreate
from app.schemas.auth.role import RoleCreate
from app.services.auth.assignment_service import AssignmentService
from app.services.auth.menu_service import MenuService
from app.services.auth.permission_service import PermissionService
from app.services.auth.role_service import RoleService

SEED_ACTOR = Actor.system()

async def create_permission(session, name: str, parent_id: Optional[int] = None, **fields) -> int:
    module, _, action = name.partition(".")
    permission = await PermissionService(session).create_permission(
        PermissionCreate(
            name=name,
            display_name=fields.pop("display_name", name.title()),
            module=fields.pop("module", module),
            action=fields.pop("action", action or "access"),
            parent_id=parent_id,
            **fields
        ),
        SEED_ACTOR,
    )
    return permission.id

async def create_role(session, name: str, **fields) -> int:
    role = await RoleService(session).create_role(
        RoleCreate(name=name, display_name=fields.pop("display_name", name.title()), **fields),
        SEED_ACTOR,
    )
    return role.id

async def create_menu(session, cache, name: str, parent_id: Optional[int] = None, **fields) -> int:
    menu = await MenuService(session, cache).create_menu(
        MenuCreate(name=name, title=fields.pop("title", name.title()), parent_id=parent_id, **fields),
        SEED_ACTOR,
    )
    return menu.id

async def grant(session, cache, role_id: int, permission_ids: List[int]) -> None:
    await AssignmentService(session, cache).bulk_assign(role_id, permission_ids, SEED_ACTOR)

async def give_role(session, cache, user_id: int, role_id: int) -> None:
    await AssignmentService(session, cache).assign_role_to_user(user_id, role_id, SEED_ACTOR)

async def mark_system(session, model, entity_id: int) -> None:
    """System flags are never set through the services"""
    column = "is_system_menu" if model is Menu else "is_system"
    await session.execute(update(model).where(model.id == entity_id).values({column: True}))
    await session.commit()
