import logging
from typing import Any, Dict, List, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import delete, func, or_, select
from app.auth.actor import Actor
from app.core.exceptions import (
    AlreadyExistsError,
    AuthorizationDeniedError,
    BaseAppException,
    HasChildrenError,
    InvalidHierarchyError,
    MaxDepthExceededError,
    NotFoundError,
    StorageFailureError,
    SystemProtectedError,
    ValidationError,
)
from app.core.logging import log_user_action
from app.models.auth.menu import MAX_MENU_LEVEL, Menu
from app.models.auth.menu_role import MenuRole
from app.models.auth.permission import Permission
from app.models.auth.role import Role
from app.models.shared.enums import EntityStatus
from app.schemas.auth.menu import MenuCreate, MenuOrderItem, MenuResponse, MenuUpdate
from app.services.auth.authorization_cache import AuthorizationCache, CacheKeys
from app.services.auth.authorization_service import AuthorizationService
from app.services.auth.hierarchy_validator import HierarchyIndex

logger = logging.getLogger(__name__)

# Columns carried over by duplicate()
COPIED_FIELDS = (
    "description", "parent_id", "level", "url", "route_name", "icon",
    "target", "type", "is_external", "required_permission_id", "css_class",
)

def _scope(parent_id: Optional[int]):
    """Sibling scope condition; roots share the NULL scope"""
    if parent_id is None:
        return Menu.parent_id.is_(None)
    return Menu.parent_id == parent_id

class MenuService:
    def __init__(self, session: AsyncSession, cache: AuthorizationCache):
        self.session = session
        self.cache = cache

    async def get_menu(self, menu_id: int) -> Optional[Menu]:
        """Get menu by ID"""
        result = await self.session.execute(
            select(Menu).where(
                Menu.id == menu_id,
                Menu.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_menu_by_name(self, name: str) -> Optional[Menu]:
        """Get menu by name"""
        result = await self.session.execute(
            select(Menu).where(
                Menu.name == name,
                Menu.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def _lock_menu(self, menu_id: int) -> Menu:
        result = await self.session.execute(
            select(Menu)
            .where(
                Menu.id == menu_id,
                Menu.is_deleted == False
            )
            .with_for_update()
        )
        menu = result.scalar_one_or_none()
        if not menu:
            raise NotFoundError(f"Menu {menu_id} not found")
        return menu

    async def _load_index(self) -> HierarchyIndex:
        result = await self.session.execute(
            select(Menu.id, Menu.parent_id).where(Menu.is_deleted == False)
        )
        return HierarchyIndex.from_rows(result.all())

    async def _next_sort_order(self, parent_id: Optional[int]) -> int:
        max_order = await self.session.scalar(
            select(func.max(Menu.sort_order)).where(_scope(parent_id), Menu.is_deleted == False)
        )
        return (max_order or 0) + 1

    async def _sort_order_taken(
        self,
        parent_id: Optional[int],
        sort_order: int,
        exclude_id: Optional[int] = None
    ) -> bool:
        conditions = [_scope(parent_id), Menu.sort_order == sort_order, Menu.is_deleted == False]
        if exclude_id is not None:
            conditions.append(Menu.id != exclude_id)
        count = await self.session.scalar(select(func.count(Menu.id)).where(*conditions))
        return bool(count)

    async def _require_permission(self, permission_id: int) -> None:
        exists = await self.session.scalar(
            select(Permission.id).where(Permission.id == permission_id, Permission.is_deleted == False)
        )
        if not exists:
            raise NotFoundError(f"Permission {permission_id} not found")

    async def _lock_parent(self, parent_id: int) -> Menu:
        parent = await self._lock_menu(parent_id)
        if not parent.is_active:
            raise InvalidHierarchyError(f"Parent menu '{parent.name}' is inactive")
        return parent

    async def get_menu_role_ids(self, menu_id: int) -> List[int]:
        result = await self.session.execute(
            select(MenuRole.role_id).where(MenuRole.menu_id == menu_id)
        )
        return sorted(set(result.scalars().all()))

    async def create_menu(self, menu_create: MenuCreate, actor: Actor) -> Menu:
        """Create a menu at most MAX_MENU_LEVEL levels below a root"""
        try:
            existing_menu = await self.get_menu_by_name(menu_create.name)
            if existing_menu:
                raise AlreadyExistsError(f"Menu name '{menu_create.name}' already exists")

            level = 0
            if menu_create.parent_id is not None:
                parent = await self._lock_parent(menu_create.parent_id)
                if parent.level >= MAX_MENU_LEVEL:
                    raise MaxDepthExceededError(
                        f"Menu '{parent.name}' is at level {parent.level} and cannot have children"
                    )
                level = parent.level + 1

            if menu_create.required_permission_id is not None:
                await self._require_permission(menu_create.required_permission_id)

            sort_order = menu_create.sort_order
            if sort_order is None:
                sort_order = await self._next_sort_order(menu_create.parent_id)
            elif await self._sort_order_taken(menu_create.parent_id, sort_order):
                raise ValidationError(f"Sort order {sort_order} is already used by a sibling menu")

            db_menu = Menu(
                **menu_create.model_dump(exclude={"sort_order"}),
                level=level,
                sort_order=sort_order,
                is_system_menu=False,
                created_by=actor.id,
            )

            self.session.add(db_menu)
            await self.session.commit()

            logger.info(f"Menu created: {menu_create.name} (level {level})")
            log_user_action(actor.id, "create", "menu", db_menu.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating menu: {str(e)}")
            raise StorageFailureError("Error creating menu")

        await self.cache.invalidate_menu_tree()
        return db_menu

    async def update_menu(self, menu_id: int, menu_update: MenuUpdate, actor: Actor) -> Menu:
        """
        Update a menu

        A parent change is validated against the tree as it stands inside
        this transaction, then the levels of the whole moved subtree are
        recomputed top-down.
        """
        try:
            menu = await self._lock_menu(menu_id)

            if menu.is_system_menu and not actor.is_elevated:
                logger.warning(f"Actor {actor.id} denied update of system menu {menu.name}")
                raise AuthorizationDeniedError("System menus can only be edited by an elevated actor")

            update_data = menu_update.model_dump(exclude_unset=True)
            new_parent_id = update_data.pop("parent_id", menu.parent_id)
            requested_order = update_data.pop("sort_order", None)

            if "name" in update_data and update_data["name"] != menu.name:
                existing_menu = await self.get_menu_by_name(update_data["name"])
                if existing_menu:
                    raise AlreadyExistsError(f"Menu name '{update_data['name']}' already exists")

            if update_data.get("required_permission_id") is not None:
                await self._require_permission(update_data["required_permission_id"])

            if new_parent_id != menu.parent_id:
                await self._reparent(menu, new_parent_id)
                if requested_order is None and await self._sort_order_taken(
                    new_parent_id, menu.sort_order, exclude_id=menu.id
                ):
                    menu.sort_order = await self._next_sort_order(new_parent_id)

            if requested_order is not None and requested_order != menu.sort_order:
                if await self._sort_order_taken(menu.parent_id, requested_order, exclude_id=menu.id):
                    raise ValidationError(f"Sort order {requested_order} is already used by a sibling menu")
                menu.sort_order = requested_order

            for field, value in update_data.items():
                setattr(menu, field, value)
            menu.updated_by = actor.id

            await self.session.commit()

            logger.info(f"Menu updated: {menu.name}")
            log_user_action(actor.id, "update", "menu", menu.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error updating menu: {str(e)}")
            raise StorageFailureError("Error updating menu")

        await self.cache.invalidate_menu_tree()
        return menu

    async def _reparent(self, menu: Menu, new_parent_id: Optional[int]) -> None:
        if new_parent_id is not None:
            await self._lock_parent(new_parent_id)

        index = await self._load_index()
        if index.would_cycle(menu.id, new_parent_id):
            raise InvalidHierarchyError(
                f"Menu {new_parent_id} cannot be the parent of menu {menu.id}"
            )

        # Level comes from the parent chain itself, not the parent's stored level
        new_level = 0 if new_parent_id is None else index.depth(new_parent_id) + 1

        height = index.subtree_height(menu.id)
        if new_level + height > MAX_MENU_LEVEL:
            raise MaxDepthExceededError(
                f"Moving menu '{menu.name}' would place its subtree at level {new_level + height}"
            )

        index.move(menu.id, new_parent_id)
        menu.parent_id = new_parent_id
        menu.level = new_level

        descendant_ids = index.descendants(menu.id)
        if not descendant_ids:
            return

        result = await self.session.execute(
            select(Menu).where(Menu.id.in_(descendant_ids)).with_for_update()
        )
        levels = {menu.id: new_level}
        by_id = {child.id: child for child in result.scalars().all()}
        # Breadth-first order: a parent's level is set before its children
        for child_id in descendant_ids:
            levels[child_id] = levels[index.parents[child_id]] + 1
            by_id[child_id].level = levels[child_id]

    async def delete_menu(self, menu_id: int, actor: Actor) -> bool:
        """Soft delete a childless, non-system menu and drop its grants"""
        try:
            menu = await self._lock_menu(menu_id)

            if menu.is_system_menu:
                logger.warning(f"Actor {actor.id} attempted to delete system menu {menu.name}")
                raise SystemProtectedError("System menus cannot be deleted")

            child_count = await self.session.scalar(
                select(func.count(Menu.id)).where(
                    Menu.parent_id == menu.id,
                    Menu.is_deleted == False
                )
            )
            if child_count:
                raise HasChildrenError(f"Menu has {child_count} child menus")

            await self.session.execute(delete(MenuRole).where(MenuRole.menu_id == menu.id))

            menu.is_deleted = True
            menu.is_active = False
            menu.updated_by = actor.id

            await self.session.commit()
            logger.info(f"Menu deleted: {menu.name}")
            log_user_action(actor.id, "delete", "menu", menu.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error deleting menu: {str(e)}")
            raise StorageFailureError("Error deleting menu")

        await self.cache.invalidate_menu_tree()
        return True

    async def reorder(self, items: List[MenuOrderItem], actor: Actor) -> List[Menu]:
        """Apply a batch of sort orders; each parent scope must stay collision free"""
        new_orders = {item.id: item.sort_order for item in items}
        if len(new_orders) != len(items):
            raise ValidationError("Each menu may appear only once in a reorder request")

        try:
            result = await self.session.execute(
                select(Menu)
                .where(Menu.id.in_(new_orders), Menu.is_deleted == False)
                .with_for_update()
            )
            menus = result.scalars().all()
            missing = set(new_orders) - {menu.id for menu in menus}
            if missing:
                raise NotFoundError(f"Menus not found: {sorted(missing)}")

            for menu in menus:
                if menu.is_system_menu and not actor.is_elevated:
                    raise AuthorizationDeniedError(f"Cannot reorder system menu '{menu.name}'")

            for parent_id in {menu.parent_id for menu in menus}:
                siblings = (await self.session.execute(
                    select(Menu.id, Menu.sort_order).where(_scope(parent_id), Menu.is_deleted == False)
                )).all()
                final = [new_orders.get(sibling_id, order) for sibling_id, order in siblings]
                if len(final) != len(set(final)):
                    raise ValidationError(f"Duplicate sort order under parent {parent_id}")

            for menu in menus:
                menu.sort_order = new_orders[menu.id]
                menu.updated_by = actor.id

            await self.session.commit()
            logger.info(f"Menus reordered: {len(menus)}")
            log_user_action(actor.id, "reorder", "menu", None, count=len(menus))

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error reordering menus: {str(e)}")
            raise StorageFailureError("Error reordering menus")

        await self.cache.invalidate_menu_tree()
        return sorted(menus, key=lambda m: (m.parent_id or 0, m.sort_order))

    async def duplicate(self, menu_id: int, actor: Actor) -> Menu:
        """Copy a menu next to the original, inactive and with the same grants"""
        try:
            source = await self._lock_menu(menu_id)

            name = f"{source.name}_copy"
            suffix = 1
            while await self.get_menu_by_name(name):
                suffix += 1
                name = f"{source.name}_copy_{suffix}"

            db_menu = Menu(
                **{field: getattr(source, field) for field in COPIED_FIELDS},
                name=name,
                title=f"{source.title} (Copy)",
                sort_order=await self._next_sort_order(source.parent_id),
                is_active=False,
                is_system_menu=False,
                created_by=actor.id,
            )
            self.session.add(db_menu)
            await self.session.flush()

            role_ids = await self.get_menu_role_ids(source.id)
            self.session.add_all([
                MenuRole(menu_id=db_menu.id, role_id=role_id, created_by=actor.id) for role_id in role_ids
            ])

            await self.session.commit()
            logger.info(f"Menu duplicated: {source.name} -> {name}")
            log_user_action(actor.id, "duplicate", "menu", db_menu.id, source_id=source.id)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error duplicating menu: {str(e)}")
            raise StorageFailureError("Error duplicating menu")

        await self.cache.invalidate_menu_tree()
        return db_menu

    async def toggle_active(self, menu_id: int, actor: Actor) -> Menu:
        try:
            menu = await self._lock_menu(menu_id)

            if menu.is_system_menu and not actor.is_elevated:
                raise AuthorizationDeniedError("System menus can only be toggled by an elevated actor")

            menu.is_active = not menu.is_active
            menu.updated_by = actor.id

            await self.session.commit()
            logger.info(f"Menu {menu.name} {'activated' if menu.is_active else 'deactivated'}")
            log_user_action(actor.id, "toggle_active", "menu", menu.id, is_active=menu.is_active)

        except BaseAppException:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error toggling menu: {str(e)}")
            raise StorageFailureError("Error toggling menu")

        await self.cache.invalidate_menu_tree()
        return menu

    async def get_menus(
        self,
        page_index: int = 1,
        page_size: int = 50,
        level: Optional[int] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        """Get paginated flat list of menus"""
        conditions = [Menu.is_deleted == False]

        if level is not None:
            conditions.append(Menu.level == level)
        if is_active is not None:
            conditions.append(Menu.is_active == is_active)
        if search:
            search_term = f"%{search}%"
            conditions.append(or_(Menu.name.ilike(search_term), Menu.title.ilike(search_term)))

        total_count = await self.session.scalar(
            select(func.count(Menu.id)).where(*conditions)
        )

        skip = (page_index - 1) * page_size

        menus = await self.session.scalars(
            select(Menu)
            .where(*conditions)
            .order_by(Menu.level, Menu.sort_order, Menu.id)
            .offset(skip)
            .limit(page_size)
        )

        return {
            "page_index": page_index,
            "page_size": page_size,
            "count": total_count or 0,
            "data": menus.all()
        }

    async def get_hierarchy(self) -> List[Dict[str, Any]]:
        """Full admin tree including inactive menus, with granted role ids"""
        result = await self.session.execute(
            select(Menu)
            .where(Menu.is_deleted == False)
            .order_by(Menu.level, Menu.sort_order, Menu.id)
        )
        menus = result.scalars().all()

        grants: Dict[int, List[int]] = {}
        for menu_id, role_id in (await self.session.execute(
            select(MenuRole.menu_id, MenuRole.role_id).order_by(MenuRole.role_id)
        )).all():
            grants.setdefault(menu_id, []).append(role_id)

        return self._build_tree(menus, grants)

    async def get_breadcrumb(self, menu_id: int) -> List[Dict[str, Any]]:
        """Path from the root down to the menu itself"""
        menu = await self.get_menu(menu_id)
        if not menu:
            raise NotFoundError(f"Menu {menu_id} not found")

        index = await self._load_index()
        path_ids = index.ancestors(menu.id)
        result = await self.session.execute(select(Menu).where(Menu.id.in_(path_ids)))
        by_id = {m.id: m for m in result.scalars().all()}

        trail = [by_id[i] for i in path_ids] + [menu]
        return [
            {"id": m.id, "title": m.title, "url": m.url, "icon": m.icon, "is_active": m.id == menu.id}
            for m in trail
        ]

    @staticmethod
    def _build_tree(menus: List[Menu], grants: Optional[Dict[int, List[int]]] = None) -> List[Dict[str, Any]]:
        """Nest menus already ordered by (level, sort_order); orphans are dropped"""
        nodes: Dict[int, Dict[str, Any]] = {}
        roots: List[Dict[str, Any]] = []
        for menu in menus:
            node = MenuResponse.model_validate(menu).model_dump(mode="json")
            if grants is not None:
                node["role_ids"] = grants.get(menu.id, [])
            node["children"] = []

            if menu.parent_id is None:
                roots.append(node)
            elif menu.parent_id in nodes:
                nodes[menu.parent_id]["children"].append(node)
            else:
                continue
            nodes[menu.id] = node
        return roots

    async def _build_visible_tree(self, role_ids: Set[int], permission_ids: Set[int]) -> List[Dict[str, Any]]:
        """
        Menus visible to a holder of role_ids and permission_ids

        A menu without grants is unrestricted. A granted menu needs one of the
        roles, a required permission must be held, and a menu whose parent
        is hidden is hidden with its whole subtree.
        """
        result = await self.session.execute(
            select(Menu)
            .where(Menu.is_active == True, Menu.is_deleted == False)
            .order_by(Menu.level, Menu.sort_order, Menu.id)
        )
        menus = result.scalars().all()

        grants: Dict[int, Set[int]] = {}
        for menu_id, role_id in (await self.session.execute(
            select(MenuRole.menu_id, MenuRole.role_id)
        )).all():
            grants.setdefault(menu_id, set()).add(role_id)

        visible = []
        for menu in menus:
            granted = grants.get(menu.id)
            if granted and not granted & role_ids:
                continue
            if menu.required_permission_id is not None and menu.required_permission_id not in permission_ids:
                continue
            visible.append(menu)

        return self._build_tree(visible)

    async def resolve_visible_for(self, user_id: int) -> List[Dict[str, Any]]:
        """Menu tree one user may see, cached per menu generation"""
        key = CacheKeys.user_menus(user_id)
        generation = await self.cache.menu_generation()
        cached = await self.cache.get(key)
        if cached is not None and cached.get("generation") == generation:
            return cached["menus"]

        view = await AuthorizationService(self.session, self.cache).get_user_permissions(user_id)
        menus = await self._build_visible_tree(set(view["roles"]), set(view["permission_ids"]))

        await self.cache.put(key, {"generation": generation, "menus": menus})
        logger.debug(f"Resolved menu tree for user {user_id}")
        return menus

    async def resolve_visible_for_role(self, role_id: int) -> List[Dict[str, Any]]:
        """Menu tree a holder of only this role would see"""
        role = await self.session.scalar(
            select(Role).where(Role.id == role_id, Role.is_deleted == False)
        )
        if not role:
            raise NotFoundError(f"Role {role_id} not found")

        key = CacheKeys.role_menus(role_id)
        generation = await self.cache.menu_generation()
        cached = await self.cache.get(key)
        if cached is not None and cached.get("generation") == generation:
            return cached["menus"]

        view = await AuthorizationService(self.session, self.cache).get_role_permissions(role_id)
        role_ids = {role.id} if role.status == EntityStatus.ACTIVE else set()
        menus = await self._build_visible_tree(role_ids, set(view["permission_ids"]))

        await self.cache.put(key, {"generation": generation, "menus": menus})
        return menus
