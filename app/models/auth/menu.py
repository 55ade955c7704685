from sqlalchemy import Boolean, Column, Integer, String, Text, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.models.shared.enums import MenuTarget, MenuType

MAX_MENU_LEVEL = 2

class Menu(BaseModel):
    __tablename__ = "menus"

    name = Column(String(100), index=True, nullable=False)
    title = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("menus.id"), nullable=True, index=True)
    # 0 = root, never above MAX_MENU_LEVEL
    level = Column(Integer, default=0, nullable=False)
    sort_order = Column(Integer, default=1, nullable=False)
    url = Column(String(500), nullable=True)
    route_name = Column(String(150), nullable=True)
    icon = Column(String(100), nullable=True)
    target = Column(SQLEnum(MenuTarget), default=MenuTarget.SELF, nullable=False)
    type = Column(SQLEnum(MenuType), default=MenuType.LINK, nullable=False)
    is_external = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_system_menu = Column(Boolean, default=False, nullable=False)
    required_permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=True)
    css_class = Column(String(150), nullable=True)

    # Relationships
    menu_roles = relationship("MenuRole", back_populates="menu")

    def __repr__(self):
        return f"<Menu {self.name} level={self.level}>"
