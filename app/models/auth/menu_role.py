from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class MenuRole(BaseModel):
    __tablename__ = "menu_roles"

    menu_id = Column(Integer, ForeignKey("menus.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("menu_id", "role_id", name="uq_menu_role"),
    )

    # Relationships
    menu = relationship("Menu", back_populates="menu_roles")
    role = relationship("Role", back_populates="menu_roles")

    def __repr__(self):
        return f"<MenuRole menu_id={self.menu_id} role_id={self.role_id}>"
