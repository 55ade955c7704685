from sqlalchemy import Column, Integer, String, Text, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.models.shared.enums import EntityStatus

class Role(BaseModel):
    __tablename__ = "roles"

    name = Column(String(100), index=True, nullable=False)
    display_name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    # Ordering hint only, lower = more senior
    level = Column(Integer, default=100, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    status = Column(SQLEnum(EntityStatus), default=EntityStatus.ACTIVE, nullable=False)

    # Relationships
    user_roles = relationship("UserRole", back_populates="role")
    role_permissions = relationship("RolePermission", back_populates="role")
    menu_roles = relationship("MenuRole", back_populates="role")

    def __repr__(self):
        return f"<Role {self.name}>"
