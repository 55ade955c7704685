from sqlalchemy import Boolean, Column, Integer, String, Text, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.models.shared.enums import EntityStatus

class Permission(BaseModel):
    __tablename__ = "permissions"

    # Unique among non-deleted rows only; enforced by PermissionService
    name = Column(String(100), index=True, nullable=False)       # e.g. 'content.edit'
    display_name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    module = Column(String(100), nullable=False, index=True)     # e.g. 'content', 'users'
    action = Column(String(50), nullable=False)                  # e.g. 'view', 'edit'
    resource = Column(String(100), nullable=True)
    group = Column(String(100), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    status = Column(SQLEnum(EntityStatus), default=EntityStatus.ACTIVE, nullable=False)
    conditions = Column(JSON, nullable=True)
    parent_id = Column(Integer, ForeignKey("permissions.id"), nullable=True, index=True)

    # Relationships
    role_permissions = relationship("RolePermission", back_populates="permission")

    def __repr__(self):
        return f"<Permission {self.name}>"
