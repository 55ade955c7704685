from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from app.models.shared.enums import EntityStatus
from app.schemas.auth.permission import PermissionResponse

class RoleBase(BaseModel):
    name: str = Field(..., max_length=100)
    display_name: str = Field(..., max_length=150)
    description: Optional[str] = None
    level: int = Field(100, ge=0)
    is_default: bool = False
    status: EntityStatus = EntityStatus.ACTIVE

class RoleCreate(RoleBase):
    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError("Role name must be at least 2 characters")
        return v.strip()

class RoleUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    level: Optional[int] = Field(None, ge=0)
    is_default: Optional[bool] = None
    status: Optional[EntityStatus] = None

    # Omit a field to keep it; null is not a value for any of them
    @field_validator("name", "display_name", "level", "is_default", "status")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

class RoleResponse(RoleBase):
    id: int
    is_system: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RoleWithPermissions(RoleResponse):
    permissions: List[PermissionResponse] = []

class PermissionIdsRequest(BaseModel):
    """Permission ids for bulk assignment or sync"""
    permission_ids: List[int] = []

class AssignmentResult(BaseModel):
    # None for bulk operations spanning several targets
    target_id: Optional[int] = None
    added: int = 0
    removed: int = 0
    unchanged: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)

class PermissionMatrixRow(BaseModel):
    permission_id: int
    permission_name: str
    display_name: str
    module: str
    group: Optional[str] = None
    roles: Dict[int, bool] = {}

class PermissionMatrix(BaseModel):
    roles: List[RoleResponse] = []
    rows: List[PermissionMatrixRow] = []

class UserPermissions(BaseModel):
    """Effective authorization view of one user"""
    user_id: int
    roles: List[int] = []
    permission_ids: List[int] = []
    permissions: List[str] = []

class PermissionCheckResult(BaseModel):
    user_id: int
    permission: str
    allowed: bool
