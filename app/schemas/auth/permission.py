import re
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from app.models.shared.enums import EntityStatus

PERMISSION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+([.:][A-Za-z0-9_*]+)*$")

def _validate_name(v: str) -> str:
    v = v.strip()
    if not PERMISSION_NAME_PATTERN.match(v):
        raise ValueError("Permission name must be a dotted or underscored token, e.g. 'content.edit'")
    return v

class PermissionBase(BaseModel):
    name: str = Field(..., max_length=100)
    display_name: str = Field(..., max_length=150)
    description: Optional[str] = None
    module: str = Field(..., max_length=100)
    action: str = Field(..., max_length=50)
    resource: Optional[str] = None
    group: Optional[str] = None
    sort_order: int = 0
    status: EntityStatus = EntityStatus.ACTIVE
    conditions: Optional[Dict[str, Any]] = None
    parent_id: Optional[int] = None

class PermissionCreate(PermissionBase):
    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _validate_name(v)

class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    display_name: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = None
    module: Optional[str] = None
    action: Optional[str] = None
    resource: Optional[str] = None
    group: Optional[str] = None
    sort_order: Optional[int] = None
    status: Optional[EntityStatus] = None
    conditions: Optional[Dict[str, Any]] = None
    # Explicit null moves the permission to the root
    parent_id: Optional[int] = None

    @field_validator("name", "display_name", "module", "action", "sort_order", "status")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _validate_name(v) if v is not None else v

class PermissionResponse(PermissionBase):
    id: int
    is_system: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PermissionTreeNode(PermissionResponse):
    children: List["PermissionTreeNode"] = []

class PermissionModuleGroup(BaseModel):
    module: str
    permissions: List[PermissionTreeNode] = []
