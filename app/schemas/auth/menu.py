from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from app.models.shared.enums import GrantAction, MenuTarget, MenuType

class MenuBase(BaseModel):
    name: str = Field(..., max_length=100)
    title: str = Field(..., max_length=150)
    description: Optional[str] = None
    url: Optional[str] = Field(None, max_length=500)
    route_name: Optional[str] = None
    icon: Optional[str] = None
    target: MenuTarget = MenuTarget.SELF
    type: MenuType = MenuType.LINK
    is_external: bool = False
    is_active: bool = True
    required_permission_id: Optional[int] = None
    css_class: Optional[str] = None

class MenuCreate(MenuBase):
    parent_id: Optional[int] = None
    # Defaults to the next free slot among siblings
    sort_order: Optional[int] = Field(None, ge=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError("Menu name must be at least 2 characters")
        return v.strip()

class MenuUpdate(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    route_name: Optional[str] = None
    icon: Optional[str] = None
    target: Optional[MenuTarget] = None
    type: Optional[MenuType] = None
    is_external: Optional[bool] = None
    is_active: Optional[bool] = None
    required_permission_id: Optional[int] = None
    css_class: Optional[str] = None
    # Explicit null moves the menu to the root
    parent_id: Optional[int] = None
    sort_order: Optional[int] = Field(None, ge=1)

    @field_validator("name", "title", "target", "type", "is_external", "is_active")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

class MenuResponse(MenuBase):
    id: int
    parent_id: Optional[int] = None
    level: int
    sort_order: int
    is_system_menu: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MenuTreeNode(MenuResponse):
    role_ids: List[int] = []
    children: List["MenuTreeNode"] = []

class MenuOrderItem(BaseModel):
    id: int
    sort_order: int = Field(..., ge=1)

class MenuReorderRequest(BaseModel):
    items: List[MenuOrderItem] = Field(..., min_length=1)

class MenuRolesRequest(BaseModel):
    role_ids: List[int] = []

class BulkMenuRolesRequest(BaseModel):
    menu_ids: List[int] = Field(..., min_length=1)
    role_ids: List[int] = Field(..., min_length=1)
    action: GrantAction

class BreadcrumbItem(BaseModel):
    id: int
    title: str
    url: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool = False
