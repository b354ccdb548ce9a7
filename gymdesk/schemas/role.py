"""
schemas/role.py
---------------
Pydantic models for roles and the permission catalog.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)

    @field_validator("name", "description")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class RoleUpdate(RoleCreate):
    pass


class RoleRead(BaseModel):
    id: str
    name: str
    description: str
    is_protected: bool

    model_config = {"from_attributes": True}


class RoleSummary(RoleRead):
    permission_count: int = 0
    user_count: int = 0


class RolePermissionsUpdate(BaseModel):
    permissions: List[str]


class RolePermissionsRead(BaseModel):
    role_id: str
    permissions: List[str]


class PermissionRead(BaseModel):
    name: str
    label: str
    description: str
    module: str
    category: str


class ModuleRead(BaseModel):
    key: str
    name: str
    description: str
    permissions: List[PermissionRead]
