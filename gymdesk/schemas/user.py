"""
schemas/user.py
---------------
Pydantic models for staff users, login, and credential flows.

Security note:
  - hashed_password is NEVER included in any response schema.
  - Session tokens are returned once at login (and set as a cookie);
    one-time codes are never returned at all.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class StaffCreate(BaseModel):
    """Used by admins / staff managers to add a user to their company."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=32)
    password: str = Field(..., min_length=8, max_length=128)
    role_id: str


class UserRead(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str]
    role_id: Optional[str]
    company_id: str
    is_verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class IdentityRead(BaseModel):
    user_id: str
    tenant_id: Optional[str]
    role: str
    display_name: str
    is_admin: bool
    is_super_admin: bool = False
    permissions: List[str] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: IdentityRead


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordReset(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=8, max_length=128)


class EmailVerify(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=6, max_length=6)


class MessageResponse(BaseModel):
    success: bool = True
    message: str
