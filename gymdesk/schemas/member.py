"""
schemas/member.py
-----------------
Pydantic request/response models for gym members.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from gymdesk.schemas.membership import MembershipCreate, MembershipRead


class MemberBase(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=5, max_length=32)
    email: Optional[EmailStr] = None
    gender: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = Field(default=None, max_length=255)
    emergency_contact_phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("full_name", "phone_number")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class MemberCreate(MemberBase):
    pass


class MemberRegister(BaseModel):
    """New member, optionally with their first membership in the same call."""
    member: MemberCreate
    membership: Optional[MembershipCreate] = None


class MemberUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone_number: Optional[str] = Field(default=None, min_length=5, max_length=32)
    email: Optional[EmailStr] = None
    gender: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = Field(default=None, max_length=255)
    emergency_contact_phone: Optional[str] = Field(default=None, max_length=32)


class MemberRead(BaseModel):
    id: str
    member_number: int
    full_name: str
    phone_number: str
    email: Optional[str]
    gender: Optional[str]
    date_of_birth: Optional[date]
    address: Optional[str]
    emergency_contact_name: Optional[str]
    emergency_contact_phone: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberRegistered(BaseModel):
    member: MemberRead
    membership: Optional[MembershipRead] = None
