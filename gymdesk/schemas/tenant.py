"""
schemas/tenant.py
-----------------
Pydantic request/response models for Company (tenant) onboarding.

Naming convention:
  CompanyRegister → inbound request body
  CompanyRead     → outbound response body (never exposes internal fields)
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


class CompanyRegister(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=255,
        examples=["Iron Temple Fitness"],
        description="Company / gym name",
    )
    subdomain: str = Field(..., min_length=2, max_length=63, pattern=r"^[A-Za-z0-9-]+$")
    admin_name: str = Field(..., min_length=1, max_length=255)
    admin_email: EmailStr
    admin_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("subdomain")
    @classmethod
    def normalise_subdomain(cls, v: str) -> str:
        return v.strip().lower()


class CompanyRead(BaseModel):
    id: str
    name: str
    subdomain: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CompanyStatusUpdate(BaseModel):
    is_active: bool
