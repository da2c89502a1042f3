from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=120)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Name must not be blank")
        return stripped


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AdminLoginRequest(LoginRequest):
    model_config = ConfigDict(populate_by_name=True)

    access_code: str = Field(
        validation_alias=AliasChoices("access_code", "accessCode"),
        description="Shared staff access code required on top of the password.",
    )


class UserProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    role: str = "user"
    tenant_id: str = Field(alias="tenantId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class AuthResponse(BaseModel):
    success: bool = True
    user: UserProfile


class TenantModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class TenantListResponse(BaseModel):
    success: bool = True
    tenants: list[TenantModel]
