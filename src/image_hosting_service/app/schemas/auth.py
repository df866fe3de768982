from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("email address is not valid")
        return value


class RegisterResponse(BaseModel):
    message: str
    requires_verification: bool


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class IdentityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    email_verified: bool
    is_admin: bool
    plan: str
    storage_used: int = Field(..., description="Bytes stored")
    storage_limit: int = Field(..., description="Bytes allowed")


class TokenResponse(BaseModel):
    message: str = "Login successful"
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: IdentityResponse


class MessageResponse(BaseModel):
    message: str


class ApiKeyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ApiKeyInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    prefix: str
    is_active: bool
    request_count: int
    last_used_at: datetime | None = None
    created_at: datetime


class ApiKeyCreatedResponse(BaseModel):
    """The raw key is only ever returned here."""

    id: UUID
    name: str
    prefix: str
    key: str
    created_at: datetime


class ApiKeyListResponse(BaseModel):
    api_keys: list[ApiKeyInfo]
