"""
Pydantic schemas for user-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from ticketing.models.user import SIGNUP_ROLES
from ticketing.schemas.common import CamelModel


class UserCreate(CamelModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    role: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required.")
        return value

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value: Optional[str]) -> str:
        # Self-service signup can never grant admin
        return value if value in SIGNUP_ROLES else "user"


class UserLogin(CamelModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserResponse(CamelModel):
    id: int
    email: str
    name: str
    role: str
    is_active: bool
    created_at: datetime


class AuthResult(CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class UserProfile(CamelModel):
    user: UserResponse
