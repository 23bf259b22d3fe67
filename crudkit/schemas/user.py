"""
Pydantic schemas for user accounts.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional


class UserCreateRequest(BaseModel):
    """Request schema for user registration."""
    email: EmailStr
    password: str = Field(
        ...,
        min_length=8,
        max_length=72,  # bcrypt limit
        description="Password must be 8-72 characters",
    )
    full_name: Optional[str] = None


class UserUpdateRequest(BaseModel):
    """Partial update; only fields that are sent are changed."""
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8, max_length=72)
    full_name: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator('email', 'password', 'is_active')
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError('may be omitted but cannot be null')
        return v


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str
