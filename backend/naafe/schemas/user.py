"""Pydantic schemas for users."""

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator


class UserCreate(BaseModel):
    """Schema for registering a user."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    roles: List[Literal["seeker", "provider"]] = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v


class UserResponse(BaseModel):
    """Public user data."""
    id: str
    name: str
    email: str
    roles: List[str]
    created_at: datetime

    class Config:
        from_attributes = True


class UserCreateResponse(UserResponse):
    """Registration response; the API key is shown only once."""
    api_key: str
