"""
Auth-related Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, EmailStr, field_validator
from uuid import UUID

import pytz


class UserRegister(BaseModel):
    """Schema for user registration request."""
    email: EmailStr
    password: str

    @field_validator('password')
    @classmethod
    def password_length(cls, v):
        if len(v) < 8:
            raise ValueError('password must be at least 8 characters')
        return v


class UserLogin(BaseModel):
    """Schema for user login request."""
    email: EmailStr
    password: str


class Token(BaseModel):
    """Schema for token response."""
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Schema for user response (without password)."""
    id: UUID
    email: str

    class Config:
        from_attributes = True


class PharmacyCreate(BaseModel):
    name: str
    timezone: str = "UTC"

    @field_validator('timezone')
    @classmethod
    def known_timezone(cls, v):
        if v not in pytz.all_timezones_set:
            raise ValueError(f'unknown timezone {v}')
        return v


class PharmacyResponse(BaseModel):
    id: UUID
    name: str
    timezone: str
    notifications_enabled: bool

    class Config:
        from_attributes = True
