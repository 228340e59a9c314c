"""
Staff user schemas
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from hbm_service.schemas.customer import PHONE_PATTERN


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    role_id: Optional[str] = None
    avatar_media_id: Optional[str] = None
    is_active: bool = True


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    role_id: Optional[str] = None
    avatar_media_id: Optional[str] = None
    is_active: Optional[bool] = None

    class Config:
        extra = "forbid"


class PasswordChange(BaseModel):
    current_password: Optional[str] = None  # required when changing your own password
    new_password: str
