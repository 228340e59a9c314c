"""
Customer schemas
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

PHONE_PATTERN = r"^[+]?[0-9 ()-]{10,}$"


class CustomerBase(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = None
    brand_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    profile_media_id: Optional[str] = None


class CustomerCreate(CustomerBase):
    email: EmailStr
    is_active: bool = True


class CustomerUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = None
    brand_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    profile_media_id: Optional[str] = None
    is_active: Optional[bool] = None


class CustomerProfileUpdate(BaseModel):
    """Fields a customer may change on their own record."""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = None
    brand_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    profile_media_id: Optional[str] = None

    class Config:
        extra = "forbid"
