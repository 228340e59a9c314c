"""
Inquiry schemas
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from hbm_service.schemas.customer import PHONE_PATTERN
from hbm_service.status.inquiry_status import InquiryStatus, to_inquiry_status


class InquiryCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = None
    brand_name: Optional[str] = None
    service_type: Optional[str] = None
    message: str = Field(min_length=1)
    customer_id: Optional[str] = None

    @field_validator("customer_name", "message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class InquiryUpdate(BaseModel):
    """Editable inquiry fields. Status only changes through transitions."""
    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = None
    brand_name: Optional[str] = None
    service_type: Optional[str] = None
    message: Optional[str] = Field(default=None, min_length=1)
    assigned_to: Optional[str] = None

    class Config:
        extra = "forbid"


class InquiryTransitionRequest(BaseModel):
    from_status: InquiryStatus
    to_status: InquiryStatus
    notes: Optional[str] = None

    @field_validator("from_status", "to_status", mode="before")
    @classmethod
    def coerce_status(cls, v):
        return to_inquiry_status(v)
