"""
Product schemas
"""
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    sku: Optional[str] = Field(default=None, max_length=100)
    order_type_id: str = Field(min_length=1)
    is_variable: bool = False
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Product name is required")
        return v.strip()

    @field_validator("sku")
    @classmethod
    def sku_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("SKU cannot be empty if provided")
        return v


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    sku: Optional[str] = Field(default=None, min_length=1, max_length=100)
    order_type_id: Optional[str] = None
    is_variable: Optional[bool] = None
    is_active: Optional[bool] = None

    class Config:
        extra = "forbid"


class ProductVariantCreate(BaseModel):
    product_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    variant_identifier: str = Field(min_length=1, max_length=100)
    is_active: bool = True


class ProductVariantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    variant_identifier: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_active: Optional[bool] = None

    class Config:
        extra = "forbid"
