"""
Order schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from hbm_service.status.order_status import OrderStatus


class OrderItemCreate(BaseModel):
    product_variant_id: Optional[str] = None
    item_name: str = Field(min_length=1, max_length=200)
    item_description: Optional[str] = None
    quantity: int = Field(default=1, gt=0)
    specifications: Optional[Dict[str, Any]] = None


class OrderCreate(BaseModel):
    customer_id: Optional[str] = None  # defaults to the caller for customer contexts
    items: List[OrderItemCreate] = Field(min_length=1)
    inquiry_id: Optional[str] = None
    order_type_id: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    quote_valid_until: Optional[datetime] = None


class OrderUpdate(BaseModel):
    """Editable order fields. Lifecycle timestamps only change through transitions."""
    amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    inquiry_id: Optional[str] = None
    quote_valid_until: Optional[datetime] = None

    class Config:
        extra = "forbid"


class OrderTransitionRequest(BaseModel):
    from_status: OrderStatus
    to_status: OrderStatus
    notes: Optional[str] = None


class OrderStatusResponse(BaseModel):
    order_id: str
    status: OrderStatus
    is_terminal: bool
    can_transition_to: List[OrderStatus]
    factors: List[str]
    computed_at: datetime
