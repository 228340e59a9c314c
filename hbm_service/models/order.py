"""
Order models

Orders carry no status column. The lifecycle status is derived from the
stage timestamps (see hbm_service.status.order_status). version is bumped by
every transition write and guards read-validate-write races.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON, Numeric, Index, CheckConstraint
from sqlalchemy.orm import relationship

from hbm_service.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(100), unique=True, index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    inquiry_id = Column(String(36), ForeignKey("inquiries.id", ondelete="SET NULL"), nullable=True)
    order_type_id = Column(String(36), ForeignKey("order_types.id", ondelete="RESTRICT"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)

    # Lifecycle timestamps
    quoted_at = Column(DateTime(timezone=True), nullable=True)
    quote_valid_until = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    production_started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_orders_lifecycle", "quoted_at", "confirmed_at", "completed_at", "shipped_at", "delivered_at", "canceled_at"),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, order_number='{self.order_number}')>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_variant_id = Column(String(36), ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=True)
    item_name = Column(String(200), nullable=False)
    item_description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    specifications = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_positive_quantity"),
    )
