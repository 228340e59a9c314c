"""
Inquiry model

Unlike orders, inquiries store their status explicitly:
0=rejected, 1=new, 2=accepted, 3=in_progress, 4=closed.
Every status write must stamp the matching timestamp in the same UPDATE.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Index, CheckConstraint

from hbm_service.core.database import Base


class Inquiry(Base):
    __tablename__ = "inquiries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(20), nullable=True)
    company_name = Column(String(200), nullable=True)
    brand_name = Column(String(200), nullable=True)
    service_type = Column(String(100), nullable=True)
    message = Column(Text, nullable=False)

    status = Column(Integer, nullable=False, default=1)
    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(String(36), nullable=True)  # null for customer and public submissions

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_inquiries_status_assigned", "status", "assigned_to"),
        CheckConstraint("status >= 0 AND status <= 4", name="check_inquiry_status_range"),
    )

    def __repr__(self):
        return f"<Inquiry(id={self.id}, status={self.status})>"
