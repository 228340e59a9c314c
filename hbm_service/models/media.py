"""
Media library model

Staff uploads set uploaded_by, customer uploads set uploaded_by_customer.
The latter is the ownership key for customer access.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, BigInteger, DateTime, CheckConstraint

from hbm_service.core.database import Base


class Media(Base):
    __tablename__ = "media"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    original_name = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_type = Column(String(50), nullable=False)  # image, video, audio, pdf, document
    alt_text = Column(String(255), nullable=True)
    uploaded_by = Column(String(36), nullable=True, index=True)
    uploaded_by_customer = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        CheckConstraint("file_size > 0", name="check_positive_file_size"),
    )

    def __repr__(self):
        return f"<Media(id={self.id}, file_name='{self.file_name}')>"
