"""
Role model for RBAC

Built-in roles (is_built_in=True) cannot be renamed, have their permissions
changed, or be deleted. Permissions are stored as a JSON array of
permission strings.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship

from hbm_service.core.database import Base
from hbm_service.core.permissions import DEFAULT_ROLE_PERMISSIONS


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    permissions = Column(JSON, nullable=False, default=list)
    is_built_in = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    users = relationship("User", back_populates="role")

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}')>"


# Default built-in roles - seeded on startup
BUILT_IN_ROLES = [
    {
        "name": "superadmin",
        "description": "Unrestricted access",
        "permissions": ["superadmin"],
        "is_built_in": True,
    },
    {
        "name": "admin",
        "description": "Full administrative access except staff user management",
        "permissions": DEFAULT_ROLE_PERMISSIONS["admin"],
        "is_built_in": True,
    },
    {
        "name": "staff",
        "description": "Daily operations",
        "permissions": DEFAULT_ROLE_PERMISSIONS["staff"],
        "is_built_in": True,
    },
]
