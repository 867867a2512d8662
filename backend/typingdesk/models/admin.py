"""
Admin model - represents administrators who manage batches and tests.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Boolean
from typingdesk.database import Base


class Admin(Base):
    """SQLAlchemy model for the admins table."""
    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique admin identifier")
    auth_subject = Column(String(128), nullable=False, unique=True,
                          doc="Subject id issued by the identity provider")
    name = Column(Text, nullable=True,
                  doc="Display name")
    email = Column(String(320), nullable=False, unique=True,
                   doc="Admin email")
    role = Column(String(20), nullable=False, default="admin",
                  doc="admin | super_admin")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="Inactive admins cannot authenticate")
    last_login = Column(DateTime, nullable=True,
                        doc="Timestamp of the latest successful login")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when admin record was created")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc),
                        doc="Timestamp of the last change")

    def __repr__(self):
        return f"<Admin(id={self.id}, email='{self.email}', role='{self.role}')>"
