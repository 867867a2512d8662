"""
Batch model - a named group of students sharing a set of tests.

Batches hold the batch side of the student-batch and batch-test relations
and enforce a capacity ceiling (max_students).
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, ForeignKey, String, Boolean, Index
from typingdesk.database import Base
from typingdesk.models.fields import id_set_column, read_ids

DEFAULT_MAX_STUDENTS = 50


class Batch(Base):
    """
    SQLAlchemy model for the batches table.

    is_active is a binary gate: inactive batches take no new students or
    tests but keep the ones they already have.
    """
    __tablename__ = "batches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique batch identifier")
    name = Column(String(200), nullable=False, unique=True,
                  doc="Batch name (unique)")
    description = Column(Text, nullable=True,
                         doc="Free-form description")
    created_by = Column(String(36), ForeignKey("admins.id"), nullable=False,
                        doc="Admin who created the batch")
    _students = id_set_column("students", "Student ids (mirrors Student.assigned_batches)")
    _tests = id_set_column("tests", "Test ids (mirrors Test.assigned_batches)")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="Inactive batches accept no new assignments")
    max_students = Column(Integer, nullable=False, default=DEFAULT_MAX_STUDENTS,
                          doc="Capacity ceiling for the students set")
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when batch was created")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc),
                        doc="Timestamp of the last change")

    __table_args__ = (
        Index("ix_batches_created_by", "created_by"),
        Index("ix_batches_is_active", "is_active"),
    )

    @property
    def student_ids(self):
        return read_ids(self, "students")

    @property
    def test_ids(self):
        return read_ids(self, "tests")

    def __repr__(self):
        return f"<Batch(id={self.id}, name='{self.name}', students={len(self.student_ids)}/{self.max_students})>"
