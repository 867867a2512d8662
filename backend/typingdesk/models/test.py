"""
Test model - a typing test: reference text plus an optional audio track.

Tests hold the test side of the batch-test relation and of the direct
student-test assignment.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, ForeignKey, String, Boolean, Index
from typingdesk.database import Base
from typingdesk.models.fields import id_set_column, read_ids

DEFAULT_DURATION_SECONDS = 300


class Test(Base):
    """
    SQLAlchemy model for the tests table.

    Only active tests can be added to batches or assigned to students.
    """
    __tablename__ = "tests"
    # keep pytest from collecting this model as a test class
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique test identifier")
    title = Column(Text, nullable=False,
                   doc="Test name/title")
    audio_url = Column(Text, nullable=True,
                       doc="Reference to the dictation audio resource")
    reference_text = Column(Text, nullable=True,
                            doc="Text the student is expected to type")
    uploaded_by = Column(String(36), ForeignKey("admins.id"), nullable=True,
                         doc="Admin who uploaded the test")
    _assigned_batches = id_set_column("assigned_batches", "Batch ids (mirrors Batch.tests)")
    _assigned_students = id_set_column("assigned_students",
                                       "Student ids (mirrors Student.assigned_tests)")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="Inactive tests accept no new assignments")
    duration = Column(Integer, nullable=False, default=DEFAULT_DURATION_SECONDS,
                      doc="Test duration in seconds")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when test was created")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc),
                        doc="Timestamp of the last change")

    __table_args__ = (
        Index("ix_tests_is_active", "is_active"),
    )

    @property
    def batch_ids(self):
        return read_ids(self, "assigned_batches")

    @property
    def student_ids(self):
        return read_ids(self, "assigned_students")

    def __repr__(self):
        return f"<Test(id={self.id}, title='{self.title}', duration={self.duration})>"
