"""
Student model - represents students taking typing tests.

Each student is uniquely identified by UUID and linked to an external
auth subject. Students hold one side of the student-batch, student-test
and student-shift relations, plus the ids of their submitted results.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Boolean, Index
from typingdesk.database import Base
from typingdesk.models.fields import id_set_column, read_ids


class Student(Base):
    """
    SQLAlchemy model for the students table.

    A student may only join a batch while approved and not blocked.
    Approval and blocking are admin actions; neither evicts the student
    from relations it already has.
    """
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique student identifier")
    auth_subject = Column(String(128), nullable=False, unique=True,
                          doc="Subject id issued by the identity provider")
    name = Column(Text, nullable=True,
                  doc="Display name")
    email = Column(String(320), nullable=False, unique=True,
                   doc="Student email")
    is_approved = Column(Boolean, nullable=False, default=False,
                         doc="Set by an admin before the student can join batches")
    is_blocked = Column(Boolean, nullable=False, default=False,
                        doc="Blocked students cannot join batches or submit results")
    is_online_mode = Column(Boolean, nullable=False, default=True,
                            doc="Whether the student takes tests online")
    _assigned_batches = id_set_column("assigned_batches", "Batch ids (mirrors Batch.students)")
    _assigned_tests = id_set_column("assigned_tests",
                                    "Directly assigned test ids (mirrors Test.assigned_students)")
    _assigned_shifts = id_set_column("assigned_shifts", "Shift ids (mirrors Shift.students)")
    _results = id_set_column("results", "Ids of submitted results")
    last_login = Column(DateTime, nullable=True,
                        doc="Timestamp of the latest successful login")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when student record was created")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc),
                        doc="Timestamp of the last change")

    __table_args__ = (
        Index("ix_students_is_approved", "is_approved"),
        Index("ix_students_is_blocked", "is_blocked"),
    )

    @property
    def batch_ids(self):
        return read_ids(self, "assigned_batches")

    @property
    def test_ids(self):
        return read_ids(self, "assigned_tests")

    @property
    def shift_ids(self):
        return read_ids(self, "assigned_shifts")

    @property
    def result_ids(self):
        return read_ids(self, "results")

    @property
    def status(self) -> str:
        """blocked | approved | pending"""
        if self.is_blocked:
            return "blocked"
        return "approved" if self.is_approved else "pending"

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.name}', email='{self.email}')>"
