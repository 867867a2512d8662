"""
Shift model - a scheduled sitting in which assigned students take a test.
"""

import uuid
from sqlalchemy import Column, Text, Integer, DateTime, ForeignKey, String
from typingdesk.database import Base
from typingdesk.models.fields import id_set_column, read_ids


class Shift(Base):
    """SQLAlchemy model for the shifts table."""
    __tablename__ = "shifts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique shift identifier")
    name = Column(Text, nullable=False,
                  doc="Shift name")
    start_time = Column(DateTime, nullable=True,
                        doc="When the shift starts")
    duration_minutes = Column(Integer, nullable=True,
                              doc="Length of the shift in minutes")
    _students = id_set_column("students", "Student ids (mirrors Student.assigned_shifts)")
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=True,
                     doc="Test taken during this shift (cleared when the test is deleted)")
    date = Column(DateTime, nullable=True,
                  doc="Calendar date of the shift")

    @property
    def student_ids(self):
        return read_ids(self, "students")

    def __repr__(self):
        return f"<Shift(id={self.id}, name='{self.name}', test={self.test_id})>"
