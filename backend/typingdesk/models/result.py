"""
Result model - the outcome of one typing test submission.

Results are created once per submission and never modified. shift_id and
test_id are kept as plain references so results survive deletion of the
shift or test they were recorded against.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Float, DateTime, ForeignKey, String, Index
from typingdesk.database import Base


class Result(Base):
    """SQLAlchemy model for the results table."""
    __tablename__ = "results"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique result identifier")
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False,
                        doc="Student who submitted the result")
    shift_id = Column(String(36), nullable=True,
                      doc="Shift the test was taken in")
    test_id = Column(String(36), nullable=True,
                     doc="Test that was taken")
    wpm = Column(Float, nullable=False, default=0,
                 doc="Words per minute")
    accuracy = Column(Float, nullable=False, default=0,
                      doc="Accuracy percentage")
    mistakes = Column(Text, nullable=False, default="[]",
                      doc="Mistake records as JSON: [{expected, typed, position}]")
    submitted_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                          doc="Submission timestamp")

    __table_args__ = (
        Index("ix_results_student_id", "student_id"),
        Index("ix_results_shift_id", "shift_id"),
        Index("ix_results_test_id", "test_id"),
    )

    @property
    def mistakes_list(self):
        """Parse mistakes JSON string to a list."""
        if isinstance(self.mistakes, list):
            return self.mistakes
        try:
            return json.loads(self.mistakes) if self.mistakes else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<Result(id={self.id}, student={self.student_id}, wpm={self.wpm}, accuracy={self.accuracy}%)>"
