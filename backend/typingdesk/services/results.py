"""
Result service - records typing test submissions.

A result is written once and never modified. Submitting links the new
result id onto the student in the same transaction.
"""

import time
import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import NotFoundError, ValidationError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.result import Result
from typingdesk.models.shift import Shift
from typingdesk.models.student import Student
from typingdesk.models.test import Test
from typingdesk.repository import EntityRepository
from typingdesk.services import membership
from typingdesk.services.guards import check_eligibility
from typingdesk.services.serializers import serialize_result, student_summary, test_summary

logger = get_logger("membership")


def submit_result(db: Session, student_id: str, wpm: float, accuracy: float,
                  test_id: Optional[str] = None, shift_id: Optional[str] = None,
                  mistakes: Optional[List[dict]] = None) -> dict:
    """
    Store one submission for an approved, non-blocked student.

    The referenced test and shift must exist when given.
    """
    start_time = time.time()
    if wpm < 0:
        raise ValidationError("wpm cannot be negative")
    if not 0 <= accuracy <= 100:
        raise ValidationError("accuracy must be between 0 and 100")

    repo = EntityRepository(db)
    with transaction(db):
        student = repo.find_by_id(Student, student_id, for_update=True)
        if not student:
            raise NotFoundError("Student not found", missing_ids=[str(student_id)])
        check_eligibility(student)

        missing = []
        if test_id and not repo.find_by_id(Test, test_id):
            missing.append(str(test_id))
        if shift_id and not repo.find_by_id(Shift, shift_id):
            missing.append(str(shift_id))
        if missing:
            raise NotFoundError("Referenced test or shift not found", missing_ids=missing)

        result = repo.insert(Result(
            id=str(uuid.uuid4()),
            student_id=student.id,
            test_id=test_id or None,
            shift_id=shift_id or None,
            wpm=wpm,
            accuracy=accuracy,
            mistakes=json.dumps(mistakes or []),
            submitted_at=datetime.now(timezone.utc),
        ))
        membership.link_result(repo, student, result.id)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Result submitted: wpm={:.1f}, accuracy={:.2f}%".format(wpm, accuracy),
        context={
            "result_id": result.id,
            "student_id": str(student_id),
            "test_id": test_id,
            "shift_id": shift_id
        },
        extra_data={"duration_ms": round(duration_ms, 2), "mistakes": len(mistakes or [])})

    return {"result": serialize_result(result)}


def get_results_by_shift(db: Session, shift_id: str) -> dict:
    """Results of one shift with the student and test summarized."""
    repo = EntityRepository(db)
    results = repo.find(Result, Result.shift_id == str(shift_id), order_by=Result.submitted_at.desc())
    students = repo.find_by_ids(Student, {r.student_id for r in results})
    tests = repo.find_by_ids(Test, {r.test_id for r in results if r.test_id})

    data = []
    for r in results:
        entry = serialize_result(r)
        entry["student"] = student_summary(students[r.student_id]) if r.student_id in students else None
        entry["test"] = test_summary(tests[r.test_id]) if r.test_id in tests else None
        data.append(entry)
    return {"results": data}


def get_results_for_student(db: Session, student_id: str) -> dict:
    repo = EntityRepository(db)
    results = repo.find(Result, Result.student_id == str(student_id), order_by=Result.submitted_at.desc())
    return {"results": [serialize_result(r) for r in results]}
