"""
Shift service - shift CRUD and single-student shift assignment.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import NotFoundError, ValidationError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.shift import Shift
from typingdesk.models.test import Test
from typingdesk.repository import EntityRepository
from typingdesk.services import membership
from typingdesk.services.ids import require_ids
from typingdesk.services.membership import RelationKind
from typingdesk.services.serializers import serialize_shift, serialize_student

logger = get_logger("membership")


def _get_shift_or_404(repo: EntityRepository, shift_id: str) -> Shift:
    shift = repo.find_by_id(Shift, shift_id)
    if not shift:
        raise NotFoundError("Shift not found", missing_ids=[str(shift_id)])
    return shift


def create_shift(db: Session, name: str, start_time: Optional[datetime] = None,
                 duration_minutes: Optional[int] = None, test_id: Optional[str] = None,
                 date: Optional[datetime] = None) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Shift name is required")
    if duration_minutes is not None and duration_minutes < 1:
        raise ValidationError("duration_minutes must be positive")

    repo = EntityRepository(db)
    with transaction(db):
        if test_id and not repo.find_by_id(Test, test_id):
            raise NotFoundError("Test not found", missing_ids=[str(test_id)])
        shift = repo.insert(Shift(
            id=str(uuid.uuid4()),
            name=name,
            start_time=start_time,
            duration_minutes=duration_minutes,
            test_id=test_id or None,
            date=date,
        ))

    log_with_context(logger, "INFO", "Created shift: {}".format(name),
                     context={"shift_id": shift.id, "test_id": test_id})
    return {"shift": serialize_shift(repo, shift)}


def list_shifts(db: Session) -> dict:
    repo = EntityRepository(db)
    shifts = repo.find(Shift, order_by=Shift.start_time)
    return {"shifts": [serialize_shift(repo, s) for s in shifts]}


def get_shift(db: Session, shift_id: str) -> dict:
    repo = EntityRepository(db)
    return {"shift": serialize_shift(repo, _get_shift_or_404(repo, shift_id))}


def get_shifts_for_student(db: Session, student_id: str) -> dict:
    repo = EntityRepository(db)
    shifts = repo.find_containing(Shift, "students", str(student_id))
    return {"shifts": [serialize_shift(repo, s) for s in shifts]}


def delete_shift(db: Session, shift_id: str) -> dict:
    """Delete a shift and remove it from every assigned student."""
    repo = EntityRepository(db)
    with transaction(db):
        shift = _get_shift_or_404(repo, shift_id)
        touched = membership.detach_all(repo, shift)
        repo.delete(shift)

    log_with_context(logger, "INFO", "Deleted shift {}".format(shift_id),
                     context={"shift_id": str(shift_id)},
                     extra_data={"detached_rows": touched})
    return {"message": "Shift deleted successfully", "shift_id": str(shift_id)}


def assign_shift_to_student(db: Session, student_id: str, shift_id: str) -> dict:
    """Add one shift to an approved, non-blocked student. Re-assigning is a no-op."""
    ids = require_ids([shift_id], "shift_id")
    student = membership.add_members(db, student_id, ids, RelationKind.STUDENT_SHIFTS)
    return {"student": serialize_student(EntityRepository(db), student)}


def remove_shift_from_student(db: Session, student_id: str, shift_id: str) -> dict:
    ids = require_ids([shift_id], "shift_id")
    student = membership.remove_members(db, student_id, ids, RelationKind.STUDENT_SHIFTS)
    return {"student": serialize_student(EntityRepository(db), student)}
