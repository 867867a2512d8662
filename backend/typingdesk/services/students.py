"""
Student service - student administration and the student-side sync entry points.

replace_student_batches / replace_student_tests / replace_student_shifts
replace a student's whole assigned set in one transaction and reconcile
the batches, tests or shifts on the other side.
"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import NotFoundError, ValidationError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.student import Student
from typingdesk.repository import DEFAULT_PAGE_SIZE, EntityRepository
from typingdesk.services import membership
from typingdesk.services.ids import require_ids
from typingdesk.services.membership import RelationKind
from typingdesk.services.serializers import serialize_student

logger = get_logger("membership")

STATUS_FILTERS = {
    "approved": [Student.is_approved.is_(True), Student.is_blocked.is_(False)],
    "pending": [Student.is_approved.is_(False), Student.is_blocked.is_(False)],
    "blocked": [Student.is_blocked.is_(True)],
}

# (is_approved, is_blocked) written by each status action; None leaves the flag alone
STATUS_ACTIONS = {
    "approve": (True, False),
    "block": (False, True),
    "unblock": (None, False),
}


def _get_student_or_404(repo: EntityRepository, student_id: str) -> Student:
    student = repo.find_by_id(Student, student_id)
    if not student:
        raise NotFoundError("Student not found", missing_ids=[str(student_id)])
    return student


def _student_payload(db: Session, student: Student) -> dict:
    return {"student": serialize_student(EntityRepository(db), student)}


def list_students(db: Session, page: int = 1, per_page: int = DEFAULT_PAGE_SIZE,
                  status: Optional[str] = None, search: Optional[str] = None) -> dict:
    """List students, newest first, filtered by status and name/email search."""
    repo = EntityRepository(db)
    criteria = []
    if status:
        if status not in STATUS_FILTERS:
            raise ValidationError("status must be one of: {}".format(", ".join(STATUS_FILTERS)))
        criteria.extend(STATUS_FILTERS[status])
    if search:
        pattern = "%{}%".format(search)
        criteria.append(or_(Student.name.ilike(pattern), Student.email.ilike(pattern)))

    students, pagination = repo.paginate(Student, *criteria, order_by=Student.created_at.desc(),
                                         page=page, per_page=per_page)
    return {"students": [serialize_student(repo, s) for s in students], "pagination": pagination}


def get_student(db: Session, student_id: str) -> dict:
    repo = EntityRepository(db)
    return _student_payload(db, _get_student_or_404(repo, student_id))


def get_status(db: Session, student_id: str) -> dict:
    repo = EntityRepository(db)
    student = _get_student_or_404(repo, student_id)
    return {
        "is_approved": student.is_approved,
        "is_blocked": student.is_blocked,
        "status": student.status,
    }


def student_counts(db: Session) -> dict:
    """Totals per approval status, for the admin student list header."""
    repo = EntityRepository(db)
    counts = {"total": repo.count_documents(Student)}
    for status, criteria in STATUS_FILTERS.items():
        counts[status] = repo.count_documents(Student, *criteria)
    return counts


def update_own_profile(db: Session, student_id: str, name: Optional[str]) -> dict:
    """Students may change their display name only."""
    repo = EntityRepository(db)
    with transaction(db):
        student = _get_student_or_404(repo, student_id)
        if name and name.strip():
            student.name = name.strip()
    db.refresh(student)
    return _student_payload(db, student)


def set_status(db: Session, student_id: str, action: str) -> dict:
    """
    Apply approve / block / unblock to one student.

    Status changes gate new assignments only; existing batch, test and
    shift memberships are left as they are.
    """
    approved, blocked = STATUS_ACTIONS[action]
    repo = EntityRepository(db)
    with transaction(db):
        student = _get_student_or_404(repo, student_id)
        if approved is not None:
            student.is_approved = approved
        student.is_blocked = blocked

    log_with_context(logger, "INFO", "Student {}: {}".format(action, student_id),
                     context={"student_id": str(student_id)})
    db.refresh(student)
    return _student_payload(db, student)


def bulk_set_status(db: Session, student_ids: list, action: str) -> dict:
    """Apply a status action to many students. Unknown ids are ignored."""
    ids = require_ids(student_ids, "student_ids")
    approved, blocked = STATUS_ACTIONS[action]
    repo = EntityRepository(db)
    modified = 0
    with transaction(db):
        for student in repo.find_by_ids(Student, ids).values():
            changed = student.is_blocked != blocked
            if approved is not None:
                changed = changed or student.is_approved != approved
                student.is_approved = approved
            student.is_blocked = blocked
            modified += int(changed)

    log_with_context(logger, "INFO", "Bulk {}: {} of {} students modified".format(action, modified, len(ids)),
                     extra_data={"requested": len(ids), "modified": modified})
    return {"modified_count": modified}


# ── Wholesale sync entry points ──────────────────────────────

def _replace(db: Session, student_id: str, related_ids, kind: RelationKind, field: str) -> dict:
    ids = require_ids(related_ids, field, allow_empty=True)
    student = membership.sync_membership(db, student_id, ids, kind)
    return _student_payload(db, student)


def replace_student_batches(db: Session, student_id: str, batch_ids: list) -> dict:
    """Make batch_ids the student's exact batch set, updating every affected batch."""
    return _replace(db, student_id, batch_ids, RelationKind.STUDENT_BATCHES, "batch_ids")


def replace_student_tests(db: Session, student_id: str, test_ids: list) -> dict:
    """Make test_ids the student's exact set of directly assigned tests."""
    return _replace(db, student_id, test_ids, RelationKind.STUDENT_TESTS, "test_ids")


def replace_student_shifts(db: Session, student_id: str, shift_ids: list) -> dict:
    """Make shift_ids the student's exact shift set, updating every affected shift."""
    return _replace(db, student_id, shift_ids, RelationKind.STUDENT_SHIFTS, "shift_ids")
