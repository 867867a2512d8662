"""
Batch service - batch CRUD and the batch-side membership operations.

Every change to a batch's students or tests goes through the membership
synchronizer, so the student and test rows are updated in the same
transaction as the batch row.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import CapacityError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.batch import Batch, DEFAULT_MAX_STUDENTS
from typingdesk.models.student import Student
from typingdesk.models.test import Test
from typingdesk.repository import DEFAULT_PAGE_SIZE, EntityRepository
from typingdesk.services import membership
from typingdesk.services.ids import require_ids
from typingdesk.services.membership import RelationKind
from typingdesk.services.serializers import serialize_batch, serialize_test_for_student

logger = get_logger("membership")

# Fields an admin may change directly through update_batch
UPDATABLE_FIELDS = ("name", "description", "max_students", "start_date", "end_date", "is_active")


def _get_batch_or_404(repo: EntityRepository, batch_id: str, for_update: bool = False) -> Batch:
    batch = repo.find_by_id(Batch, batch_id, for_update=for_update)
    if not batch:
        raise NotFoundError("Batch not found", missing_ids=[str(batch_id)])
    return batch


def _ensure_unique_name(repo: EntityRepository, name: str, exclude_id: Optional[str] = None):
    criteria = [Batch.name == name]
    if exclude_id:
        criteria.append(Batch.id != exclude_id)
    if repo.find_one(Batch, *criteria):
        raise ConflictError("Batch with this name already exists")


def _validate_max_students(value) -> int:
    if value is None:
        return DEFAULT_MAX_STUDENTS
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("max_students must be a positive integer")
    return value


def _batch_payload(db: Session, batch: Batch) -> dict:
    return {"batch": serialize_batch(EntityRepository(db), batch)}


# ── CRUD ─────────────────────────────────────────────────────

def create_batch(db: Session, admin_id: str, name: str, description: Optional[str] = None,
                 max_students: Optional[int] = None, start_date: Optional[datetime] = None,
                 end_date: Optional[datetime] = None, assigned_students: Optional[list] = None,
                 assigned_tests: Optional[list] = None) -> dict:
    """
    Create a batch, optionally with initial students and tests.

    Initial members are synced in the same transaction as the insert, so a
    missing, ineligible or over-capacity member leaves no batch behind.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Batch name is required")
    max_students = _validate_max_students(max_students)
    student_ids = require_ids(assigned_students or [], "assigned_students", allow_empty=True)
    test_ids = require_ids(assigned_tests or [], "assigned_tests", allow_empty=True)

    repo = EntityRepository(db)
    with transaction(db):
        _ensure_unique_name(repo, name)
        batch = repo.insert(Batch(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            created_by=str(admin_id),
            max_students=max_students,
            start_date=start_date,
            end_date=end_date,
            is_active=True,
            created_at=datetime.now(timezone.utc),
        ))
        if student_ids:
            membership.apply_sync(repo, batch, student_ids, RelationKind.BATCH_STUDENTS)
        if test_ids:
            membership.apply_sync(repo, batch, test_ids, RelationKind.BATCH_TESTS)

    log_with_context(logger, "INFO", "Created batch: {}".format(name),
                     context={"batch_id": batch.id, "admin_id": str(admin_id)},
                     extra_data={"students": len(student_ids), "tests": len(test_ids)})
    return _batch_payload(db, batch)


def list_batches(db: Session, page: int = 1, per_page: int = DEFAULT_PAGE_SIZE,
                 is_active: Optional[bool] = None, created_by: Optional[str] = None) -> dict:
    """List batches, newest first, with optional filters and pagination."""
    repo = EntityRepository(db)
    criteria = []
    if is_active is not None:
        criteria.append(Batch.is_active == is_active)
    if created_by:
        criteria.append(Batch.created_by == created_by)

    batches, pagination = repo.paginate(Batch, *criteria, order_by=Batch.created_at.desc(),
                                        page=page, per_page=per_page)
    return {"batches": [serialize_batch(repo, b) for b in batches], "pagination": pagination}


def get_batch(db: Session, batch_id: str) -> dict:
    repo = EntityRepository(db)
    return {"batch": serialize_batch(repo, _get_batch_or_404(repo, batch_id))}


def update_batch(db: Session, batch_id: str, changes: dict) -> dict:
    """
    Update batch fields and optionally replace its students and/or tests.

    `changes` may hold any of UPDATABLE_FIELDS plus `assigned_students` and
    `assigned_tests` (full replacement lists). Keys set to None are ignored.
    """
    changes = {k: v for k, v in changes.items() if v is not None}
    student_ids = None
    test_ids = None
    if "assigned_students" in changes:
        student_ids = require_ids(changes.pop("assigned_students"), "assigned_students", allow_empty=True)
    if "assigned_tests" in changes:
        test_ids = require_ids(changes.pop("assigned_tests"), "assigned_tests", allow_empty=True)
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError("Unknown batch fields: {}".format(", ".join(sorted(unknown))))
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise ValidationError("Batch name cannot be empty")
    if "max_students" in changes:
        _validate_max_students(changes["max_students"])

    repo = EntityRepository(db)
    with transaction(db):
        batch = _get_batch_or_404(repo, batch_id, for_update=True)
        if "name" in changes:
            _ensure_unique_name(repo, changes["name"], exclude_id=batch.id)
        for field, value in changes.items():
            setattr(batch, field, value)
        if student_ids is not None:
            membership.apply_sync(repo, batch, student_ids, RelationKind.BATCH_STUDENTS)
        if test_ids is not None:
            membership.apply_sync(repo, batch, test_ids, RelationKind.BATCH_TESTS)
        if len(batch.student_ids) > batch.max_students:
            raise CapacityError(
                "max_students ({}) is below the current number of students ({})".format(
                    batch.max_students, len(batch.student_ids)),
                batch_id=batch.id, max_students=batch.max_students)

    log_with_context(logger, "INFO", "Updated batch {}".format(batch_id),
                     context={"batch_id": str(batch_id)},
                     extra_data={"fields": sorted(changes),
                                 "replaced_students": student_ids is not None,
                                 "replaced_tests": test_ids is not None})
    db.refresh(batch)
    return _batch_payload(db, batch)


def delete_batch(db: Session, batch_id: str) -> dict:
    """Delete a batch and remove its id from every student and test that referenced it."""
    repo = EntityRepository(db)
    with transaction(db):
        batch = _get_batch_or_404(repo, batch_id, for_update=True)
        touched = membership.detach_all(repo, batch)
        repo.delete(batch)

    log_with_context(logger, "INFO", "Deleted batch {}".format(batch_id),
                     context={"batch_id": str(batch_id)},
                     extra_data={"detached_rows": touched})
    return {"message": "Batch deleted successfully", "batch_id": str(batch_id)}


# ── Membership ───────────────────────────────────────────────

def assign_students_to_batch(db: Session, batch_id: str, student_ids: list) -> dict:
    """
    Add students to a batch, all-or-nothing.

    Students already in the batch are skipped and do not count towards the
    capacity check; every other student must exist, be approved and not
    blocked, and the batch must have room for all of them.
    """
    ids = require_ids(student_ids, "student_ids")
    batch = membership.add_members(db, batch_id, ids, RelationKind.BATCH_STUDENTS)
    return _batch_payload(db, batch)


def remove_students_from_batch(db: Session, batch_id: str, student_ids: list) -> dict:
    ids = require_ids(student_ids, "student_ids")
    batch = membership.remove_members(db, batch_id, ids, RelationKind.BATCH_STUDENTS)
    return _batch_payload(db, batch)


def assign_student_to_batch(db: Session, batch_id: str, student_id: str) -> dict:
    return assign_students_to_batch(db, batch_id, [student_id])


def remove_student_from_batch(db: Session, batch_id: str, student_id: str) -> dict:
    return remove_students_from_batch(db, batch_id, [student_id])


def assign_tests_to_batch(db: Session, batch_id: str, test_ids: list) -> dict:
    """Add active tests to a batch, all-or-nothing."""
    ids = require_ids(test_ids, "test_ids")
    batch = membership.add_members(db, batch_id, ids, RelationKind.BATCH_TESTS)
    return _batch_payload(db, batch)


def remove_tests_from_batch(db: Session, batch_id: str, test_ids: list) -> dict:
    ids = require_ids(test_ids, "test_ids")
    batch = membership.remove_members(db, batch_id, ids, RelationKind.BATCH_TESTS)
    return _batch_payload(db, batch)


# ── Lookups by member ────────────────────────────────────────

def _batches_containing_student(repo: EntityRepository, student_id: str) -> List[Batch]:
    batches = repo.find_containing(Batch, "students", str(student_id))
    return sorted(batches, key=lambda b: (b.created_at or datetime.min).replace(tzinfo=None), reverse=True)


def get_batches_for_student(db: Session, student_id: str) -> dict:
    repo = EntityRepository(db)
    return {"batches": [serialize_batch(repo, b) for b in _batches_containing_student(repo, student_id)]}


def get_batches_for_admin(db: Session, admin_id: str) -> dict:
    repo = EntityRepository(db)
    batches = repo.find(Batch, Batch.created_by == str(admin_id), order_by=Batch.created_at.desc())
    return {"batches": [serialize_batch(repo, b) for b in batches]}


def get_tests_for_student(db: Session, student_id: str) -> dict:
    """Active tests reachable through the student's batches plus direct assignments."""
    repo = EntityRepository(db)
    student = repo.find_by_id(Student, student_id)
    if not student:
        raise NotFoundError("Student not found", missing_ids=[str(student_id)])

    test_ids = []
    for batch in _batches_containing_student(repo, student_id):
        test_ids.extend(batch.test_ids)
    test_ids.extend(student.test_ids)
    test_ids = list(dict.fromkeys(test_ids))

    found = repo.find_by_ids(Test, test_ids)
    tests = [found[i] for i in test_ids if i in found and found[i].is_active]
    return {"tests": [serialize_test_for_student(t) for t in tests]}


def get_batch_tests_for_student(db: Session, student_id: str, batch_id: str) -> dict:
    """Active tests of one batch; the student must be a member of it."""
    repo = EntityRepository(db)
    batch = _get_batch_or_404(repo, batch_id)
    if str(student_id) not in batch.student_ids:
        raise ForbiddenError("You are not assigned to this batch")
    found = repo.find_by_ids(Test, batch.test_ids)
    tests = [found[i] for i in batch.test_ids if i in found and found[i].is_active]
    return {"batch_id": batch.id, "tests": [serialize_test_for_student(t) for t in tests]}
