"""
Typing test service - test CRUD.

Deleting a test removes it from every batch and student that referenced
it and clears it from shifts scheduled to run it. Results recorded against
the test are kept.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import NotFoundError, ValidationError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.shift import Shift
from typingdesk.models.test import Test, DEFAULT_DURATION_SECONDS
from typingdesk.repository import EntityRepository
from typingdesk.services import membership
from typingdesk.services.serializers import serialize_test

logger = get_logger("membership")

UPDATABLE_FIELDS = ("title", "audio_url", "reference_text", "duration", "is_active")


def _get_test_or_404(repo: EntityRepository, test_id: str) -> Test:
    test = repo.find_by_id(Test, test_id)
    if not test:
        raise NotFoundError("Test not found", missing_ids=[str(test_id)])
    return test


def _validate_duration(value) -> int:
    if value is None:
        return DEFAULT_DURATION_SECONDS
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("duration must be a positive number of seconds")
    return value


def create_test(db: Session, admin_id: str, title: str, reference_text: str,
                audio_url: Optional[str] = None, duration: Optional[int] = None) -> dict:
    title = (title or "").strip()
    if not title or not (reference_text or "").strip():
        raise ValidationError("Title and reference_text are required")
    duration = _validate_duration(duration)

    repo = EntityRepository(db)
    with transaction(db):
        test = repo.insert(Test(
            id=str(uuid.uuid4()),
            title=title,
            reference_text=reference_text,
            audio_url=audio_url,
            uploaded_by=str(admin_id),
            duration=duration,
            is_active=True,
            created_at=datetime.now(timezone.utc),
        ))

    log_with_context(logger, "INFO", "Created test: {}".format(title),
                     context={"test_id": test.id, "admin_id": str(admin_id)})
    return {"test": serialize_test(repo, test)}


def update_test(db: Session, test_id: str, changes: dict) -> dict:
    """Update test fields. Deactivating a test keeps its existing assignments."""
    changes = {k: v for k, v in changes.items() if v is not None}
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError("Unknown test fields: {}".format(", ".join(sorted(unknown))))
    if "duration" in changes:
        _validate_duration(changes["duration"])
    if "title" in changes and not changes["title"].strip():
        raise ValidationError("Title cannot be empty")

    repo = EntityRepository(db)
    with transaction(db):
        test = _get_test_or_404(repo, test_id)
        for field, value in changes.items():
            setattr(test, field, value)

    db.refresh(test)
    return {"test": serialize_test(repo, test)}


def list_tests(db: Session, is_active: Optional[bool] = None) -> dict:
    repo = EntityRepository(db)
    criteria = [Test.is_active == is_active] if is_active is not None else []
    tests = repo.find(Test, *criteria, order_by=Test.created_at.desc())
    return {"tests": [serialize_test(repo, t) for t in tests]}


def get_test(db: Session, test_id: str) -> dict:
    repo = EntityRepository(db)
    return {"test": serialize_test(repo, _get_test_or_404(repo, test_id))}


def delete_test(db: Session, test_id: str) -> dict:
    """Delete a test and clean every reference to it."""
    repo = EntityRepository(db)
    with transaction(db):
        test = _get_test_or_404(repo, test_id)
        touched = membership.detach_all(repo, test)
        shifts = repo.find(Shift, Shift.test_id == test.id)
        for shift in shifts:
            shift.test_id = None
        db.flush()
        repo.delete(test)

    log_with_context(logger, "INFO", "Deleted test {}".format(test_id),
                     context={"test_id": str(test_id)},
                     extra_data={"detached_rows": touched, "cleared_shifts": len(shifts)})
    return {"message": "Test deleted successfully", "test_id": str(test_id)}
