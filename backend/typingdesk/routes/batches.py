"""
Batch API routes (admin only).

Provides endpoints for:
- Batch CRUD with pagination and filters
- Assigning/removing students (bulk and single)
- Assigning/removing tests
"""

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from typingdesk.auth import require_admin
from typingdesk.database import get_db
from typingdesk.repository import DEFAULT_PAGE_SIZE
from typingdesk.services import batches
from typingdesk.services.accounts import CallerIdentity

router = APIRouter(prefix="/api/v1/batches")


# ── Pydantic schemas ─────────────────────────────────────────

class BatchCreate(BaseModel):
    """Schema for creating a batch."""
    name: str
    description: Optional[str] = None
    max_students: Optional[int] = Field(None, description="Capacity ceiling (default 50)")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    assigned_students: List[Any] = Field(default_factory=list, description="Initial student ids")
    assigned_tests: List[Any] = Field(default_factory=list, description="Initial test ids")


class BatchUpdate(BaseModel):
    """Schema for updating a batch. Omitted fields are left unchanged."""
    name: Optional[str] = None
    description: Optional[str] = None
    max_students: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    assigned_students: Optional[List[Any]] = Field(None, description="Replace the student set")
    assigned_tests: Optional[List[Any]] = Field(None, description="Replace the test set")


class StudentIds(BaseModel):
    student_ids: List[Any]


class TestIds(BaseModel):
    test_ids: List[Any]


# ── CRUD ─────────────────────────────────────────────────────

@router.post("", status_code=201)
def create_batch(request: BatchCreate, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    """Create a new batch, optionally with initial students and tests."""
    payload = batches.create_batch(
        db, caller.id, request.name, description=request.description,
        max_students=request.max_students, start_date=request.start_date,
        end_date=request.end_date, assigned_students=request.assigned_students,
        assigned_tests=request.assigned_tests)
    return {"message": "Batch created successfully", **payload}


@router.get("")
def list_batches(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100, description="Results per page"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    created_by: Optional[str] = Query(None, description="Filter by creator admin ID"),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_admin)
):
    """List batches with filtering and pagination."""
    return batches.list_batches(db, page=page, per_page=per_page,
                                is_active=is_active, created_by=created_by)


@router.get("/my-batches")
def my_batches(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_admin)):
    """Batches created by the calling admin."""
    return batches.get_batches_for_admin(db, caller.id)


@router.get("/{batch_id}")
def get_batch(batch_id: str, db: Session = Depends(get_db),
              caller: CallerIdentity = Depends(require_admin)):
    return batches.get_batch(db, batch_id)


@router.put("/{batch_id}")
def update_batch(batch_id: str, request: BatchUpdate, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    """Update batch fields; assigned_students / assigned_tests replace the whole set."""
    payload = batches.update_batch(db, batch_id, request.model_dump(exclude_unset=True))
    return {"message": "Batch updated successfully", **payload}


@router.delete("/{batch_id}")
def delete_batch(batch_id: str, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    return batches.delete_batch(db, batch_id)


# ── Students ─────────────────────────────────────────────────

@router.post("/{batch_id}/students")
def assign_students(batch_id: str, request: StudentIds, db: Session = Depends(get_db),
                    caller: CallerIdentity = Depends(require_admin)):
    """Add students to the batch, all-or-nothing."""
    payload = batches.assign_students_to_batch(db, batch_id, request.student_ids)
    return {"message": "Students assigned successfully", **payload}


@router.delete("/{batch_id}/students")
def remove_students(batch_id: str, request: StudentIds = Body(...), db: Session = Depends(get_db),
                    caller: CallerIdentity = Depends(require_admin)):
    payload = batches.remove_students_from_batch(db, batch_id, request.student_ids)
    return {"message": "Students removed successfully", **payload}


@router.put("/{batch_id}/students/{student_id}")
def assign_student(batch_id: str, student_id: str, db: Session = Depends(get_db),
                   caller: CallerIdentity = Depends(require_admin)):
    payload = batches.assign_student_to_batch(db, batch_id, student_id)
    return {"message": "Student assigned successfully", **payload}


@router.delete("/{batch_id}/students/{student_id}")
def remove_student(batch_id: str, student_id: str, db: Session = Depends(get_db),
                   caller: CallerIdentity = Depends(require_admin)):
    payload = batches.remove_student_from_batch(db, batch_id, student_id)
    return {"message": "Student removed successfully", **payload}


# ── Tests ────────────────────────────────────────────────────

@router.post("/{batch_id}/tests")
def assign_tests(batch_id: str, request: TestIds, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    """Add active tests to the batch, all-or-nothing."""
    payload = batches.assign_tests_to_batch(db, batch_id, request.test_ids)
    return {"message": "Tests assigned successfully", **payload}


@router.delete("/{batch_id}/tests")
def remove_tests(batch_id: str, request: TestIds = Body(...), db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    payload = batches.remove_tests_from_batch(db, batch_id, request.test_ids)
    return {"message": "Tests removed successfully", **payload}
