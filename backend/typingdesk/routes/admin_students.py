"""
Student administration routes (admin only).

Provides endpoints for:
- Listing students by approval status with search and pagination
- Approving, blocking and unblocking (single and bulk)
- Replacing a student's batch, test and shift sets
- Assigning and removing a single shift
- Viewing a student's results
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from typingdesk.auth import require_admin
from typingdesk.database import get_db
from typingdesk.repository import DEFAULT_PAGE_SIZE
from typingdesk.services import results, shifts, students
from typingdesk.services.accounts import CallerIdentity

router = APIRouter(prefix="/api/v1/admin/students")


# ── Pydantic schemas ─────────────────────────────────────────

class BulkStatusRequest(BaseModel):
    student_ids: List[Any]


class BatchIdsRequest(BaseModel):
    batch_ids: List[Any]


class TestIdsRequest(BaseModel):
    test_ids: List[Any]


class ShiftIdsRequest(BaseModel):
    shift_ids: List[Any]


# ── Listing ──────────────────────────────────────────────────

@router.get("")
def list_students(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100, description="Results per page"),
    status: Optional[str] = Query(None, description="approved, pending or blocked"),
    search: Optional[str] = Query(None, description="Match on name or email"),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_admin)
):
    return students.list_students(db, page=page, per_page=per_page, status=status, search=search)


@router.get("/stats")
def student_stats(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_admin)):
    """Totals per approval status."""
    return students.student_counts(db)


# ── Bulk status (declared before /{student_id} routes) ──────

@router.patch("/bulk/approve")
def bulk_approve(request: BulkStatusRequest, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    payload = students.bulk_set_status(db, request.student_ids, "approve")
    return {"message": "{} students approved".format(payload["modified_count"]), **payload}


@router.patch("/bulk/block")
def bulk_block(request: BulkStatusRequest, db: Session = Depends(get_db),
               caller: CallerIdentity = Depends(require_admin)):
    payload = students.bulk_set_status(db, request.student_ids, "block")
    return {"message": "{} students blocked".format(payload["modified_count"]), **payload}


# ── Single student ───────────────────────────────────────────

@router.get("/{student_id}")
def get_student(student_id: str, db: Session = Depends(get_db),
                caller: CallerIdentity = Depends(require_admin)):
    return students.get_student(db, student_id)


@router.patch("/{student_id}/approve")
def approve_student(student_id: str, db: Session = Depends(get_db),
                    caller: CallerIdentity = Depends(require_admin)):
    return {"message": "Student approved", **students.set_status(db, student_id, "approve")}


@router.patch("/{student_id}/block")
def block_student(student_id: str, db: Session = Depends(get_db),
                  caller: CallerIdentity = Depends(require_admin)):
    return {"message": "Student blocked", **students.set_status(db, student_id, "block")}


@router.patch("/{student_id}/unblock")
def unblock_student(student_id: str, db: Session = Depends(get_db),
                    caller: CallerIdentity = Depends(require_admin)):
    return {"message": "Student unblocked", **students.set_status(db, student_id, "unblock")}


# ── Membership replacement ───────────────────────────────────

@router.put("/{student_id}/batches")
def replace_batches(student_id: str, request: BatchIdsRequest, db: Session = Depends(get_db),
                    caller: CallerIdentity = Depends(require_admin)):
    """Make batch_ids the student's exact batch set. An empty list clears it."""
    return students.replace_student_batches(db, student_id, request.batch_ids)


@router.put("/{student_id}/tests")
def replace_tests(student_id: str, request: TestIdsRequest, db: Session = Depends(get_db),
                  caller: CallerIdentity = Depends(require_admin)):
    return students.replace_student_tests(db, student_id, request.test_ids)


@router.put("/{student_id}/shifts")
def replace_shifts(student_id: str, request: ShiftIdsRequest, db: Session = Depends(get_db),
                   caller: CallerIdentity = Depends(require_admin)):
    return students.replace_student_shifts(db, student_id, request.shift_ids)


@router.post("/{student_id}/shifts/{shift_id}")
def assign_shift(student_id: str, shift_id: str, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    return {"message": "Shift assigned", **shifts.assign_shift_to_student(db, student_id, shift_id)}


@router.delete("/{student_id}/shifts/{shift_id}")
def remove_shift(student_id: str, shift_id: str, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    return {"message": "Shift removed", **shifts.remove_shift_from_student(db, student_id, shift_id)}


@router.get("/{student_id}/results")
def student_results(student_id: str, db: Session = Depends(get_db),
                    caller: CallerIdentity = Depends(require_admin)):
    """Every result the student has submitted, newest first."""
    students.get_student(db, student_id)
    return results.get_results_for_student(db, student_id)
