"""
Student self-service routes.

Profile and status are available to every student so that pending and
blocked students can see where they stand. Everything else requires an
approved, non-blocked account.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from typingdesk.auth import require_approved_student, require_student
from typingdesk.database import get_db
from typingdesk.services import batches, results, shifts, students
from typingdesk.services.accounts import CallerIdentity

router = APIRouter(prefix="/api/v1/student")


# ── Pydantic schemas ─────────────────────────────────────────

class ProfileUpdate(BaseModel):
    name: Optional[str] = None


class MistakeEntry(BaseModel):
    """One mistyped word in a submission."""
    expected: str
    typed: str
    position: Optional[int] = None


class ResultSubmission(BaseModel):
    """Schema for submitting a typing test result."""
    test_id: Optional[str] = None
    shift_id: Optional[str] = None
    wpm: float = Field(..., ge=0, description="Words per minute")
    accuracy: float = Field(..., ge=0, le=100, description="Accuracy percentage")
    mistakes: List[MistakeEntry] = Field(default_factory=list)


# ── Profile ──────────────────────────────────────────────────

@router.get("/profile")
def get_profile(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_student)):
    return students.get_student(db, caller.id)


@router.patch("/profile")
def update_profile(request: ProfileUpdate, db: Session = Depends(get_db),
                   caller: CallerIdentity = Depends(require_student)):
    return {"message": "Profile updated", **students.update_own_profile(db, caller.id, request.name)}


@router.get("/status")
def get_status(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_student)):
    return students.get_status(db, caller.id)


# ── Assignments ──────────────────────────────────────────────

@router.get("/my-batches")
def my_batches(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_approved_student)):
    return batches.get_batches_for_student(db, caller.id)


@router.get("/my-tests")
def my_tests(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_approved_student)):
    """Active tests from the student's batches plus direct assignments."""
    return batches.get_tests_for_student(db, caller.id)


@router.get("/batch/{batch_id}/tests")
def batch_tests(batch_id: str, db: Session = Depends(get_db),
                caller: CallerIdentity = Depends(require_approved_student)):
    return batches.get_batch_tests_for_student(db, caller.id, batch_id)


@router.get("/shifts")
def my_shifts(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_approved_student)):
    return shifts.get_shifts_for_student(db, caller.id)


# ── Results ──────────────────────────────────────────────────

@router.get("/results")
def my_results(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_approved_student)):
    return results.get_results_for_student(db, caller.id)


@router.post("/results", status_code=201)
def submit_result(request: ResultSubmission, db: Session = Depends(get_db),
                  caller: CallerIdentity = Depends(require_approved_student)):
    payload = results.submit_result(
        db, caller.id, wpm=request.wpm, accuracy=request.accuracy,
        test_id=request.test_id, shift_id=request.shift_id,
        mistakes=[m.model_dump() for m in request.mistakes])
    return {"message": "Result submitted successfully", **payload}
