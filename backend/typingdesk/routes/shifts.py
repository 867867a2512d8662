"""
Shift routes (admin only), including the per-shift result view.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from typingdesk.auth import require_admin
from typingdesk.database import get_db
from typingdesk.services import results, shifts
from typingdesk.services.accounts import CallerIdentity

router = APIRouter(prefix="/api/v1/shifts")


class ShiftCreate(BaseModel):
    name: str
    start_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    test_id: Optional[str] = None
    date: Optional[datetime] = None


@router.post("", status_code=201)
def create_shift(request: ShiftCreate, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    payload = shifts.create_shift(db, request.name, start_time=request.start_time,
                                  duration_minutes=request.duration_minutes,
                                  test_id=request.test_id, date=request.date)
    return {"message": "Shift created successfully", **payload}


@router.get("")
def list_shifts(db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_admin)):
    return shifts.list_shifts(db)


@router.get("/{shift_id}")
def get_shift(shift_id: str, db: Session = Depends(get_db),
              caller: CallerIdentity = Depends(require_admin)):
    return shifts.get_shift(db, shift_id)


@router.delete("/{shift_id}")
def delete_shift(shift_id: str, db: Session = Depends(get_db),
                 caller: CallerIdentity = Depends(require_admin)):
    return shifts.delete_shift(db, shift_id)


@router.get("/{shift_id}/results")
def shift_results(shift_id: str, db: Session = Depends(get_db),
                  caller: CallerIdentity = Depends(require_admin)):
    """All results submitted for a shift, newest first."""
    shifts.get_shift(db, shift_id)
    return results.get_results_by_shift(db, shift_id)
