"""
Typing test routes (admin only).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from typingdesk.auth import require_admin
from typingdesk.database import get_db
from typingdesk.services import typing_tests
from typingdesk.services.accounts import CallerIdentity

router = APIRouter(prefix="/api/v1/tests")


class TestCreate(BaseModel):
    title: str
    reference_text: str
    audio_url: Optional[str] = None
    duration: Optional[int] = Field(None, description="Seconds (default 300)")


class TestUpdate(BaseModel):
    title: Optional[str] = None
    reference_text: Optional[str] = None
    audio_url: Optional[str] = None
    duration: Optional[int] = None
    is_active: Optional[bool] = None


@router.post("", status_code=201)
def create_test(request: TestCreate, db: Session = Depends(get_db),
                caller: CallerIdentity = Depends(require_admin)):
    payload = typing_tests.create_test(db, caller.id, request.title, request.reference_text,
                                       audio_url=request.audio_url, duration=request.duration)
    return {"message": "Test created successfully", **payload}


@router.get("")
def list_tests(is_active: Optional[bool] = Query(None, description="Filter by active status"),
               db: Session = Depends(get_db), caller: CallerIdentity = Depends(require_admin)):
    return typing_tests.list_tests(db, is_active=is_active)


@router.get("/{test_id}")
def get_test(test_id: str, db: Session = Depends(get_db),
             caller: CallerIdentity = Depends(require_admin)):
    return typing_tests.get_test(db, test_id)


@router.put("/{test_id}")
def update_test(test_id: str, request: TestUpdate, db: Session = Depends(get_db),
                caller: CallerIdentity = Depends(require_admin)):
    payload = typing_tests.update_test(db, test_id, request.model_dump(exclude_unset=True))
    return {"message": "Test updated successfully", **payload}


@router.delete("/{test_id}")
def delete_test(test_id: str, db: Session = Depends(get_db),
                caller: CallerIdentity = Depends(require_admin)):
    """Delete a test. Batches, students and shifts stop referencing it."""
    return typing_tests.delete_test(db, test_id)
