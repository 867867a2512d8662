"""
Response shapes for entities returned by the service layer.

Entities are returned with their direct fields plus shallow summaries of
related entities: the id and one or two display fields, never the full
related document.
"""

from typing import Iterable, List

from typingdesk.models.admin import Admin
from typingdesk.models.batch import Batch
from typingdesk.models.result import Result
from typingdesk.models.shift import Shift
from typingdesk.models.student import Student
from typingdesk.models.test import Test
from typingdesk.repository import EntityRepository


def _iso(value):
    return value.isoformat() if value else None


def student_summary(s: Student) -> dict:
    return {"id": s.id, "name": s.name, "email": s.email}


def batch_summary(b: Batch) -> dict:
    return {"id": b.id, "name": b.name}


def test_summary(t: Test) -> dict:
    return {"id": t.id, "title": t.title, "duration": t.duration}


def shift_summary(h: Shift) -> dict:
    return {"id": h.id, "name": h.name}


def admin_summary(a: Admin) -> dict:
    return {"id": a.id, "name": a.name, "email": a.email}


def _summaries(repo: EntityRepository, model, ids: Iterable[str], summarize) -> List[dict]:
    """Summaries in stored order; ids whose row is gone are skipped."""
    ids = list(ids)
    found = repo.find_by_ids(model, ids)
    return [summarize(found[i]) for i in ids if i in found]


def serialize_student(repo: EntityRepository, student: Student) -> dict:
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "is_approved": student.is_approved,
        "is_blocked": student.is_blocked,
        "is_online_mode": student.is_online_mode,
        "status": student.status,
        "assigned_batches": _summaries(repo, Batch, student.batch_ids, batch_summary),
        "assigned_tests": _summaries(repo, Test, student.test_ids, test_summary),
        "assigned_shifts": _summaries(repo, Shift, student.shift_ids, shift_summary),
        "results": student.result_ids,
        "last_login": _iso(student.last_login),
        "created_at": _iso(student.created_at),
        "updated_at": _iso(student.updated_at),
    }


def serialize_batch(repo: EntityRepository, batch: Batch) -> dict:
    creator = repo.find_by_id(Admin, batch.created_by)
    return {
        "id": batch.id,
        "name": batch.name,
        "description": batch.description,
        "created_by": admin_summary(creator) if creator else None,
        "students": _summaries(repo, Student, batch.student_ids, student_summary),
        "tests": _summaries(repo, Test, batch.test_ids, test_summary),
        "student_count": len(batch.student_ids),
        "is_active": batch.is_active,
        "max_students": batch.max_students,
        "start_date": _iso(batch.start_date),
        "end_date": _iso(batch.end_date),
        "created_at": _iso(batch.created_at),
        "updated_at": _iso(batch.updated_at),
    }


def serialize_test(repo: EntityRepository, test: Test) -> dict:
    return {
        "id": test.id,
        "title": test.title,
        "audio_url": test.audio_url,
        "reference_text": test.reference_text,
        "uploaded_by": test.uploaded_by,
        "assigned_batches": _summaries(repo, Batch, test.batch_ids, batch_summary),
        "assigned_students": _summaries(repo, Student, test.student_ids, student_summary),
        "is_active": test.is_active,
        "duration": test.duration,
        "created_at": _iso(test.created_at),
        "updated_at": _iso(test.updated_at),
    }


def serialize_shift(repo: EntityRepository, shift: Shift) -> dict:
    test = repo.find_by_id(Test, shift.test_id) if shift.test_id else None
    return {
        "id": shift.id,
        "name": shift.name,
        "start_time": _iso(shift.start_time),
        "duration_minutes": shift.duration_minutes,
        "students": _summaries(repo, Student, shift.student_ids, student_summary),
        "test": test_summary(test) if test else None,
        "date": _iso(shift.date),
    }


def serialize_result(result: Result) -> dict:
    return {
        "id": result.id,
        "student_id": result.student_id,
        "shift_id": result.shift_id,
        "test_id": result.test_id,
        "wpm": float(result.wpm),
        "accuracy": float(result.accuracy),
        "mistakes": result.mistakes_list,
        "submitted_at": _iso(result.submitted_at),
    }


def serialize_admin(admin: Admin) -> dict:
    return {
        "id": admin.id,
        "name": admin.name,
        "email": admin.email,
        "role": admin.role,
        "is_active": admin.is_active,
        "last_login": _iso(admin.last_login),
        "created_at": _iso(admin.created_at),
    }


def serialize_test_for_student(test: Test) -> dict:
    """What a student needs to take a test; no membership lists."""
    return {
        "id": test.id,
        "title": test.title,
        "audio_url": test.audio_url,
        "reference_text": test.reference_text,
        "duration": test.duration,
    }
