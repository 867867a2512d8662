"""
Service-layer operations built on the synchronizer: batch CRUD, student
administration, test and shift cascades, results and accounts.
"""

import pytest

from typingdesk.errors import (
    CapacityError, ConflictError, EligibilityError, ForbiddenError, NotFoundError,
    UnauthenticatedError, ValidationError
)
from typingdesk.models import Admin, Shift, Student, Test
from typingdesk.services import accounts, batches, results, shifts, students, typing_tests
from typingdesk.services.accounts import VerifiedIdentity


def reload(db, entity):
    db.expire_all()
    return db.get(type(entity), entity.id)


# ── Batches ──────────────────────────────────────────────────

def test_create_batch_with_initial_members(db, admin, make_student, make_test):
    s1, s2 = make_student(), make_student()
    test = make_test()

    payload = batches.create_batch(db, admin.id, "  Evening  ", max_students=5,
                                   assigned_students=[s1.id, s2.id], assigned_tests=[{"_id": test.id}])

    batch = payload["batch"]
    assert batch["name"] == "Evening"
    assert batch["student_count"] == 2
    assert batch["created_by"]["id"] == admin.id
    assert [t["id"] for t in batch["tests"]] == [test.id]
    assert reload(db, s1).batch_ids == [batch["id"]]
    assert reload(db, test).batch_ids == [batch["id"]]


def test_create_batch_rolls_back_when_initial_member_missing(db, admin, make_student):
    s1 = make_student()
    with pytest.raises(NotFoundError):
        batches.create_batch(db, admin.id, "Ghost batch", assigned_students=[s1.id, "missing"])

    assert batches.list_batches(db)["pagination"]["total"] == 0
    assert reload(db, s1).batch_ids == []


def test_duplicate_batch_name(db, admin, make_batch):
    make_batch(name="Morning")
    with pytest.raises(ConflictError):
        batches.create_batch(db, admin.id, "Morning")


def test_invalid_max_students(db, admin):
    with pytest.raises(ValidationError):
        batches.create_batch(db, admin.id, "Zero", max_students=0)


def test_list_batches_filters_and_paginates(db, make_batch):
    for _ in range(3):
        make_batch()
    make_batch(is_active=False)

    page = batches.list_batches(db, page=1, per_page=2, is_active=True)
    assert page["pagination"] == {"page": 1, "per_page": 2, "total": 3, "total_pages": 2}
    assert len(page["batches"]) == 2


def test_update_batch_replaces_students(db, make_batch, make_student):
    batch = make_batch()
    s1, s2 = make_student(), make_student()
    batches.assign_students_to_batch(db, batch.id, [s1.id])

    payload = batches.update_batch(db, batch.id, {"description": "Updated", "assigned_students": [s2.id]})

    assert payload["batch"]["description"] == "Updated"
    assert [s["id"] for s in payload["batch"]["students"]] == [s2.id]
    assert reload(db, s1).batch_ids == []


def test_update_batch_cannot_shrink_below_enrolment(db, make_batch, make_student):
    batch = make_batch(max_students=3)
    batches.assign_students_to_batch(db, batch.id, [make_student().id, make_student().id])

    with pytest.raises(CapacityError):
        batches.update_batch(db, batch.id, {"max_students": 1})
    assert reload(db, batch).max_students == 3


def test_update_batch_rejects_unknown_fields(db, make_batch):
    batch = make_batch()
    with pytest.raises(ValidationError):
        batches.update_batch(db, batch.id, {"created_by": "someone"})


def test_delete_batch_cleans_students_and_tests(db, make_batch, make_student, make_test):
    batch = make_batch()
    student = make_student()
    test = make_test()
    batches.assign_students_to_batch(db, batch.id, [student.id])
    batches.assign_tests_to_batch(db, batch.id, [test.id])

    batch_id = batch.id
    batches.delete_batch(db, batch_id)

    assert reload(db, student).batch_ids == []
    assert reload(db, test).batch_ids == []
    with pytest.raises(NotFoundError):
        batches.get_batch(db, batch_id)


def test_single_student_assign_and_remove(db, make_batch, make_student):
    batch = make_batch()
    student = make_student()

    batches.assign_student_to_batch(db, batch.id, student.id)
    batches.assign_student_to_batch(db, batch.id, student.id)
    assert reload(db, batch).student_ids == [student.id]

    batches.remove_student_from_batch(db, batch.id, student.id)
    assert reload(db, batch).student_ids == []
    assert reload(db, student).batch_ids == []


def test_unapproved_student_can_join_once_approved(db, make_batch, make_student):
    batch = make_batch()
    student = make_student(approved=False)

    with pytest.raises(EligibilityError) as exc:
        batches.assign_students_to_batch(db, batch.id, [student.id])
    assert exc.value.ineligible_ids == [student.id]
    assert reload(db, batch).student_ids == []
    assert reload(db, student).batch_ids == []

    students.set_status(db, student.id, "approve")
    payload = batches.assign_students_to_batch(db, batch.id, [student.id])

    assert [s["id"] for s in payload["batch"]["students"]] == [student.id]
    assert reload(db, student).batch_ids == [batch.id]


def test_capacity_ceiling_sequence(db, make_batch, make_student):
    batch = make_batch(max_students=2)
    s1, s2, s3 = make_student(), make_student(), make_student()

    with pytest.raises(CapacityError) as exc:
        batches.assign_students_to_batch(db, batch.id, [s1.id, s2.id, s3.id])
    assert exc.value.max_students == 2
    assert reload(db, batch).student_ids == []
    assert [reload(db, s).batch_ids for s in (s1, s2, s3)] == [[], [], []]

    batches.assign_students_to_batch(db, batch.id, [s1.id, s2.id])
    assert reload(db, batch).student_ids == [s1.id, s2.id]

    with pytest.raises(CapacityError):
        batches.assign_student_to_batch(db, batch.id, s3.id)
    assert reload(db, s3).batch_ids == []

    payload = batches.assign_student_to_batch(db, batch.id, s1.id)
    assert payload["batch"]["student_count"] == 2
    assert reload(db, batch).student_ids == [s1.id, s2.id]
    assert reload(db, s1).batch_ids == [batch.id]


def test_bulk_assign_rejects_garbage_list(db, make_batch):
    batch = make_batch()
    with pytest.raises(ValidationError):
        batches.assign_students_to_batch(db, batch.id, [None, {}])


def test_tests_for_student_merges_batches_and_direct(db, make_batch, make_student, make_test):
    batch = make_batch()
    student = make_student()
    via_batch, direct, retired = make_test("Via batch"), make_test("Direct"), make_test("Retired")
    batches.assign_students_to_batch(db, batch.id, [student.id])
    batches.assign_tests_to_batch(db, batch.id, [via_batch.id, retired.id])
    students.replace_student_tests(db, student.id, [direct.id, via_batch.id])
    typing_tests.update_test(db, retired.id, {"is_active": False})

    titles = [t["title"] for t in batches.get_tests_for_student(db, student.id)["tests"]]

    assert titles == ["Via batch", "Direct"]


def test_batch_tests_require_membership(db, make_batch, make_student):
    batch = make_batch()
    outsider = make_student()
    with pytest.raises(ForbiddenError):
        batches.get_batch_tests_for_student(db, outsider.id, batch.id)


# ── Students ─────────────────────────────────────────────────

def test_status_actions(db, make_student):
    student = make_student(approved=False)

    assert students.set_status(db, student.id, "approve")["student"]["status"] == "approved"
    assert students.set_status(db, student.id, "block")["student"]["status"] == "blocked"
    unblocked = students.set_status(db, student.id, "unblock")["student"]
    assert unblocked["is_blocked"] is False
    assert unblocked["is_approved"] is False
    assert unblocked["status"] == "pending"


def test_block_keeps_existing_memberships(db, make_batch, make_student):
    batch = make_batch()
    student = make_student()
    batches.assign_students_to_batch(db, batch.id, [student.id])

    students.set_status(db, student.id, "block")

    assert reload(db, batch).student_ids == [student.id]


def test_bulk_status_counts_modified(db, make_student):
    pending = make_student(approved=False)
    approved = make_student()

    result = students.bulk_set_status(db, [pending.id, approved.id, "unknown"], "approve")

    assert result == {"modified_count": 1}
    assert reload(db, pending).is_approved is True


def test_list_students_by_status_and_search(db, make_student):
    make_student(name="Asha Verma")
    make_student(name="Ravi Kumar", approved=False)
    make_student(name="Blocked One", blocked=True)

    assert students.list_students(db, status="pending")["pagination"]["total"] == 1
    assert students.list_students(db, status="blocked")["pagination"]["total"] == 1
    found = students.list_students(db, search="asha")["students"]
    assert [s["name"] for s in found] == ["Asha Verma"]
    assert students.student_counts(db) == {"total": 3, "approved": 1, "pending": 1, "blocked": 1}

    with pytest.raises(ValidationError):
        students.list_students(db, status="sleeping")


def test_replace_student_batches_with_empty_list(db, make_batch, make_student):
    batch = make_batch()
    student = make_student()
    students.replace_student_batches(db, student.id, [batch.id])

    payload = students.replace_student_batches(db, student.id, [])

    assert payload["student"]["assigned_batches"] == []
    assert reload(db, batch).student_ids == []


def test_update_own_profile_ignores_blank_name(db, make_student):
    student = make_student(name="Original")
    assert students.update_own_profile(db, student.id, "   ")["student"]["name"] == "Original"
    assert students.update_own_profile(db, student.id, " New ")["student"]["name"] == "New"


# ── Tests and shifts ─────────────────────────────────────────

def test_delete_test_cleans_every_reference(db, make_batch, make_student, make_test, make_shift):
    batch = make_batch()
    student = make_student()
    test = make_test()
    shift = make_shift(test_id=test.id)
    batches.assign_tests_to_batch(db, batch.id, [test.id])
    students.replace_student_tests(db, student.id, [test.id])

    test_id = test.id
    typing_tests.delete_test(db, test_id)

    assert reload(db, batch).test_ids == []
    assert reload(db, student).test_ids == []
    assert reload(db, shift).test_id is None
    assert db.get(Test, test_id) is None


def test_create_test_validates(db, admin):
    with pytest.raises(ValidationError):
        typing_tests.create_test(db, admin.id, "", "text")
    with pytest.raises(ValidationError):
        typing_tests.create_test(db, admin.id, "Title", "text", duration=0)
    created = typing_tests.create_test(db, admin.id, "Title", "text")["test"]
    assert created["duration"] == 300


def test_shift_assignment_and_delete(db, make_student, make_shift):
    student = make_student()
    shift = make_shift()

    shifts.assign_shift_to_student(db, student.id, shift.id)
    assert [s["id"] for s in shifts.get_shifts_for_student(db, student.id)["shifts"]] == [shift.id]

    shift_id = shift.id
    shifts.delete_shift(db, shift_id)
    assert reload(db, student).shift_ids == []
    assert db.get(Shift, shift_id) is None


def test_create_shift_with_unknown_test(db):
    with pytest.raises(NotFoundError):
        shifts.create_shift(db, "Shift B", test_id="missing")


# ── Results ──────────────────────────────────────────────────

def test_submit_result_links_student(db, make_student, make_test, make_shift):
    student = make_student()
    test = make_test()
    shift = make_shift(test_id=test.id)

    result = results.submit_result(db, student.id, wpm=42.5, accuracy=97.0, test_id=test.id,
                                   shift_id=shift.id, mistakes=[{"expected": "fox", "typed": "fix"}])["result"]

    assert reload(db, student).result_ids == [result["id"]]
    by_shift = results.get_results_by_shift(db, shift.id)["results"]
    assert by_shift[0]["student"]["id"] == student.id
    assert by_shift[0]["mistakes"] == [{"expected": "fox", "typed": "fix"}]


def test_submit_result_validates(db, make_student):
    student = make_student()
    with pytest.raises(ValidationError):
        results.submit_result(db, student.id, wpm=10, accuracy=101)
    with pytest.raises(NotFoundError):
        results.submit_result(db, student.id, wpm=10, accuracy=90, test_id="missing")


# ── Accounts ─────────────────────────────────────────────────

def test_login_registers_pending_student_once(db):
    identity = VerifiedIdentity(subject_id="firebase-1", email="New@Example.com", display_name="New")

    first = accounts.login_or_register(db, identity)
    second = accounts.login_or_register(db, identity)

    assert first["is_new_user"] is True
    assert second["is_new_user"] is False
    assert first["user"]["role"] == "student"
    assert first["user"]["is_approved"] is False
    assert first["user"]["email"] == "new@example.com"
    assert db.query(Student).count() == 1


def test_login_registers_admin_from_allow_list(db):
    identity = VerifiedIdentity(subject_id="firebase-admin", email="admin@typingdesk.test")
    payload = accounts.login_or_register(db, identity)
    assert payload["user"]["role"] == "admin"
    assert db.query(Admin).count() == 1


def test_login_email_taken_by_other_subject(db):
    accounts.login_or_register(db, VerifiedIdentity(subject_id="a", email="x@example.com"))
    with pytest.raises(ConflictError):
        accounts.login_or_register(db, VerifiedIdentity(subject_id="b", email="x@example.com"))


def test_unknown_subject_is_unauthenticated(db):
    with pytest.raises(UnauthenticatedError):
        accounts.resolve_caller(db, VerifiedIdentity(subject_id="nobody", email="n@example.com"))
