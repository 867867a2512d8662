"""
Membership synchronizer: both sides of every relation stay in step, and
failed operations leave no trace.
"""

import pytest

from typingdesk.errors import CapacityError, EligibilityError, NotFoundError
from typingdesk.models import Batch, Shift, Student, Test
from typingdesk.services import membership
from typingdesk.services.membership import RelationKind


def reload(db, entity):
    db.expire_all()
    return db.get(type(entity), entity.id)


def test_add_students_updates_both_sides(db, make_batch, make_student):
    batch = make_batch()
    s1, s2 = make_student(), make_student()

    membership.add_members(db, batch.id, [s1.id, {"_id": s2.id}], RelationKind.BATCH_STUDENTS)

    assert reload(db, batch).student_ids == [s1.id, s2.id]
    assert reload(db, s1).batch_ids == [batch.id]
    assert reload(db, s2).batch_ids == [batch.id]


def test_sync_is_idempotent(db, make_batch, make_student):
    batch = make_batch()
    s1 = make_student()

    membership.sync_membership(db, batch.id, [s1.id], RelationKind.BATCH_STUDENTS)
    membership.sync_membership(db, batch.id, [s1.id, s1.id], RelationKind.BATCH_STUDENTS)

    assert reload(db, batch).student_ids == [s1.id]
    assert reload(db, s1).batch_ids == [batch.id]


def test_replacement_adds_and_removes(db, make_batch, make_student):
    batch = make_batch()
    s1, s2, s3 = make_student(), make_student(), make_student()
    membership.sync_membership(db, batch.id, [s1.id, s2.id], RelationKind.BATCH_STUDENTS)

    membership.sync_membership(db, batch.id, [s2.id, s3.id], RelationKind.BATCH_STUDENTS)

    assert reload(db, batch).student_ids == [s2.id, s3.id]
    assert reload(db, s1).batch_ids == []
    assert reload(db, s2).batch_ids == [batch.id]
    assert reload(db, s3).batch_ids == [batch.id]


def test_missing_id_aborts_whole_operation(db, make_batch, make_student):
    batch = make_batch()
    s1 = make_student()

    with pytest.raises(NotFoundError) as exc:
        membership.add_members(db, batch.id, [s1.id, "ghost"], RelationKind.BATCH_STUDENTS)

    assert exc.value.missing_ids == ["ghost"]
    assert reload(db, batch).student_ids == []
    assert reload(db, s1).batch_ids == []


def test_missing_owner(db):
    with pytest.raises(NotFoundError) as exc:
        membership.sync_membership(db, "nope", [], RelationKind.BATCH_STUDENTS)
    assert exc.value.missing_ids == ["nope"]


def test_capacity_is_enforced_atomically(db, make_batch, make_student):
    batch = make_batch(max_students=2)
    s1, s2, s3 = make_student(), make_student(), make_student()
    membership.add_members(db, batch.id, [s1.id], RelationKind.BATCH_STUDENTS)

    with pytest.raises(CapacityError):
        membership.add_members(db, batch.id, [s2.id, s3.id], RelationKind.BATCH_STUDENTS)

    assert reload(db, batch).student_ids == [s1.id]
    assert reload(db, s2).batch_ids == []
    assert reload(db, s3).batch_ids == []


def test_existing_members_do_not_count_twice(db, make_batch, make_student):
    batch = make_batch(max_students=2)
    s1, s2 = make_student(), make_student()
    membership.add_members(db, batch.id, [s1.id], RelationKind.BATCH_STUDENTS)

    membership.add_members(db, batch.id, [s1.id, s2.id], RelationKind.BATCH_STUDENTS)

    assert reload(db, batch).student_ids == [s1.id, s2.id]


def test_student_side_capacity(db, make_batch, make_student):
    full = make_batch(max_students=1)
    occupant, newcomer = make_student(), make_student()
    membership.add_members(db, full.id, [occupant.id], RelationKind.BATCH_STUDENTS)

    with pytest.raises(CapacityError):
        membership.sync_membership(db, newcomer.id, [full.id], RelationKind.STUDENT_BATCHES)
    assert reload(db, newcomer).batch_ids == []


def test_ineligible_students_rejected(db, make_batch, make_student):
    batch = make_batch()
    ok = make_student()
    pending = make_student(approved=False)
    blocked = make_student(blocked=True)

    with pytest.raises(EligibilityError) as exc:
        membership.add_members(db, batch.id, [ok.id, pending.id, blocked.id],
                               RelationKind.BATCH_STUDENTS)

    assert set(exc.value.ineligible_ids) == {pending.id, blocked.id}
    assert reload(db, batch).student_ids == []


def test_blocked_student_can_still_be_removed(db, make_batch, make_student):
    batch = make_batch()
    s1 = make_student()
    membership.add_members(db, batch.id, [s1.id], RelationKind.BATCH_STUDENTS)
    s1 = reload(db, s1)
    s1.is_blocked = True
    db.commit()

    membership.remove_members(db, batch.id, [s1.id], RelationKind.BATCH_STUDENTS)

    assert reload(db, batch).student_ids == []
    assert reload(db, s1).batch_ids == []


def test_student_batches_sync_updates_every_batch(db, make_batch, make_student):
    b1, b2, b3 = make_batch(), make_batch(), make_batch()
    student = make_student()
    membership.sync_membership(db, student.id, [b1.id, b2.id], RelationKind.STUDENT_BATCHES)

    membership.sync_membership(db, student.id, [b2.id, b3.id], RelationKind.STUDENT_BATCHES)

    assert reload(db, student).batch_ids == [b2.id, b3.id]
    assert reload(db, b1).student_ids == []
    assert reload(db, b2).student_ids == [student.id]
    assert reload(db, b3).student_ids == [student.id]


def test_batch_tests_and_inactive_tests(db, make_batch, make_test):
    batch = make_batch()
    active, inactive = make_test(), make_test(is_active=False)

    membership.add_members(db, batch.id, [active.id], RelationKind.BATCH_TESTS)
    assert reload(db, active).batch_ids == [batch.id]

    with pytest.raises(EligibilityError):
        membership.add_members(db, batch.id, [inactive.id], RelationKind.BATCH_TESTS)
    assert reload(db, batch).test_ids == [active.id]


def test_direct_test_assignment_is_two_sided(db, make_student, make_test):
    student = make_student()
    test = make_test()

    membership.sync_membership(db, student.id, [test.id], RelationKind.STUDENT_TESTS)

    assert reload(db, test).student_ids == [student.id]
    membership.sync_membership(db, student.id, [], RelationKind.STUDENT_TESTS)
    assert reload(db, test).student_ids == []


def test_shift_assignment_requires_eligibility(db, make_student, make_shift):
    shift = make_shift()
    pending = make_student(approved=False)

    with pytest.raises(EligibilityError):
        membership.add_members(db, pending.id, [shift.id], RelationKind.STUDENT_SHIFTS)
    assert reload(db, shift).student_ids == []


def test_detach_all_clears_other_side(db, make_batch, make_student, make_test):
    from typingdesk.repository import EntityRepository
    from typingdesk.database import transaction

    batch = make_batch()
    student = make_student()
    test = make_test()
    membership.add_members(db, batch.id, [student.id], RelationKind.BATCH_STUDENTS)
    membership.add_members(db, batch.id, [test.id], RelationKind.BATCH_TESTS)

    repo = EntityRepository(db)
    with transaction(db):
        touched = membership.detach_all(repo, reload(db, batch))

    assert touched == 2
    assert reload(db, student).batch_ids == []
    assert reload(db, test).batch_ids == []


def test_relations_owned_by():
    kinds = {r.kind for r in membership.relations_owned_by(Student)}
    assert kinds == {RelationKind.STUDENT_BATCHES, RelationKind.STUDENT_TESTS,
                     RelationKind.STUDENT_SHIFTS}
    assert {r.kind for r in membership.relations_owned_by(Shift)} == {RelationKind.SHIFT_STUDENTS}
    assert len(membership.relations_owned_by(Batch)) == 2
    assert len(membership.relations_owned_by(Test)) == 2
