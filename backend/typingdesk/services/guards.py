"""
Capacity & Eligibility Guard - pre-flight checks for new assignments.

All checks are read-only. The membership synchronizer calls
check_additions() inside the same transaction that performs the write,
after the affected rows have been loaded (batch rows locked), so the
values checked are the values the write is based on.

Rules:
1. Only approved, non-blocked students join batches or shifts
2. A batch never holds more than max_students students
3. Inactive batches and tests accept no new assignments
"""

from typing import List, Sequence

from typingdesk.errors import CapacityError, EligibilityError
from typingdesk.models.batch import Batch
from typingdesk.models.student import Student


def is_eligible(student: Student) -> bool:
    return student.is_approved is True and student.is_blocked is not True


def check_eligibility(student: Student) -> None:
    """Fail with EligibilityError unless the student is approved and not blocked."""
    if student.is_blocked is True:
        raise EligibilityError("Student {} is blocked".format(student.id),
                               ineligible_ids=[student.id])
    if student.is_approved is not True:
        raise EligibilityError("Student {} is not approved".format(student.id),
                               ineligible_ids=[student.id])


def check_students_eligible(students: Sequence[Student]) -> None:
    """Bulk variant: one error naming every ineligible student."""
    ineligible = [s.id for s in students if not is_eligible(s)]
    if ineligible:
        raise EligibilityError(
            "{} student(s) are not approved or are blocked".format(len(ineligible)),
            ineligible_ids=ineligible)


def check_capacity(batch: Batch, additional_count: int) -> None:
    """Fail with CapacityError if adding additional_count students overflows the batch."""
    current = len(batch.student_ids)
    if current + additional_count > batch.max_students:
        raise CapacityError(
            "Batch capacity exceeded. Maximum {} students allowed ({} enrolled, {} requested)".format(
                batch.max_students, current, additional_count),
            batch_id=batch.id, max_students=batch.max_students)


def check_active(entities: Sequence) -> None:
    """Fail with EligibilityError if any batch or test is inactive."""
    inactive = [e.id for e in entities if e.is_active is not True]
    if inactive:
        label = "batch(es)" if isinstance(entities[0], Batch) else "test(s)"
        raise EligibilityError("{} {} inactive: new assignments are not allowed".format(
            len(inactive), label), ineligible_ids=inactive)


def check_additions(relation, owner, added: List, removed_count: int) -> None:
    """
    Run every rule that applies when `added` entities join `owner` through `relation`.

    removed_count is the number of members leaving the owner in the same
    operation; for a batch owner it offsets the capacity delta.
    """
    if not added:
        return

    pair = (relation.owner_model.__tablename__, relation.related_model.__tablename__)

    if pair == ("students", "batches"):
        check_eligibility(owner)
        check_active(added)
        for batch in added:
            check_capacity(batch, 1)
    elif pair == ("batches", "students"):
        check_active([owner])
        check_students_eligible(added)
        check_capacity(owner, len(added) - removed_count)
    elif pair in (("batches", "tests"), ("tests", "batches")):
        check_active([owner])
        check_active(added)
    elif pair == ("students", "tests"):
        check_active(added)
    elif pair == ("tests", "students"):
        check_active([owner])
    elif pair == ("students", "shifts"):
        check_eligibility(owner)
    elif pair == ("shifts", "students"):
        check_students_eligible(added)
