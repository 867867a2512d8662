"""
Membership Synchronizer - the only code path that mutates relation id sets.

Every many-to-many relation is stored twice, once on each participating
row (see models/fields.py). This module keeps both copies identical:

    B in student.assigned_batches  <=>  S in batch.students
    T in batch.tests               <=>  B in test.assigned_batches
    H in student.assigned_shifts   <=>  S in shift.students
    T in student.assigned_tests    <=>  S in test.assigned_students

Sync algorithm (sync_membership):
1. Load and lock the owner row (NotFoundError if absent)
2. to_add = desired - current, to_remove = current - desired
3. Lock every to_add and to_remove row in id order; NotFoundError naming
   exactly the missing to_add ids
4. Run the capacity / eligibility guard for the relation
5. $set the owner's id set, $addToSet the owner id on each added row,
   $pull it from each removed row
6. Commit; any failure in steps 1-5 rolls back everything

Retries are safe: the diff is recomputed from stored state on every call,
so repeating a sync with the same desired set changes nothing.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List

from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import NotFoundError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.batch import Batch
from typingdesk.models.fields import read_ids
from typingdesk.models.shift import Shift
from typingdesk.models.student import Student
from typingdesk.models.test import Test
from typingdesk.repository import EntityRepository
from typingdesk.services.guards import check_additions
from typingdesk.services.ids import normalize_ids

logger = get_logger("membership")


class RelationKind(str, Enum):
    """Which id set of the owner is being synced."""
    STUDENT_BATCHES = "student_batches"
    STUDENT_TESTS = "student_tests"
    STUDENT_SHIFTS = "student_shifts"
    BATCH_STUDENTS = "batch_students"
    BATCH_TESTS = "batch_tests"
    TEST_BATCHES = "test_batches"
    TEST_STUDENTS = "test_students"
    SHIFT_STUDENTS = "shift_students"


@dataclass(frozen=True)
class Relation:
    """One direction of a two-sided relation."""
    kind: RelationKind
    owner_model: type
    owner_field: str
    related_model: type
    back_field: str

    @property
    def owner_label(self) -> str:
        return self.owner_model.__name__

    @property
    def related_label(self) -> str:
        return self.related_model.__name__


RELATIONS = {
    RelationKind.STUDENT_BATCHES: Relation(RelationKind.STUDENT_BATCHES, Student, "assigned_batches",
                                           Batch, "students"),
    RelationKind.STUDENT_TESTS: Relation(RelationKind.STUDENT_TESTS, Student, "assigned_tests",
                                         Test, "assigned_students"),
    RelationKind.STUDENT_SHIFTS: Relation(RelationKind.STUDENT_SHIFTS, Student, "assigned_shifts",
                                          Shift, "students"),
    RelationKind.BATCH_STUDENTS: Relation(RelationKind.BATCH_STUDENTS, Batch, "students",
                                          Student, "assigned_batches"),
    RelationKind.BATCH_TESTS: Relation(RelationKind.BATCH_TESTS, Batch, "tests",
                                       Test, "assigned_batches"),
    RelationKind.TEST_BATCHES: Relation(RelationKind.TEST_BATCHES, Test, "assigned_batches",
                                        Batch, "tests"),
    RelationKind.TEST_STUDENTS: Relation(RelationKind.TEST_STUDENTS, Test, "assigned_students",
                                         Student, "assigned_tests"),
    RelationKind.SHIFT_STUDENTS: Relation(RelationKind.SHIFT_STUDENTS, Shift, "students",
                                          Student, "assigned_shifts"),
}


def relations_owned_by(model) -> List[Relation]:
    """Every relation in which `model` is the owner side."""
    return [r for r in RELATIONS.values() if r.owner_model is model]


@dataclass
class SyncOutcome:
    """What a sync changed, for logging and for callers that report counts."""
    added: List[str]
    removed: List[str]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _load_owner(repo: EntityRepository, relation: Relation, owner_id: str):
    owner = repo.find_by_id(relation.owner_model, owner_id, for_update=True)
    if owner is None:
        raise NotFoundError("{} not found".format(relation.owner_label), missing_ids=[str(owner_id)])
    return owner


def apply_sync(repo: EntityRepository, owner, desired_ids: Iterable[str],
               kind: RelationKind) -> SyncOutcome:
    """
    Reconcile `owner`'s id set for `kind` with desired_ids on both sides.

    Must run inside an open transaction; it performs no commit itself.
    Callers that compose a sync with other writes (creating a batch with
    initial members, cascade deletes) use this directly.
    """
    relation = RELATIONS[kind]
    desired = normalize_ids(desired_ids)
    current = read_ids(owner, relation.owner_field)

    current_set = set(current)
    desired_set = set(desired)
    to_add = [i for i in desired if i not in current_set]
    to_remove = [i for i in current if i not in desired_set]

    # every row whose id set is rewritten stays locked until commit
    related = repo.find_by_ids(relation.related_model, to_add + to_remove, for_update=True)
    missing = [i for i in to_add if i not in related]
    if missing:
        raise NotFoundError("{} {}(s) not found: {}".format(
            len(missing), relation.related_label.lower(), ", ".join(missing)),
            missing_ids=missing)

    check_additions(relation, owner, [related[i] for i in to_add], len(to_remove))

    repo.set_ids(owner, relation.owner_field, desired)
    for related_id in to_add:
        repo.add_to_set(related[related_id], relation.back_field, [owner.id])
    # rows that no longer exist have nothing to pull from
    for related_id in to_remove:
        if related_id in related:
            repo.pull(related[related_id], relation.back_field, [owner.id])

    return SyncOutcome(added=to_add, removed=to_remove)


def _run(db: Session, owner_id: str, kind: RelationKind, compute_desired, operation: str):
    """Load the owner, derive the desired set, sync, commit and log."""
    start_time = time.time()
    relation = RELATIONS[kind]
    repo = EntityRepository(db)

    with transaction(db):
        owner = _load_owner(repo, relation, owner_id)
        desired = compute_desired(read_ids(owner, relation.owner_field))
        outcome = apply_sync(repo, owner, desired, kind)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "{} {} for {} {}: +{} -{}".format(
            operation, kind.value, relation.owner_label.lower(), owner_id,
            len(outcome.added), len(outcome.removed)),
        context={"owner_id": str(owner_id), "relation": kind.value},
        extra_data={"duration_ms": round(duration_ms, 2),
                    "added": outcome.added, "removed": outcome.removed})

    db.refresh(owner)
    return owner


def sync_membership(db: Session, owner_id: str, desired_ids: Iterable[str], kind: RelationKind):
    """
    Replace the owner's id set for `kind` with desired_ids, atomically.

    Returns the owner entity reloaded after commit.
    """
    desired = normalize_ids(desired_ids)
    return _run(db, owner_id, kind, lambda current: desired, "Synced")


def add_members(db: Session, owner_id: str, related_ids: Iterable[str], kind: RelationKind):
    """Add related ids to the owner's set. Ids already present are no-ops."""
    additions = normalize_ids(related_ids)
    return _run(db, owner_id, kind, lambda current: current + additions, "Added")


def remove_members(db: Session, owner_id: str, related_ids: Iterable[str], kind: RelationKind):
    """Remove related ids from the owner's set. Ids not present are no-ops."""
    removals = set(normalize_ids(related_ids))
    return _run(db, owner_id, kind,
                lambda current: [i for i in current if i not in removals], "Removed")


def detach_all(repo: EntityRepository, entity) -> int:
    """
    Remove `entity` from every relation it takes part in, on both sides.

    Clears each of the entity's own id sets through apply_sync, then pulls
    its id from any row on the other side that still lists it. Must run
    inside an open transaction. Returns the number of rows touched on the
    other side.
    """
    touched = 0
    for relation in relations_owned_by(type(entity)):
        outcome = apply_sync(repo, entity, [], relation.kind)
        touched += len(outcome.removed)
        for stale in repo.find_containing(relation.related_model, relation.back_field, entity.id,
                                          for_update=True):
            if repo.pull(stale, relation.back_field, [entity.id]):
                touched += 1
    return touched


def link_result(repo: EntityRepository, student: Student, result_id: str) -> None:
    """Record a submitted result id on its student. Must run inside a transaction."""
    repo.add_to_set(student, "results", [result_id])
