"""
Entity repository - the query and update surface over the entity tables.

Every method runs on the caller's session, so all reads and writes issued
during one `transaction()` block commit or roll back together. Id-set
updates follow document-store semantics:
- set_ids      -> $set      (replace the whole set)
- add_to_set   -> $addToSet (append ids not already present)
- pull         -> $pull     (remove ids, absent ids are ignored)
"""

import os
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from typingdesk.models.fields import dump_id_set, read_ids, stored_attribute

# Page size for list endpoints when the caller gives none
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))


class EntityRepository:
    """Repository bound to one request-scoped session."""

    def __init__(self, db: Session):
        self.db = db

    # ── reads ────────────────────────────────────────────────

    def find_by_id(self, model, entity_id: str, for_update: bool = False):
        """Load one entity by id, optionally locking its row until commit."""
        if not entity_id:
            return None
        self.db.flush()
        stmt = select(model).where(model.id == str(entity_id))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalars().first()

    def find_by_ids(self, model, ids: Iterable[str], for_update: bool = False) -> Dict[str, object]:
        """
        Load many entities by id. Missing ids are absent from the result.

        With for_update the rows are locked in ascending id order, so two
        transactions locking overlapping sets always queue in the same order.
        """
        ids = sorted({str(i) for i in ids})
        if not ids:
            return {}
        self.db.flush()
        stmt = select(model).where(model.id.in_(ids)).order_by(model.id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return {entity.id: entity for entity in self.db.execute(stmt).scalars().all()}

    def find(self, model, *criteria, order_by=None, offset: Optional[int] = None,
             limit: Optional[int] = None, for_update: bool = False) -> List:
        """Load entities matching all criteria."""
        self.db.flush()
        stmt = select(model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def find_one(self, model, *criteria):
        found = self.find(model, *criteria, limit=1)
        return found[0] if found else None

    def find_containing(self, model, field: str, entity_id: str, for_update: bool = False) -> List:
        """Load entities whose id set `field` contains entity_id."""
        column = getattr(model, stored_attribute(field))
        candidates = self.find(model, column.contains('"{}"'.format(entity_id)),
                               order_by=model.id, for_update=for_update)
        # LIKE pre-filters, exact membership is decided on the parsed set
        return [c for c in candidates if entity_id in read_ids(c, field)]

    def count_documents(self, model, *criteria) -> int:
        self.db.flush()
        stmt = select(func.count()).select_from(model).where(*criteria)
        return self.db.execute(stmt).scalar_one()

    def paginate(self, model, *criteria, order_by=None, page: int = 1,
                 per_page: int = DEFAULT_PAGE_SIZE) -> Tuple[List, dict]:
        """One page of matching entities plus the pagination block for the response."""
        total = self.count_documents(model, *criteria)
        items = self.find(model, *criteria, order_by=order_by,
                          offset=(page - 1) * per_page, limit=per_page)
        return items, {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page
        }

    # ── writes ───────────────────────────────────────────────

    def insert(self, entity):
        self.db.add(entity)
        self.db.flush()
        return entity

    def delete(self, entity):
        self.db.delete(entity)
        self.db.flush()

    def set_ids(self, entity, field: str, ids: Iterable[str]) -> bool:
        """Replace the id set. Returns True when the stored set changed."""
        current = read_ids(entity, field)
        new = list(dict.fromkeys(str(i) for i in ids))
        if set(current) == set(new) and len(current) == len(new):
            return False
        setattr(entity, stored_attribute(field), dump_id_set(new))
        return True

    def add_to_set(self, entity, field: str, ids: Iterable[str]) -> bool:
        """Append ids that are not yet present. Returns True when anything was added."""
        current = read_ids(entity, field)
        present = set(current)
        additions = [str(i) for i in ids if str(i) not in present]
        if not additions:
            return False
        setattr(entity, stored_attribute(field), dump_id_set(current + additions))
        return True

    def pull(self, entity, field: str, ids: Iterable[str]) -> bool:
        """Remove ids from the set. Returns True when anything was removed."""
        current = read_ids(entity, field)
        drop = {str(i) for i in ids}
        kept = [i for i in current if i not in drop]
        if len(kept) == len(current):
            return False
        setattr(entity, stored_attribute(field), dump_id_set(kept))
        return True
