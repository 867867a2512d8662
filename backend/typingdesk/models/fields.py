"""
Id-set columns shared by the entity models.

Each side of a many-to-many relation is stored on its own row as a JSON
array of id strings in a Text column. The column is mapped to an
underscore-prefixed attribute (`Batch._students` stores the `students`
column) and models expose it only through read-only properties, so the
repository's id-set updates are the one place that writes it.
"""

import json
from typing import List

from sqlalchemy import Column, Text


def stored_attribute(field: str) -> str:
    """Mapped attribute that holds the id set stored in column `field`."""
    return "_" + field


def id_set_column(name: str, doc: str) -> Column:
    """Text column `name` holding a JSON array of related entity ids."""
    return Column(name, Text, nullable=False, default="[]", doc=doc)


def parse_id_set(value) -> List[str]:
    """Parse a stored id set into a list of strings."""
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        parsed = json.loads(value) if value else []
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(parsed, list):
        return []
    return [str(v) for v in parsed]


def dump_id_set(ids) -> str:
    """Serialize ids for storage, dropping duplicates and keeping first-seen order."""
    return json.dumps(list(dict.fromkeys(str(i) for i in ids)))


def read_ids(entity, field: str) -> List[str]:
    """Current id set stored in column `field` of an entity."""
    return parse_id_set(getattr(entity, stored_attribute(field)))
