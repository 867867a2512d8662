"""
ID Normalizer - turns loosely shaped identifier input into canonical id strings.

Accepted input variants:
1. Raw identifier: a non-empty string or a number (integral floats are
   written without the fraction, so 7.0 and 7 name the same id)
2. Mapping carrying `_id` (checked first) or `id`
3. Loaded entity: any object with an `id` attribute
4. Any other object whose str() is meaningful

Everything else is dropped silently: None, booleans, empty strings, NaN
and infinities, mappings without an id, and objects whose str() is the
generic "<module.Class object at 0x...>" representation.
"""

import math
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional

from typingdesk.errors import ValidationError


def _has_meaningful_str(value: Any) -> bool:
    """True when the value's class defines its own __str__ or __repr__."""
    cls = type(value)
    return cls.__str__ is not object.__str__ or cls.__repr__ is not object.__repr__


def _coerce(value: Any, depth: int = 0) -> Optional[str]:
    """Canonical id string for one value, or None when it carries no id."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    # wrappers may nest one level, e.g. {"_id": <entity>}
    if depth > 1:
        return None
    if isinstance(value, Mapping):
        for key in ("_id", "id"):
            if value.get(key) not in (None, ""):
                return _coerce(value[key], depth + 1)
        return None
    entity_id = getattr(value, "id", None)
    if entity_id not in (None, ""):
        return _coerce(entity_id, depth + 1)
    if isinstance(value, (list, tuple, set, bytes)):
        return None
    if _has_meaningful_str(value):
        return str(value).strip() or None
    return None


def normalize_ids(values: Optional[Iterable[Any]]) -> List[str]:
    """
    Normalize a sequence of identifier-like values.

    Returns ids in first-seen order with duplicates and invalid entries
    removed. Never raises; see require_ids for the checked variant.

    Example:
        [{"_id": "a"}, "a", {"id": "b"}, None, {}] -> ["a", "b"]
    """
    if not values:
        return []
    normalized = []
    seen = set()
    for value in values:
        entity_id = _coerce(value)
        if entity_id is None or entity_id in seen:
            continue
        seen.add(entity_id)
        normalized.append(entity_id)
    return normalized


def require_ids(values: Any, field: str = "ids", allow_empty: bool = False) -> List[str]:
    """
    Normalize ids supplied by a caller and reject ambiguous input.

    Raises ValidationError when:
    - values is not a list or tuple
    - values is non-empty but no valid id survives normalization
      (garbage input must never turn into "clear the whole list")
    - values is empty and allow_empty is False
    """
    if not isinstance(values, (list, tuple)):
        raise ValidationError("{} must be an array of ids".format(field))
    if not values:
        if allow_empty:
            return []
        raise ValidationError("{} must contain at least one id".format(field))
    normalized = normalize_ids(values)
    if not normalized:
        raise ValidationError("{} contains no valid ids".format(field))
    return normalized
