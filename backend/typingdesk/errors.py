"""
Typed error taxonomy for the service layer.

Every error carries a stable `kind` tag, a human-readable message and the
HTTP status the API layer renders it with. Services raise these and let
them propagate; main.py turns them into JSON responses.
"""

from typing import List, Optional


class TypingDeskError(Exception):
    """Base class for all errors raised by the service layer."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(TypingDeskError):
    """Malformed or missing required input."""

    kind = "ValidationError"
    status_code = 422


class NotFoundError(TypingDeskError):
    """The owner entity or one or more referenced entities do not exist."""

    kind = "NotFoundError"
    status_code = 404

    def __init__(self, message: str, missing_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_ids = list(missing_ids or [])

    def to_dict(self) -> dict:
        return {**super().to_dict(), "missing_ids": self.missing_ids}


class EligibilityError(TypingDeskError):
    """Student not approved or blocked, or batch/test inactive, on a new assignment."""

    kind = "EligibilityError"
    status_code = 400

    def __init__(self, message: str, ineligible_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.ineligible_ids = list(ineligible_ids or [])

    def to_dict(self) -> dict:
        return {**super().to_dict(), "ineligible_ids": self.ineligible_ids}


class CapacityError(TypingDeskError):
    """A batch would exceed its max_students ceiling."""

    kind = "CapacityError"
    status_code = 400

    def __init__(self, message: str, batch_id: Optional[str] = None,
                 max_students: Optional[int] = None):
        super().__init__(message)
        self.batch_id = batch_id
        self.max_students = max_students

    def to_dict(self) -> dict:
        return {**super().to_dict(), "batch_id": self.batch_id, "max_students": self.max_students}


class ConflictError(TypingDeskError):
    """Uniqueness violation (duplicate batch name, email already registered)."""

    kind = "ConflictError"
    status_code = 409


class TransientError(TypingDeskError):
    """Storage timeout or connection failure. Safe to retry."""

    kind = "TransientError"
    status_code = 503


class UnauthenticatedError(TypingDeskError):
    """Missing, invalid or expired bearer credential."""

    kind = "UnauthenticatedError"
    status_code = 401


class ForbiddenError(TypingDeskError):
    """Authenticated caller lacks the role or membership the operation needs."""

    kind = "ForbiddenError"
    status_code = 403
