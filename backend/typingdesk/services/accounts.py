"""
Account service - first-login registration and caller resolution.

A verified identity (subject id, email, display name) maps to exactly one
Student or Admin row. The first successful login creates the row; later
logins only refresh last_login.
"""

import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from typingdesk.database import transaction
from typingdesk.errors import ConflictError, UnauthenticatedError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.models.admin import Admin
from typingdesk.models.student import Student
from typingdesk.repository import EntityRepository
from typingdesk.services.serializers import serialize_admin

logger = get_logger("auth")

# Emails that register as admins on first login instead of students
ADMIN_EMAILS = {
    e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()
}


@dataclass(frozen=True)
class VerifiedIdentity:
    """What the identity verifier vouches for."""
    subject_id: str
    email: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class CallerIdentity:
    """Resolved caller attached to every authenticated request."""
    id: str
    role: str
    is_approved: bool
    is_blocked: bool
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super_admin")


def _caller_for(user, role: str) -> CallerIdentity:
    if role == "student":
        return CallerIdentity(id=user.id, role=role, is_approved=bool(user.is_approved),
                              is_blocked=bool(user.is_blocked), email=user.email)
    return CallerIdentity(id=user.id, role=user.role, is_approved=True,
                          is_blocked=not user.is_active, email=user.email)


def find_user(repo: EntityRepository, subject_id: str):
    """Return (user, role) for a subject id, or (None, None)."""
    student = repo.find_one(Student, Student.auth_subject == subject_id)
    if student:
        return student, "student"
    admin = repo.find_one(Admin, Admin.auth_subject == subject_id)
    if admin:
        return admin, admin.role
    return None, None


def resolve_caller(db: Session, identity: VerifiedIdentity) -> CallerIdentity:
    """Map a verified identity to its stored user. Unknown subjects are rejected."""
    user, role = find_user(EntityRepository(db), identity.subject_id)
    if not user:
        log_with_context(logger, "WARNING", "User not found for verified identity",
                         extra_data={"subject_id": identity.subject_id, "email": identity.email})
        raise UnauthenticatedError("User not found, log in first")
    if role != "student" and not user.is_active:
        raise UnauthenticatedError("Account is disabled")
    return _caller_for(user, role)


def _email_taken(repo: EntityRepository, email: str) -> bool:
    return bool(repo.find_one(Student, Student.email == email) or repo.find_one(Admin, Admin.email == email))


def login_or_register(db: Session, identity: VerifiedIdentity) -> dict:
    """
    Log a verified identity in, creating its user on first login.

    Idempotent: repeated logins return the same user. New users become
    admins when their email is listed in ADMIN_EMAILS, students otherwise.
    """
    email = (identity.email or "").strip().lower()
    if not email:
        raise UnauthenticatedError("Verified identity carries no email")
    name = identity.display_name or email.split("@")[0]
    now = datetime.now(timezone.utc)

    repo = EntityRepository(db)
    is_new_user = False
    with transaction(db):
        user, role = find_user(repo, identity.subject_id)
        if user:
            user.last_login = now
        else:
            if _email_taken(repo, email):
                raise ConflictError("Email is already registered to another account")
            is_new_user = True
            if email in ADMIN_EMAILS:
                user = repo.insert(Admin(id=str(uuid.uuid4()), auth_subject=identity.subject_id,
                                         email=email, name=name, role="admin", is_active=True,
                                         last_login=now, created_at=now))
                role = "admin"
            else:
                user = repo.insert(Student(id=str(uuid.uuid4()), auth_subject=identity.subject_id,
                                           email=email, name=name, last_login=now, created_at=now))
                role = "student"

    log_with_context(logger, "INFO",
        "{} {}: {}".format("Registered" if is_new_user else "Logged in", role, email),
        context={"user_id": user.id, "role": role})

    return {"user": get_profile(db, identity.subject_id), "is_new_user": is_new_user}


def get_profile(db: Session, subject_id: str) -> dict:
    repo = EntityRepository(db)
    user, role = find_user(repo, subject_id)
    if not user:
        raise UnauthenticatedError("User not found")
    if role == "student":
        profile = {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "is_approved": user.is_approved,
            "is_blocked": user.is_blocked,
            "is_active": True,
            "last_login": user.last_login.isoformat() if user.last_login else None,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }
    else:
        profile = serialize_admin(user)
        profile.update({"is_approved": True, "is_blocked": False})
    profile["role"] = role
    return profile
