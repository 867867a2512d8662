"""
Authentication routes.

Login exchanges a verified bearer token for a stored user, registering
the user on first login.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from typingdesk.auth import get_verified_identity
from typingdesk.database import get_db
from typingdesk.services import accounts
from typingdesk.services.accounts import VerifiedIdentity

router = APIRouter(prefix="/api/v1/auth")


@router.post("/login")
def login(identity: VerifiedIdentity = Depends(get_verified_identity), db: Session = Depends(get_db)):
    """
    Log in or register the caller of the bearer token.

    Returns the user profile and whether the account was just created.
    New students start pending approval.
    """
    payload = accounts.login_or_register(db, identity)
    message = "User registered successfully" if payload["is_new_user"] else "Login successful"
    return {"message": message, **payload}


@router.get("/me")
def me(identity: VerifiedIdentity = Depends(get_verified_identity), db: Session = Depends(get_db)):
    return {"user": accounts.get_profile(db, identity.subject_id)}
