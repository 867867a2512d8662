"""
Identity verification and role dependencies for FastAPI routes.

Bearer tokens are HS256 JWTs issued by the identity provider with claims
`sub`, `email` and optionally `name`. Routes never inspect tokens
directly: they depend on get_caller / require_admin / require_student and
receive a resolved CallerIdentity.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from typingdesk.database import get_db
from typingdesk.errors import ForbiddenError, UnauthenticatedError
from typingdesk.logging_config import get_logger, log_with_context
from typingdesk.services.accounts import CallerIdentity, VerifiedIdentity, resolve_caller

logger = get_logger("auth")

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "typingdesk-secret-key-change-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 12

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(subject_id: str, email: str, name: Optional[str] = None,
                        expires_delta: Optional[timedelta] = None) -> str:
    """Issue a token the verifier accepts (used by the seed script and tests)."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": subject_id, "email": email, "exp": expire}
    if name:
        claims["name"] = name
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> VerifiedIdentity:
    """Decode a bearer token into a VerifiedIdentity or raise UnauthenticatedError."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except JWTError:
        raise UnauthenticatedError("Invalid token")

    subject_id = payload.get("sub")
    email = payload.get("email")
    if not subject_id or not email:
        raise UnauthenticatedError("Token is missing required claims")
    return VerifiedIdentity(subject_id=str(subject_id), email=str(email),
                            display_name=payload.get("name"))


def get_verified_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> VerifiedIdentity:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("No authentication token provided")
    return verify_token(credentials.credentials)


def get_caller(identity: VerifiedIdentity = Depends(get_verified_identity),
               db: Session = Depends(get_db)) -> CallerIdentity:
    return resolve_caller(db, identity)


def require_admin(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    if not caller.is_admin:
        log_with_context(logger, "WARNING", "Admin access denied",
                         context={"user_id": caller.id, "role": caller.role})
        raise ForbiddenError("Admin access required")
    return caller


def require_student(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    if caller.role != "student":
        raise ForbiddenError("Student access required")
    return caller


def require_approved_student(caller: CallerIdentity = Depends(require_student)) -> CallerIdentity:
    if caller.is_blocked:
        raise ForbiddenError("Your account is blocked")
    if not caller.is_approved:
        raise ForbiddenError("Your account is pending approval")
    return caller
