from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import jwt

from .config import settings

ROLE_USER = "user"
ROLE_CAISSE = "caisse"
ROLE_ADMIN = "admin"


def get_password_hash(password: str) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a plain password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def create_access_token(identity_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a bearer token for a user, cashier or administrator.

    The payload carries the identity id and its role. An ``exp`` claim is
    only added when an expiry is configured.
    """
    to_encode: Dict[str, Any] = {"id": identity_id, "role": role}

    if expires_delta is None and settings.access_token_expire_minutes:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    if expires_delta is not None:
        to_encode["exp"] = datetime.now(timezone.utc) + expires_delta

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str) -> Dict[str, Any]:
    """Decode a bearer token.

    Raises jose's ``ExpiredSignatureError`` for expired tokens and
    ``JWTError`` for anything else that fails verification.
    """
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
