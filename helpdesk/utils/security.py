from datetime import datetime, timedelta
from typing import Any, Optional, Tuple
import secrets

import jwt
from jwt.exceptions import InvalidTokenError as JWTError
from pwdlib import PasswordHash

from helpdesk.config.settings import settings
from helpdesk.utils.clock import utcnow
from helpdesk.utils.exceptions import InvalidTokenException

password_hasher = PasswordHash.recommended()


def hash_password(password: str) -> str:
    """Hash a password using Argon2."""
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hashed password."""
    try:
        return password_hasher.verify(plain_password, hashed_password)
    except Exception:
        return False


def create_access_token(
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token. Session tokens live for one hour by default.
    """
    expire = utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def verify_token_type(token: str, expected_type: str) -> dict[str, Any]:
    """Universal token decoder and type verifier."""
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise InvalidTokenException()
    if payload.get("type") != expected_type:
        raise InvalidTokenException(f"Invalid token type. Expected {expected_type}")
    return payload


def generate_code(
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime]:
    """
    Six-digit numeric code plus its expiry, for email verification and
    password reset.
    """
    code = f"{secrets.randbelow(1_000_000):06d}"
    expires = utcnow() + (
        expires_delta or timedelta(minutes=settings.VERIFICATION_CODE_EXPIRE_MINUTES)
    )
    return code, expires


def generate_temporary_password(length: int = 12) -> str:
    """Temporary password for admin-provisioned accounts."""
    return secrets.token_urlsafe(length)[:length]
