"""
Auth business logic.

Handles registration, email verification, login and password reset.
The `verify_user` function is the FastAPI dependency used by all secured routes.
"""

from typing import Optional, Tuple

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.apps.auth.models import User
from helpdesk.apps.auth.schemas import (
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyRequest,
)
from helpdesk.config.settings import settings
from helpdesk.core.notifier import EmailNotifier
from helpdesk.core.state import ResendThrottle
from helpdesk.db.session import get_session
from helpdesk.utils.clock import as_utc, utcnow
from helpdesk.utils.security import (
    hash_password,
    verify_password,
    create_access_token,
    generate_code,
    verify_token_type,
)
from helpdesk.utils.exceptions import (
    AccountNotVerifiedException,
    AuthenticationRequiredException,
    InvalidCredentialsException,
    RateLimitExceededException,
    ResourceNotFoundException,
    UserAlreadyExistsException,
    ValidationFailedException,
)
from helpdesk.utils.logger import get_logger

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email, you will receive password reset instructions."
)


def actor_from_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "department": user.department,
    }


# ── FastAPI Auth Dependency ───────────────────────────────────────────────────

async def verify_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """
    FastAPI dependency: validates Bearer token and returns the actor dict.

    No token -> 401. Bad or expired token -> 403. Token for a user that no
    longer exists -> 401.

    Returns:
        dict with: id, email, name, role, department
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequiredException()

    payload = verify_token_type(credentials.credentials, expected_type="access")
    try:
        user_id = int(payload.get("sub", ""))
    except (TypeError, ValueError):
        raise AuthenticationRequiredException("Invalid token subject")

    user = await User.get_by_id(session, user_id)
    if not user:
        raise AuthenticationRequiredException("User not found")

    logger.debug(f"Authenticated user: {user.email} role={user.role}")
    return actor_from_user(user)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _expose_code(code: str) -> Optional[str]:
    """Codes are echoed back for local testing, never in production."""
    return None if settings.is_production else code


def _send_code_email(notifier: EmailNotifier, email: str, code: str, purpose: str, expires) -> None:
    notifier.dispatch(
        [email],
        f"Your {purpose} code",
        f"Your {purpose} code is {code}. It expires at {expires.isoformat()}.",
    )


async def _find_by_email(session: AsyncSession, email: str) -> Optional[User]:
    return await User.find_one(session, email=email)


# ── Auth Services ─────────────────────────────────────────────────────────────

async def register_user(
    session: AsyncSession,
    data: RegisterRequest,
    notifier: EmailNotifier,
) -> Tuple[User, str, Optional[str]]:
    """
    Create an unverified employee account and email a verification code.

    Returns (user, access_token, code-or-None).
    """
    if await User.exists(session, email=data.email):
        raise UserAlreadyExistsException()

    code, expires = generate_code()
    user = await User.create(
        db=session,
        name=data.name,
        email=data.email,
        hashed_password=hash_password(data.password),
        role="employee",
        department=data.department,
        is_verified=False,
        verification_code=code,
        verification_expires=expires,
    )
    _send_code_email(notifier, user.email, code, "verification", expires)

    logger.info(f"Registered new user: {user.email}", extra={"user_id": user.id})
    token = create_access_token(user_id=user.id, role=user.role)
    return user, token, _expose_code(code)


async def verify_email(session: AsyncSession, data: VerifyRequest) -> str:
    """Returns the outcome message. Already-verified accounts are a no-op."""
    user = await _find_by_email(session, data.email)
    if not user:
        raise ResourceNotFoundException("User not found")

    if user.is_verified:
        return "User already verified"

    if not user.verification_code or not user.verification_expires:
        raise ValidationFailedException("No verification code found. Request a new one.")

    if utcnow() > as_utc(user.verification_expires):
        raise ValidationFailedException("Verification code expired")

    if data.code.strip() != user.verification_code:
        raise ValidationFailedException("Invalid verification code")

    user.is_verified = True
    user.clear_code()
    await user.save(session)
    logger.info(f"User verified: {user.email}")
    return "Account verified"


async def resend_verification(
    session: AsyncSession,
    email: str,
    throttle: ResendThrottle,
    notifier: EmailNotifier,
) -> Optional[str]:
    """
    Issue a fresh 15-minute code, subject to the per-email throttle.
    """
    user = await _find_by_email(session, email)
    if not user:
        raise ResourceNotFoundException("User not found")
    if user.is_verified:
        raise ValidationFailedException("Account already verified")

    key = f"verify:{email}"
    retry_after = await throttle.check(key)
    if retry_after is not None:
        logger.warning("Verification resend throttled", extra={"email": email, "retry_after": retry_after})
        raise RateLimitExceededException(retry_after)

    code, expires = generate_code()
    user.set_code(code, expires)
    await user.save(session)
    await throttle.record(key)

    _send_code_email(notifier, email, code, "verification", expires)
    logger.info("Verification code resent", extra={"email": email})
    return _expose_code(code)


async def login_user(session: AsyncSession, data: LoginRequest) -> Tuple[User, str]:
    """
    Authenticate user and return a session token.

    Guard: Reject bad credentials with a generic error.
    Guard: Reject unverified accounts.
    """
    user = await _find_by_email(session, data.email)

    if not user or not verify_password(data.password, user.hashed_password):
        raise InvalidCredentialsException()

    if not user.is_verified:
        raise AccountNotVerifiedException()

    user.last_login_at = utcnow()
    await user.save(session)

    logger.info(f"User logged in: {user.email}")
    return user, create_access_token(user_id=user.id, role=user.role)


async def forgot_password(
    session: AsyncSession,
    email: str,
    throttle: ResendThrottle,
    notifier: EmailNotifier,
) -> Optional[str]:
    """
    Issue a reset code if the account exists. The caller always answers
    with the same generic message, so nothing here raises on a miss.
    """
    user = await _find_by_email(session, email)
    if not user:
        return None

    key = f"reset:{email}"
    if await throttle.check(key) is not None:
        logger.warning("Password reset throttled", extra={"email": email})
        return None

    code, expires = generate_code()
    user.set_code(code, expires)
    await user.save(session)
    await throttle.record(key)

    _send_code_email(notifier, email, code, "password reset", expires)
    logger.info("Password reset code issued", extra={"email": email})
    return _expose_code(code)


async def reset_password(session: AsyncSession, data: ResetPasswordRequest) -> None:
    user = await _find_by_email(session, data.email)
    if not user:
        raise ResourceNotFoundException("User not found")

    if not user.verification_code or not user.verification_expires:
        raise ValidationFailedException("No reset code found. Please request a new one.")

    if utcnow() > as_utc(user.verification_expires):
        raise ValidationFailedException("Reset code expired. Please request a new one.")

    if data.code.strip() != user.verification_code:
        raise ValidationFailedException("Invalid reset code")

    user.hashed_password = hash_password(data.new_password)
    user.must_change_password = False
    user.clear_code()
    await user.save(session)
    logger.info(f"Password reset for {user.email}")

