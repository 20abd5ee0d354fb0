"""
Auth router.

Entry/exit only — no logic here. Calls auth services.
Public routes share a per-IP limiter.
"""

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.apps.auth.schemas import (
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
    VerifyRequest,
)
from helpdesk.apps.auth.services import (
    FORGOT_PASSWORD_MESSAGE,
    forgot_password,
    login_user,
    register_user,
    resend_verification,
    reset_password,
    verify_email,
    verify_user,
)
from helpdesk.apps.auth.models import User
from helpdesk.config.settings import settings
from helpdesk.core.dependencies import get_notifier, get_resend_throttle
from helpdesk.core.notifier import EmailNotifier
from helpdesk.core.state import ResendThrottle
from helpdesk.db.session import get_session
from helpdesk.utils.responses import success_response, auth_response

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])


@router.post("/register", status_code=201)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def register(
    request: Request,
    data: RegisterRequest,
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Register a new employee. A verification code is emailed."""
    user, token, code = await register_user(session=session, data=data, notifier=notifier)
    payload = {"user": UserResponse.model_validate(user).model_dump()}
    if code:
        payload["verification_code"] = code
    return auth_response(
        status_code=201,
        message="User registered. Verification code sent.",
        access_token=token,
        data=payload,
    )


@router.post("/verify")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def verify(
    request: Request,
    data: VerifyRequest,
    session: AsyncSession = Depends(get_session),
):
    """Confirm an email address with the 6-digit code."""
    message = await verify_email(session=session, data=data)
    return success_response(status_code=200, message=message)


@router.post("/resend")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def resend(
    request: Request,
    data: EmailRequest,
    session: AsyncSession = Depends(get_session),
    throttle: ResendThrottle = Depends(get_resend_throttle),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Send a fresh verification code (60s cooldown, 5 per hour)."""
    code = await resend_verification(
        session=session, email=data.email, throttle=throttle, notifier=notifier
    )
    return success_response(
        status_code=200,
        message="Verification code resent",
        data={"verification_code": code} if code else None,
    )


@router.post("/login")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login(
    request: Request,
    data: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate and receive a JWT access token."""
    user, token = await login_user(session=session, data=data)
    return auth_response(
        status_code=200,
        message="Login successful",
        access_token=token,
        data={"user": UserResponse.model_validate(user).model_dump()},
    )


@router.post("/forgot-password")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def forgot(
    request: Request,
    data: EmailRequest,
    session: AsyncSession = Depends(get_session),
    throttle: ResendThrottle = Depends(get_resend_throttle),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Always answers the same way, whether or not the account exists."""
    code = await forgot_password(
        session=session, email=data.email, throttle=throttle, notifier=notifier
    )
    return success_response(
        status_code=200,
        message=FORGOT_PASSWORD_MESSAGE,
        data={"reset_code": code} if code else None,
    )


@router.post("/reset-password")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def reset(
    request: Request,
    data: ResetPasswordRequest,
    session: AsyncSession = Depends(get_session),
):
    await reset_password(session=session, data=data)
    return success_response(
        status_code=200,
        message="Password reset successful. You can now login with your new password.",
    )


@router.get("/me")
async def me(
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Return the currently authenticated user's profile."""
    user = await User.get_by_id(session, actor["id"])
    return success_response(
        status_code=200,
        message="User profile",
        data=UserResponse.model_validate(user).model_dump(),
    )
