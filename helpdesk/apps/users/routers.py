"""
Users router.

Entry/exit only — no logic here. Calls user-management services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.apps.auth.schemas import UserResponse
from helpdesk.apps.auth.services import verify_user
from helpdesk.apps.users import services
from helpdesk.apps.users.schemas import (
    DepartmentUpdate,
    RoleUpdate,
    StatusUpdate,
    UserCreate,
    UserPage,
    UserStats,
)
from helpdesk.core.dependencies import get_notifier
from helpdesk.core.notifier import EmailNotifier
from helpdesk.db.base_model import MAX_PAGE
from helpdesk.db.session import get_session
from helpdesk.utils.responses import success_response

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _user(user) -> dict:
    return UserResponse.model_validate(user).model_dump()


@router.get("/stats")
async def stats(
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Managers only."""
    data = await services.get_user_stats(session=session, actor=actor)
    return success_response(
        status_code=200, message="User statistics", data=UserStats.model_validate(data).model_dump()
    )


@router.get("")
async def list_all(
    role: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    department: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(20, ge=1),
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    result = await services.list_users(
        session=session,
        actor=actor,
        role=role,
        status=status,
        department=department,
        q=q,
        page=page,
        limit=limit,
    )
    return success_response(
        status_code=200, message="Users", data=UserPage.model_validate(result).model_dump()
    )


@router.post("", status_code=201)
async def create(
    data: UserCreate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    user, temporary_password = await services.create_user(
        session=session, actor=actor, data=data, notifier=notifier
    )
    payload = {"user": _user(user)}
    if temporary_password:
        payload["temporary_password"] = temporary_password
    return success_response(status_code=201, message="User created", data=payload)


@router.get("/{user_id}")
async def detail(
    user_id: int,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    user = await services.get_user(session=session, actor=actor, user_id=user_id)
    return success_response(status_code=200, message="User", data=_user(user))


@router.put("/{user_id}/role")
async def set_role(
    user_id: int,
    data: RoleUpdate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    user = await services.update_user_role(session=session, actor=actor, user_id=user_id, role=data.role)
    return success_response(status_code=200, message="User role updated", data=_user(user))


@router.put("/{user_id}/status")
async def set_status(
    user_id: int,
    data: StatusUpdate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    user = await services.update_user_status(
        session=session, actor=actor, user_id=user_id, is_verified=data.is_verified
    )
    return success_response(status_code=200, message="User status updated", data=_user(user))


@router.put("/{user_id}/department")
async def set_department(
    user_id: int,
    data: DepartmentUpdate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    user = await services.update_user_department(
        session=session, actor=actor, user_id=user_id, department=data.department
    )
    return success_response(status_code=200, message="User department updated", data=_user(user))


@router.delete("/{user_id}")
async def remove(
    user_id: int,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    await services.delete_user(session=session, actor=actor, user_id=user_id)
    return success_response(status_code=200, message="User deleted")


@router.post("/{user_id}/resend")
async def resend(
    user_id: int,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Re-issue a verification code valid for 24 hours."""
    code = await services.resend_user_verification(
        session=session, actor=actor, user_id=user_id, notifier=notifier
    )
    return success_response(
        status_code=200,
        message="Verification code resent",
        data={"verification_code": code} if code else None,
    )
