"""
User-management services.

Every role rule comes from the authorization policy; this module only
sequences lookups and writes around it.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.apps.auth.models import ROLES, STAFF_ROLES, User
from helpdesk.apps.auth.policy import (
    IT_STAFF,
    Action,
    authorize,
    authorize_role,
    effective_new_user_role,
)
from helpdesk.apps.tickets.models import Ticket, TicketComment
from helpdesk.apps.users.schemas import UserCreate
from helpdesk.config.settings import settings
from helpdesk.db.base_model import LIKE_ESCAPE, contains_pattern
from helpdesk.core.notifier import EmailNotifier
from helpdesk.utils.exceptions import (
    ResourceNotFoundException,
    UserAlreadyExistsException,
    ValidationFailedException,
)
from helpdesk.utils.logger import get_logger
from helpdesk.utils.security import generate_code, generate_temporary_password, hash_password

logger = get_logger(__name__)


async def staff_emails(session: AsyncSession) -> List[str]:
    """Everyone who triages tickets: IT staff and managers."""
    result = await session.execute(
        select(User.email).where(User.role.in_(STAFF_ROLES)).order_by(User.id)
    )
    return list(result.scalars().all())


async def _get_user_or_404(session: AsyncSession, user_id: int) -> User:
    user = await User.get_by_id(session, user_id)
    if not user:
        raise ResourceNotFoundException("User not found")
    return user


def _target(user: User) -> Dict[str, Any]:
    return {"target_user_id": user.id, "target_role": user.role}


# ── Read ──────────────────────────────────────────────────────────────────────

async def list_users(
    session: AsyncSession,
    actor: dict,
    role: Optional[str] = None,
    status: Optional[str] = None,
    department: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    Paginated user directory.

    status is "active" (verified) or "inactive". IT staff with a department
    only see users in that department.
    """
    authorize_role(Action.LIST_USERS, actor["role"])

    filters: Dict[str, Any] = {}
    if role:
        if role not in ROLES:
            raise ValidationFailedException(f"Invalid role. Must be one of: {', '.join(ROLES)}")
        filters["role"] = role
    if status == "active":
        filters["is_verified"] = True
    elif status == "inactive":
        filters["is_verified"] = False
    if department:
        filters["department"] = department
    if actor["role"] == IT_STAFF and actor.get("department"):
        filters["department"] = actor["department"]

    conditions = []
    if q and q.strip():
        pattern = contains_pattern(q.strip())
        conditions.append(
            or_(
                User.name.ilike(pattern, escape=LIKE_ESCAPE),
                User.email.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    result = await User.paginate(
        session,
        page=page,
        per_page=limit,
        filters=filters,
        conditions=conditions,
    )
    return {
        "page": result["page"],
        "total_pages": result["pages"],
        "total": result["total"],
        "page_size": result["per_page"],
        "results": result["items"],
    }


async def get_user(session: AsyncSession, actor: dict, user_id: int) -> User:
    authorize_role(Action.VIEW_USER, actor["role"])
    return await _get_user_or_404(session, user_id)


async def get_user_stats(session: AsyncSession, actor: dict) -> Dict[str, Any]:
    authorize_role(Action.VIEW_USER_STATS, actor["role"])

    total = await User.count(session)
    active = await User.count(session, is_verified=True)
    by_role = await User.count_by(session, "role")
    role_breakdown = {role: by_role.get(role, 0) for role in ROLES}

    by_department: Dict[str, int] = {}
    for department, count in (await User.count_by(session, "department")).items():
        label = department or "Unknown"
        by_department[label] = by_department.get(label, 0) + count

    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "employees": role_breakdown["employee"],
        "it_staff": role_breakdown["it_staff"],
        "managers": role_breakdown["manager"],
        "role_breakdown": role_breakdown,
        "users_by_department": [
            {"department": department, "count": count}
            for department, count in sorted(by_department.items(), key=lambda item: -item[1])
        ],
    }


# ── Provisioning ──────────────────────────────────────────────────────────────

async def create_user(
    session: AsyncSession,
    actor: dict,
    data: UserCreate,
    notifier: EmailNotifier,
) -> Tuple[User, Optional[str]]:
    """
    Provision a verified account that must change its password on first login.

    IT staff always create employees. Returns (user, temporary password
    outside production).
    """
    authorize_role(Action.CREATE_USER, actor["role"])

    if await User.exists(session, email=data.email):
        raise UserAlreadyExistsException()

    role = effective_new_user_role(actor["role"], data.role)
    password = data.password or generate_temporary_password()
    department = (data.department or "").strip() or None

    user = await User.create(
        db=session,
        name=data.name.strip(),
        email=data.email,
        hashed_password=hash_password(password),
        role=role,
        department=department,
        is_verified=True,
        must_change_password=True,
        created_by=actor["id"],
    )
    logger.info(
        "User provisioned",
        extra={"user_id": user.id, "role": role, "actor_id": actor["id"]},
    )

    notifier.dispatch(
        [user.email],
        "Your helpdesk account has been created",
        (
            f"Hello {user.name},\n\n"
            f"{actor['name']} created a helpdesk account for you.\n"
            f"Email: {user.email}\nTemporary password: {password}\n\n"
            "You will be asked to change it after signing in."
        ),
    )
    return user, (None if settings.is_production else password)


# ── Mutations ─────────────────────────────────────────────────────────────────

async def update_user_role(session: AsyncSession, actor: dict, user_id: int, role: str) -> User:
    authorize_role(Action.UPDATE_USER_ROLE, actor["role"])
    if role not in ROLES:
        raise ValidationFailedException(f"Invalid role. Must be one of: {', '.join(ROLES)}")

    user = await _get_user_or_404(session, user_id)
    authorize(Action.UPDATE_USER_ROLE, actor["role"], actor["id"], **_target(user))

    previous = user.role
    user.role = role
    await user.save(session)
    logger.info("User role changed", extra={"user_id": user.id, "from": previous, "to": role})
    return user


async def update_user_status(
    session: AsyncSession, actor: dict, user_id: int, is_verified: bool
) -> User:
    """Activate or deactivate (the verified flag). Activation clears any pending code."""
    authorize_role(Action.UPDATE_USER_STATUS, actor["role"])
    user = await _get_user_or_404(session, user_id)
    authorize(Action.UPDATE_USER_STATUS, actor["role"], actor["id"], **_target(user))

    user.is_verified = is_verified
    if is_verified:
        user.clear_code()
    await user.save(session)
    logger.info("User status changed", extra={"user_id": user.id, "is_verified": is_verified})
    return user


async def update_user_department(
    session: AsyncSession, actor: dict, user_id: int, department: Optional[str]
) -> User:
    """Blank department clears it."""
    authorize_role(Action.UPDATE_USER_DEPARTMENT, actor["role"])
    user = await _get_user_or_404(session, user_id)
    authorize(Action.UPDATE_USER_DEPARTMENT, actor["role"], actor["id"], **_target(user))

    user.department = (department or "").strip() or None
    await user.save(session)
    logger.info("User department changed", extra={"user_id": user.id, "department": user.department})
    return user


async def delete_user(session: AsyncSession, actor: dict, user_id: int) -> None:
    """
    Remove a user. Tickets they created or were assigned keep existing with
    the reference nulled; comments they wrote are deleted.
    """
    authorize_role(Action.DELETE_USER, actor["role"])
    user = await _get_user_or_404(session, user_id)
    authorize(Action.DELETE_USER, actor["role"], actor["id"], **_target(user))

    await session.execute(
        update(Ticket).where(Ticket.user_id == user_id).values(user_id=None)
    )
    await session.execute(
        update(Ticket).where(Ticket.assigned_to == user_id).values(assigned_to=None)
    )
    await session.execute(
        update(User).where(User.created_by == user_id).values(created_by=None)
    )
    await session.execute(delete(TicketComment).where(TicketComment.user_id == user_id))
    await user.delete(session)
    logger.info("User deleted", extra={"user_id": user_id, "actor_id": actor["id"]})


async def resend_user_verification(
    session: AsyncSession,
    actor: dict,
    user_id: int,
    notifier: EmailNotifier,
) -> Optional[str]:
    """Admin-triggered code, valid for ADMIN_RESEND_EXPIRE_HOURS."""
    authorize_role(Action.RESEND_USER_VERIFICATION, actor["role"])
    user = await _get_user_or_404(session, user_id)
    authorize(Action.RESEND_USER_VERIFICATION, actor["role"], actor["id"], **_target(user))

    if user.is_verified:
        raise ValidationFailedException("User is already verified")

    code, expires = generate_code(timedelta(hours=settings.ADMIN_RESEND_EXPIRE_HOURS))
    user.set_code(code, expires)
    await user.save(session)

    notifier.dispatch(
        [user.email],
        "Your verification code",
        f"Your verification code is {code}. It expires at {expires.isoformat()}.",
    )
    logger.info("Verification resent by staff", extra={"user_id": user.id, "actor_id": actor["id"]})
    return None if settings.is_production else code
