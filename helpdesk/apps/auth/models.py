"""
Auth ORM model.

User accounts. `role` drives every authorization decision.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Enum as SAEnum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.db.base_model import BaseModel

ROLES = ("employee", "it_staff", "manager")
STAFF_ROLES = ("it_staff", "manager")


class User(BaseModel):
    """
    User account.

    verification_code and verification_expires are set and cleared together;
    the pair doubles as the password-reset code.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(512), nullable=False)
    role: Mapped[str] = mapped_column(
        SAEnum(*ROLES, name="role_enum"),
        nullable=False,
        default="employee",
        index=True,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_code: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)
    verification_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    must_change_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def set_code(self, code: str, expires: datetime) -> None:
        self.verification_code = code
        self.verification_expires = expires

    def clear_code(self) -> None:
        self.verification_code = None
        self.verification_expires = None
