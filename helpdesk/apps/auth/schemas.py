"""
Auth Pydantic schemas.

Input validation and output serialization for auth routes.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator


# ── Request Schemas ───────────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    """Self-service signup. Always creates an employee."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    department: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    """Login with email + password."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=12)


class EmailRequest(BaseModel):
    """Body for resend-verification and forgot-password."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=12)
    new_password: str = Field(..., min_length=6, max_length=128)


# ── Response Schemas ──────────────────────────────────────────────────────────

class UserResponse(BaseModel):
    """Public user data (no password hash, no codes)."""
    id: int
    name: str
    email: str
    role: str
    department: Optional[str] = None
    is_verified: bool
    must_change_password: bool = False
    last_login_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserSummary(BaseModel):
    """Compact user reference embedded in tickets and comments."""
    id: int
    name: str
    email: str
    role: str
    department: Optional[str] = None

    model_config = {"from_attributes": True}
