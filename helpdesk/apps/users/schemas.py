"""
User-management Pydantic schemas.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from helpdesk.apps.auth.models import ROLES
from helpdesk.apps.auth.schemas import UserResponse


class UserCreate(BaseModel):
    """Admin provisioning. Omit password to have one generated."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    role: Optional[str] = None
    department: Optional[str] = Field(default=None, max_length=100)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v


class RoleUpdate(BaseModel):
    role: str


class StatusUpdate(BaseModel):
    is_verified: bool


class DepartmentUpdate(BaseModel):
    department: Optional[str] = Field(default=None, max_length=100)


class UserPage(BaseModel):
    page: int
    total_pages: int
    total: int
    page_size: int
    results: List[UserResponse]

    model_config = {"from_attributes": True}


class UserStats(BaseModel):
    total: int
    active: int
    inactive: int
    employees: int
    it_staff: int
    managers: int
    role_breakdown: Dict[str, int]
    users_by_department: List[Dict[str, object]]
