from typing import Optional
from pydantic import BaseModel, ConfigDict
from enum import Enum


class UserRole(str, Enum):
    EMPLOYEE = "employee"
    EMPLOYER = "employer"
    RECRUITER = "recruiter"


class Identity(BaseModel):
    """Authenticated caller, as vouched for by the identity provider"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    role: UserRole


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    role: UserRole
    headline: Optional[str] = None
    location: Optional[str] = None
    avatar_url: Optional[str] = None
