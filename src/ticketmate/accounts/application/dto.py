"""
Accounts Application DTOs
=========================

Pydantic models for request/response validation.

JSON uses camelCase (`googleId`, `createdAt`); Python attributes stay
snake_case. The password hash never appears in any response model.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either case."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ========== Request DTOs ==========

class SignupRequest(CamelModel):
    """Request model for account signup."""
    email: str = Field(..., description="Account email (case-insensitive)")
    password: str = Field(..., description="At least 6 characters")
    role: Optional[str] = Field(default=None, description="user or moderator")
    skills: Optional[List[str]] = Field(default=None, description="Moderator skills")


class LoginRequest(CamelModel):
    email: str
    password: str


class UpdateUserRequest(CamelModel):
    """Admin update of another account."""
    email: str = Field(..., description="Email of the account to update")
    role: Optional[str] = None
    skills: Optional[List[str]] = None


class UpdateProfileRequest(CamelModel):
    skills: List[str] = Field(..., description="Replacement skill list")


# ========== Response DTOs ==========

class UserResponse(CamelModel):
    """Public view of an account."""
    id: UUID
    email: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    role: str
    skills: List[str] = Field(default_factory=list)
    google_id: Optional[str] = None
    facebook_id: Optional[str] = None
    created_at: datetime


class UserSummary(CamelModel):
    """Compact user reference embedded in tickets and replies."""
    id: UUID
    email: str
    role: str
    name: Optional[str] = None


class AuthResponse(CamelModel):
    user: UserResponse
    token: str
    message: str


class UserResponseWithMessage(CamelModel):
    user: UserResponse
    message: str


class UsersResponse(CamelModel):
    users: List[UserResponse]
    count: int
    message: str


class MessageResponse(CamelModel):
    message: str
