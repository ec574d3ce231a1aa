"""
Accounts Application Layer
==========================

Contains:
- Services: Business logic orchestration
- DTOs: Data transfer objects for API serialization
- Repository interface
"""

from ticketmate.accounts.application.interfaces import IUserRepository
from ticketmate.accounts.application.dto import (
    SignupRequest,
    LoginRequest,
    UpdateUserRequest,
    UpdateProfileRequest,
    UserResponse,
    UserSummary,
    AuthResponse,
    UserResponseWithMessage,
    UsersResponse,
    MessageResponse,
)
from ticketmate.accounts.application.services import AccountService, IEventPublisher

__all__ = [
    "IUserRepository",
    "SignupRequest",
    "LoginRequest",
    "UpdateUserRequest",
    "UpdateProfileRequest",
    "UserResponse",
    "UserSummary",
    "AuthResponse",
    "UserResponseWithMessage",
    "UsersResponse",
    "MessageResponse",
    "AccountService",
    "IEventPublisher",
]
