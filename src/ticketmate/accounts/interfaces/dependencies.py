"""
Request Dependencies
====================

FastAPI dependencies shared by every router: services assembled from
`app.state` and the request session, the authenticated caller, and the
admin guard.
"""

from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ticketmate.accounts.application import AccountService
from ticketmate.accounts.infrastructure import SQLAlchemyUserRepository, TokenService
from ticketmate.config import Role, Settings
from ticketmate.core import AuthenticationException, PermissionDeniedException
from ticketmate.infrastructure.database import get_session
from ticketmate.infrastructure.workflow import EventPublisher

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_event_publisher(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> EventPublisher:
    """Publisher bound to the request session (events commit with the request)."""
    return EventPublisher(request.app.state.workflow_engine, session)


def get_account_service(
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    events: EventPublisher = Depends(get_event_publisher),
) -> AccountService:
    return AccountService(SQLAlchemyUserRepository(session), tokens, events)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: AccountService = Depends(get_account_service),
) -> Any:
    """
    Resolve `Authorization: Bearer <jwt>` to the calling user.

    Raises:
        AuthenticationException: missing, malformed, invalid or expired token
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationException("Access denied, no token provided")
    return await service.authenticate(credentials.credentials)


async def require_admin(user: Any = Depends(get_current_user)) -> Any:
    if user.role != Role.ADMIN:
        raise PermissionDeniedException("Access denied. Admin role required.")
    return user
