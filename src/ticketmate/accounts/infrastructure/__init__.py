"""
Accounts Infrastructure Layer
=============================

Persistence, credentials and OAuth provider adapters.
"""

from ticketmate.accounts.infrastructure.models import UserModel
from ticketmate.accounts.infrastructure.repositories import SQLAlchemyUserRepository
from ticketmate.accounts.infrastructure.security import (
    TokenService,
    hash_password,
    verify_password,
)
from ticketmate.accounts.infrastructure.oauth import (
    OAuthProfile,
    OAuthProvider,
    GoogleOAuthProvider,
    FacebookOAuthProvider,
    build_oauth_providers,
)

__all__ = [
    "UserModel",
    "SQLAlchemyUserRepository",
    "TokenService",
    "hash_password",
    "verify_password",
    "OAuthProfile",
    "OAuthProvider",
    "GoogleOAuthProvider",
    "FacebookOAuthProvider",
    "build_oauth_providers",
]
