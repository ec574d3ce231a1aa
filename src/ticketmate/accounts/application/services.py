"""
Accounts Application Services
=============================

Signup, login, OAuth login and account administration.

Services depend on the repository interface, the token service and an
event publisher; controllers assemble them per request.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple

from ticketmate.accounts.application.interfaces import IUserRepository
from ticketmate.accounts.domain import (
    normalize_email,
    normalize_skills,
    validate_password,
    validate_role,
    validate_signup_role,
)
from ticketmate.accounts.infrastructure.oauth import OAuthProfile
from ticketmate.accounts.infrastructure.security import (
    TokenService,
    hash_password,
    verify_password,
)
from ticketmate.config import EventName, Role
from ticketmate.core import (
    AuthenticationException,
    ConflictException,
    ResourceNotFoundException,
    ValidationException,
)
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IEventPublisher(Protocol):
    async def publish(self, name: str, data: Dict[str, Any]) -> List[str]:
        ...


class AccountService:
    """
    Application service for user accounts.

    Orchestrates:
    1. Input validation (domain rules)
    2. Credential hashing and token issuing
    3. Persistence through the repository
    4. `user/signup` event publishing
    """

    def __init__(
        self,
        users: IUserRepository,
        tokens: TokenService,
        events: Optional[IEventPublisher] = None,
    ):
        self._users = users
        self._tokens = tokens
        self._events = events

    def issue_token(self, user: Any) -> str:
        return self._tokens.create_access_token(str(user.id), user.role)

    async def signup(
        self,
        email: str,
        password: str,
        role: Optional[str] = None,
        skills: Optional[List[str]] = None,
    ) -> Tuple[Any, str]:
        """
        Register a password account.

        Returns:
            (user, access token)

        Raises:
            ValidationException: bad email, short password, admin role, bad skills
            ConflictException: email already registered
        """
        email = normalize_email(email)
        validate_password(password)
        role = validate_signup_role(role)
        skills = normalize_skills(skills)

        if await self._users.get_by_email(email) is not None:
            raise ConflictException("User with this email already exists")

        user = await self._users.create(
            email=email,
            password_hash=hash_password(password),
            role=role,
            skills=skills,
        )

        if self._events is not None:
            await self._events.publish(EventName.USER_SIGNUP, {"email": user.email, "userId": str(user.id)})

        logger.info("User signed up", extra={"user_id": str(user.id), "role": role})
        return user, self.issue_token(user)

    async def login(self, email: str, password: str) -> Tuple[Any, str]:
        """
        Raises:
            AuthenticationException: unknown email, OAuth-only account or wrong password
        """
        if not email or not password:
            raise ValidationException("Email and password are required")

        user = await self._users.get_by_email(email.strip().lower())
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Login rejected", extra={"email": email.strip().lower()})
            raise AuthenticationException("Invalid credentials")

        return user, self.issue_token(user)

    async def authenticate(self, token: str) -> Any:
        """
        Resolve a bearer token to its user.

        Raises:
            AuthenticationException: invalid/expired token or deleted user
        """
        claims = self._tokens.decode_access_token(token)
        user = await self._users.get_by_id(claims["sub"])
        if user is None:
            raise AuthenticationException("User no longer exists")
        return user

    async def update_user(
        self,
        email: str,
        role: Optional[str] = None,
        skills: Optional[List[str]] = None,
    ) -> Any:
        """Admin update of role and/or skills, addressed by email."""
        email = normalize_email(email)
        user = await self._users.get_by_email(email)
        if user is None:
            raise ResourceNotFoundException("User", email)

        if role:
            user.role = validate_role(role)
        if skills is not None:
            user.skills = normalize_skills(skills)

        await self._users.save(user)
        logger.info("User updated by admin", extra={"user_id": str(user.id), "role": user.role})
        return user

    async def update_profile(self, user: Any, skills: List[str]) -> Any:
        user.skills = normalize_skills(skills)
        await self._users.save(user)
        return user

    async def list_users(self) -> List[Any]:
        return await self._users.list_all()

    async def oauth_login(self, profile: OAuthProfile) -> Tuple[Any, str]:
        """
        Link or create the account for a provider identity.

        Lookup order: provider id, then email (linking the provider id),
        else a new `user` account. Facebook identities without an email get
        a placeholder address.
        """
        user = await self._users.get_by_provider_id(profile.provider, profile.provider_id)
        id_field = f"{profile.provider}_id"

        if user is None and profile.email:
            user = await self._users.get_by_email(profile.email.lower())
            if user is not None:
                setattr(user, id_field, profile.provider_id)
                if not user.avatar and profile.avatar:
                    user.avatar = profile.avatar
                await self._users.save(user)
                logger.info(
                    "Linked OAuth identity to existing account",
                    extra={"user_id": str(user.id), "provider": profile.provider}
                )

        if user is None:
            email = (profile.email or f"{profile.provider}_{profile.provider_id}@placeholder.com").lower()
            user = await self._users.create(
                email=email,
                name=profile.name,
                avatar=profile.avatar,
                role=Role.USER,
                skills=[],
                **{id_field: profile.provider_id},
            )
            logger.info(
                "Created account from OAuth identity",
                extra={"user_id": str(user.id), "provider": profile.provider}
            )

        return user, self.issue_token(user)
