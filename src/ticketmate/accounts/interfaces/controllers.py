"""
Accounts Controllers (API Routes)
=================================

FastAPI routes under `/auth`: password signup/login, OAuth login and
admin account management.

Controllers delegate to AccountService.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from ticketmate.accounts.application import (
    AccountService,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    SignupRequest,
    UpdateProfileRequest,
    UpdateUserRequest,
    UserResponse,
    UserResponseWithMessage,
    UsersResponse,
)
from ticketmate.accounts.infrastructure import OAuthProvider, TokenService
from ticketmate.accounts.interfaces.dependencies import (
    get_account_service,
    get_app_settings,
    get_current_user,
    get_token_service,
    require_admin,
)
from ticketmate.config import Settings
from ticketmate.core import ApplicationException, ResourceNotFoundException
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["Accounts"])


# ========== Example payloads for Swagger ==========

SIGNUP_REQUEST_EXAMPLE = {
    "email": "mod@example.com",
    "password": "secret123",
    "role": "moderator",
    "skills": ["Node.js", "MongoDB"]
}


# ========== Helpers ==========

def _provider(request: Request, name: str) -> OAuthProvider:
    providers: Dict[str, OAuthProvider] = request.app.state.oauth_providers
    provider = providers.get(name)
    if provider is None:
        raise ResourceNotFoundException("OAuth provider", name)
    return provider


def _callback_url(settings: Settings, provider: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}{settings.api_prefix}/auth/{provider}/callback"


def _frontend_failure(settings: Settings) -> RedirectResponse:
    return RedirectResponse(f"{settings.frontend_url.rstrip('/')}/login?error=oauth")


# ========== Route Handlers ==========

@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Account created"},
        400: {"description": "Validation error"},
        409: {"description": "Email already registered"},
    },
)
async def signup(
    body: SignupRequest,
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """
    Register with email and password.

    Role may be `user` (default) or `moderator`; admins are never
    self-registered.
    """
    user, token = await service.signup(body.email, body.password, body.role, body.skills)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=token,
        message="User created successfully",
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    user, token = await service.login(body.email, body.password)
    return AuthResponse(user=UserResponse.model_validate(user), token=token, message="Login successful")


@router.post("/logout", response_model=MessageResponse)
async def logout(user: Any = Depends(get_current_user)) -> MessageResponse:
    """Tokens are stateless; logout only confirms the token is valid."""
    logger.info("User logged out", extra={"user_id": str(user.id)})
    return MessageResponse(message="Logout successful")


@router.post("/update-user", response_model=UserResponseWithMessage)
async def update_user(
    body: UpdateUserRequest,
    _admin: Any = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
) -> UserResponseWithMessage:
    """Admin: change another account's role and/or skills."""
    user = await service.update_user(body.email, body.role, body.skills)
    return UserResponseWithMessage(user=UserResponse.model_validate(user), message="User updated successfully")


@router.patch("/profile", response_model=UserResponseWithMessage)
async def update_profile(
    body: UpdateProfileRequest,
    user: Any = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> UserResponseWithMessage:
    user = await service.update_profile(user, body.skills)
    return UserResponseWithMessage(user=UserResponse.model_validate(user), message="Profile updated successfully")


@router.get("/users", response_model=UsersResponse)
async def list_users(
    _admin: Any = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
) -> UsersResponse:
    users = await service.list_users()
    return UsersResponse(
        users=[UserResponse.model_validate(u) for u in users],
        count=len(users),
        message="Users retrieved successfully",
    )


@router.get("/{provider}", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def oauth_start(
    provider: str,
    request: Request,
    settings: Settings = Depends(get_app_settings),
    tokens: TokenService = Depends(get_token_service),
) -> RedirectResponse:
    """Redirect to the provider's consent page (google or facebook)."""
    oauth = _provider(request, provider)
    state = tokens.create_oauth_state(provider)
    return RedirectResponse(oauth.authorization_url(state, _callback_url(settings, provider)))


@router.get("/{provider}/callback", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_app_settings),
    tokens: TokenService = Depends(get_token_service),
    service: AccountService = Depends(get_account_service),
) -> RedirectResponse:
    """
    Finish the OAuth flow and hand the token to the front end.

    Success: {frontend_url}/auth/callback?token=...&user=<url-encoded JSON>
    Failure: {frontend_url}/login?error=oauth
    """
    oauth = _provider(request, provider)

    if error or not code or not state:
        logger.warning("OAuth callback without code", extra={"provider": provider, "error": error})
        return _frontend_failure(settings)

    try:
        tokens.verify_oauth_state(state, provider)
        profile = await oauth.fetch_profile(code, _callback_url(settings, provider))
        user, token = await service.oauth_login(profile)
    except ApplicationException as e:
        logger.warning("OAuth login failed", extra={"provider": provider, "error": e.message})
        return _frontend_failure(settings)

    user_json = UserResponse.model_validate(user).model_dump_json(by_alias=True)
    query = urlencode({"token": token, "user": user_json}, quote_via=quote)
    return RedirectResponse(f"{settings.frontend_url.rstrip('/')}/auth/callback?{query}")
