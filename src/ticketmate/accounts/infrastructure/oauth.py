"""
OAuth Providers
===============

Authorization-code flow against Google and Facebook over httpx.

Each provider builds its consent URL and turns a callback `code` into an
`OAuthProfile`. Network and protocol failures raise OAuthException.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ticketmate.config import Settings
from ticketmate.core import OAuthException
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class OAuthProfile:
    """Identity returned by a provider."""
    provider: str
    provider_id: str
    email: Optional[str]
    name: Optional[str] = None
    avatar: Optional[str] = None


class OAuthProvider(ABC):
    """One OAuth 2.0 identity provider."""

    name: str

    def __init__(self, client_id: str, client_secret: str, timeout: float = 10.0):
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout

    @abstractmethod
    def authorization_url(self, state: str, redirect_uri: str) -> str:
        """Consent page the browser is redirected to."""

    @abstractmethod
    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        """Exchange the code and load the user's profile."""

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise OAuthException(self.name, f"Request failed: {e}")

        if response.status_code != 200:
            logger.warning(
                "OAuth provider returned non-200",
                extra={"provider": self.name, "status_code": response.status_code, "url": url}
            )
            raise OAuthException(self.name, f"Provider returned {response.status_code}")

        try:
            return response.json()
        except ValueError:
            raise OAuthException(self.name, "Provider returned invalid JSON")


class GoogleOAuthProvider(OAuthProvider):
    name = "google"

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": "openid profile email",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            token = await self._request(client, "POST", self.TOKEN_URL, data={
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            })
            access_token = token.get("access_token")
            if not access_token:
                raise OAuthException(self.name, "No access token in token response")

            info = await self._request(
                client, "GET", self.USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"}
            )

        if not info.get("sub") or not info.get("email"):
            raise OAuthException(self.name, "Profile is missing id or email")

        return OAuthProfile(
            provider=self.name,
            provider_id=str(info["sub"]),
            email=info["email"],
            name=info.get("name"),
            avatar=info.get("picture"),
        )


class FacebookOAuthProvider(OAuthProvider):
    name = "facebook"

    API_VERSION = "v19.0"
    AUTHORIZE_URL = f"https://www.facebook.com/{API_VERSION}/dialog/oauth"
    TOKEN_URL = f"https://graph.facebook.com/{API_VERSION}/oauth/access_token"
    PROFILE_URL = f"https://graph.facebook.com/{API_VERSION}/me"

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": "email,public_profile",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            token = await self._request(client, "GET", self.TOKEN_URL, params={
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": redirect_uri,
            })
            access_token = token.get("access_token")
            if not access_token:
                raise OAuthException(self.name, "No access token in token response")

            info = await self._request(client, "GET", self.PROFILE_URL, params={
                "fields": "id,email,first_name,last_name,picture.type(large)",
                "access_token": access_token,
            })

        if not info.get("id"):
            raise OAuthException(self.name, "Profile is missing id")

        name = " ".join(part for part in (info.get("first_name"), info.get("last_name")) if part)
        picture = (info.get("picture") or {}).get("data") or {}

        return OAuthProfile(
            provider=self.name,
            provider_id=str(info["id"]),
            email=info.get("email"),
            name=name or None,
            avatar=picture.get("url"),
        )


def build_oauth_providers(settings: Settings) -> Dict[str, OAuthProvider]:
    """Providers with credentials configured; the others are unavailable."""
    providers: Dict[str, OAuthProvider] = {}
    if settings.google_client_id and settings.google_client_secret:
        providers["google"] = GoogleOAuthProvider(settings.google_client_id, settings.google_client_secret)
    if settings.facebook_app_id and settings.facebook_app_secret:
        providers["facebook"] = FacebookOAuthProvider(settings.facebook_app_id, settings.facebook_app_secret)
    return providers
