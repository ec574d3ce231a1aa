"""
Account Security
================

Password hashing (bcrypt) and signed tokens (python-jose JWT).

Access tokens carry `sub` (user id) and `role` and expire after
`access_token_expire_minutes` (24h by default). OAuth `state` values are
short-lived JWTs of their own type so one can never be used as the other.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
from jose import JWTError, jwt

from ticketmate.config import Settings
from ticketmate.core import AuthenticationException

BCRYPT_ROUNDS = 10


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """False for OAuth-only accounts (no hash) and mismatches."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenService:
    """Issues and verifies access tokens and OAuth state values."""

    ACCESS = "access"
    OAUTH_STATE = "oauth_state"

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expire_minutes: int = 1440,
        state_expire_minutes: int = 10,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes
        self._state_expire_minutes = state_expire_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret=settings.access_token_secret,
            algorithm=settings.jwt_algorithm,
            expire_minutes=settings.access_token_expire_minutes,
            state_expire_minutes=settings.oauth_state_expire_minutes,
        )

    def _encode(self, claims: Dict[str, Any], minutes: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": now, "exp": now + timedelta(minutes=minutes)}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def _decode(self, token: str, token_type: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            raise AuthenticationException("Invalid token")

        if claims.get("typ") != token_type:
            raise AuthenticationException("Invalid token")
        return claims

    def create_access_token(self, user_id: str, role: str) -> str:
        return self._encode({"sub": str(user_id), "role": role, "typ": self.ACCESS}, self._expire_minutes)

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry.

        Raises:
            AuthenticationException: invalid, expired or wrong-type token
        """
        claims = self._decode(token, self.ACCESS)
        if not claims.get("sub"):
            raise AuthenticationException("Invalid token")
        return claims

    def create_oauth_state(self, provider: str) -> str:
        return self._encode(
            {"provider": provider, "nonce": secrets.token_urlsafe(16), "typ": self.OAUTH_STATE},
            self._state_expire_minutes,
        )

    def verify_oauth_state(self, state: str, provider: str) -> None:
        claims = self._decode(state, self.OAUTH_STATE)
        if claims.get("provider") != provider:
            raise AuthenticationException("OAuth state does not match provider")
