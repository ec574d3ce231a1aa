"""
Tests for OAuth login (/api/auth/{provider}) with the provider HTTP calls
patched out.
"""
import json
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import API
from ticketmate.accounts.infrastructure.oauth import (
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    OAuthProfile,
)
from ticketmate.core import OAuthException

FRONTEND = "http://frontend.test"


@pytest.fixture
def google():
    return GoogleOAuthProvider("google-client", "google-secret")


@pytest.fixture
def facebook():
    return FacebookOAuthProvider("fb-app", "fb-secret")


@pytest.fixture
def oauth_providers(google, facebook):
    return {"google": google, "facebook": facebook}


async def _start(client, provider):
    response = await client.get(f"{API}/auth/{provider}")
    assert response.status_code == 307
    location = urlparse(response.headers["location"])
    return location, parse_qs(location.query)


def _callback_result(response):
    assert response.status_code == 307
    location = response.headers["location"]
    params = parse_qs(urlparse(location).query)
    return location, params


@pytest.mark.asyncio
async def test_start_redirects_to_consent_page(client):
    location, params = await _start(client, "google")

    assert location.netloc == "accounts.google.com"
    assert params["client_id"] == ["google-client"]
    assert params["redirect_uri"] == ["http://api.test/api/auth/google/callback"]
    assert params["state"][0]


@pytest.mark.asyncio
async def test_google_callback_creates_account(client, google):
    _, params = await _start(client, "google")
    profile = OAuthProfile(provider="google", provider_id="g-123", email="Olive@Example.com", name="Olive")

    with patch.object(google, "fetch_profile", AsyncMock(return_value=profile)) as fetch:
        response = await client.get(
            f"{API}/auth/google/callback", params={"code": "abc", "state": params["state"][0]}
        )

    location, query = _callback_result(response)
    assert location.startswith(f"{FRONTEND}/auth/callback?token=")
    assert query["token"][0]
    user = json.loads(query["user"][0])
    assert user["email"] == "olive@example.com"
    assert user["googleId"] == "g-123"
    assert user["role"] == "user"
    fetch.assert_awaited_once_with("abc", "http://api.test/api/auth/google/callback")


@pytest.mark.asyncio
async def test_google_callback_links_existing_account(client, google, signup):
    existing, _ = await signup("paul@example.com")
    _, params = await _start(client, "google")
    profile = OAuthProfile(provider="google", provider_id="g-456", email="paul@example.com")

    with patch.object(google, "fetch_profile", AsyncMock(return_value=profile)):
        response = await client.get(
            f"{API}/auth/google/callback", params={"code": "abc", "state": params["state"][0]}
        )

    _, query = _callback_result(response)
    user = json.loads(query["user"][0])
    assert user["id"] == existing["id"]
    assert user["googleId"] == "g-456"

    # The linked account keeps its password login
    login = await client.post(f"{API}/auth/login", json={"email": "paul@example.com", "password": "secret123"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_facebook_profile_without_email_gets_placeholder(client, facebook):
    _, params = await _start(client, "facebook")
    profile = OAuthProfile(provider="facebook", provider_id="fb-789", email=None, name="Quinn Doe")

    with patch.object(facebook, "fetch_profile", AsyncMock(return_value=profile)):
        first = await client.get(
            f"{API}/auth/facebook/callback", params={"code": "abc", "state": params["state"][0]}
        )
        second = await client.get(
            f"{API}/auth/facebook/callback", params={"code": "def", "state": params["state"][0]}
        )

    first_user = json.loads(_callback_result(first)[1]["user"][0])
    second_user = json.loads(_callback_result(second)[1]["user"][0])
    assert first_user["email"] == "facebook_fb-789@placeholder.com"
    assert first_user["facebookId"] == "fb-789"
    assert second_user["id"] == first_user["id"]


@pytest.mark.asyncio
async def test_state_is_bound_to_provider(client, google):
    _, params = await _start(client, "facebook")

    with patch.object(google, "fetch_profile", AsyncMock()) as fetch:
        response = await client.get(
            f"{API}/auth/google/callback", params={"code": "abc", "state": params["state"][0]}
        )

    location, _ = _callback_result(response)
    assert location == f"{FRONTEND}/login?error=oauth"
    fetch.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [
    {"code": "abc", "state": "garbage"},
    {"state": "whatever"},
    {"error": "access_denied"},
])
async def test_bad_callback_redirects_to_login(client, params):
    response = await client.get(f"{API}/auth/google/callback", params=params)

    location, _ = _callback_result(response)
    assert location == f"{FRONTEND}/login?error=oauth"


@pytest.mark.asyncio
async def test_provider_failure_redirects_to_login(client, google):
    _, params = await _start(client, "google")

    with patch.object(google, "fetch_profile", AsyncMock(side_effect=OAuthException("google", "boom"))):
        response = await client.get(
            f"{API}/auth/google/callback", params={"code": "abc", "state": params["state"][0]}
        )

    location, _ = _callback_result(response)
    assert location == f"{FRONTEND}/login?error=oauth"


@pytest.mark.asyncio
async def test_unconfigured_provider_is_not_found(app, client):
    app.state.oauth_providers.pop("facebook")

    assert (await client.get(f"{API}/auth/facebook")).status_code == 404
    assert (await client.get(f"{API}/auth/github")).status_code == 404
