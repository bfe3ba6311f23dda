"""
tests/test_oauth_client.py -- GitHubOAuth against a scripted GitHub.

httpx.MockTransport stands in for github.com and api.github.com, so the real
Authlib token exchange and the GET /user call run without network access.
"""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from auth.oauth import GitHubOAuth, OAuthExchangeError
from core.config import Settings


def _settings() -> Settings:
    return Settings(
        debug=True,
        github_client_id="client-123",
        github_client_secret="shh",
        github_redirect_uri="http://localhost:8000/api/v1/session/authorize",
    )


def _github(token_body: dict, profile: dict | None = None, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path == "/login/oauth/access_token":
            return httpx.Response(200, json=token_body)
        if request.url.path == "/user":
            return httpx.Response(200, json=profile or {})
        return httpx.Response(404, json={"message": "Not Found"})

    return httpx.MockTransport(handler)


def test_authorization_url_carries_state_and_client_id():
    oauth = GitHubOAuth(settings=_settings())
    url = urlparse(oauth.authorization_url("abc123"))
    query = parse_qs(url.query)

    assert url.netloc == "github.com"
    assert url.path == "/login/oauth/authorize"
    assert query["state"] == ["abc123"]
    assert query["client_id"] == ["client-123"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["read:org"]


def test_exchange_code_returns_identity():
    seen: list[httpx.Request] = []
    transport = _github(
        {"access_token": "gho_abc", "token_type": "bearer", "scope": "read:org"},
        {"id": 42, "login": "octocat", "email": None, "avatar_url": "https://a/42", "name": "Mona"},
        seen,
    )
    oauth = GitHubOAuth(settings=_settings(), transport=transport)

    identity = asyncio.run(oauth.exchange_code("good-code"))

    assert identity.gh_id == 42
    assert identity.login == "octocat"
    assert identity.access_token == "gho_abc"
    assert identity.avatar == "https://a/42"
    assert identity.name == "Mona"
    assert identity.email is None

    user_call = seen[-1]
    assert user_call.url.path == "/user"
    assert user_call.headers["Authorization"] == "Bearer gho_abc"


def test_rejected_code_raises():
    transport = _github({"error": "bad_verification_code", "error_description": "The code is incorrect or expired."})
    oauth = GitHubOAuth(settings=_settings(), transport=transport)

    with pytest.raises(OAuthExchangeError):
        asyncio.run(oauth.exchange_code("stale-code"))


@pytest.mark.parametrize(
    "profile",
    [
        {"id": 42},
        {"id": 42, "login": None},
        {"id": None, "login": "octocat"},
    ],
)
def test_profile_without_id_or_login_raises(profile):
    transport = _github({"access_token": "gho_abc", "token_type": "bearer"}, profile)
    oauth = GitHubOAuth(settings=_settings(), transport=transport)

    with pytest.raises(OAuthExchangeError):
        asyncio.run(oauth.exchange_code("good-code"))
