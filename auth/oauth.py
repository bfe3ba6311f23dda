"""
auth/oauth.py -- GitHub OAuth client built on Authlib's httpx integration.

The authorize/callback state machine lives in auth/flow.py; this module only
talks to GitHub:
  authorization_url(state) -- builds the URL the browser is sent to. The
      caller supplies the CSRF state so it can be stored before redirecting.
  exchange_code(code)      -- trades an authorization code for an access
      token, then reads GET /user to describe the account.

Tests replace the GitHubOAuth instance on app.state.oauth with a fake that
has the same two methods, so no network call ever happens in the suite.

Layer rule: no imports from api/ or registry/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from auth.models import ExternalIdentity
from core.config import Settings, get_settings

logger = logging.getLogger("pkgfeed.auth.oauth")

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105 -- URL, not a password
API_BASE_URL = "https://api.github.com"


class OAuthExchangeError(Exception):
    """GitHub rejected the code or returned an unusable profile."""


class GitHubOAuth:
    """GitHub OAuth app client.

    transport is handed to the underlying httpx.AsyncClient; tests pass an
    httpx.MockTransport to script GitHub's responses.
    """

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        if not self._settings.github_client_id:
            logger.warning("GITHUB_CLIENT_ID is not set -- sign-in will fail at the provider")

    def _client(self) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self._settings.github_client_id,
            client_secret=self._settings.github_client_secret,
            scope=self._settings.github_scope,
            redirect_uri=self._settings.github_redirect_uri or None,
            transport=self._transport,
            timeout=10,
        )

    def authorization_url(self, state: str) -> str:
        """Return the GitHub authorize URL with state embedded as a query parameter."""
        return prepare_grant_uri(
            AUTHORIZE_URL,
            self._settings.github_client_id,
            "code",
            redirect_uri=self._settings.github_redirect_uri or None,
            scope=self._settings.github_scope,
            state=state,
        )

    async def exchange_code(self, code: str) -> ExternalIdentity:
        """Exchange an authorization code and describe the GitHub account.

        Raises OAuthExchangeError when GitHub does not return an access token
        (expired or reused code) or the profile is missing its id or login.
        httpx transport errors propagate unchanged.
        """
        async with self._client() as client:
            try:
                token = await client.fetch_token(ACCESS_TOKEN_URL, code=code)
            except OAuthError as exc:
                raise OAuthExchangeError(str(exc)) from exc
            access_token = token.get("access_token")
            if not access_token:
                raise OAuthExchangeError(token.get("error_description") or "GitHub did not return an access token")
            resp = await client.get(f"{API_BASE_URL}/user", headers={"Accept": "application/vnd.github+json"})
            resp.raise_for_status()
            profile = resp.json()

        if profile.get("id") is None or not profile.get("login"):
            raise OAuthExchangeError("GitHub profile is missing id or login")

        return ExternalIdentity(
            gh_id=int(profile["id"]),
            login=profile["login"],
            access_token=access_token,
            email=profile.get("email"),
            avatar=profile.get("avatar_url"),
            name=profile.get("name"),
        )
