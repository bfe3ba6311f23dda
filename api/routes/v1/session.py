"""
api/routes/v1/session.py -- GitHub sign-in endpoints.

Routes:
  GET    /api/v1/session/authorize_url  -- start sign-in; returns {url, state}
  GET    /api/v1/session/authorize      -- OAuth callback; returns {user, api_token}
  DELETE /api/v1/session                -- sign out; clears the session cookie

The CSRF state is checked before anything else happens on the callback: a
mismatch never reaches GitHub and never creates or updates a user. See
auth/flow.py for the state machine.

Security:
  Cache-Control: no-store on the callback, which returns the API token.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import AuthorizeUrlResponse, MeResponse, OkResponse
from auth.flow import Authenticated, PendingState, require_pending
from auth.oauth import OAuthExchangeError
from auth.store import UserStore
from auth.tokens import clear_session_cookie
from core.errors import ValidationError

logger = logging.getLogger("pkgfeed.api.session")

# Auth policy: all three routes are public. They are how a caller gets a session.
router = APIRouter()


@router.get("/session/authorize_url", response_model=AuthorizeUrlResponse)
async def authorize_url(request: Request) -> AuthorizeUrlResponse:
    """Issue a CSRF state, remember it in the session, and return the GitHub URL."""
    pending = PendingState.issue()
    pending.store(request.session)
    url = request.app.state.oauth.authorization_url(pending.csrf_token)
    return AuthorizeUrlResponse(url=url, state=pending.csrf_token)


@router.get("/session/authorize", response_model=MeResponse)
async def authorize(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
) -> JSONResponse:
    """Finish sign-in: check state, exchange the code, reconcile the user.

    Flow:
      1. Pop the pending state from the session and compare it with ?state.
         Mismatch or absence -> 400 invalid_state, nothing else runs.
      2. Exchange ?code with GitHub for a token and the account profile.
      3. Upsert the user keyed by GitHub id.
      4. Set the session cookie and return the user with their API token.
    """
    require_pending(request.session, state)
    if not code:
        raise ValidationError("code", "missing authorization code")

    try:
        identity = await request.app.state.oauth.exchange_code(code)
    except OAuthExchangeError as exc:
        logger.warning("GitHub code exchange failed: %s", exc)
        raise HTTPException(
            status_code=400,
            detail={"code": "oauth_failed", "message": "GitHub sign-in failed. Please try again."},
        ) from exc

    user_store: UserStore = request.app.state.user_store
    user = user_store.reconcile(
        identity.gh_id,
        identity.login,
        identity.email,
        identity.avatar,
        identity.name,
        identity.access_token,
    )
    outcome = Authenticated(user)

    resp = JSONResponse(content=MeResponse.from_user(user).model_dump())
    outcome.establish(resp)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("Signed in user id=%d (%s)", user.id, user.gh_login)
    return resp


@router.delete("/session", response_model=OkResponse)
async def logout(request: Request) -> JSONResponse:
    """Clear the session cookie and any half-finished sign-in."""
    request.session.clear()
    resp = JSONResponse(content=OkResponse().model_dump())
    clear_session_cookie(resp)
    return resp
