"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two carriers are checked in priority order:
  1. Session cookie ("session_token") -- set by the GitHub OAuth callback.
  2. Authorization header -- API token, either "Bearer <token>" or bare.

Both converge on a User loaded from app.state.user_store.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises AuthRequiredError (HTTP 403).

Layer rule: no imports from api/ or registry/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import User
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, decode_session_token, parse_authorization_header
from core.errors import AuthRequiredError


def try_get_current_user(request: Request) -> User | None:
    """Resolve the caller from the session cookie or the Authorization header.

    Returns the User on success, None when neither carrier is present or
    valid. Never raises for bad credentials -- callers that need a hard
    failure should use get_current_user().
    """
    user_store: UserStore = request.app.state.user_store

    # 1. Session cookie (browser sign-in)
    session_token = request.cookies.get(SESSION_COOKIE)
    if session_token:
        user_id = decode_session_token(session_token)
        if user_id is not None:
            user = user_store.get_by_id(user_id)
            if user is not None:
                return user

    # 2. Authorization header (API clients)
    api_token = parse_authorization_header(request.headers.get("Authorization"))
    if api_token:
        return user_store.get_by_api_token(api_token)

    return None


def get_current_user(request: Request) -> User:
    """Require a caller. Raises AuthRequiredError (403) if there is none.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise AuthRequiredError()
    return user
