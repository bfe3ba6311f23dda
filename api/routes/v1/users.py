"""
api/routes/v1/users.py -- Current-user and public user endpoints.

Routes:
  GET /api/v1/me                 -- current user and API token (requires auth)
  PUT /api/v1/me/reset_token     -- rotate the API token (requires auth)
  GET /api/v1/me/updates         -- feed of followed packages' versions (requires auth)
  GET /api/v1/users/{login}      -- public profile (public)

Security:
  Cache-Control: no-store on /me and /me/reset_token, which return the API token.

Pagination errors (page < 1, per_page out of range) come back as 400
validation_error with the offending parameter in error.detail.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import EncodableUser, MeResponse, TokenResponse, UpdatesResponse, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from registry.pagination import Pagination
from registry.store import RegistryStore

# Auth policy:
# - GET /api/v1/me, PUT /api/v1/me/reset_token, GET /api/v1/me/updates: get_current_user
# - GET /api/v1/users/{login}: public
router = APIRouter()


@router.get("/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Return the signed-in user together with their API token."""
    resp = JSONResponse(content=MeResponse.from_user(current_user).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.put("/me/reset_token", response_model=TokenResponse)
def reset_token(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Replace the caller's API token. The old token stops working immediately."""
    user_store: UserStore = request.app.state.user_store
    api_token = user_store.rotate_api_token(current_user.id)
    resp = JSONResponse(content=TokenResponse(api_token=api_token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/me/updates", response_model=UpdatesResponse)
def updates(
    request: Request,
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    current_user: User = Depends(get_current_user),
) -> UpdatesResponse:
    """Return recent versions of followed packages, newest first.

    Query params:
      page     -- 1-indexed page number (default 1)
      per_page -- page size (default DEFAULT_PER_PAGE, max MAX_PER_PAGE)

    meta.more is true when at least one more row exists past this page.
    """
    pagination = Pagination.from_params(page=page, per_page=per_page)
    registry: RegistryStore = request.app.state.registry
    return UpdatesResponse.from_page(registry.updates_for(current_user.id, pagination))


@router.get("/users/{login}", response_model=UserResponse)
def show_user(request: Request, login: str) -> UserResponse:
    """Return the public profile for a GitHub login. 404 if unknown."""
    user_store: UserStore = request.app.state.user_store
    return UserResponse(user=EncodableUser.from_user(user_store.find_by_login(login)))
