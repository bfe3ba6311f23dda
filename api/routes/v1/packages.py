"""
api/routes/v1/packages.py -- Follow / unfollow endpoints.

Routes:
  PUT    /api/v1/packages/{name}/follow     -- follow (idempotent)
  DELETE /api/v1/packages/{name}/follow     -- unfollow (idempotent)
  GET    /api/v1/packages/{name}/following  -- {following: bool}

Auth runs before the package lookup, so an anonymous caller gets the same
403 for a real package and a made-up one.
"""

from fastapi import APIRouter, Depends, Request

from api.models import FollowingResponse, OkResponse
from auth.dependencies import get_current_user
from auth.models import User
from registry.store import RegistryStore

# Auth policy: every route requires a caller (get_current_user).
router = APIRouter()


@router.put("/packages/{name}/follow", response_model=OkResponse)
def follow(request: Request, name: str, current_user: User = Depends(get_current_user)) -> OkResponse:
    registry: RegistryStore = request.app.state.registry
    package = registry.find_package_by_name(name)
    registry.follow(current_user.id, package.id)
    return OkResponse()


@router.delete("/packages/{name}/follow", response_model=OkResponse)
def unfollow(request: Request, name: str, current_user: User = Depends(get_current_user)) -> OkResponse:
    registry: RegistryStore = request.app.state.registry
    package = registry.find_package_by_name(name)
    registry.unfollow(current_user.id, package.id)
    return OkResponse()


@router.get("/packages/{name}/following", response_model=FollowingResponse)
def following(request: Request, name: str, current_user: User = Depends(get_current_user)) -> FollowingResponse:
    """Report whether the caller follows the package."""
    registry: RegistryStore = request.app.state.registry
    package = registry.find_package_by_name(name)
    return FollowingResponse(following=registry.is_following(current_user.id, package.id))
