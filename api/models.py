"""
API request and response models for pkgfeed REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
registry/models.py, which own the internal domain representation. Route
handlers map between the two.

Secrets (gh_access_token, api_token) never appear in EncodableUser. The only
responses that carry an api_token are the ones returned to its owner.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User
from registry.models import FeedPage, VersionSummary

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class EncodableUser(BaseModel):
    """Public view of a user."""

    model_config = ConfigDict(frozen=True)

    id: int
    login: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    url: str

    @classmethod
    def from_user(cls, user: User) -> "EncodableUser":
        return cls(
            id=user.id,
            login=user.gh_login,
            email=user.email,
            name=user.name,
            avatar=user.gh_avatar,
            url=f"https://github.com/{user.gh_login}",
        )


class UserResponse(BaseModel):
    """Response for GET /api/v1/users/{login}."""

    model_config = ConfigDict(frozen=True)

    user: EncodableUser


class MeResponse(BaseModel):
    """Response for GET /api/v1/me and the OAuth callback."""

    model_config = ConfigDict(frozen=True)

    user: EncodableUser
    api_token: str

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(user=EncodableUser.from_user(user), api_token=user.api_token)


class TokenResponse(BaseModel):
    """Response for PUT /api/v1/me/reset_token."""

    model_config = ConfigDict(frozen=True)

    api_token: str


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class AuthorizeUrlResponse(BaseModel):
    """Response for GET /api/v1/session/authorize_url. url embeds state."""

    model_config = ConfigDict(frozen=True)

    url: str
    state: str


# ---------------------------------------------------------------------------
# Follows and feed
# ---------------------------------------------------------------------------


class OkResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class FollowingResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    following: bool


class EncodableVersion(BaseModel):
    """One feed entry."""

    model_config = ConfigDict(frozen=True)

    id: int
    package: str
    num: str
    created_at: str
    yanked: bool = False

    @classmethod
    def from_summary(cls, summary: VersionSummary) -> "EncodableVersion":
        return cls(
            id=summary.id,
            package=summary.package,
            num=summary.num,
            created_at=summary.created_at,
            yanked=summary.yanked,
        )


class FeedMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    more: bool


class UpdatesResponse(BaseModel):
    """Response for GET /api/v1/me/updates."""

    model_config = ConfigDict(frozen=True)

    versions: list[EncodableVersion] = Field(default_factory=list)
    meta: FeedMeta

    @classmethod
    def from_page(cls, page: FeedPage) -> "UpdatesResponse":
        return cls(
            versions=[EncodableVersion.from_summary(v) for v in page.versions],
            meta=FeedMeta(more=page.more),
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
