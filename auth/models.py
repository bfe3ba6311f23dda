"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in registry/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or registry/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A publisher backed by a GitHub account.

    gh_id is the provider's stable numeric id and the reconciliation key:
    exactly one row exists per gh_id. gh_login, email, gh_avatar, name and
    gh_access_token are refreshed on every sign-in; id and gh_id never change.

    api_token is the opaque bearer credential for programmatic access. It is
    set when the row is first inserted and replaced only by an explicit
    rotation.
    """

    gh_id: int
    gh_login: str
    gh_access_token: str
    api_token: str
    id: int | None = None
    email: str | None = None
    gh_avatar: str | None = None
    name: str | None = None
    created_at: str | None = None


@dataclass
class ExternalIdentity:
    """What the OAuth provider tells us about the signed-in account."""

    gh_id: int
    login: str
    access_token: str
    email: str | None = None
    avatar: str | None = None
    name: str | None = None
