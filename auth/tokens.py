"""
auth/tokens.py -- API token generation and the signed session cookie.

Security design decisions:
  API tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. Tokens
       carry no claims; they are random lookup keys into the users table.
       The raw value is stored because GET /me hands it back to its owner.
       Authentication is a keyed equality lookup on the UNIQUE api_token
       column, so timing depends on the index, not on the token's content.

  Session: python-jose with HS256. After a successful OAuth callback the
       user id is signed into a JWT and written as an httpOnly cookie.
       Verification returns None on any failure -- the dependency layer
       turns that into "no caller".

  SECRET_KEY: sourced from core.config.get_settings(). See Settings for the
       dev/production key policy.

Layer rule: no imports from api/ or registry/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

_ALGORITHM = "HS256"

SESSION_COOKIE = "session_token"

# ---------------------------------------------------------------------------
# API tokens
# ---------------------------------------------------------------------------


def generate_api_token() -> str:
    """Return a fresh opaque API token (43 URL-safe characters)."""
    return secrets.token_urlsafe(32)


def parse_authorization_header(value: str | None) -> str | None:
    """Extract the token from an Authorization header.

    Accepts both "Bearer <token>" and a bare token, which is what cargo-style
    command line clients send. Returns None for an empty header.
    """
    if not value:
        return None
    value = value.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        value = rest.strip()
    return value or None


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------


def create_session_token(user_id: int, expire_seconds: int = 0) -> str:
    """Sign a session token for user_id.

    Args:
        user_id:        Numeric user ID stored in the DB.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.session_expire_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.session_expire_seconds
    payload = {
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> int | None:
    """Return the user id signed into token, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("user_id")
    return user_id if isinstance(user_id, int) else None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_expire_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
