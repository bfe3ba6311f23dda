"""
auth/flow.py -- The two states of the GitHub sign-in flow.

    GET /session/authorize_url          GET /session/authorize?code&state
    ---------------------------         ---------------------------------
    PendingState.issue()                PendingState.pop(session)
      .store(session)         ---->       .verify(state)      -- guard
      -> {url, state}                     exchange code, reconcile user
                                          Authenticated(user).establish(resp)

PendingState lives in the Starlette session (a signed cookie), so it
survives the round trip through GitHub without server-side storage. It is
popped on the callback whether or not the state matches: a CSRF token is
good for exactly one attempt.

Authenticated is the durable result. establish() writes the session cookie
that auth/dependencies.py later resolves back to the user. Having a session
and having just passed the CSRF check are different things; only the
callback performs the transition.

Layer rule: no imports from api/ or registry/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import MutableMapping
from dataclasses import dataclass

from auth.models import User
from auth.tokens import create_session_token, set_session_cookie
from core.errors import InvalidStateError

logger = logging.getLogger("pkgfeed.auth.flow")

_SESSION_KEY = "github_oauth_state"


@dataclass(frozen=True)
class PendingState:
    csrf_token: str

    @classmethod
    def issue(cls) -> PendingState:
        return cls(csrf_token=secrets.token_hex(16))

    def store(self, session: MutableMapping) -> None:
        session[_SESSION_KEY] = self.csrf_token

    @classmethod
    def pop(cls, session: MutableMapping) -> PendingState | None:
        """Remove and return the pending state recorded in session, if any."""
        csrf_token = session.pop(_SESSION_KEY, None)
        return cls(csrf_token=csrf_token) if csrf_token else None

    def verify(self, returned_state: str | None) -> None:
        """Raise InvalidStateError unless returned_state matches exactly."""
        if not returned_state or not hmac.compare_digest(self.csrf_token, returned_state):
            logger.warning("OAuth callback rejected: state mismatch")
            raise InvalidStateError()


def require_pending(session: MutableMapping, returned_state: str | None) -> PendingState:
    """Pop the pending state and check it against the callback's state.

    A callback with no pending state at all (expired session, direct hit on
    the URL) fails the same way as a mismatch.
    """
    pending = PendingState.pop(session)
    if pending is None:
        logger.warning("OAuth callback rejected: no pending state in session")
        raise InvalidStateError()
    pending.verify(returned_state)
    return pending


@dataclass(frozen=True)
class Authenticated:
    user: User

    def establish(self, response) -> None:
        """Write the durable session cookie for this user onto response."""
        set_session_cookie(response, create_session_token(self.user.id))
