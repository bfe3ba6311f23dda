"""
core/errors.py -- Typed failures shared by the stores, auth, and the API layer.

Stores and auth helpers raise these; api/main.py maps every RegistryError to
the standard ErrorResponse envelope using the status_code and code carried
on the exception. Route handlers never translate them by hand.

Layer rule: core/ is the kernel. No imports from api/, auth/, or registry/.
"""

from __future__ import annotations


class RegistryError(Exception):
    """Base class for failures that have a user-visible HTTP mapping."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(RegistryError):
    """A user or package lookup matched nothing."""

    status_code = 404
    code = "not_found"


class AuthRequiredError(RegistryError):
    """A protected operation was called without a resolvable caller.

    The message is deliberately fixed so the response never reveals whether
    the target resource exists.
    """

    status_code = 403
    code = "auth_required"

    def __init__(self) -> None:
        super().__init__("must be logged in to perform that action")


class InvalidStateError(RegistryError):
    """The OAuth callback returned a state that does not match the issued one."""

    status_code = 400
    code = "invalid_state"

    def __init__(self) -> None:
        super().__init__("invalid state parameter")


class ValidationError(RegistryError):
    """A request parameter is out of range. `param` names the offender."""

    status_code = 400
    code = "validation_error"

    def __init__(self, param: str, message: str) -> None:
        super().__init__(message, detail=param)
        self.param = param


class ConflictError(RegistryError):
    """A generated secret collided with an existing one. Retried internally."""

    status_code = 409
    code = "conflict"


class StoreError(RegistryError):
    """Persistence failed in a way the caller cannot act on."""

    status_code = 500
    code = "internal_error"
