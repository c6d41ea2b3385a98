"""
auth/errors.py -- Authentication and authorization failure taxonomy.

Every error carries a machine-readable code, a client-safe message and the
HTTP status the API layer maps it to. Route handlers never build these
responses themselves -- api/main.py registers one exception handler for
AuthError and renders the standard ErrorResponse envelope.

InvalidCredentials always carries the same message whether the email was
unknown or the password was wrong, so responses never reveal which field
failed. Unavailable is deliberately distinct: a storage outage must never be
reported to a client as bad credentials.

Layer rule: no imports from api/, web/ or catalog/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure raised by the auth package."""

    status_code: int = 400
    code: str = "auth_error"
    message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidCredentials(AuthError):
    status_code = 422
    code = "invalid_credentials"
    message = "These credentials do not match our records."


class NotAuthenticated(AuthError):
    status_code = 401
    code = "unauthenticated"
    message = "Unauthenticated."


class InvalidToken(NotAuthenticated):
    """Raised by the token issuer for unknown, malformed or revoked tokens.

    Subclasses NotAuthenticated so a token failure that escapes the gateway
    still renders as a plain 401.
    """

    code = "invalid_token"
    message = "Unauthenticated."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    message = "This action is unauthorized."


class CsrfMismatch(Forbidden):
    code = "csrf_mismatch"
    message = "CSRF token mismatch."


class Unavailable(AuthError):
    status_code = 503
    code = "unavailable"
    message = "The authentication service is temporarily unavailable."
