"""Error taxonomy for account lifecycle and authentication failures.

Every error carries the HTTP status it maps to and a ``public_message`` that
is safe to return to callers. ``str(exc)`` holds the detailed internal reason
and is only meant for logs. ``AccountNotFound``, ``AccountDeleted`` and
``InvalidCredentials`` share one public message so responses cannot be used
to enumerate registered emails.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for errors raised by the account core."""

    status_code: int = 400
    error_code: str = "bad_request"
    public_message: str = "bad request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class NotFound(AccountError):
    status_code = 404
    error_code = "not_found"
    public_message = "account not found"


class DuplicateEmail(AccountError):
    status_code = 409
    error_code = "duplicate_email"
    public_message = "email already registered"


class AuthenticationError(AccountError):
    status_code = 401
    error_code = "unauthorized"
    public_message = "invalid credentials"


class AccountNotFound(AuthenticationError):
    pass


class AccountDeleted(AuthenticationError):
    pass


class InvalidCredentials(AuthenticationError):
    pass


class AccountBlocked(AuthenticationError):
    error_code = "account_blocked"
    public_message = "account is blocked"


class AccountLocked(AuthenticationError):
    status_code = 403
    error_code = "account_locked"

    def __init__(self, remaining_minutes: int, message: str | None = None) -> None:
        self.remaining_minutes = remaining_minutes
        self.public_message = f"account is locked, try again in {remaining_minutes} minutes"
        super().__init__(message or f"account locked for another {remaining_minutes} minutes")


class InvalidToken(AuthenticationError):
    error_code = "invalid_token"
    public_message = "invalid or expired token"


class PermissionDenied(AccountError):
    status_code = 403
    error_code = "forbidden"
    public_message = "insufficient permissions"
