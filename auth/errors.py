"""
auth/errors.py -- Error taxonomy for the identity core.

Each error carries the HTTP status it maps to plus a machine-readable code, so
the API layer needs a single exception handler instead of per-route
translation. The core itself never imports fastapi.

  ValidationError      400  malformed input, disallowed role value
  AuthenticationError  401  missing/invalid/expired credential, bad login
  AuthorizationError   403  insufficient role, owner-protection violation
  NotFoundError        404  unknown resource id in admin lookups

AuthenticationError messages are deliberately generic. Never put the reason
(unknown email, wrong password, revoked token) into the message.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request."


class AuthenticationError(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Not authorized to access this route."


class AuthorizationError(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."
