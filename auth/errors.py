"""
auth/errors.py -- Error taxonomy for the authentication flows.

Every AuthError carries a safe, user-facing message. The API layer maps
status_code/code onto the JSON error envelope; nothing in auth/ knows about
HTTP responses.

  ValidationError   400 -- malformed, unknown or expired single-use token
  ApplicationError  400 -- business-rule violation (bad credentials, second bootstrap)
  ForbiddenError    403 -- incorrect MFA verification code
  UnauthorizedError 401 -- missing or invalid session token
  ProviderError     501 -- any unrecognized provider failure, deliberately opaque

ConfigurationError (missing secret, missing super admin role) lives in
core.config and is re-exported here. It is fatal, not a user error.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from core.config import ConfigurationError


class AuthError(Exception):
    status_code: int = 400
    code: str = "auth_error"

    def __init__(self, message: str = "", details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"


class ApplicationError(AuthError):
    status_code = 400
    code = "application_error"


class LoginNotAllowedError(ApplicationError):
    """Account exists but may not log in (blocked). Safe to disclose."""

    def __init__(self, message: str = "Login not allowed") -> None:
        super().__init__(message, details={"code": "LOGIN_NOT_ALLOWED"})


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"


class ProviderError(AuthError):
    """Opaque failure. The message never contains upstream exception text."""

    status_code = 501
    code = "not_implemented"

    def __init__(self) -> None:
        super().__init__("Not Implemented")


__all__ = [
    "ApplicationError",
    "AuthError",
    "ConfigurationError",
    "ForbiddenError",
    "LoginNotAllowedError",
    "ProviderError",
    "UnauthorizedError",
    "ValidationError",
]
