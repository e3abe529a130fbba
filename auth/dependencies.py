"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Admin API clients send the session token as "Authorization: Bearer <token>".

get_auth_context() returns the AuthContext built by the lifespan.
try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises UnauthorizedError if unauthenticated.
require_super_admin() wraps get_current_user() and raises ForbiddenError
for everyone but super admins.

Layer rule: auth/dependencies.py may import from fastapi (Request) because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.context import AuthContext
from auth.errors import ForbiddenError, UnauthorizedError
from auth.models import User
from auth.store import is_super_admin
from auth.tokens import decode_jwt_token


def get_auth_context(request: Request) -> AuthContext:
    return request.app.state.auth


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via its Bearer token. Never raises."""
    ctx = get_auth_context(request)
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    decoded = decode_jwt_token(auth_header[7:], ctx.settings)
    if not decoded.is_valid:
        return None
    user = ctx.users.get_by_id(decoded.payload["id"])
    if user and user.is_active and not user.blocked:
        return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise UnauthorizedError("Missing or invalid credentials")
    return user


def require_super_admin(request: Request) -> User:
    user = get_current_user(request)
    if not is_super_admin(user):
        raise ForbiddenError("Super admin access required")
    return user
