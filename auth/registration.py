"""
auth/registration.py -- Invitations, registration and first-admin bootstrap.

An invitation is a user row with is_active=False and a registration token.
register() consumes the token exactly once. register_admin() is the bootstrap
path and succeeds at most once per database: the exists() pre-check rejects
later calls, and UserStore.create_first_admin() closes the race between two
concurrent first calls.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.context import AuthContext
from auth.errors import ApplicationError, ConfigurationError, ValidationError
from auth.models import RegistrationInfo, SessionGrant, User
from auth.store import sanitize_user
from auth.tokens import create_jwt_token, create_token, hash_password

logger = logging.getLogger("cmsadmin.auth.registration")

SUPER_ADMIN_EXISTS = "You cannot register a new super admin"


def registration_info(ctx: AuthContext, registration_token: str) -> RegistrationInfo:
    info = ctx.users.find_registration_info(registration_token)
    if info is None:
        raise ValidationError("Invalid registrationToken")
    return info


def register(
    ctx: AuthContext,
    registration_token: str,
    password: str,
    firstname: str | None = None,
    lastname: str | None = None,
) -> SessionGrant:
    """Accept an invitation and log the new user in."""
    user = ctx.users.register(registration_token, hash_password(password), firstname, lastname)
    if user is None:
        raise ValidationError("Invalid registration info")
    logger.info("User %s completed registration", user.id)
    return SessionGrant(token=create_jwt_token(user, ctx.settings), user=sanitize_user(user))


def register_admin(
    ctx: AuthContext,
    email: str,
    password: str,
    firstname: str | None = None,
    lastname: str | None = None,
) -> SessionGrant:
    """Create the first super admin. Fails once any admin user exists."""
    if ctx.users.exists():
        raise ApplicationError(SUPER_ADMIN_EXISTS)

    super_admin_role = ctx.users.get_super_admin_role()
    if super_admin_role is None:
        logger.critical("Super admin role is missing; the role seed did not run")
        raise ConfigurationError("Cannot register the first admin because the super admin role doesn't exist.")

    user = ctx.users.create_first_admin(
        User(
            email=email.lower(),
            firstname=firstname,
            lastname=lastname,
            hashed_password=hash_password(password),
            is_active=True,
            registration_token=None,
        ),
        role_id=super_admin_role.id,
    )
    if user is None:
        # A concurrent bootstrap won between the exists() check and the insert.
        raise ApplicationError(SUPER_ADMIN_EXISTS)

    ctx.telemetry.send("didCreateFirstAdmin")
    logger.info("First super admin created (user_id=%s)", user.id)
    return SessionGrant(token=create_jwt_token(user, ctx.settings), user=sanitize_user(user))


def invite_user(
    ctx: AuthContext,
    email: str,
    firstname: str | None = None,
    lastname: str | None = None,
    role_codes: list[str] | None = None,
) -> tuple[User, str]:
    """Create an inactive user holding a fresh registration token.

    Returns the stored user and the token to deliver to the invitee.
    """
    role_ids = []
    for code in role_codes or []:
        role = ctx.users.get_role_by_code(code)
        if role is None:
            raise ValidationError(f"Unknown role: {code}")
        role_ids.append(role.id)

    token = create_token()
    try:
        user = ctx.users.create_user(
            User(
                email=email.lower(),
                firstname=firstname,
                lastname=lastname,
                is_active=False,
                registration_token=token,
            ),
            role_ids=role_ids,
        )
    except IntegrityError as exc:
        raise ApplicationError("Email already taken") from exc
    return user, token
