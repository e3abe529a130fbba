"""
api/routes/v1/auth.py -- Admin authentication REST endpoints.

Routes (mounted under /admin):
  POST /login                        -- password login; token, or MFA challenge
  POST /multi-factor-authentication  -- confirm the emailed code; token
  POST /renew-token                  -- exchange a valid token for a fresh one
  GET  /registration-info            -- public info of an invitation
  POST /register                     -- accept an invitation
  POST /register-admin               -- bootstrap the first super admin
  POST /forgot-password              -- always 204
  POST /reset-password               -- consume a reset token
  POST /logout                       -- records the logout event (requires auth)
  GET  /init                         -- {hasAdmin} bootstrap check (public)
  GET  /users/me                     -- current user (requires auth)
  PUT  /users/me                     -- edit own profile (requires auth)
  POST /users                        -- invite a user (super admin)
  GET  /advanced-settings            -- read the MFA switch (super admin)
  PUT  /advanced-settings            -- toggle the MFA switch (super admin)

Security:
  [H2] /login and /multi-factor-authentication are rate-limited per IP.
  [M5] Cache-Control: no-store on every response that carries a token.
  The pending MFA challenge is keyed by a random id kept in the signed
  session cookie; the code itself never leaves the server except by email.
  /forgot-password answers before any lookup happens, so the response is
  identical for known and unknown emails.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, mfa_limit
from api.models import (
    AdminUserResponse,
    AdvancedSettingsData,
    AdvancedSettingsPatch,
    AdvancedSettingsResponse,
    EmptyResponse,
    ForgotPasswordRequest,
    InitData,
    InitResponse,
    InvitedUserData,
    InvitedUserResponse,
    InviteUserRequest,
    LoginData,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MfaData,
    MfaRequest,
    MfaResponse,
    RegisterAdminRequest,
    RegisterRequest,
    RegistrationInfoData,
    RegistrationInfoResponse,
    RenewTokenRequest,
    RenewTokenResponse,
    ResetPasswordRequest,
    SessionData,
    SessionResponse,
    TokenData,
    UpdateProfileRequest,
)
from auth import authentication, mfa, password_reset, registration
from auth.context import AuthContext
from auth.dependencies import get_auth_context, get_current_user, require_super_admin
from auth.models import SessionGrant, User
from auth.store import sanitize_user

logger = logging.getLogger("cmsadmin.api.auth")

# Session key holding the id of the caller's pending MFA challenge.
_MFA_SESSION_KEY = "mfa_session_id"

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_id(request: Request) -> str:
    """Return the caller's session id, creating one on first use."""
    session_id = request.session.get(_MFA_SESSION_KEY)
    if not session_id:
        session_id = secrets.token_urlsafe(32)
        request.session[_MFA_SESSION_KEY] = session_id
    return session_id


def _no_store(model) -> JSONResponse:
    resp = JSONResponse(content=model.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _session_response(grant: SessionGrant) -> JSONResponse:
    return _no_store(SessionResponse(data=SessionData(token=grant.token, user=AdminUserResponse.model_validate(grant.user))))


async def _send_reset_link(ctx: AuthContext, email: str) -> None:
    """Background half of /forgot-password. Failures are logged, never returned."""
    try:
        await password_reset.forgot_password(ctx, email)
    except Exception:
        logger.exception("Forgot-password flow failed")


# ---------------------------------------------------------------------------
# Login and MFA
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    body: LoginRequest,
    ctx: AuthContext = Depends(get_auth_context),
) -> JSONResponse:
    """Authenticate with email and password.

    With multi-factor authentication enabled the token is withheld
    (token=null, mfa=true) and a verification code is emailed instead.
    """
    result = await authentication.login(
        ctx,
        body.email,
        body.password,
        remember_me=body.remember_me,
        session_id=_session_id(request),
    )
    return _no_store(
        LoginResponse(
            data=LoginData(token=result.token, user=AdminUserResponse.model_validate(result.user), mfa=result.mfa)
        )
    )


@limiter.limit(mfa_limit)  # [H2]
@router.post("/multi-factor-authentication", response_model=MfaResponse)
async def multi_factor_authentication(
    request: Request,
    body: MfaRequest,
    ctx: AuthContext = Depends(get_auth_context),
) -> JSONResponse:
    result = await mfa.verify_code(ctx, request.session.get(_MFA_SESSION_KEY), body.code)
    return _no_store(MfaResponse(data=MfaData(token=result.token, remember_me=result.remember_me)))


@router.post("/renew-token", response_model=RenewTokenResponse)
def renew_token(body: RenewTokenRequest, ctx: AuthContext = Depends(get_auth_context)) -> JSONResponse:
    token = authentication.renew_token(ctx, body.token)
    return _no_store(RenewTokenResponse(data=TokenData(token=token)))


@router.post("/logout", response_model=EmptyResponse)
def logout(
    current_user: User = Depends(get_current_user),
    ctx: AuthContext = Depends(get_auth_context),
) -> EmptyResponse:
    return EmptyResponse(data=authentication.logout(ctx, current_user))


# ---------------------------------------------------------------------------
# Registration and bootstrap
# ---------------------------------------------------------------------------


@router.get("/init", response_model=InitResponse)
def init(ctx: AuthContext = Depends(get_auth_context)) -> InitResponse:
    """Tell the admin panel whether to show the first-admin form."""
    return InitResponse(data=InitData(has_admin=ctx.users.exists()))


@router.get("/registration-info", response_model=RegistrationInfoResponse)
def registration_info(
    registration_token: str = Query(alias="registrationToken", min_length=1),
    ctx: AuthContext = Depends(get_auth_context),
) -> RegistrationInfoResponse:
    info = registration.registration_info(ctx, registration_token)
    return RegistrationInfoResponse(
        data=RegistrationInfoData(email=info.email, firstname=info.firstname, lastname=info.lastname)
    )


@router.post("/register", response_model=SessionResponse)
def register(body: RegisterRequest, ctx: AuthContext = Depends(get_auth_context)) -> JSONResponse:
    grant = registration.register(
        ctx,
        body.registration_token,
        body.user_info.password,
        firstname=body.user_info.firstname,
        lastname=body.user_info.lastname,
    )
    return _session_response(grant)


@router.post("/register-admin", response_model=SessionResponse)
def register_admin(body: RegisterAdminRequest, ctx: AuthContext = Depends(get_auth_context)) -> JSONResponse:
    grant = registration.register_admin(
        ctx,
        body.email,
        body.password,
        firstname=body.firstname,
        lastname=body.lastname,
    )
    return _session_response(grant)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/forgot-password", status_code=204)
async def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    background_tasks.add_task(_send_reset_link, ctx, body.email)
    return Response(status_code=204)


@router.post("/reset-password", response_model=SessionResponse)
def reset_password(body: ResetPasswordRequest, ctx: AuthContext = Depends(get_auth_context)) -> JSONResponse:
    grant = password_reset.reset_password(ctx, body.reset_password_token, body.password)
    return _session_response(grant)


# ---------------------------------------------------------------------------
# Users and settings
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(data=AdminUserResponse.model_validate(sanitize_user(current_user)))


@router.put("/users/me", response_model=MeResponse)
def update_me(
    body: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    ctx: AuthContext = Depends(get_auth_context),
) -> MeResponse:
    fields = body.model_dump(exclude_unset=True)
    if fields:
        ctx.users.update_user(current_user.id, **fields)
        logger.info("User %s updated profile fields %s", current_user.id, sorted(fields))
    return MeResponse(data=AdminUserResponse.model_validate(sanitize_user(ctx.users.get_by_id(current_user.id))))


@router.post("/users", response_model=InvitedUserResponse, status_code=201)
def invite_user(
    body: InviteUserRequest,
    current_user: User = Depends(require_super_admin),
    ctx: AuthContext = Depends(get_auth_context),
) -> InvitedUserResponse:
    """Create an invitation. The registration token is shown to the inviter once."""
    user, token = registration.invite_user(
        ctx,
        body.email,
        firstname=body.firstname,
        lastname=body.lastname,
        role_codes=body.roles,
    )
    logger.info("User %s invited by %s", user.id, current_user.id)
    return InvitedUserResponse(
        data=InvitedUserData(user=AdminUserResponse.model_validate(sanitize_user(user)), registration_token=token)
    )


@router.get("/advanced-settings", response_model=AdvancedSettingsResponse)
def get_advanced_settings(
    current_user: User = Depends(require_super_admin),
    ctx: AuthContext = Depends(get_auth_context),
) -> AdvancedSettingsResponse:
    return AdvancedSettingsResponse(data=AdvancedSettingsData(**ctx.users.get_advanced_settings()))


@router.put("/advanced-settings", response_model=AdvancedSettingsResponse)
def update_advanced_settings(
    body: AdvancedSettingsPatch,
    current_user: User = Depends(require_super_admin),
    ctx: AuthContext = Depends(get_auth_context),
) -> AdvancedSettingsResponse:
    ctx.users.update_advanced_settings(multi_factor_authentication=body.multi_factor_authentication)
    logger.info(
        "multi_factor_authentication set to %s by user %s", body.multi_factor_authentication, current_user.id
    )
    return AdvancedSettingsResponse(data=AdvancedSettingsData(**ctx.users.get_advanced_settings()))
