"""
API request and response models for the admin authentication endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field aliases follow the admin panel's camelCase wire format (rememberMe,
registrationToken, ...); populate_by_name lets Python callers use the
snake_case names too. Successful responses wrap their payload in {"data": ...}.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.tokens import PASSWORD_MAX_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _check_password_strength(value: str) -> str:
    """Enforce the admin password policy: lowercase, uppercase and digit."""
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase character")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase character")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one number")
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return value


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(_Model):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    remember_me: bool = Field(default=False, alias="rememberMe")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class MfaRequest(_Model):
    """The 6-digit code from the verification email.

    Sent as a number by the admin panel, so leading zeros are lost in transit;
    the flow re-pads it before comparing.
    """

    code: int = Field(ge=0, le=999_999)


class RenewTokenRequest(_Model):
    token: str = Field(min_length=1)


class RegisterUserInfo(_Model):
    firstname: str = Field(min_length=1, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class RegisterRequest(_Model):
    registration_token: str = Field(min_length=1, alias="registrationToken")
    user_info: RegisterUserInfo = Field(alias="userInfo")


class RegisterAdminRequest(_Model):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    firstname: str = Field(min_length=1, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class ForgotPasswordRequest(_Model):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class ResetPasswordRequest(_Model):
    reset_password_token: str = Field(min_length=1, alias="resetPasswordToken")
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class InviteUserRequest(_Model):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    firstname: Optional[str] = Field(default=None, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    roles: list[str] = Field(default_factory=list, max_length=10, description="Role codes")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class UpdateProfileRequest(_Model):
    """Self-service profile edit. Only the fields sent are changed."""

    firstname: Optional[str] = Field(default=None, min_length=1, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    username: Optional[str] = Field(default=None, max_length=255)
    prefered_language: Optional[str] = Field(default=None, max_length=16, alias="preferedLanguage")


class AdvancedSettingsPatch(_Model):
    multi_factor_authentication: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RoleResponse(_Model):
    id: int
    name: str
    code: str
    description: str = ""


class AdminUserResponse(_Model):
    """Sanitized admin user. Built from auth.store.sanitize_user() output."""

    id: int
    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    username: Optional[str] = None
    is_active: bool = Field(alias="isActive")
    blocked: bool = False
    prefered_language: Optional[str] = Field(default=None, alias="preferedLanguage")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    roles: list[RoleResponse] = Field(default_factory=list)


class LoginData(_Model):
    token: Optional[str]
    user: AdminUserResponse
    mfa: bool


class LoginResponse(_Model):
    data: LoginData


class MfaData(_Model):
    token: str
    remember_me: bool = Field(alias="rememberMe")


class MfaResponse(_Model):
    data: MfaData


class TokenData(_Model):
    token: str


class RenewTokenResponse(_Model):
    data: TokenData


class SessionData(_Model):
    token: str
    user: AdminUserResponse


class SessionResponse(_Model):
    """Response of register, register-admin and reset-password."""

    data: SessionData


class RegistrationInfoData(_Model):
    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None


class RegistrationInfoResponse(_Model):
    data: RegistrationInfoData


class InvitedUserData(_Model):
    user: AdminUserResponse
    registration_token: str = Field(alias="registrationToken")


class InvitedUserResponse(_Model):
    data: InvitedUserData


class MeResponse(_Model):
    data: AdminUserResponse


class AdvancedSettingsData(_Model):
    multi_factor_authentication: bool


class AdvancedSettingsResponse(_Model):
    data: AdvancedSettingsData


class InitData(_Model):
    has_admin: bool = Field(alias="hasAdmin")


class InitResponse(_Model):
    data: InitData


class EmptyResponse(_Model):
    data: dict = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
