"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the admin auth service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a missing key with a
      warning; a configured key that is too short is rejected outright.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the session cookie signature both rely on key entropy.

  [M7] A missing SECRET_KEY outside dev mode is reported by
       check_secret_is_defined(), which the API lifespan calls before the app
       accepts traffic. It only applies when the admin panel is served.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("cmsadmin.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'cmsadmin_auth.db'}"

# 30 days, the default lifetime of an admin session token.
DEFAULT_TOKEN_EXPIRE_SECONDS = 30 * 24 * 60 * 60


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration. Raised at startup, never retried."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    serve_admin_panel: bool = True
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    token_expire_seconds: int = DEFAULT_TOKEN_EXPIRE_SECONDS
    token_algorithm: str = "HS256"
    reset_password_token_ttl_seconds: int = 3600

    # ------------------------------------------------------------------
    # Multi-factor authentication
    # ------------------------------------------------------------------

    mfa_session_ttl_seconds: int = 600
    mfa_max_attempts: int = 5

    # Identity provider and notifier calls are bounded by this timeout.
    provider_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    session_cookie_name: str = "admin_session"
    secure_cookies: bool = False
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    mfa_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Apply the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Any mode: reject configured keys shorter than 32 characters [M6].
        A missing key outside dev mode is left empty here and reported by
        check_secret_is_defined() at startup.
        """
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_hex(32)
            logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
        if self.secret_key and len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


def check_secret_is_defined(settings: Settings) -> None:
    """Refuse to serve the admin panel without a signing secret [M7].

    Called from the API lifespan so a missing secret blocks startup rather
    than failing individual requests later.
    """
    if settings.serve_admin_panel and not settings.secret_key:
        raise ConfigurationError(
            "Missing SECRET_KEY. Set SECRET_KEY in your environment or .env file "
            "(you can generate one with `python -c \"import secrets; print(secrets.token_hex(32))\"`). "
            "For security reasons, prefer storing the secret in an environment variable. "
            "To run in development mode, set DEBUG=true."
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
