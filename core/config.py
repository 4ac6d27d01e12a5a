"""
core/config.py -- Every tunable of HarborDesk Identity, read from the environment.

Values come from environment variables or a .env file next to the process
(SECRET_KEY, ACCESS_TOKEN_EXPIRE_MINUTES, MAX_USER_SESSIONS, ...). Nothing
else in the codebase touches os.environ; modules call get_settings() and read
attributes off the cached instance.

Signing keys:
  SECRET_KEY signs access tokens, REFRESH_SECRET_KEY signs refresh tokens.
  Both must be at least 32 characters and must differ, so one leaked key
  cannot mint the other kind of token. With DEBUG=true missing keys are
  generated per process (tokens die with the process); without it the
  service refuses to start.

Rate limits are slowapi limit strings ("5 per 15 minutes") and are read once
at import time by api/routes/v1/auth.py.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("harbordesk.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'harbordesk_auth.db'}"


class Settings(BaseSettings):
    """Typed view of the environment. Every field has a default; only the
    signing keys need real values outside DEBUG mode."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    refresh_secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    token_issuer: str = "harbordesk-platform"
    token_audience: str = "harbordesk-client"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    refresh_cookie_name: str = "refresh_token"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Credentials and sessions
    # ------------------------------------------------------------------

    # Cost factor 12 is the production default; tests lower it via BCRYPT_ROUNDS.
    bcrypt_rounds: int = 12
    password_expiry_days: int = 90
    # 0 disables the per-user session cap.
    max_user_sessions: int = 4
    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # Rate limiting (slowapi limit strings)
    # ------------------------------------------------------------------

    login_rate_limit: str = "5 per 15 minutes"
    register_rate_limit: str = "3 per hour"
    refresh_rate_limit: str = "30 per 15 minutes"
    role_switch_rate_limit: str = "10 per 15 minutes"
    password_reset_rate_limit: str = "3 per hour"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Enforce the SECRET_KEY / REFRESH_SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate any missing key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if either
            key is missing.

        Both modes: reject keys shorter than 32 characters and reject the
            same value for both keys.
        """
        for field in ("secret_key", "refresh_secret_key"):
            if getattr(self, field):
                continue
            if not self.debug:
                raise ValueError(
                    f"{field.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, field, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Tokens will not survive a restart.", field.upper())
        if len(self.secret_key) < 32 or len(self.refresh_secret_key) < 32:
            raise ValueError("SECRET_KEY and REFRESH_SECRET_KEY must be at least 32 characters.")
        if self.secret_key == self.refresh_secret_key:
            raise ValueError("SECRET_KEY and REFRESH_SECRET_KEY must differ.")
        if self.bcrypt_rounds < 4 or self.bcrypt_rounds > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Build Settings on first use and hand back the same instance afterwards.

    Tests that need different values set the environment before the first
    import, or call get_settings.cache_clear().
    """
    return Settings()
