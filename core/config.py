"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TaskTrack happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or,
better, accept a Settings instance from the caller.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit injection: api.main.create_app(settings) takes the Settings object
      and hands it to the credential verifier, cookie helpers, CORS layer and
      audit recorder. Request-path code reads request.app.state.settings, never
      the process environment.

  @model_validator(mode="after"): cross-field checks that must hold before
      the app accepts a single request (secret key policy, cookie policy).

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the session-id HMAC both rely on key entropy.

  [M7] Without DEBUG=true a missing SECRET_KEY is a hard startup failure.

  [C2] One cookie policy. The same samesite/secure/domain values are used to
       set the auth cookie at login and to clear it at logout. samesite="none"
       is only accepted together with secure_cookies=true (browsers drop
       SameSite=None cookies that are not Secure).

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, audit/ or tasks/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tasktrack.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tasktrack.db'}"

# Credentials live exactly 24 hours. Exposed as a setting so the verifiers and
# cookie helpers read it from one place, but no other value is accepted.
TOKEN_LIFETIME_SECONDS = 24 * 60 * 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Field names map to upper-cased
    environment variables (secret_key -> SECRET_KEY).
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
    # Empty string is the "not configured" sentinel; the validator below
    # either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # "jwt": stateless signed token in the cookie.
    # "session": opaque id in the cookie, server-side sessions table.
    auth_strategy: Literal["jwt", "session"] = "jwt"
    token_expire_seconds: int = TOKEN_LIFETIME_SECONDS
    auth_cookie_name: str = "access_token"
    cookie_samesite: Literal["strict", "lax", "none"] = "lax"
    secure_cookies: bool = True
    cookie_domain: Optional[str] = None
    session_purge_interval_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_origin: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    audit_enabled: bool = True
    audit_body_limit: int = 1000
    audit_queue_size: int = 1000

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Credentials will not survive restart -- acceptable for local dev.

        Production mode: refuse to start without SECRET_KEY.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_cookie_policy(self) -> "Settings":
        """Reject cookie settings browsers would silently ignore [C2], and any
        credential lifetime other than 24 hours.
        """
        if self.cookie_samesite == "none" and not self.secure_cookies:
            raise ValueError("COOKIE_SAMESITE=none requires SECURE_COOKIES=true.")
        if self.token_expire_seconds != TOKEN_LIFETIME_SECONDS:
            raise ValueError(f"TOKEN_EXPIRE_SECONDS is fixed at {TOKEN_LIFETIME_SECONDS} (24 hours).")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings singleton.

    In tests: build Settings(...) directly and pass it to create_app(), or call
    get_settings.cache_clear() after changing environment variables.
    """
    return Settings()
