"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for pkgfeed happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning; production mode refuses to start without one.

Security notes:
  SECRET_KEY signs both the session JWT and the Starlette session cookie that
  carries the pending OAuth state. Keys shorter than 32 chars are rejected.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or registry/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("pkgfeed.config")

_DATA_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    auth_db_url: str = f"sqlite:///{_DATA_DIR / 'pkgfeed_auth.db'}"
    registry_db_url: str = f"sqlite:///{_DATA_DIR / 'pkgfeed_registry.db'}"

    # ------------------------------------------------------------------
    # Sessions and API tokens
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_expire_seconds: int = 3600
    # Attempts at generating a non-colliding API token before giving up.
    api_token_retries: int = 5

    # ------------------------------------------------------------------
    # GitHub OAuth (empty client id means sign-in is unavailable)
    # ------------------------------------------------------------------

    github_client_id: str = ""
    github_client_secret: str = ""
    github_redirect_uri: str = ""
    github_scope: str = "read:org"

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    default_per_page: int = 10
    max_per_page: int = 100

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.max_per_page < 1 or self.default_per_page < 1:
            raise ValueError("DEFAULT_PER_PAGE and MAX_PER_PAGE must be positive.")
        if self.default_per_page > self.max_per_page:
            raise ValueError("DEFAULT_PER_PAGE must not exceed MAX_PER_PAGE.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
