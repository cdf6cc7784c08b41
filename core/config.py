"""
core/config.py -- BookAdmin settings, read once from the environment.

Every tunable lives on Settings. Nothing else in the tree reads os.environ;
call get_settings() and take what you need from it.

How it works:
  pydantic-settings maps each field to the upper-cased env var of the same
      name (database_url <- DATABASE_URL) and also reads a .env file in the
      working directory if one exists. Lists such as ALLOWED_HOSTS are given
      as JSON.

  get_settings() is wrapped in lru_cache, so the first caller pays for
      parsing and every later caller gets the same object.

  The after-validator checks SECRET_KEY and the token TTLs once every field
      has been resolved.

SECRET_KEY:
  It keys the HMAC that turns a bearer token into its stored hash. Keys under
  32 characters are refused. Without DEBUG=true a missing key stops startup;
  with it, a throwaway key is generated. Changing the key orphans every token
  already issued, because their hashes stop matching.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("bookadmin.config")


class Settings(BaseSettings):
    """Runtime configuration for the API, the CLI and the purge task.

    Every field except secret_key has a usable default; secret_key is filled
    in or rejected by validate_secret_key().
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
    # "" means unset. validate_secret_key() replaces it or raises.
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Database -- a small fixed pool; this is a low-QPS admin backend
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///bookadmin.db"
    db_pool_size: int = 5
    db_max_overflow: int = 0
    db_pool_timeout: int = 30
    db_pool_recycle_seconds: int = 300
    # Server-side per-statement limit for PostgreSQL/MySQL. 0 disables it.
    db_statement_timeout_seconds: int = 30

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Interactive logins get a day; service tokens issued from the admin area
    # are short-lived.
    login_token_ttl_seconds: int = 24 * 60 * 60
    service_token_ttl_seconds: int = 60 * 60
    # 0 disables the background sweep: expired rows are then only ever
    # rejected lazily at validation time and left in place.
    token_purge_interval_seconds: int = 0

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    self_registration_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8080", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Fill in or reject SECRET_KEY, then sanity-check the TTLs.

        An unset key is generated under DEBUG (tokens then die with the
        process) and fatal otherwise. Any key under 32 characters is fatal.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.login_token_ttl_seconds <= 0 or self.service_token_ttl_seconds <= 0:
            raise ValueError("Token TTLs must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the shared Settings instance, building it on first use.

    Tests that change environment variables after import must call
    get_settings.cache_clear() for the change to be seen.
    """
    return Settings()
