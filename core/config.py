"""
core/config.py -- Settings for the identity service, read with pydantic-settings.

Every environment variable the service understands is a field on Settings.
Other modules call get_settings() and never read os.environ themselves.

get_settings() is cached with lru_cache, so the environment and .env file are
parsed once per process. Tests set their variables before the first call.

Field names map one-to-one onto upper-case variables: secret_key reads
SECRET_KEY, owner_email reads OWNER_EMAIL, and so on.

Security notes:
  [M6] SECRET_KEY must be at least 32 characters; HS256 signatures are only
       as strong as the key.

  [M7] Without DEBUG=true a missing SECRET_KEY stops startup. With DEBUG=true
       a throwaway key is generated and a warning logged.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("trafficauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'trafficauth.db'}"


class Settings(BaseSettings):
    """Identity service configuration.

    Every field has a default, so a bare Settings() works in tests; only
    SECRET_KEY is mandatory, and only outside debug mode.
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
    # "" means unset; check_secrets() replaces or rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # Access tokens cannot be revoked server-side; refresh tokens carry the
    # long-lived session.
    access_token_expire_seconds: int = 900
    refresh_token_expire_days: int = 7
    reset_token_expire_minutes: int = 10

    # bcrypt cost factor. Tests lower this to 4.
    password_hash_rounds: int = 12
    min_password_length: int = 6

    # ------------------------------------------------------------------
    # Owner bootstrap
    # ------------------------------------------------------------------

    owner_email: str = ""
    # Empty means "generate one at bootstrap and log it once".
    owner_default_password: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_secrets(self) -> "Settings":
        """Apply the SECRET_KEY rules [M6][M7] and bound the bcrypt cost."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true. Add it to the environment or .env.")
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a temporary key. Issued tokens die with this process.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not 4 <= self.password_hash_rounds <= 31:
            raise ValueError("PASSWORD_HASH_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance."""
    return Settings()
