import secrets
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DATABASE_URL_PLACEHOLDER = "[YOUR-PASSWORD]"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    FASTAPI_HOST: Optional[str] = "0.0.0.0"
    FASTAPI_PORT: Optional[int] = 8000
    FASTAPI_WORKERS: Optional[int] = 1
    LOG_LEVEL: Optional[str] = "DEBUG"

    DATABASE_TYPE: Optional[str] = "sqlite"
    DATABASE_URL: Optional[str] = f"username:{DATABASE_URL_PLACEHOLDER}@hostname:port/dmm"
    DATABASE_PATH: Optional[str] = "data/dmmcache.db"
    STORE_PAGE_SIZE: Optional[int] = 50
    STORE_MAX_HASHES: Optional[int] = 100

    RATE_LIMIT_WINDOW: Optional[int] = 60
    RATE_LIMIT_MAX_REQUESTS: Optional[int] = 30
    RATE_LIMIT_CLEANUP_INTERVAL: Optional[int] = 300

    DMM_PROBLEM_SALT: Optional[str] = secrets.token_hex(16)
    DMM_PROBLEM_MAX_AGE: Optional[int] = 300

    UPSTREAM_REQUEST_TIMEOUT: Optional[float] = 10
    UPSTREAM_MIN_REQUEST_INTERVAL: Optional[float] = 60 / 250
    RATELIMIT_MAX_RETRIES: Optional[int] = 10
    RATELIMIT_RETRY_BASE_DELAY: Optional[float] = 1
    RATELIMIT_RETRY_MAX_DELAY: Optional[float] = 30

    REAL_DEBRID_URL: Optional[str] = "https://api.real-debrid.com"
    REAL_DEBRID_CLIENT_ID: Optional[str] = "X245A4XAIBGVM"
    TRAKT_URL: Optional[str] = "https://api.trakt.tv"
    TRAKT_CLIENT_ID: Optional[str] = None
    TRAKT_CLIENT_SECRET: Optional[str] = None

    @field_validator("REAL_DEBRID_URL", "TRAKT_URL")
    def remove_trailing_slash(cls, v):
        if v and v.endswith("/"):
            return v[:-1]
        return v

    @field_validator("DATABASE_TYPE")
    def normalize_database_type(cls, v):
        v = (v or "sqlite").lower()
        if v not in ("sqlite", "postgresql"):
            raise ValueError("DATABASE_TYPE must be 'sqlite' or 'postgresql'")
        return v

    @property
    def is_problem_salt_configured(self) -> bool:
        return "DMM_PROBLEM_SALT" in self.model_fields_set

    @property
    def is_database_configured(self) -> bool:
        if self.DATABASE_TYPE == "sqlite":
            return bool(self.DATABASE_PATH)
        return bool(self.DATABASE_URL) and DATABASE_URL_PLACEHOLDER not in self.DATABASE_URL

    @property
    def database_url(self) -> str:
        if self.DATABASE_TYPE == "sqlite":
            return f"sqlite:///{self.DATABASE_PATH}"
        if "://" in self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.DATABASE_URL}"


settings = AppSettings()
