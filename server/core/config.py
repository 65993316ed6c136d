"""Environment-driven configuration with Pydantic v2."""

from typing import Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1024, le=65535)
    debug: bool = Field(default=False)
    environment: Literal["development", "production", "test"] = Field(default="development")
    workers: int = Field(default=1, ge=1, le=8)

    # Authentication
    jwt_secret_key: str = Field(min_length=32)
    jwt_expire_minutes: int = Field(default=43200, ge=60)  # 30 days
    jwt_cookie_name: str = Field(default="jetvein_session")
    jwt_cookie_secure: bool = Field(default=False)
    jwt_cookie_samesite: Literal["lax", "strict", "none"] = Field(default="lax")
    password_hash_rounds: int = Field(default=12, ge=4, le=16)

    # CORS
    cors_dev_origin: str = Field(default="*")
    production_origin: str = Field(default="https://jetvein.app")

    # Database Configuration
    database_url: Optional[str] = Field(default=None)
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=10, ge=1, le=100)
    database_max_overflow: int = Field(default=20, ge=0, le=100)

    # Key-value store
    redis_url: Optional[str] = Field(default=None)
    redis_connect_timeout: float = Field(default=10.0, gt=0)
    redis_command_timeout: float = Field(default=5.0, gt=0)
    redis_max_retries: int = Field(default=3, ge=0, le=10)

    # Cache Configuration
    cache_key_prefix: str = Field(default="jetvein:")
    cache_ttl: int = Field(default=3600, ge=1)
    flight_cache_ttl: int = Field(default=1800, ge=1)
    aircraft_cache_ttl: int = Field(default=7200, ge=1)
    session_ttl: int = Field(default=86400, ge=1)
    search_history_max: int = Field(default=20, ge=1)
    search_history_ttl: int = Field(default=2592000, ge=1)  # 30 days

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Request gate rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_backend: Literal["memory", "redis"] = Field(default="redis")
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_window: int = Field(default=900, ge=1)
    auth_rate_limit_requests: int = Field(default=20, ge=1)
    signup_rate_limit_requests: int = Field(default=5, ge=1)
    rate_limit_sweep_interval: int = Field(default=300, ge=1)

    # Flight search quota (shared store)
    flight_search_rate_limit: int = Field(default=100, ge=1)
    flight_search_rate_window: int = Field(default=3600, ge=1)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("cache_key_prefix")
    @classmethod
    def validate_prefix(cls, v):
        if not v:
            raise ValueError("cache_key_prefix must not be empty")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def cors_origin(self) -> str:
        return self.production_origin if self.is_production else self.cors_dev_origin

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
