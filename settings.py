"""Application settings loaded from the environment (or a local .env file)."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    database_url: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field(default="farm_marketplace", description="MongoDB database name")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key (sk_test_... or sk_live_...)")
    currency: str = Field(default="inr", description="Currency for gateway orders")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    allowed_origins: str = Field(default="*", description="CORS allowed origins (comma-separated)")

    # Auth
    admin_email: str = Field(default="admin", description="Administrator login name")
    admin_password_hash: Optional[str] = Field(default=None, description="bcrypt hash of the administrator password")
    bcrypt_rounds: int = Field(default=10, ge=4, le=31, description="bcrypt cost factor")

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="Render logs as JSON instead of console output")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
