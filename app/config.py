# app/config.py - Environment-driven configuration for the telehealth API
from dotenv import load_dotenv

load_dotenv()
from typing import Optional, Union
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator


class Settings(BaseSettings):
    """Application settings with validation and environment variable support (Pydantic V2 Syntax)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Telehealth Care API", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")

    # Record store
    database_url: str = Field(default="sqlite:///./telehealth.db", alias="DATABASE_URL")

    # Hosted identity provider
    identity_provider_url: Optional[str] = Field(default=None, alias="IDENTITY_PROVIDER_URL")
    identity_service_key: Optional[str] = Field(default=None, alias="IDENTITY_SERVICE_KEY")
    identity_jwt_secret: Optional[str] = Field(default=None, alias="IDENTITY_JWT_SECRET")
    identity_jwt_algorithm: str = Field(default="HS256", alias="IDENTITY_JWT_ALGORITHM")
    identity_jwt_audience: str = Field(default="authenticated", alias="IDENTITY_JWT_AUDIENCE")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["*"], alias="CORS_ORIGINS")

    # Booking
    consultation_cost_min: int = Field(default=5, alias="CONSULTATION_COST_MIN")
    consultation_cost_max: int = Field(default=10, alias="CONSULTATION_COST_MAX")
    enforce_status_transitions: bool = Field(default=False, alias="ENFORCE_STATUS_TRANSITIONS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # --- Pydantic V2 Validators ---
    @field_validator("cors_origins", mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return ["*"]
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite:///")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("api_prefix")
    @classmethod
    def normalize_api_prefix(cls, v):
        v = (v or "").strip().rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v

    @model_validator(mode="after")
    def validate_cost_range(self):
        if self.consultation_cost_min < 0:
            raise ValueError("CONSULTATION_COST_MIN must not be negative")
        if self.consultation_cost_min > self.consultation_cost_max:
            raise ValueError("CONSULTATION_COST_MIN must not exceed CONSULTATION_COST_MAX")
        return self

    @property
    def local_token_verification(self) -> bool:
        return bool(self.identity_jwt_secret)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
