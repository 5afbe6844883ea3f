"""Application configuration using Pydantic Settings."""
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Learning Center API"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "learning_center"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    jwt_refresh_token_expire_days: int = 30

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:5173"

    # Attendance
    timezone: str = "Africa/Cairo"  # attendance days are counted in this zone
    qr_max_age_minutes: int = 60
    qr_clock_skew_minutes: int = 5  # how far ahead of the server a QR timestamp may be
    attendance_duplicate_policy: Literal["reject", "overwrite", "append"] = "reject"
    dashboard_default_days: int = 30

    # Course access codes
    access_code_length: int = 10
    access_code_max_batch: int = 500

    # Seed account created on first start
    seed_admin_email: str = "admin@learningcenter.com"
    seed_admin_password: str = ""
    seed_admin_full_name: str = "Center Admin"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
