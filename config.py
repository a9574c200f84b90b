from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str = "sqlite:///./entitlements.db"

    # Remote licensing authority
    license_authority_url: str = "https://secrets.example.com/license-keys"
    license_authority_timeout: float = 20.0
    # "http" in production, "fixed" only for local development
    authority_mode: str = "http"

    # Edition / release used when listing installed pieces
    enterprise_edition: bool = True
    # None = no release filter, every installed piece is listed
    current_release: Optional[str] = None

    # Reconciliation job, read once at startup
    reconcile_cron: str = "*/59 23 * * *"

    # Telemetry (empty = log only)
    telemetry_url: Optional[str] = None

    cors_origins: str = "http://localhost:4200"
    log_level: str = "INFO"


settings = Settings()
