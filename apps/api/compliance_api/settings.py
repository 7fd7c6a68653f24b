"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "compliance"
    postgres_password: str = "compliance_dev_password"
    postgres_db: str = "compliance"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # MinIO / S3 (audit record export)
    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None  # Required in non-dev
    minio_secret_key: Optional[str] = None  # Required in non-dev
    minio_bucket: str = "compliance-audit-logs"
    minio_use_ssl: bool = False
    audit_export_enabled: bool = True

    # API
    api_port: int = 8000
    api_host: str = "0.0.0.0"
    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # Alert sink
    alert_webhook_url: str = ""  # Empty disables alert delivery
    alert_timeout_seconds: int = 10
    alert_max_retries: int = 3
    deadline_alert_hours: int = 48
    deadline_alert_window_hours: int = 2

    # Extraction service
    extraction_api_url: str = "http://localhost:8080/api/v1"
    extraction_model_id: str = "compliance_extractor_v1"
    extraction_api_token: Optional[str] = None
    extraction_timeout_seconds: int = 15

    # Risk prediction
    prediction_default_days_ahead: int = 7
    prediction_dependency_chain_length: int = 3
    prediction_team_workload: float = 0.7
    prediction_min_events: int = 1

    # Audit chain
    audit_lock_timeout_seconds: int = 15 * 60

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def alerts_enabled(self) -> bool:
        return bool(self.alert_webhook_url)

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.audit_export_enabled and (not self.minio_access_key or not self.minio_secret_key):
                raise ValueError(
                    "MINIO_ACCESS_KEY and MINIO_SECRET_KEY are required in production "
                    "when AUDIT_EXPORT_ENABLED is set. Do not use default credentials."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
