"""Worker settings; shares the database, Redis and MinIO keys with the API."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the Celery worker and beat."""

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

    # MinIO / S3
    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None
    minio_secret_key: Optional[str] = None
    minio_bucket: str = "compliance-audit-logs"
    minio_use_ssl: bool = False
    audit_export_enabled: bool = True

    # Schedules
    audit_export_hour_utc: int = 1
    audit_lock_timeout_seconds: int = 15 * 60
    audit_lock_retry_seconds: int = 60

    environment: str = "development"

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.audit_export_enabled and (not self.minio_access_key or not self.minio_secret_key):
                raise ValueError(
                    "MINIO_ACCESS_KEY and MINIO_SECRET_KEY are required in production. "
                    "Do not use default credentials."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
