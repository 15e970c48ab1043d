"""Application settings."""

from enum import StrEnum

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositoryBackend(StrEnum):
    """Available persistence adapters for products, statuses, and import history."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class ProgressStoreBackend(StrEnum):
    """Available TTL key-value adapters for ephemeral job progress."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "ASIN Tracker"
    api_prefix: str = "/api"
    host: str = "0.0.0.0"
    port: int = 8080

    repository_backend: RepositoryBackend = RepositoryBackend.IN_MEMORY
    progress_store_backend: ProgressStoreBackend = ProgressStoreBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10

    progress_key_namespace: str = "asin"
    job_ttl_seconds: int = 86400
    finished_slot_linger_seconds: int = 10
    cancel_flag_ttl_seconds: int = 3600

    processing_concurrency: int = 5
    processing_inter_chunk_delay_seconds: float = 0.2

    import_batch_size: int = 100
    import_error_preview_limit: int = 50
    import_errors_dir: str = "uploads/errors"
    import_max_file_bytes: int = 50 * 1024 * 1024
    hazmat_tag_name: str = "HazMat"

    sp_api_endpoint: str = "https://sellingpartnerapi-na.amazon.com"
    sp_api_marketplace_id: str = "ATVPDKIKX0DER"
    sp_api_timeout_seconds: float = 10.0
    sp_api_max_attempts: int = 3
    sp_api_initial_backoff_seconds: float = 1.0
    sp_api_max_backoff_seconds: float = 30.0
    lwa_token_url: str = "https://api.amazon.com/auth/o2/token"
    lwa_client_id: str | None = None
    lwa_client_secret: str | None = None
    lwa_refresh_token: str | None = None
    lwa_token_refresh_margin_seconds: float = 60.0
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"

    @property
    def sp_api_credentials_configured(self) -> bool:
        """Return whether every credential needed for eligibility lookups is set."""

        return all(
            (
                self.lwa_client_id,
                self.lwa_client_secret,
                self.lwa_refresh_token,
                self.aws_access_key_id,
                self.aws_secret_access_key,
            )
        )

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Ensure backend-specific settings and numeric ranges are valid."""

        uses_postgres = (
            self.repository_backend == RepositoryBackend.POSTGRES
            or self.progress_store_backend == ProgressStoreBackend.POSTGRES
        )
        if uses_postgres and not self.postgres_dsn:
            raise ValueError(
                "ASIN_TRACKER_POSTGRES_DSN is required when a postgres backend is selected."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("ASIN_TRACKER_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "ASIN_TRACKER_POSTGRES_POOL_MAX_SIZE must be >= "
                "ASIN_TRACKER_POSTGRES_POOL_MIN_SIZE."
            )
        if self.job_ttl_seconds < 1:
            raise ValueError("ASIN_TRACKER_JOB_TTL_SECONDS must be >= 1.")
        if self.finished_slot_linger_seconds < 0:
            raise ValueError("ASIN_TRACKER_FINISHED_SLOT_LINGER_SECONDS must be >= 0.")
        if self.finished_slot_linger_seconds > self.job_ttl_seconds:
            raise ValueError(
                "ASIN_TRACKER_FINISHED_SLOT_LINGER_SECONDS must be <= "
                "ASIN_TRACKER_JOB_TTL_SECONDS."
            )
        if self.cancel_flag_ttl_seconds < 1:
            raise ValueError("ASIN_TRACKER_CANCEL_FLAG_TTL_SECONDS must be >= 1.")
        if self.processing_concurrency < 1:
            raise ValueError("ASIN_TRACKER_PROCESSING_CONCURRENCY must be >= 1.")
        if self.processing_inter_chunk_delay_seconds < 0:
            raise ValueError("ASIN_TRACKER_PROCESSING_INTER_CHUNK_DELAY_SECONDS must be >= 0.")
        if self.import_batch_size < 1:
            raise ValueError("ASIN_TRACKER_IMPORT_BATCH_SIZE must be >= 1.")
        if self.import_error_preview_limit < 0:
            raise ValueError("ASIN_TRACKER_IMPORT_ERROR_PREVIEW_LIMIT must be >= 0.")
        if self.import_max_file_bytes < 1:
            raise ValueError("ASIN_TRACKER_IMPORT_MAX_FILE_BYTES must be >= 1.")
        if self.sp_api_timeout_seconds <= 0:
            raise ValueError("ASIN_TRACKER_SP_API_TIMEOUT_SECONDS must be > 0.")
        if self.sp_api_max_attempts < 1:
            raise ValueError("ASIN_TRACKER_SP_API_MAX_ATTEMPTS must be >= 1.")
        if self.sp_api_initial_backoff_seconds < 0:
            raise ValueError("ASIN_TRACKER_SP_API_INITIAL_BACKOFF_SECONDS must be >= 0.")
        if self.sp_api_max_backoff_seconds < self.sp_api_initial_backoff_seconds:
            raise ValueError(
                "ASIN_TRACKER_SP_API_MAX_BACKOFF_SECONDS must be >= "
                "ASIN_TRACKER_SP_API_INITIAL_BACKOFF_SECONDS."
            )
        if self.lwa_token_refresh_margin_seconds < 0:
            raise ValueError("ASIN_TRACKER_LWA_TOKEN_REFRESH_MARGIN_SECONDS must be >= 0.")
        return self

    model_config = SettingsConfigDict(env_prefix="ASIN_TRACKER_", extra="ignore")


__all__ = ["ProgressStoreBackend", "RepositoryBackend", "Settings"]
