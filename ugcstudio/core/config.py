"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


WEAK_SECRETS = ("changeme", "secret", "password", "admin")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Comma separated list, empty = default list in main.py
    cors_origins: str = ""
    auto_create_schema: bool = True

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default
    # Whole-transaction retries on serialization failure / deadlock
    transaction_retry_attempts: int = 3

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # IDENTITY PROVIDER
    # ===========================================
    identity_jwt_secret: str  # Required, no default
    identity_jwt_algorithm: str = "HS256"
    identity_jwt_audience: str | None = None

    # ===========================================
    # BILLING PROVIDER
    # ===========================================
    billing_provider: str = "mock"  # stripe, mock
    # Empty = signature verification disabled (mock provider)
    stripe_webhook_secret: str = ""
    stripe_signature_tolerance: int = 300

    # ===========================================
    # VIDEO AUTOMATION (outbound dispatch)
    # ===========================================
    # Empty = dispatch disabled, every attempt is logged as failed
    automation_webhook_url: str = ""
    automation_contract_version: str = "1"
    automation_timeout_seconds: float = 5.0
    automation_max_attempts: int = 3
    automation_backoff_seconds: float = 1.0
    # Where the automation system reports status back (passed in payload)
    automation_callback_url: str = ""

    # ===========================================
    # BATCHES
    # ===========================================
    batch_max_videos: int = 50
    batch_inflight_ttl: int = 60  # seconds

    # ===========================================
    # STORAGE (opaque blob store, signed URLs)
    # ===========================================
    asset_url_secret: str  # Required, no default
    asset_public_base_url: str = "http://localhost:8000/assets"
    asset_url_ttl_seconds: int = 3600

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30
    cb_storage: str = "redis"  # redis, memory

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("identity_jwt_secret", "asset_url_secret")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        """Ensure signing secrets are reasonably secure."""
        if len(v) < 16:
            raise ValueError("secret must be at least 16 characters")
        if v in WEAK_SECRETS:
            raise ValueError("secret is too weak, please change it")
        return v

    @field_validator("billing_provider", "cb_storage")
    @classmethod
    def normalize_choice(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def signature_verification_enabled(self) -> bool:
        return bool(self.stripe_webhook_secret)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
