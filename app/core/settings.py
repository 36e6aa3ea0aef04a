from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.services.s3_storage import worst_case_call_seconds


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    # Database (set via .env; avoid hardcoding secrets here)
    # A full DATABASE_URL wins over the individual parts below.
    DATABASE_URL: str = ""
    DB_SERVER: str = ""  # e.g. localhost or db.internal:5432
    DB_NAME: str = "reports"
    DB_USER: str = ""
    DB_PASSWORD: str = ""
    DB_PORT: int = 5432
    DB_POOL_SIZE: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_JSON: bool = True
    LOG_FILE: str = "logs/worker.log"
    LOG_MAX_BYTES: int = 5_000_000  # 5 MB
    LOG_BACKUP_COUNT: int = 5

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    # AWS (endpoint URLs point at LocalStack in development)
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = ""  # Optional; uses IAM role on EC2
    AWS_SECRET_ACCESS_KEY: str = ""  # Optional; uses IAM role on EC2
    S3_BUCKET: str = ""
    S3_ENDPOINT_URL: str = ""
    S3_CONNECT_TIMEOUT_SECONDS: float = 3.0
    S3_MAX_ATTEMPTS: int = 2  # first try included; read timeout is BUILDER_TIMEOUT_SECONDS
    SQS_QUEUE: str = ""
    SQS_ENDPOINT_URL: str = ""

    # Upstream compendium API
    COMPENDIUM_BASE_URL: str = "https://botw-compendium.herokuapp.com/api/v3/compendium"
    FETCH_TIMEOUT_SECONDS: float = 10.0

    # Queue worker
    WORKER_MAX_CONCURRENCY: int = 5
    QUEUE_BATCH_SIZE: int = 10  # SQS caps a receive at 10
    QUEUE_WAIT_SECONDS: int = 20  # long polling
    BUILDER_TIMEOUT_SECONDS: float = 10.0
    # A report stuck in "processing" longer than this is reclaimed on redelivery.
    # Must cover the longest possible attempt, see attempt_budget_seconds().
    CLAIM_TIMEOUT_SECONDS: float = 60.0

    # Download links
    DOWNLOAD_URL_TTL_SECONDS: int = 600  # 10 minutes

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_worker_limits(self) -> "Settings":
        if self.WORKER_MAX_CONCURRENCY < 1:
            raise ValueError("WORKER_MAX_CONCURRENCY must be at least 1")
        if not 1 <= self.QUEUE_BATCH_SIZE <= 10:
            raise ValueError("QUEUE_BATCH_SIZE must be between 1 and 10")
        if self.S3_MAX_ATTEMPTS < 1:
            raise ValueError("S3_MAX_ATTEMPTS must be at least 1")
        if self.CLAIM_TIMEOUT_SECONDS < self.attempt_budget_seconds():
            raise ValueError(
                f"CLAIM_TIMEOUT_SECONDS must be at least {self.attempt_budget_seconds():g}s "
                "(builder timeout plus the slowest fetch or upload)"
            )
        return self

    def attempt_budget_seconds(self) -> float:
        """Upper bound on one build attempt's wall time.

        The deadline is checked before the fetch and before the upload, so an
        attempt can overrun it by one full fetch or one full S3 upload.
        """
        upload = worst_case_call_seconds(
            self.S3_CONNECT_TIMEOUT_SECONDS, self.BUILDER_TIMEOUT_SECONDS, self.S3_MAX_ATTEMPTS
        )
        return self.BUILDER_TIMEOUT_SECONDS + max(self.FETCH_TIMEOUT_SECONDS, upload)

    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        server = self.DB_SERVER
        # If DB_SERVER already contains a port, use it as-is; otherwise append :port
        if ":" in (server or ""):
            hostpart = server
        else:
            hostpart = f"{server}:{self.DB_PORT}"
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}@{hostpart}/{self.DB_NAME}"
        )


settings = Settings()

# Basic validation for required settings to prevent confusing runtime errors
_missing = []
if not settings.DATABASE_URL and not settings.DB_SERVER:
    _missing.append("DATABASE_URL or DB_SERVER")
if not settings.S3_BUCKET:
    _missing.append("S3_BUCKET")
if not settings.SQS_QUEUE:
    _missing.append("SQS_QUEUE")

if _missing:
    # Do not crash imports in some tools; instead, provide a helpful message.
    import warnings

    warnings.warn(
        "Missing required settings in .env: "
        + ", ".join(_missing)
        + ". Update .env and restart the worker."
    )
