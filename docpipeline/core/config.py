# File: docpipeline/core/config.py
import sys
import logging
from typing import List, Optional
from pydantic import Field, SecretStr, field_validator, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_prefix='DOCPIPE_',
        case_sensitive=False,
        env_file_encoding='utf-8',
        extra='ignore'
    )

    PROJECT_NAME: str = "DocPipeline Document Ingestion Service"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # --- AWS S3 ---
    AWS_S3_BUCKET_NAME: str = Field(description="Bucket holding the original uploaded files.")
    AWS_S3_THUMBNAILS_BUCKET_NAME: Optional[str] = Field(default=None, description="Bucket for generated thumbnails. Thumbnails are skipped when unset.")
    AWS_REGION: str = Field(default="us-east-1", description="AWS region for S3 client.")
    AWS_S3_ENDPOINT_URL: Optional[str] = Field(default=None, description="Custom endpoint for S3-compatible stores (MinIO, LocalStack).")
    DEFAULT_DOWNLOAD_URL_EXPIRY_SECONDS: int = 3600

    # --- PostgreSQL ---
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = SecretStr("postgres")
    POSTGRES_DB: str = "docpipeline"
    DATABASE_URL: Optional[str] = Field(default=None, description="Full SQLAlchemy URL. Overrides the POSTGRES_* settings.")

    # --- Kafka ---
    KAFKA_BOOTSTRAP_SERVERS: str = Field(description="Comma-separated list of Kafka bootstrap servers.")
    KAFKA_CONSUMER_GROUP_ID: str = Field(default="docpipeline_workers", description="Kafka consumer group ID.")
    KAFKA_AUTO_OFFSET_RESET: str = "earliest"
    KAFKA_PRODUCER_ACKS: str = "all"
    KAFKA_PRODUCER_LINGER_MS: int = 10
    PROCESSING_QUEUE_NAME: str = Field(default="document-processing", description="Topic carrying document processing messages.")
    DEAD_LETTER_SUFFIX: str = ".dlq"
    VISIBILITY_TIMEOUT_SECONDS: int = Field(default=300, description="Max time a consumer may hold a delivery before it is handed to another consumer.")
    REDELIVERY_DELAY_SECONDS: float = Field(default=30.0, description="Wait before a failed delivery is attempted again.")
    MAX_DELIVERY_ATTEMPTS: int = 5

    # --- Uploads ---
    SUPPORTED_CONTENT_TYPES: List[str] = [
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    ]
    MAX_UPLOAD_SIZE_BYTES: int = 50 * 1024 * 1024
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # --- Reconciliation ---
    STUCK_PENDING_AFTER_SECONDS: int = 900
    STUCK_PROCESSING_AFTER_SECONDS: int = 3600
    ORPHAN_GRACE_PERIOD_SECONDS: int = 86400

    WORKER_METRICS_PORT: int = 8001

    @field_validator('LOG_LEVEL')
    @classmethod
    def check_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid LOG_LEVEL '{v}'. Must be one of {valid_levels}")
        return v.upper()

    @field_validator('MAX_DELIVERY_ATTEMPTS')
    @classmethod
    def check_max_delivery_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_DELIVERY_ATTEMPTS must be at least 1")
        return v

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def dead_letter_queue_name(self) -> str:
        return f"{self.PROCESSING_QUEUE_NAME}{self.DEAD_LETTER_SUFFIX}"

temp_log = logging.getLogger("docpipeline.config.loader")
if not temp_log.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter('%(levelname)-8s [%(name)s] %(message)s'))
    temp_log.addHandler(handler)
    temp_log.setLevel(logging.INFO)

try:
    temp_log.info("Loading DocPipeline settings...")
    settings = Settings()
    temp_log.info("--- DocPipeline Settings Loaded ---")
    temp_log.info(f"  PROJECT_NAME: {settings.PROJECT_NAME}")
    temp_log.info(f"  LOG_LEVEL: {settings.LOG_LEVEL}")
    temp_log.info(f"  AWS_S3_BUCKET_NAME: {settings.AWS_S3_BUCKET_NAME}")
    temp_log.info(f"  AWS_S3_THUMBNAILS_BUCKET_NAME: {settings.AWS_S3_THUMBNAILS_BUCKET_NAME}")
    temp_log.info(f"  KAFKA_BOOTSTRAP_SERVERS: {settings.KAFKA_BOOTSTRAP_SERVERS}")
    temp_log.info(f"  PROCESSING_QUEUE_NAME: {settings.PROCESSING_QUEUE_NAME}")
    temp_log.info(f"  POSTGRES_SERVER: {settings.POSTGRES_SERVER}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}")
    temp_log.info("------------------------------------------")
except ValidationError as e:
    temp_log.critical(f"FATAL: DocPipeline configuration validation failed:\n{e}")
    sys.exit("FATAL: Invalid configuration. Check logs.")
