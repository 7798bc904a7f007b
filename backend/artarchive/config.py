from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "artarchive-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Public Art Archive")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/artarchive_dev")
    sql_echo: bool = os.getenv("SQL_ECHO", "0") == "1"
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_photos: str = os.getenv("S3_BUCKET_PHOTOS", "artarchive-photos-dev")
    photos_base_url: str = os.getenv("PHOTOS_BASE_URL", "http://localhost:9000/artarchive-photos-dev")

    # Identity tokens
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))

    # Duplicate detection (advisory)
    similarity_radius_m: float = float(os.getenv("SIMILARITY_RADIUS_M", "100"))
    similarity_near_m: float = float(os.getenv("SIMILARITY_NEAR_M", "25"))
    similarity_warn: float = float(os.getenv("SIMILARITY_WARN", "0.65"))
    similarity_high: float = float(os.getenv("SIMILARITY_HIGH", "0.80"))

    # Submission limits
    max_photos_per_submission: int = int(os.getenv("MAX_PHOTOS_PER_SUBMISSION", "10"))
    max_photo_bytes: int = int(os.getenv("MAX_PHOTO_BYTES", str(15 * 1024 * 1024)))
    max_title_length: int = int(os.getenv("MAX_TITLE_LENGTH", "200"))
    max_description_length: int = int(os.getenv("MAX_DESCRIPTION_LENGTH", "10000"))
    max_note_length: int = int(os.getenv("MAX_NOTE_LENGTH", "500"))

    # Moderation
    max_review_batch_size: int = int(os.getenv("MAX_REVIEW_BATCH_SIZE", "50"))
    max_review_page_size: int = int(os.getenv("MAX_REVIEW_PAGE_SIZE", "50"))

    # Photo I/O
    photo_probe_timeout_s: float = float(os.getenv("PHOTO_PROBE_TIMEOUT_S", "5"))
    photo_retry_attempts: int = int(os.getenv("PHOTO_RETRY_ATTEMPTS", "3"))
    photo_retry_wait_s: float = float(os.getenv("PHOTO_RETRY_WAIT_S", "0.5"))

    # Bulk intake
    bulk_auto_approve: bool = os.getenv("BULK_AUTO_APPROVE", "1") == "1"

    # Consent
    consent_version: str = os.getenv("CONSENT_VERSION", "1.0.0")
    consent_text: str = os.getenv(
        "CONSENT_TEXT",
        "I am 18 or older, I release my photos under CC0, and I confirm the artwork is in public view.",
    )

settings = Settings()
