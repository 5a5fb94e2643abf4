from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./commission_engine.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Creator Commission Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Batch processing
    BATCH_CHUNK_SIZE: int = 50  # Rows per atomic write group (each row -> up to 5 records)
    MAX_ROW_ERRORS: int = 100  # Per-row errors kept on the upload batch
    UPLOAD_DIR: str = "./uploads"  # Where workbook sources are read from

    # Commission configuration
    COMMISSION_CONFIG_CACHE_SECONDS: int = 300  # 5 minutes

    # Downline job (scheduler wiring only)
    DOWNLINE_JOB_ENABLED: bool = True
    DOWNLINE_JOB_DAY: int = 1  # Day of month
    DOWNLINE_JOB_HOUR: int = 2
    SCHEDULER_TIMEZONE: str = "UTC"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('BATCH_CHUNK_SIZE')
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("BATCH_CHUNK_SIZE must be between 1 and 100")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
