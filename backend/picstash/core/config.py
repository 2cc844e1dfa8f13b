"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./data/picstash.db"

    # File storage (originals and thumbnails live under this root)
    STORAGE_PATH: str = "./data/storage"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | pretty
    LOG_DIR: Optional[str] = None  # Defaults to <backend>/data/logs
    LOG_FILE_ENABLED: bool = False
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    # API
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Embeddings
    # CLIP ViT-B/32 produces 512-dim vectors; the vector store is fixed to this size
    EMBEDDING_DIMENSION: int = 512
    EMBEDDING_MODEL: str = "clip-ViT-B-32"

    # Job worker
    JOB_WORKER_ENABLED: bool = True
    JOB_POLLING_INTERVAL_MS: int = 3000
    JOB_TIMEOUT_MS: int = 300000  # 5 minutes
    JOB_GRACEFUL_SHUTDOWN_TIMEOUT_MS: int = 30000
    JOB_DEFAULT_MAX_ATTEMPTS: int = 3

    # Duplicate detection
    DUPLICATE_THRESHOLD: float = 0.1

    @field_validator('LOG_LEVEL', mode='after')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator('LOG_FORMAT', mode='after')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log output format."""
        if v not in ('json', 'pretty'):
            raise ValueError("LOG_FORMAT must be 'json' or 'pretty'")
        return v

    @field_validator(
        'JOB_POLLING_INTERVAL_MS',
        'JOB_TIMEOUT_MS',
        'JOB_GRACEFUL_SHUTDOWN_TIMEOUT_MS',
        'JOB_DEFAULT_MAX_ATTEMPTS',
        'EMBEDDING_DIMENSION',
        mode='after',
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Intervals, timeouts, attempts and dimensions must be positive."""
        if v <= 0:
            raise ValueError("value must be a positive integer")
        return v

    @field_validator('DUPLICATE_THRESHOLD', mode='after')
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """L2 distance between unit vectors lies in [0, 2]."""
        if not 0.0 <= v <= 2.0:
            raise ValueError("DUPLICATE_THRESHOLD must be between 0 and 2")
        return v

    @property
    def storage_root(self) -> Path:
        """Absolute storage root (relative paths resolve against cwd)."""
        path = Path(self.STORAGE_PATH)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path.resolve()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
