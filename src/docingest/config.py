"""Configuration management for the ingestion pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
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
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "doc"
    db_password: str = "doc"
    db_name: str = "docdb"
    db_pool_min_size: int = Field(default=2, ge=1)
    db_pool_max_size: int = Field(default=10, ge=1)

    # Vector table
    vector_table: str = "knowledge_chunks"
    distance_metric: Literal["cosine", "l2", "inner_product"] = "cosine"
    embedding_dimension: int = Field(default=1024, ge=1)

    # Chunking
    chunker_type: Literal["fixed-size", "boundary-aware"] = "fixed-size"
    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=100, ge=0)
    parallel_chunking_threshold: int = Field(default=200_000, ge=1)
    chunking_segment_count: int = Field(default=4, ge=1)

    # Embedding backend
    embedding_provider: Literal["kserve", "stub"] = "kserve"
    embedding_base_url: str = "http://localhost:8080"
    embedding_model: str = "bge-m3"
    embedding_api_key: str = ""
    embedding_input_name: str = "text"
    embedding_timeout: float = Field(default=30.0, gt=0)
    embedding_verify_ssl: bool = True
    embedding_batch_size: int = Field(default=10, ge=1)
    embedding_workers: int = Field(default=5, ge=1)
    embedding_max_retries: int = Field(default=2, ge=0)
    embedding_backoff_seconds: float = Field(default=0.5, ge=0)

    # Storage batching
    storage_batch_size: int = Field(default=20, ge=1)
    storage_large_input_threshold: int = Field(default=1000, ge=1)
    storage_large_batch_size: int = Field(default=10, ge=1)

    # Pipeline worker pools
    chunking_workers: int = Field(default=5, ge=1)
    embedding_stage_workers: int = Field(default=5, ge=1)
    storage_workers: int = Field(default=5, ge=1)

    # Redis queue
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_queue_ingest: str = "q:ingest"
    job_timeout: int = Field(default=1800, ge=1)

    # Application
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url(self) -> str:
        """Build Redis connection string."""
        return f"redis://{self.redis_host}:{self.redis_port}"


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
