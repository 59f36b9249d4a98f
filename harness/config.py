"""Benchmark harness configuration settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Harness settings loaded from environment variables."""

    # Namespace root used by every operation
    base_dir: str = "/throughputBenchmark"

    # Chunk geometry
    chunk_size: int = 16
    default_replication: int = 3

    # Staged pipeline pools
    create_pool_size: int = 4
    allocate_pool_size: int = 12

    # Result files
    stat_path: Path = Field(default=Path("/tmp/stat.out"))
    cdf_path: Path = Field(default=Path("/tmp/create-lat.dat"))

    # Seconds to wait for the writer pool / pipeline to drain
    drain_timeout: float = 3600.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "NNBENCH_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def init_settings(**kwargs) -> Settings:
    """Initialize settings with custom values."""
    global _settings
    _settings = Settings(**kwargs)
    return _settings
