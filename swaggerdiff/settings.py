from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SWAGGERDIFF_", frozen=True, extra="ignore")

    # Snapshot location. VERSIONS_DIRECTORY is resolved against BASE_DIRECTORY (cwd when unset).
    BASE_DIRECTORY: Optional[str] = None
    VERSIONS_DIRECTORY: str = "docs/versions"
    FILE_PATTERN: str = "doc_*.json"
    # Where the embedded UI and its endpoints are mounted
    ROUTE_PREFIX: str = "/swagger-diff"
    # oasdiff provisioning; an explicit path skips PATH lookup and download
    OASDIFF_PATH: Optional[str] = None
    OASDIFF_VERSION: str = "1.11.10"
    OASDIFF_CACHE_DIR: Optional[str] = None
    DOWNLOAD_TIMEOUT_S: float = 300.0
    # Snapshot generator
    SNAPSHOT_TIMEOUT_S: float = 30.0
    SNAPSHOT_MAX_PARALLEL: int = 4
    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG|INFO|WARNING|ERROR
    SERVICE_NAME: str = "swagger-diff"

    @field_validator("ROUTE_PREFIX")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        v = "/" + v.strip().strip("/")
        return "" if v == "/" else v

    @field_validator("SNAPSHOT_MAX_PARALLEL")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        return max(1, int(v))

    @field_validator("SNAPSHOT_TIMEOUT_S", "DOWNLOAD_TIMEOUT_S")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.strip().upper()

    def versions_path(self) -> Path:
        base = Path(self.BASE_DIRECTORY) if self.BASE_DIRECTORY else Path.cwd()
        return base / self.VERSIONS_DIRECTORY

    def cache_root(self) -> Path:
        if self.OASDIFF_CACHE_DIR:
            return Path(self.OASDIFF_CACHE_DIR)
        return Path.home() / ".swaggerdiff" / "bin"


def get_settings() -> Settings:
    return _get_settings()


@lru_cache
def _get_settings() -> Settings:
    return Settings()
