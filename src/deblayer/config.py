"""Runtime settings, read from the environment."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    package_cache_days: int = Field(alias="PACKAGE_CACHE_DAYS", default=7, ge=0)
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")
    layers_dir: Path = Field(alias="CNB_LAYERS_DIR", default=Path("layers"))
    keyring_path: Path = Field(
        alias="DEBLAYER_KEYRING", default=Path("/usr/share/keyrings/ubuntu-archive-keyring.gpg")
    )
    http_timeout: float = Field(alias="DEBLAYER_HTTP_TIMEOUT", default=30.0)
    fetch_attempts: int = Field(alias="DEBLAYER_FETCH_ATTEMPTS", default=3, ge=1)
    fetch_backoff: float = Field(alias="DEBLAYER_FETCH_BACKOFF", default=1.0, ge=0)
    max_concurrent_downloads: int = Field(alias="DEBLAYER_MAX_DOWNLOADS", default=8, ge=1)
    dpkg_status_path: Path = Field(alias="DEBLAYER_DPKG_STATUS", default=Path("/var/lib/dpkg/status"))
    os_release_path: Path = Field(alias="DEBLAYER_OS_RELEASE", default=Path("/etc/os-release"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
