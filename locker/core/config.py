from functools import lru_cache
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Redis Locker"
    APP_ENV: Literal["dev", "prod"] = "dev"
    APP_VERSION: str = "0.1.0"

    # Backing store
    REDIS_URL: str = "redis://localhost:6379/0"
    LOCKER_NAMESPACE: str = "locker"

    # Ops
    LOG_LEVEL: str = "INFO"

    # Auth / Secrets
    ADMIN_BEARER_TOKEN: str = "change-me-admin-token"

    # Mutex lease guarding the limiter (milliseconds)
    MUTEX_LEASE_MS: int = Field(default=5000, gt=0)
    MUTEX_RETRY_COUNT: int = Field(default=100, ge=0)
    MUTEX_RETRY_DELAY_MS: int = Field(default=200, ge=0)
    MUTEX_RETRY_JITTER_MS: int = Field(default=200, ge=0)

    # Observability
    OTEL_EXPORTER_OTLP_ENDPOINT: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_prefix="")

    @property
    def OTEL_SERVICE_NAME(self) -> str:  # type: ignore
        return self.APP_NAME


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
