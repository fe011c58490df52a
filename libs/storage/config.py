# libs/storage/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal

class JobsConfig(BaseSettings):
    """Job store / handoff configuration (env prefix FARMJOBS_)."""

    # Storage backend
    STORE_BACKEND: Literal["memory", "sqlite"] = "sqlite"
    SQLITE_PATH: str = "data/farm_jobs.db"
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 5.0

    # Claim lease
    LEASE_SECONDS: float = 300.0
    MAX_ATTEMPTS: int = 3          # claims per envelope before the job is marked FAILED
    REAPER_INTERVAL_SECONDS: float = 0.0  # 0 disables the background sweep

    # HTTP
    HOST: str = "0.0.0.0"
    PORT: int = 8888
    CORS_ORIGINS: str = "http://localhost:3000,https://precision-farming-dashboard.vercel.app"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="FARMJOBS_")

    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
