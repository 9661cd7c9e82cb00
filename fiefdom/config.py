from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
import os

class Settings(BaseSettings):
    # Database - Railway provides DATABASE_URL, fallback to SQLite for local
    database_url: Optional[str] = None

    # App Settings
    app_name: str = "Fiefdom"
    app_version: str = "1.0.0"
    debug: bool = False

    # API Settings
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "8000"))
    allowed_origins: str = "http://localhost:5173,http://localhost:8000"

    # Action queue
    action_queue_delay_seconds: float = 3.0  # Pause between iterations
    action_queue_timeout_seconds: float = 30.0  # Budget for a single iteration
    action_queue_max_attempts: int = 1  # Never re-run an iteration (no double rewards)
    action_queue_stale_minutes: int = 10

    # Worker
    worker_poll_interval: float = 0.5
    worker_max_idle_interval: float = 3.0
    worker_maintenance_interval_seconds: int = 60
    job_retention_hours: int = 72
    embedded_worker: bool = False  # Run the worker inside the API process

    # Rate limiting
    rate_limit_enabled: bool = True
    queue_start_rate_limit: str = "30/minute"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Auto-detect database URL
        railway_db = self.database_url or os.getenv("DATABASE_URL")
        if railway_db:
            # Railway uses postgres:// or postgresql://, but SQLAlchemy async needs postgresql+asyncpg://
            if railway_db.startswith("postgres://"):
                self.database_url = railway_db.replace("postgres://", "postgresql+asyncpg://", 1)
            elif railway_db.startswith("postgresql://"):
                self.database_url = railway_db.replace("postgresql://", "postgresql+asyncpg://", 1)
            else:
                self.database_url = railway_db
        else:
            # Fallback to local SQLite
            self.database_url = "sqlite+aiosqlite:///./database/fiefdom.db"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
