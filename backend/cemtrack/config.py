from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:5500"
    log_level: str = "INFO"

    # Ledger store
    database_url: str = "sqlite+aiosqlite:///./cemtrack.db"
    database_url_sync: str = "sqlite:///./cemtrack.db"  # Alembic only
    auto_provision: bool = True

    # Mutual exclusion
    lock_backend: Literal["local", "redis"] = "local"
    lock_name: str = "cemtrack:ledger"
    lock_timeout_seconds: float = 30.0
    lock_lease_seconds: float = 120.0  # redis only; expires a crashed holder

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Ledger behaviour
    sequence_policy: Literal["scan", "naive"] = "scan"
    mark_bag_used: bool = True
    verify_bag_exists: bool = True
    duplicate_usage_policy: Literal["flag", "reject"] = "flag"
    default_site_id: str = "SITE-DEFAULT"
    timezone: str = "UTC"
    max_batch_size: int = 10000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
