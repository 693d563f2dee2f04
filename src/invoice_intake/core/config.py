from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./invoice_intake.db"
    redis_url: str = "redis://localhost:6379/0"
    celery_task_always_eager: bool | None = None

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")
    signed_url_ttl_seconds: int = 15 * 60

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "invoice-intake"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    textract_region: str | None = None
    ocr_max_attempts: int = 3
    ocr_min_word_count: int = 5
    ocr_min_confidence_percent: float = 10.0

    auto_approve_confidence_threshold: float = 90.0

    reclaim_stale_minutes: int = 5
    reclaim_interval_seconds: int = 60

    preprocess_max_width: int = 4000
    preprocess_max_height: int = 4000
    preprocess_max_upscale_factor: float = 2.0

    spellcheck_enabled: bool = True
    spellcheck_dictionary_paths: list[Path] = [Path("/usr/share/dict/words")]

    realtime_webhook_url: str | None = None
    realtime_webhook_secret: str | None = None
    realtime_timeout_seconds: float = 3.0

    @property
    def task_always_eager(self) -> bool:
        if self.celery_task_always_eager is not None:
            return self.celery_task_always_eager
        return self.environment in {"dev", "test"}


settings = Settings()
