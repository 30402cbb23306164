from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEDIATASK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 8008
    api_prefix: str = "/api"

    storage_dir: Path = Path(".mediatask")
    upload_dir: Path | None = None
    persist_tasks: bool = True

    max_workers: int = 2
    subscriber_backlog: int = 256
    stream_poll_interval: float = 0.2

    # empty means any task type is accepted
    task_types: list[str] = []
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    @field_validator("storage_dir", "upload_dir", mode="before")
    @classmethod
    def ensure_absolute(cls, v):
        if v is None:
            return v
        return Path(v).resolve()

    @field_validator("api_prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v

    @field_validator("subscriber_backlog", "max_workers")
    @classmethod
    def ensure_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def default_upload_dir(self) -> Settings:
        if self.upload_dir is None:
            self.upload_dir = self.storage_dir / "uploads"
        return self

    @property
    def tasks_dir(self) -> Path:
        return self.storage_dir / "tasks"


@lru_cache
def get_settings() -> Settings:
    return Settings()
