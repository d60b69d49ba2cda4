# serial_hub/settings.py
"""
Serial Hub Settings.

Read from environment / .env; passed explicitly into create_app().
"""
from __future__ import annotations
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    # =========================================================================
    # File Storage (logs)
    # =========================================================================
    DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "serial-data"),
        validation_alias=AliasChoices("DATA_ROOT", "sh_data_root"),
    )

    # =========================================================================
    # Database
    # =========================================================================
    DATABASE_URL: str = Field(
        default="",
        validation_alias=AliasChoices("DATABASE_URL", "sh_database_url"),
        description="Async SQLAlchemy URL; empty means SQLite under DATA_ROOT",
    )
    DB_POOL_SIZE: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # =========================================================================
    # Serialization service (used by aggregation + labels)
    # =========================================================================
    SERIALIZATION_URL: str = Field(default="http://localhost:8000", validation_alias="SERIALIZATION_URL")
    SERIALIZATION_TIMEOUT: float = Field(default=10.0, validation_alias="SERIALIZATION_TIMEOUT")

    # =========================================================================
    # External delivery
    # =========================================================================
    EXTERNAL_API: str = Field(default="https://external-endpoint/api", validation_alias="EXTERNAL_API")
    PUSH_TIMEOUT: float = Field(default=10.0, validation_alias="PUSH_TIMEOUT")
    PUSH_MAX_ATTEMPTS: int = Field(default=3, validation_alias="PUSH_MAX_ATTEMPTS")
    PUSH_BACKOFF_BASE: float = Field(default=2.0, validation_alias="PUSH_BACKOFF_BASE")

    # =========================================================================
    # HTTP / logging
    # =========================================================================
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
    )
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=True, validation_alias="LOG_TO_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite+aiosqlite:///{(Path(self.DATA_ROOT) / 'serial_hub.db').as_posix()}"
