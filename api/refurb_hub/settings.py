# refurb_hub/settings.py
"""
Refurb Hub Settings - environment driven, SQLite by default.
"""
from __future__ import annotations
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

class Settings(BaseSettings):
    # =========================================================================
    # File Storage (logs, local database file)
    # =========================================================================
    DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "refurb-data"),
        validation_alias=AliasChoices("DATA_ROOT", "REFURB_DATA_ROOT"),
    )

    # =========================================================================
    # Database (async SQLAlchemy URL)
    # =========================================================================
    DATABASE_URL: str = Field(
        default=f"sqlite+aiosqlite:///{(Path(__file__).resolve().parents[2] / 'refurb-data' / 'business.db').as_posix()}",
        validation_alias=AliasChoices("DATABASE_URL", "DB_URL"),
    )
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # =========================================================================
    # Logging
    # =========================================================================
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_CONSOLE: bool = Field(default=True, validation_alias="LOG_TO_CONSOLE")

    # =========================================================================
    # Storefront catalog API
    # =========================================================================
    CATALOG_API_VERSION: str = Field(default="2023-10", validation_alias="CATALOG_API_VERSION")
    CATALOG_TIMEOUT: float = Field(default=30.0, validation_alias="CATALOG_TIMEOUT")

    # Pacing between externally visible calls (seconds)
    GROUP_PAUSE_SECONDS: float = Field(default=0.5, validation_alias="GROUP_PAUSE_SECONDS")
    VARIANT_PAUSE_SECONDS: float = Field(default=0.3, validation_alias="VARIANT_PAUSE_SECONDS")
    COLLECTION_PAUSE_SECONDS: float = Field(default=0.2, validation_alias="COLLECTION_PAUSE_SECONDS")
    COLLECTION_CREATE_PAUSE_SECONDS: float = Field(default=0.3, validation_alias="COLLECTION_CREATE_PAUSE_SECONDS")
    IMAGE_PAUSE_SECONDS: float = Field(default=0.6, validation_alias="IMAGE_PAUSE_SECONDS")

    SYNC_BATCH_GUARD: bool = Field(
        default=False,
        description="Skip groups whose batch fingerprint is already tagged on the remote product",
    )

    # =========================================================================
    # Image lookup service (optional)
    # =========================================================================
    IMAGE_SERVICE_URL: str = Field(
        default="http://localhost:3001",
        validation_alias=AliasChoices("IMAGE_SERVICE_URL", "SCRAPER_API_BASE"),
    )
    IMAGE_SERVICE_ENABLED: bool = Field(default=True, validation_alias="IMAGE_SERVICE_ENABLED")
    IMAGE_LOOKUP_TIMEOUT: float = Field(default=5.0, validation_alias="IMAGE_LOOKUP_TIMEOUT")
    MAX_IMAGES_PER_PRODUCT: int = Field(default=8, validation_alias="MAX_IMAGES_PER_PRODUCT")

    # =========================================================================
    # HTTP shell
    # =========================================================================
    UPLOAD_MAX_BYTES: int = Field(default=10 * 1024 * 1024, validation_alias="UPLOAD_MAX_BYTES")
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()
