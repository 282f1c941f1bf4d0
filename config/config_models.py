# config/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for application configuration.

This module defines the structured settings for the feed loader,
including defaults, type annotations, and descriptions.
It utilizes Pydantic for data validation and settings management.
"""

from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Default Static Values (can be overridden by config file/env/cli) ---
LOG_PREFIX_DEFAULT: str = "[GTFS-FEEDS]"

PGHOST_DEFAULT: str = "127.0.0.1"
PGPORT_DEFAULT: int = 5432
PGDATABASE_DEFAULT: str = "transit"
PGUSER_DEFAULT: str = "transit"
PGPASSWORD_DEFAULT: str = "yourStrongPasswordHere"

FEED_BASE_URL_DEFAULT: str = "https://api.data.gov.my/gtfs-static"
FEED_DATA_DIR_DEFAULT: str = "data/gtfs"
FEED_DB_SCHEMA_DEFAULT: str = "gtfs"
FEED_REQUEST_TIMEOUT_DEFAULT: int = 120
FEED_DOWNLOAD_CHUNK_SIZE_DEFAULT: int = 8192
FEED_FETCH_DELAY_DEFAULT: float = 1.0
FEED_BATCH_SIZE_DEFAULT: int = 1000
FEED_ARCHIVES_TO_KEEP_DEFAULT: int = 3

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅", "error": "❌", "warning": "⚠️", "info": "ℹ️",
    "step": "➡️", "gear": "⚙️", "package": "📦", "rocket": "🚀",
    "sparkles": "✨", "critical": "🔥", "debug": "🐛",
}


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""
    model_config = SettingsConfigDict(
        env_prefix='PG_',
        extra='ignore'
    )

    host: str = Field(default=PGHOST_DEFAULT, description="PostgreSQL host.")
    port: int = Field(default=PGPORT_DEFAULT, description="PostgreSQL port.")
    database: str = Field(default=PGDATABASE_DEFAULT, description="PostgreSQL database name.")
    user: str = Field(default=PGUSER_DEFAULT, description="PostgreSQL username.")
    password: str = Field(default=PGPASSWORD_DEFAULT, description="PostgreSQL password.", exclude=True)


class FeedSettings(BaseSettings):
    """Where feeds come from, where they are kept and how they are loaded."""
    model_config = SettingsConfigDict(
        env_prefix='FEED_',
        extra='ignore'
    )

    base_url: Union[HttpUrl, str] = Field(default=FEED_BASE_URL_DEFAULT,
                                          description="Base URL of the static feed API.")
    data_dir: Path = Field(default=Path(FEED_DATA_DIR_DEFAULT),
                           description="Root directory for archives, extracted tables and snapshots.")
    db_schema: str = Field(default=FEED_DB_SCHEMA_DEFAULT,
                           description="PostgreSQL schema holding the per-category tables.")
    request_timeout: int = Field(default=FEED_REQUEST_TIMEOUT_DEFAULT, gt=0,
                                 description="HTTP timeout in seconds for a single archive download.")
    download_chunk_size: int = Field(default=FEED_DOWNLOAD_CHUNK_SIZE_DEFAULT, gt=0,
                                     description="Chunk size in bytes used when streaming archives to disk.")
    fetch_delay_seconds: float = Field(default=FEED_FETCH_DELAY_DEFAULT, ge=0,
                                       description="Pause between consecutive category downloads.")
    batch_size: int = Field(default=FEED_BATCH_SIZE_DEFAULT, gt=0,
                            description="Records per progress batch for stop_times and shapes.")
    archives_to_keep: int = Field(default=FEED_ARCHIVES_TO_KEEP_DEFAULT, ge=1,
                                  description="Archives retained per category by the cleanup command.")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Union[HttpUrl, str]) -> str:
        return str(value).rstrip("/")

    @property
    def extracted_dir(self) -> Path:
        return self.data_dir / "extracted"

    @property
    def parsed_dir(self) -> Path:
        return self.data_dir / "parsed"


class AppSettings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(extra='ignore')

    log_prefix: str = Field(default=LOG_PREFIX_DEFAULT,
                            description="Prefix for log messages from the command-line tool.")
    log_level: str = Field(default="INFO", description="Default logging level.")
    log_file: Optional[str] = Field(default=None, description="Optional log file path.")
    metrics_file: Optional[str] = Field(
        default=None,
        description="Write Prometheus metrics in text format to this file after each command.",
    )

    pg: PostgresSettings = Field(default_factory=PostgresSettings)
    feeds: FeedSettings = Field(default_factory=FeedSettings)

    symbols: Dict[str, str] = Field(default_factory=lambda: dict(SYMBOLS_DEFAULT))
