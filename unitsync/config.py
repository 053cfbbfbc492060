"""Configuration management for unitsync."""

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from unitsync.core.constants import (
    CORPUS_FILENAME,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_VALIDATE_CONCURRENCY,
    MAX_CONCURRENCY,
    get_env_bool,
    get_env_int,
)
from unitsync.core.errors import InvalidConfigError
from unitsync.scrape.config import ScrapeConfig

# Load .env file
load_dotenv()

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class SyncConfig(BaseModel):
    """Configuration for one incremental sync run."""

    model_config = ConfigDict(validate_default=True)

    input_path: Optional[Path] = Field(default=None, description="Workbook listing the wanted units")
    input_column: Optional[str] = Field(default=None, description="Only scan cells under this header")
    data_dir: Path = Field(default=Path("data"), description="Directory holding the corpus and classification log")
    output_excel: Optional[Path] = Field(default=None, description="Workbook written after the run")

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, description="Runs a failing unit is retried before it is abandoned")
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, description="Crawl workers")
    validate_concurrency: int = Field(default=DEFAULT_VALIDATE_CONCURRENCY, description="Validation workers")
    validate_first: bool = Field(default=True, description="Check pages exist before extracting")

    @field_validator("concurrency", "validate_concurrency")
    @classmethod
    def validate_concurrency_range(cls, v: int) -> int:
        """Worker counts must stay within 1..MAX_CONCURRENCY."""
        if v < 1 or v > MAX_CONCURRENCY:
            raise InvalidConfigError("concurrency", v, f"must be between 1 and {MAX_CONCURRENCY}")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise InvalidConfigError("max_retries", v, "must be at least 1")
        return v

    @property
    def corpus_path(self) -> Path:
        return self.data_dir / CORPUS_FILENAME


class AppConfig(BaseModel):
    """Main application configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    sync: SyncConfig = Field(default_factory=SyncConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)

    # Application Settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        level = str(v or "INFO").upper()
        if level not in _LOG_LEVELS:
            raise InvalidConfigError("log_level", v, f"must be one of {sorted(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def debug_implies_debug_logging(self) -> "AppConfig":
        if self.debug:
            self.log_level = "DEBUG"
        return self

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Load configuration from environment variables.

        Environment variable mapping:
        - UNITSYNC_INPUT: workbook path
        - UNITSYNC_INPUT_COLUMN: header to scan
        - UNITSYNC_DATA_DIR: corpus directory (default: data)
        - UNITSYNC_OUTPUT: export workbook path
        - UNITSYNC_MAX_RETRIES, UNITSYNC_CONCURRENCY, UNITSYNC_VALIDATE_CONCURRENCY
        - UNITSYNC_VALIDATE: true or false
        - UNITSYNC_DEBUG: true or false
        - UNITSYNC_LOG_LEVEL: DEBUG, INFO, ...
        - UNITSYNC_SCRAPE_*: see ScrapeConfig.from_env
        """
        input_path = os.getenv("UNITSYNC_INPUT")
        output = os.getenv("UNITSYNC_OUTPUT")

        sync = SyncConfig(
            input_path=Path(input_path) if input_path else None,
            input_column=os.getenv("UNITSYNC_INPUT_COLUMN") or None,
            data_dir=Path(os.getenv("UNITSYNC_DATA_DIR", "data") or "data"),
            output_excel=Path(output) if output else None,
            max_retries=get_env_int("UNITSYNC_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            concurrency=get_env_int("UNITSYNC_CONCURRENCY", DEFAULT_CONCURRENCY),
            validate_concurrency=get_env_int("UNITSYNC_VALIDATE_CONCURRENCY", DEFAULT_VALIDATE_CONCURRENCY),
            validate_first=get_env_bool("UNITSYNC_VALIDATE", True),
        )

        return cls(
            sync=sync,
            scrape=ScrapeConfig.from_env(),
            debug=get_env_bool("UNITSYNC_DEBUG", False),
            log_level=os.getenv("UNITSYNC_LOG_LEVEL", "INFO"),
        )

    def with_overrides(self, **sync_overrides: Any) -> "AppConfig":
        """Return a copy with sync settings replaced; None values are ignored."""
        updates = {k: v for k, v in sync_overrides.items() if v is not None}
        if not updates:
            return self
        sync = SyncConfig(**{**self.sync.model_dump(), **updates})
        return AppConfig(sync=sync, scrape=self.scrape, debug=self.debug, log_level=self.log_level)


def load_config() -> AppConfig:
    """Load application configuration from environment."""
    return AppConfig.from_env()
