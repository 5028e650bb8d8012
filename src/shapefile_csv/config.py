"""Environment-driven settings.

Every field can be set through an ``SHAPEFILE_CSV_``-prefixed environment
variable or a ``.env`` file, e.g. ``SHAPEFILE_CSV_DELIMITER=";"``.
"""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CsvDialect, QuoteMode


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SHAPEFILE_CSV_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # CSV dialect defaults
    delimiter: str = ","
    quote: str = '"'
    newline: str = os.linesep
    quoting: QuoteMode = QuoteMode.NONE

    # Text encoding of .dbf attribute tables
    source_encoding: str = "utf-8"

    log_level: str = "INFO"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8000

    def dialect(self) -> CsvDialect:
        return CsvDialect(
            delimiter=self.delimiter,
            quote=self.quote,
            newline=self.newline,
            quoting=self.quoting,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
