"""Pydantic data models for the shapefile-to-CSV pipeline."""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class QuoteMode(str, Enum):
    """How values are protected when they contain CSV control characters."""

    NONE = "none"
    MINIMAL = "minimal"
    ALL = "all"
    STRICT = "strict"


class Feature(BaseModel):
    """A single geospatial record reduced to its ordered attribute pairs."""

    model_config = ConfigDict(frozen=True)

    attributes: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Feature:
        return cls(attributes=tuple((str(k), v) for k, v in mapping.items()))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.attributes)

    @property
    def values(self) -> tuple[Any, ...]:
        return tuple(value for _, value in self.attributes)


class CsvDialect(BaseModel):
    """Delimiter, quote and newline configuration shared by all rows of a conversion.

    The default ``QuoteMode.NONE`` joins values verbatim: a value containing
    the delimiter, the quote character or a newline produces a malformed row.
    Use ``MINIMAL`` or ``ALL`` to quote values, or ``STRICT`` to reject them.
    """

    model_config = ConfigDict(frozen=True)

    delimiter: str = ","
    quote: str = '"'
    newline: str = os.linesep
    quoting: QuoteMode = QuoteMode.NONE

    @model_validator(mode="after")
    def _check_characters(self) -> CsvDialect:
        if not self.delimiter:
            raise ValueError("delimiter must not be empty")
        if not self.newline:
            raise ValueError("newline must not be empty")
        if self.quoting in (QuoteMode.MINIMAL, QuoteMode.ALL):
            if len(self.delimiter) != 1 or len(self.quote) != 1:
                raise ValueError(
                    f"quoting={self.quoting.value} requires a single-character delimiter and quote"
                )
        return self


class SourceMetadata(BaseModel):
    """Metadata about an opened feature source."""

    source: str
    format: str
    shape_type_name: str | None = None
    crs_epsg: int | None = None
    crs_name: str | None = None
    fields: list[str] = []
    num_records: int | None = None


class ConversionResult(BaseModel):
    """Outcome of converting one dataset to CSV."""

    metadata: SourceMetadata
    output_path: str | None = None
    num_rows: int
    columns: list[str] = []
