"""Streaming conversion of a feature sequence into CSV text."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterator, Sequence
from enum import Enum
from typing import Any, Protocol

from .base import FeatureSource
from .config import get_settings
from .errors import IOFailure, SchemaMismatch, UnsafeValue
from .models import CsvDialect, QuoteMode

logger = logging.getLogger(__name__)

CSV_QUOTING = {
    QuoteMode.MINIMAL: csv.QUOTE_MINIMAL,
    QuoteMode.ALL: csv.QUOTE_ALL,
}


class TextSink(Protocol):
    def write(self, text: str) -> Any: ...


class ConversionState(str, Enum):
    IDLE = "idle"
    SCHEMA_CAPTURED = "schema_captured"
    EMITTING = "emitting"
    COMPLETED = "completed"
    FAILED = "failed"


def render_value(value: Any) -> str:
    """Canonical string form of an attribute value; missing values render empty."""
    if value is None:
        return ""
    return str(value)


class RowRenderer:
    """Render one row of already-stringified fields according to a dialect."""

    def __init__(self, dialect: CsvDialect):
        self.dialect = dialect
        self._buf: io.StringIO | None = None
        self._writer = None
        if dialect.quoting in CSV_QUOTING:
            self._buf = io.StringIO()
            self._writer = csv.writer(
                self._buf,
                delimiter=dialect.delimiter,
                quotechar=dialect.quote,
                lineterminator=dialect.newline,
                quoting=CSV_QUOTING[dialect.quoting],
            )

    def render(self, names: Sequence[str], fields: Sequence[str], row: int) -> str:
        if self._writer is not None:
            self._writer.writerow(fields)
            line = self._buf.getvalue()
            self._buf.seek(0)
            self._buf.truncate(0)
            return line

        if self.dialect.quoting is QuoteMode.STRICT:
            for name, field in zip(names, fields):
                if self._unsafe(field):
                    raise UnsafeValue(row, name, field)
        return self.dialect.delimiter.join(fields) + self.dialect.newline

    def _unsafe(self, field: str) -> bool:
        d = self.dialect
        if d.delimiter in field or "\n" in field or "\r" in field or d.newline in field:
            return True
        return bool(d.quote) and d.quote in field


class CsvLines:
    """Line iterator of one conversion; ``close()`` releases the source even before the first line."""

    def __init__(self, transformer: CsvTransformer, lines: Iterator[str]):
        self._transformer = transformer
        self._lines = lines

    def __iter__(self) -> CsvLines:
        return self

    def __next__(self) -> str:
        return next(self._lines)

    def close(self) -> None:
        self._lines.close()
        # a generator closed before its first step never runs its finally
        self._transformer._abort()


class CsvTransformer:
    """Convert the features of one source into CSV lines.

    The first feature fixes the schema and produces the header line; every
    feature, the first included, then produces one body line. A feature whose
    attribute names differ from the schema aborts the conversion with
    ``SchemaMismatch`` before any part of its row is produced.

    The transformer borrows ``source`` and closes it when the conversion ends,
    whether it completes, fails, or the line iterator is closed early. An
    instance serves a single conversion.
    """

    def __init__(self, source: FeatureSource, dialect: CsvDialect | None = None):
        self.source = source
        self.dialect = dialect or get_settings().dialect()
        self.state = ConversionState.IDLE
        self.schema: tuple[str, ...] | None = None
        self.rows = 0
        self._renderer = RowRenderer(self.dialect)
        self._started = False

    def iter_lines(self) -> CsvLines:
        """Yield the header line followed by one line per feature."""
        if self._started:
            raise RuntimeError("A CsvTransformer performs a single conversion")
        self._started = True
        return CsvLines(self, self._lines())

    def _abort(self) -> None:
        if self.state is not ConversionState.COMPLETED:
            self.state = ConversionState.FAILED
        self.source.close()

    def _lines(self) -> Iterator[str]:
        try:
            for feature in self.source:
                names = feature.names
                if self.schema is None:
                    self.schema = names
                    self.state = ConversionState.SCHEMA_CAPTURED
                    yield self._renderer.render(names, names, 0)
                    self.state = ConversionState.EMITTING
                elif names != self.schema:
                    raise SchemaMismatch(self.rows + 1, self.schema, names)

                fields = [render_value(v) for v in feature.values]
                line = self._renderer.render(names, fields, self.rows + 1)
                self.rows += 1
                yield line
            self.state = ConversionState.COMPLETED
        finally:
            self._abort()

    def write_to(self, sink: TextSink) -> int:
        """Stream every line into ``sink``; return the number of body rows written."""
        lines = self.iter_lines()
        try:
            for line in lines:
                try:
                    sink.write(line)
                except OSError as exc:
                    raise IOFailure(f"Failed writing CSV output: {exc}") from exc
        finally:
            lines.close()
        logger.info(
            "Converted %d rows from %s (%d columns)",
            self.rows,
            self.source.metadata.source,
            len(self.schema or ()),
        )
        return self.rows

    def convert(self) -> str:
        buf = io.StringIO()
        self.write_to(buf)
        return buf.getvalue()


def iter_csv(source: FeatureSource, dialect: CsvDialect | None = None) -> CsvLines:
    """Lazily produce CSV lines for ``source``. Closing the iterator closes the source."""
    return CsvTransformer(source, dialect).iter_lines()


def convert(source: FeatureSource, dialect: CsvDialect | None = None) -> str:
    """Convert ``source`` into one CSV string. An empty source yields ``""``."""
    return CsvTransformer(source, dialect).convert()


def convert_to(source: FeatureSource, sink: TextSink, dialect: CsvDialect | None = None) -> int:
    """Stream ``source`` as CSV into ``sink``, returning the number of body rows."""
    return CsvTransformer(source, dialect).write_to(sink)
