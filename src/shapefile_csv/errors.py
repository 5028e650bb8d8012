"""Exception types raised by the conversion pipeline."""

from __future__ import annotations

from collections.abc import Sequence


class ConversionError(Exception):
    """Base class for every failure surfaced by shapefile_csv."""


class SourceUnavailable(ConversionError):
    """The dataset is missing, unreadable, or no decoder recognizes it."""


class SchemaMismatch(ConversionError):
    """A feature's attribute names differ from the schema of the first feature."""

    def __init__(self, row: int, expected: Sequence[str], actual: Sequence[str]):
        self.row = row
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"Feature {row} has attributes {list(self.actual)}, "
            f"expected {list(self.expected)} (names vary in number, order or content)"
        )


class UnsafeValue(ConversionError):
    """A value would break the row structure and the dialect forbids that."""

    def __init__(self, row: int, name: str, value: str):
        self.row = row
        self.name = name
        self.value = value
        super().__init__(
            f"Feature {row} attribute {name!r} contains a delimiter, quote or newline: {value!r}"
        )


class DestinationUnwritable(ConversionError):
    """The output directory is missing or not writable."""


class IOFailure(ConversionError):
    """A read or write failed while streaming rows."""
