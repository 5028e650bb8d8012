"""Convert shapefile-style vector datasets into CSV attribute tables."""

from .base import FeatureSource, IterableSource
from .errors import (
    ConversionError,
    DestinationUnwritable,
    IOFailure,
    SchemaMismatch,
    SourceUnavailable,
    UnsafeValue,
)
from .geojson_reader import GeoJsonSource
from .kml_reader import KmlSource
from .models import ConversionResult, CsvDialect, Feature, QuoteMode, SourceMetadata
from .reader import ShapefileSource, detect_crs
from .sources import open_source
from .transform import ConversionState, CsvTransformer, convert, convert_to, iter_csv
from .writer import convert_file, output_path_for, write_to_file

__all__ = [
    "ConversionError",
    "ConversionResult",
    "ConversionState",
    "CsvDialect",
    "CsvTransformer",
    "DestinationUnwritable",
    "Feature",
    "FeatureSource",
    "GeoJsonSource",
    "IOFailure",
    "IterableSource",
    "KmlSource",
    "QuoteMode",
    "SchemaMismatch",
    "ShapefileSource",
    "SourceMetadata",
    "SourceUnavailable",
    "UnsafeValue",
    "convert",
    "convert_file",
    "convert_to",
    "detect_crs",
    "iter_csv",
    "open_source",
    "output_path_for",
    "write_to_file",
]
