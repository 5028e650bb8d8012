"""Open a feature source for a dataset path, picking the decoder by suffix."""

from __future__ import annotations

from pathlib import Path

from .base import FeatureSource
from .errors import SourceUnavailable
from .geojson_reader import GeoJsonSource
from .kml_reader import KmlSource
from .reader import ShapefileSource

SHAPEFILE_EXTS = {"", ".shp"}
ZIP_EXTS = {".zip"}
KML_EXTS = {".kml", ".kmz"}
GEOJSON_EXTS = {".geojson", ".json"}


def open_source(path: str | Path, *, encoding: str | None = None) -> FeatureSource:
    """Open ``path`` with the decoder matching its extension.

    Raises ``SourceUnavailable`` when the file is missing or no decoder
    recognizes it.
    """
    path = Path(path)
    ext = path.suffix.lower()

    if ext in SHAPEFILE_EXTS:
        return ShapefileSource(path, encoding=encoding)

    if not path.is_file():
        raise SourceUnavailable(f"No such dataset: {path}")
    if ext in ZIP_EXTS:
        return ShapefileSource.from_zip(path, encoding=encoding)
    if ext in KML_EXTS:
        return KmlSource(str(path))
    if ext in GEOJSON_EXTS:
        return GeoJsonSource(str(path))
    raise SourceUnavailable(f"No decoder recognizes {path}")
