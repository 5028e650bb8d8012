"""GeoJSON feature source: one feature per ``properties`` object."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any, BinaryIO

from .base import FeatureSource
from .errors import SourceUnavailable
from .models import Feature, SourceMetadata


class GeoJsonSource(FeatureSource):
    """Properties of a GeoJSON FeatureCollection or single Feature.

    Coordinates are always WGS84 per RFC 7946.
    """

    format = "geojson"

    def __init__(self, file: str | BinaryIO, name: str | None = None):
        super().__init__()
        label = name or (file if isinstance(file, str) else "<upload>.geojson")
        try:
            if isinstance(file, str):
                with open(file, "rb") as f:
                    document = json.load(f)
            else:
                document = json.load(file)
        except (OSError, ValueError) as exc:
            raise SourceUnavailable(f"Cannot read GeoJSON {label}: {exc}") from exc

        features = _features_of(document, label)
        self._features: Iterator[dict[str, Any]] = iter(features)
        self._metadata = SourceMetadata(
            source=label,
            format=self.format,
            crs_epsg=4326,
            crs_name="WGS 84",
            num_records=len(features),
        )

    @property
    def metadata(self) -> SourceMetadata:
        return self._metadata

    def _next_feature(self) -> Feature:
        properties = next(self._features).get("properties") or {}
        return Feature.from_mapping(properties)

    def _release(self) -> None:
        self._features = iter(())


def _features_of(document: Any, label: str) -> list[dict[str, Any]]:
    kind = document.get("type") if isinstance(document, dict) else None
    if kind == "FeatureCollection":
        features = [f for f in document.get("features") or [] if isinstance(f, dict)]
    elif kind == "Feature":
        features = [document]
    else:
        raise SourceUnavailable(f"{label} is not a GeoJSON Feature or FeatureCollection")

    for index, feature in enumerate(features, start=1):
        properties = feature.get("properties")
        if properties is not None and not isinstance(properties, dict):
            raise SourceUnavailable(f"{label}: feature {index} has non-object properties")
    return features
