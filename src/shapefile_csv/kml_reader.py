"""KMZ/KML feature source: one feature per Placemark.

KMZ is a ZIP archive containing KML. Each Placemark contributes its ``name``
and ``description`` followed by its ``ExtendedData`` values (``Data`` and
``SchemaData/SimpleData`` entries, in document order).
"""

from __future__ import annotations

import io
import zipfile
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from typing import BinaryIO

from .base import FeatureSource
from .errors import SourceUnavailable
from .models import Feature, SourceMetadata


def _local(tag: str) -> str:
    """Strip the XML namespace from a tag, so KML 2.1 and 2.2 documents both match."""
    return tag.rsplit("}", 1)[-1]


class KmlSource(FeatureSource):
    """Placemark attributes of a KMZ or plain KML document."""

    format = "kml"

    def __init__(self, file: str | BinaryIO, name: str | None = None):
        super().__init__()
        label = name or (file if isinstance(file, str) else "<upload>.kml")
        data = _read_bytes(file)

        # KMZ is a ZIP; plain KML is XML text
        if _is_zip(data):
            kml_text = _extract_kml_from_kmz(data)
        else:
            kml_text = data.decode("utf-8", errors="replace")

        try:
            root = ET.fromstring(kml_text)
        except ET.ParseError as exc:
            raise SourceUnavailable(f"Invalid KML document {label}: {exc}") from exc

        placemarks = [elem for elem in root.iter() if _local(elem.tag) == "Placemark"]
        self._placemarks: Iterator[ET.Element] = iter(placemarks)
        self._metadata = SourceMetadata(
            source=label,
            format=self.format,
            shape_type_name=_geometry_type(placemarks),
            crs_epsg=4326,
            crs_name="WGS 84",
            num_records=len(placemarks),
        )

    @property
    def metadata(self) -> SourceMetadata:
        return self._metadata

    def _next_feature(self) -> Feature:
        return Feature(attributes=tuple(_placemark_attributes(next(self._placemarks))))

    def _release(self) -> None:
        self._placemarks = iter(())


def _read_bytes(file: str | BinaryIO) -> bytes:
    if isinstance(file, str):
        try:
            with open(file, "rb") as f:
                return f.read()
        except OSError as exc:
            raise SourceUnavailable(f"Cannot read {file}: {exc}") from exc
    return file.read()


def _is_zip(data: bytes) -> bool:
    return data[:4] == b"PK\x03\x04"


def _extract_kml_from_kmz(data: bytes) -> str:
    """Extract the first .kml file from a KMZ (ZIP) archive."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            # Prefer doc.kml, fall back to any .kml
            names = zf.namelist()
            kml_name = next((n for n in names if n.lower() == "doc.kml"), None)
            if kml_name is None:
                kml_name = next((n for n in names if n.lower().endswith(".kml")), None)
            if kml_name is None:
                raise SourceUnavailable("No .kml file found in KMZ archive")
            return zf.read(kml_name).decode("utf-8", errors="replace")
    except zipfile.BadZipFile as exc:
        raise SourceUnavailable(f"Corrupt KMZ archive: {exc}") from exc


def _placemark_attributes(placemark: ET.Element) -> list[tuple[str, str]]:
    attributes = [("name", ""), ("description", "")]
    for child in placemark:
        tag = _local(child.tag)
        if tag == "name":
            attributes[0] = ("name", (child.text or "").strip())
        elif tag == "description":
            attributes[1] = ("description", (child.text or "").strip())

    for elem in placemark.iter():
        tag = _local(elem.tag)
        if tag == "Data":
            value = next((c.text for c in elem if _local(c.tag) == "value"), None)
            attributes.append((elem.get("name", ""), (value or "").strip()))
        elif tag == "SimpleData":
            attributes.append((elem.get("name", ""), (elem.text or "").strip()))
    return attributes


def _geometry_type(placemarks: list[ET.Element]) -> str:
    kinds = set()
    for placemark in placemarks:
        for elem in placemark.iter():
            tag = _local(elem.tag)
            if tag in ("Point", "LineString", "Polygon"):
                kinds.add(tag.upper())
    if not kinds:
        return "KML_UNKNOWN"
    if len(kinds) > 1:
        return "KML_MIXED"
    return f"KML_{kinds.pop()}"
