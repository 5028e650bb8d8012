"""Shapefile feature source backed by pyshp, with .prj CRS detection."""

from __future__ import annotations

import logging
import shutil
import struct
import tempfile
import zipfile
from pathlib import Path
from typing import BinaryIO

import shapefile
from pyproj import CRS
from pyproj.exceptions import CRSError

from .base import FeatureSource
from .config import get_settings
from .errors import IOFailure, SourceUnavailable
from .models import Feature, SourceMetadata

logger = logging.getLogger(__name__)

# Exceptions pyshp lets escape for truncated or malformed files
DECODE_ERRORS = (shapefile.ShapefileException, OSError, struct.error, ValueError)


def detect_crs(prj_source: str | Path | None) -> tuple[int | None, str | None]:
    """Parse CRS from a .prj WKT string or file path.

    Returns (epsg_code, crs_name) or (None, None) on failure.
    """
    if prj_source is None:
        return None, None

    wkt = prj_source if isinstance(prj_source, str) else ""
    if isinstance(prj_source, Path):
        if not prj_source.exists():
            return None, None
        wkt = prj_source.read_text(errors="replace")

    if not wkt.strip():
        return None, None

    try:
        crs = CRS.from_wkt(wkt)
    except CRSError:
        return None, None

    return crs.to_epsg(), crs.name


def _companion(base: Path, ext: str) -> Path | None:
    """Find a sibling component file, accepting either case of the extension."""
    for candidate in (Path(str(base) + ext.lower()), Path(str(base) + ext.upper())):
        if candidate.exists():
            return candidate
    return None


class ShapefileSource(FeatureSource):
    """Attribute records of a shapefile, one feature per non-deleted record.

    Supports two modes:
    - File path: pass ``shp_path`` (with or without the ``.shp`` suffix)
    - File objects: pass ``shp_file``, ``shx_file``, ``dbf_file``, and optionally ``prj_wkt``

    The ``.shx`` index and ``.dbf`` table are required in both modes.
    """

    format = "shapefile"

    def __init__(
        self,
        shp_path: str | Path | None = None,
        *,
        shp_file: BinaryIO | None = None,
        shx_file: BinaryIO | None = None,
        dbf_file: BinaryIO | None = None,
        prj_wkt: str | None = None,
        encoding: str | None = None,
        name: str | None = None,
        cleanup_dir: Path | None = None,
    ):
        super().__init__()
        self._cleanup_dir = cleanup_dir
        encoding = encoding or get_settings().source_encoding
        try:
            if shp_path is not None:
                label = name or str(shp_path)
                self._reader, prj = self._open_path(Path(shp_path), encoding)
            elif shp_file is not None:
                label = name or "<upload>"
                self._reader, prj = self._open_files(shp_file, shx_file, dbf_file, encoding), prj_wkt
            else:
                raise ValueError("Provide either shp_path or shp_file")
        except SourceUnavailable:
            self._remove_cleanup_dir()
            raise

        self._records = None
        try:
            self._fields = [f[0] for f in self._reader.fields[1:]]  # skip DeletionFlag
            epsg, crs_name = detect_crs(prj)
            self._metadata = SourceMetadata(
                source=label,
                format=self.format,
                shape_type_name=self._reader.shapeTypeName,
                crs_epsg=epsg,
                crs_name=crs_name,
                fields=self._fields,
                num_records=self._reader.numRecords,
            )
        except Exception:
            self._reader.close()
            self._remove_cleanup_dir()
            raise
        logger.debug("Opened shapefile %s with fields %s", label, self._fields)

    @classmethod
    def from_zip(
        cls,
        archive: str | Path | BinaryIO,
        *,
        encoding: str | None = None,
        name: str | None = None,
    ) -> ShapefileSource:
        """Open the first shapefile inside a zip archive.

        The archive is extracted to a temporary directory that is removed on ``close()``.
        """
        label = name or (str(archive) if isinstance(archive, (str, Path)) else "<upload>.zip")
        extract_dir = Path(tempfile.mkdtemp(prefix="shapefile_csv_"))
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(extract_dir)
        except (zipfile.BadZipFile, OSError) as exc:
            shutil.rmtree(extract_dir, ignore_errors=True)
            raise SourceUnavailable(f"Cannot read zip archive {label}: {exc}") from exc

        shp_files = sorted(p for p in extract_dir.rglob("*") if p.suffix.lower() == ".shp")
        if not shp_files:
            shutil.rmtree(extract_dir, ignore_errors=True)
            raise SourceUnavailable(f"No .shp file found in zip archive {label}")

        return cls(shp_files[0], encoding=encoding, name=label, cleanup_dir=extract_dir)

    @staticmethod
    def _open_path(shp_path: Path, encoding: str) -> tuple[shapefile.Reader, Path | None]:
        base = shp_path.with_suffix("") if shp_path.suffix.lower() == ".shp" else shp_path
        shp = _companion(base, ".shp")
        if shp is None:
            raise SourceUnavailable(f"No such shapefile: {shp_path}")
        if _companion(base, ".shx") is None:
            raise SourceUnavailable(f"Missing .shx index next to {shp}")
        if _companion(base, ".dbf") is None:
            raise SourceUnavailable(f"Missing .dbf attribute table next to {shp}")

        try:
            reader = shapefile.Reader(str(shp), encoding=encoding)
        except DECODE_ERRORS as exc:
            raise SourceUnavailable(f"Cannot decode shapefile {shp}: {exc}") from exc
        return reader, _companion(base, ".prj")

    @staticmethod
    def _open_files(
        shp_file: BinaryIO,
        shx_file: BinaryIO | None,
        dbf_file: BinaryIO | None,
        encoding: str,
    ) -> shapefile.Reader:
        if shx_file is None:
            raise SourceUnavailable("Missing .shx index")
        if dbf_file is None:
            raise SourceUnavailable("Missing .dbf attribute table")
        try:
            return shapefile.Reader(shp=shp_file, shx=shx_file, dbf=dbf_file, encoding=encoding)
        except DECODE_ERRORS as exc:
            raise SourceUnavailable(f"Cannot decode shapefile: {exc}") from exc

    @property
    def metadata(self) -> SourceMetadata:
        return self._metadata

    def _next_feature(self) -> Feature:
        if self._records is None:
            self._records = self._reader.iterRecords()
        try:
            record = next(self._records)
        except DECODE_ERRORS as exc:
            raise IOFailure(f"Failed reading records from {self._metadata.source}: {exc}") from exc
        return Feature(attributes=tuple(zip(self._fields, record)))

    def _release(self) -> None:
        try:
            self._reader.close()
        finally:
            self._remove_cleanup_dir()

    def _remove_cleanup_dir(self) -> None:
        if self._cleanup_dir is not None:
            shutil.rmtree(self._cleanup_dir, ignore_errors=True)
            self._cleanup_dir = None
