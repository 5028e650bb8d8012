"""FastAPI server for dataset-to-CSV conversion."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Response, UploadFile
from pydantic import ValidationError

from .base import FeatureSource
from .config import get_settings
from .errors import ConversionError, SchemaMismatch, SourceUnavailable, UnsafeValue
from .geojson_reader import GeoJsonSource
from .kml_reader import KmlSource
from .models import ConversionResult, CsvDialect, QuoteMode
from .reader import ShapefileSource
from .transform import CsvTransformer

app = FastAPI(title="Shapefile CSV", version="0.1.0")

COMPANION_EXTS = {".shp", ".shx", ".dbf", ".prj"}
NEWLINES = {"lf": "\n", "crlf": "\r\n", "cr": "\r"}


@app.post("/convert")
async def convert_upload(
    files: list[UploadFile],
    delimiter: str | None = Query(None),
    quote: str | None = Query(None),
    newline: str | None = Query(None, pattern="^(lf|crlf|cr)$"),
    quoting: QuoteMode | None = Query(None),
    format: str = Query("csv", pattern="^(csv|json)$"),
):
    """Convert uploaded dataset file(s) to CSV.

    Accepts:
    - A single .kmz, .kml, .geojson or .json file
    - A single .zip containing shapefile components
    - Multiple files (.shp, .shx, .dbf, and optionally .prj)
    """
    settings = get_settings()
    try:
        dialect = CsvDialect(
            delimiter=settings.delimiter if delimiter is None else delimiter,
            quote=settings.quote if quote is None else quote,
            newline=settings.newline if newline is None else NEWLINES[newline],
            quoting=settings.quoting if quoting is None else quoting,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    filename = (files[0].filename or "") if len(files) == 1 else ""
    ext = Path(filename).suffix.lower()

    try:
        if ext in (".kmz", ".kml"):
            source = KmlSource(io.BytesIO(await files[0].read()), name=filename)
        elif ext in (".geojson", ".json"):
            source = GeoJsonSource(io.BytesIO(await files[0].read()), name=filename)
        elif ext == ".zip":
            source = ShapefileSource.from_zip(io.BytesIO(await files[0].read()), name=filename)
        else:
            source, filename = await _handle_multi_file(files)
    except SourceUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    transformer = CsvTransformer(source, dialect)
    try:
        text = transformer.convert()
    except (SchemaMismatch, UnsafeValue) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConversionError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if format == "json":
        return ConversionResult(
            metadata=source.metadata,
            num_rows=transformer.rows,
            columns=list(transformer.schema or ()),
        )

    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={Path(filename).stem or 'features'}.csv"},
    )


async def _handle_multi_file(files: list[UploadFile]) -> tuple[FeatureSource, str]:
    """Open a shapefile from multiple uploaded component files."""
    file_map: dict[str, bytes] = {}
    shp_name = ""
    for f in files:
        ext = Path(f.filename or "").suffix.lower()
        if ext in COMPANION_EXTS:
            file_map[ext] = await f.read()
        if ext == ".shp":
            shp_name = f.filename or ""

    if ".shp" not in file_map:
        raise SourceUnavailable("Missing required .shp file")

    shx_file = io.BytesIO(file_map[".shx"]) if ".shx" in file_map else None
    dbf_file = io.BytesIO(file_map[".dbf"]) if ".dbf" in file_map else None

    prj_wkt = None
    if ".prj" in file_map:
        prj_wkt = file_map[".prj"].decode("utf-8", errors="replace")

    source = ShapefileSource(
        shp_file=io.BytesIO(file_map[".shp"]),
        shx_file=shx_file,
        dbf_file=dbf_file,
        prj_wkt=prj_wkt,
        name=shp_name,
    )
    return source, shp_name


def run() -> None:
    """Serve the app in this process, logging at the configured level."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
