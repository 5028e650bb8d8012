from pathlib import Path

import pytest
import shapefile

from shapefile_csv.config import get_settings

WGS84_PRJ = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",SPHEROID["WGS_1984",6378137.0,298.257223563]],'
    'PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)

REGIONS = [
    ((-3.5, 53.5), ("North", 120)),
    ((-3.4, 53.6), ("South", 45)),
    ((-3.3, 53.7), ("East", 7)),
]


def write_points(base: Path, records=REGIONS, prj: str | None = WGS84_PRJ) -> Path:
    """Write a POINT shapefile with NAME/POP attributes and return the .shp path."""
    with shapefile.Writer(str(base), shapeType=shapefile.POINT) as w:
        w.field("NAME", "C", size=20)
        w.field("POP", "N", size=10, decimal=0)
        for (x, y), record in records:
            w.point(x, y)
            w.record(*record)
    if prj is not None:
        base.with_suffix(".prj").write_text(prj)
    return base.with_suffix(".shp")


@pytest.fixture
def regions_shp(tmp_path):
    return write_points(tmp_path / "regions")


@pytest.fixture
def empty_shp(tmp_path):
    return write_points(tmp_path / "empty", records=[], prj=None)


@pytest.fixture
def out_dir(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
