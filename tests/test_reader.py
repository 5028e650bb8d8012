"""Tests for the shapefile, KML/KMZ and GeoJSON feature sources."""

import io
import json
import zipfile

import pytest

import shapefile_csv.reader as reader_module
from shapefile_csv import (
    GeoJsonSource,
    IOFailure,
    KmlSource,
    SchemaMismatch,
    ShapefileSource,
    SourceUnavailable,
    convert,
    open_source,
)
from shapefile_csv.models import CsvDialect

LF = CsvDialect(newline="\n")


class TestShapefileSource:
    def test_reads_records_as_features(self, regions_shp):
        with ShapefileSource(regions_shp) as source:
            features = list(source)
        assert [f.names for f in features] == [("NAME", "POP")] * 3
        assert features[0].values == ("North", 120)

    def test_metadata(self, regions_shp):
        with ShapefileSource(regions_shp) as source:
            meta = source.metadata
        assert meta.format == "shapefile"
        assert meta.shape_type_name == "POINT"
        assert meta.fields == ["NAME", "POP"]
        assert meta.num_records == 3
        assert meta.crs_name is not None

    def test_path_without_extension(self, regions_shp):
        with ShapefileSource(regions_shp.with_suffix("")) as source:
            assert len(list(source)) == 3

    def test_converts_to_csv(self, regions_shp):
        text = convert(ShapefileSource(regions_shp), LF)
        assert text == "NAME,POP\nNorth,120\nSouth,45\nEast,7\n"

    def test_empty_shapefile(self, empty_shp):
        source = ShapefileSource(empty_shp)
        assert convert(source, LF) == ""
        assert source.closed

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            ShapefileSource(tmp_path / "nowhere.shp")

    def test_missing_index(self, regions_shp):
        regions_shp.with_suffix(".shx").unlink()
        with pytest.raises(SourceUnavailable, match=".shx"):
            ShapefileSource(regions_shp)

    def test_corrupt_index(self, regions_shp):
        regions_shp.with_suffix(".shx").write_bytes(b"\x00\x01")
        with pytest.raises(SourceUnavailable):
            ShapefileSource(regions_shp)

    def test_close_is_idempotent(self, regions_shp):
        source = ShapefileSource(regions_shp)
        source.close()
        source.close()
        assert source.closed

    def test_close_mid_iteration_ends_sequence(self, regions_shp):
        source = ShapefileSource(regions_shp)
        next(source)
        source.close()
        assert list(source) == []

    def test_not_restartable(self, regions_shp):
        with ShapefileSource(regions_shp) as source:
            assert len(list(source)) == 3
            assert list(source) == []

    def test_file_objects(self, regions_shp):
        source = ShapefileSource(
            shp_file=io.BytesIO(regions_shp.read_bytes()),
            shx_file=io.BytesIO(regions_shp.with_suffix(".shx").read_bytes()),
            dbf_file=io.BytesIO(regions_shp.with_suffix(".dbf").read_bytes()),
            prj_wkt=regions_shp.with_suffix(".prj").read_text(),
        )
        assert convert(source, LF).startswith("NAME,POP\n")

    def test_file_objects_require_index(self, regions_shp):
        with pytest.raises(SourceUnavailable):
            ShapefileSource(
                shp_file=io.BytesIO(regions_shp.read_bytes()),
                dbf_file=io.BytesIO(regions_shp.with_suffix(".dbf").read_bytes()),
            )

    def test_truncated_table_raises_io_failure(self, regions_shp):
        dbf_bytes = regions_shp.with_suffix(".dbf").read_bytes()
        header_length = int.from_bytes(dbf_bytes[8:10], "little")
        dbf = io.BytesIO(dbf_bytes)
        source = ShapefileSource(
            shp_file=io.BytesIO(regions_shp.read_bytes()),
            shx_file=io.BytesIO(regions_shp.with_suffix(".shx").read_bytes()),
            dbf_file=dbf,
        )
        # cut the table in the middle of its first record
        dbf.truncate(header_length + 5)
        with pytest.raises(IOFailure):
            convert(source, LF)
        assert source.closed

    def test_requires_an_input(self):
        with pytest.raises(ValueError):
            ShapefileSource()


class TestZippedShapefile:
    @staticmethod
    def _zip(shp, target):
        with zipfile.ZipFile(target, "w") as zf:
            for ext in (".shp", ".shx", ".dbf", ".prj"):
                p = shp.with_suffix(ext)
                zf.write(p, f"nested/{p.name}")
        return target

    def test_reads_and_cleans_up(self, regions_shp, tmp_path):
        archive = self._zip(regions_shp, tmp_path / "regions.zip")
        source = ShapefileSource.from_zip(archive)
        extract_dir = source._cleanup_dir
        assert extract_dir.exists()
        assert convert(source, LF).count("\n") == 4
        assert not extract_dir.exists()

    def test_failed_setup_removes_extraction_dir(self, regions_shp, tmp_path, monkeypatch):
        archive = self._zip(regions_shp, tmp_path / "regions.zip")
        extract_dir = tmp_path / "extracted"
        extract_dir.mkdir()
        monkeypatch.setattr(reader_module.tempfile, "mkdtemp", lambda prefix: str(extract_dir))

        def unreadable_prj(prj):
            raise OSError("unreadable .prj")

        monkeypatch.setattr(reader_module, "detect_crs", unreadable_prj)
        with pytest.raises(OSError):
            ShapefileSource.from_zip(archive)
        assert not extract_dir.exists()

    def test_zip_without_shapefile(self, tmp_path):
        archive = tmp_path / "empty.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("readme.txt", "nothing here")
        with pytest.raises(SourceUnavailable):
            ShapefileSource.from_zip(archive)

    def test_not_a_zip(self, tmp_path):
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"not a zip")
        with pytest.raises(SourceUnavailable):
            ShapefileSource.from_zip(archive)


class TestKmlSource:
    KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Alpha</name>
      <ExtendedData><Data name="depth"><value>12</value></Data></ExtendedData>
      <Point><coordinates>1.0,2.0</coordinates></Point>
    </Placemark>
    <Placemark>
      <name>Beta</name>
      <description>second</description>
      <ExtendedData><Data name="depth"><value>30</value></Data></ExtendedData>
      <Point><coordinates>3.0,4.0</coordinates></Point>
    </Placemark>
  </Document>
</kml>"""

    def test_placemark_attributes(self):
        source = KmlSource(io.BytesIO(self.KML.encode()))
        assert source.metadata.num_records == 2
        assert source.metadata.shape_type_name == "KML_POINT"
        assert convert(source, LF) == "name,description,depth\nAlpha,,12\nBeta,second,30\n"

    def test_kmz_from_bytes(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("doc.kml", self.KML)
        buf.seek(0)
        features = list(KmlSource(buf))
        assert len(features) == 2

    def test_heterogeneous_placemarks(self):
        kml = self.KML.replace('<Data name="depth"><value>30</value></Data>', "")
        with pytest.raises(SchemaMismatch):
            convert(KmlSource(io.BytesIO(kml.encode())), LF)

    def test_invalid_xml(self):
        with pytest.raises(SourceUnavailable):
            KmlSource(io.BytesIO(b"<kml><unclosed>"))

    def test_kmz_without_kml(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("image.png", b"")
        buf.seek(0)
        with pytest.raises(SourceUnavailable):
            KmlSource(buf)


class TestGeoJsonSource:
    def test_feature_collection(self, tmp_path):
        path = tmp_path / "sites.geojson"
        path.write_text(json.dumps({
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": {"id": 1, "kind": "well"}, "geometry": None},
                {"type": "Feature", "properties": {"id": 2, "kind": "pump"}, "geometry": None},
            ],
        }))
        assert convert(GeoJsonSource(str(path)), LF) == "id,kind\n1,well\n2,pump\n"

    def test_rejects_other_documents(self):
        with pytest.raises(SourceUnavailable):
            GeoJsonSource(io.BytesIO(b'{"type": "Point", "coordinates": [0, 0]}'))

    def test_non_object_properties(self):
        document = {"type": "Feature", "properties": [1, 2], "geometry": None}
        with pytest.raises(SourceUnavailable):
            GeoJsonSource(io.BytesIO(json.dumps(document).encode()))

    def test_invalid_json(self):
        with pytest.raises(SourceUnavailable):
            GeoJsonSource(io.BytesIO(b"{"))


class TestOpenSource:
    def test_shapefile(self, regions_shp):
        with open_source(regions_shp) as source:
            assert isinstance(source, ShapefileSource)

    def test_kml(self, tmp_path):
        path = tmp_path / "marks.kml"
        path.write_text(TestKmlSource.KML)
        with open_source(path) as source:
            assert isinstance(source, KmlSource)

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "table.xlsx"
        path.write_bytes(b"")
        with pytest.raises(SourceUnavailable):
            open_source(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            open_source(tmp_path / "missing.geojson")
