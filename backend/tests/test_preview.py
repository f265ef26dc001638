"""Tests for preview sessions and preview type dispatch.

This module validates that:
    - Format tags route to the vector, table and raster paths,
    - Unsupported preview types are refused,
    - Raster previews choose DEM coloring for single-band candidates,
    - Metadata bounds take precedence over dataset bounds for draping,
    - Vertical exaggeration is validated and passed through,
    - A cancelled session stops with PreviewCancelledError.

See Also:
    - backend/geopreview/services/preview.py for the session.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import numpy as np
import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from geopreview.core import config
from geopreview.domain import errors
from geopreview.domain import models
from geopreview.services import preview

if TYPE_CHECKING:
    from collections.abc import Callable

POINT_1_2 = bytes.fromhex("0101000000000000000000F03F0000000000000040")


def _settings(**overrides: object) -> config.Settings:
    return config.Settings(**overrides)  # type: ignore[arg-type]


def _session(fmt: str, **meta: object) -> preview.PreviewSession:
    metadata = models.PreviewMetadata(format=fmt, **meta)  # type: ignore[arg-type]
    return preview.PreviewSession(metadata, _settings())


def _parquet(columns: dict[str, list[object]]) -> bytes:
    sink = pa.BufferOutputStream()
    pq.write_table(pa.table(columns), sink)
    return sink.getvalue().to_pybytes()


def test_vector_preview_from_geoparquet() -> None:
    """Test the vector path over GeoParquet content."""
    data = _parquet({"geometry": [POINT_1_2, None], "name": ["A", "B"]})
    result = _session("geoparquet").run(data)

    assert isinstance(result, preview.VectorPreview)
    body = result.to_dict()
    assert body["type"] == "FeatureCollection"
    assert len(body["features"]) == 2
    assert body["features"][1]["geometry"] is None
    assert body["bbox"] == [1.0, 2.0, 1.0, 2.0]
    assert body["droppedRows"] == 0


def test_vector_preview_from_geojson() -> None:
    """Test the vector path over GeoJSON content."""
    doc = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [3, 4]},
                "properties": {"big": 2**60},
            }
        ],
    }
    result = _session("geojson").run(json.dumps(doc).encode())
    assert isinstance(result, preview.VectorPreview)
    assert result.crs == "OGC:CRS84"
    feature = result.to_dict()["features"][0]
    assert feature["properties"] == {"big": str(2**60)}


def test_metadata_crs_wins_over_source_crs() -> None:
    """Test that a resolved CRS is reported as given."""
    session = _session("geojson", crs="EPSG:3857")
    doc = {"type": "Point", "coordinates": [0, 0]}
    result = session.preview_vector(json.dumps(doc).encode())
    assert result.crs == "EPSG:3857"


def test_table_preview_pages_plain_parquet() -> None:
    """Test the table path over plain Parquet."""
    data = _parquet({"id": list(range(5)), "label": list("abcde")})
    session = _session("parquet")
    result = session.run(data, limit=2, offset=2)

    assert isinstance(result, preview.TablePreview)
    assert result.to_dict() == {
        "fields": ["id", "label"],
        "rows": [{"id": 2, "label": "c"}, {"id": 3, "label": "d"}],
        "total": 5,
        "limit": 2,
        "offset": 2,
        "hasMore": True,
        "droppedRows": 0,
    }


def test_table_preview_uses_default_limit() -> None:
    """Test that the configured default page size applies."""
    data = _parquet({"id": list(range(5))})
    metadata = models.PreviewMetadata(format="parquet")
    session = preview.PreviewSession(
        metadata, _settings(table_default_limit=3)
    )
    result = session.preview_table(data)
    assert result.table.limit == 3


@pytest.mark.parametrize(
    "fmt", ["copc", "qgisproject", "shapefile", "geopackage"]
)
def test_unsupported_preview_types(fmt: str) -> None:
    """Test that formats without a decoder are refused."""
    with pytest.raises(errors.UnsupportedPreviewError):
        _session(fmt).run(b"")


def test_raster_preview_stretch(make_geotiff: Callable[..., bytes]) -> None:
    """Test the raster path with four bands and dataset bounds."""
    data = np.stack(
        [np.arange(4, dtype=np.uint8).reshape(2, 2) for _ in range(4)]
    )
    tif = make_geotiff(data, bounds=(0.0, 0.0, 2.0, 1.0))
    result = _session("geotiff").run(tif)

    assert isinstance(result, preview.RasterPreview)
    assert not result.is_dem
    assert result.pixels.shape == (2, 2, 4)
    assert result.partial.dropped_bands == 1
    assert result.corners == [(0.0, 1.0), (2.0, 1.0), (2.0, 0.0), (0.0, 0.0)]
    assert result.crs == "EPSG:4326"


def test_raster_preview_natural_color(
    make_geotiff: Callable[..., bytes],
) -> None:
    """Test that natural color applies one shared scale."""
    data = np.array(
        [[[1000]], [[500]], [[0]]], dtype=np.uint16
    )
    session = _session("cog")
    result = session.preview_raster(
        make_geotiff(data), preview.RasterMode.NATURAL_COLOR
    )
    assert result.pixels[0, 0].tolist() == [255, 128, 0, 255]


def test_metadata_bounds_preferred_for_footprint(
    make_geotiff: Callable[..., bytes],
) -> None:
    """Test that resolved bounds override the dataset extent."""
    tif = make_geotiff(np.ones((3, 2, 2), dtype=np.uint8))
    session = _session(
        "cog", bounds={"minX": 10, "minY": 20, "maxX": 30, "maxY": 40}
    )
    result = session.preview_raster(tif)
    assert result.bounds == models.BoundingBox(10.0, 20.0, 30.0, 40.0)


def test_single_band_candidate_defaults_to_dem(
    make_geotiff: Callable[..., bytes],
) -> None:
    """Test DEM coloring for a single-band raster candidate."""
    dem = np.array([[[0.0, 50.0], [100.0, -9999.0]]], dtype=np.float32)
    tif = make_geotiff(dem, nodata=-9999.0)
    result = _session("cog", band_count=1).run(tif)

    assert isinstance(result, preview.RasterPreview)
    assert result.is_dem
    assert result.vertical_exaggeration == 1.0
    assert result.elevation_range == (0.0, 100.0)
    assert result.pixels[0, 0].tolist() == [0, 0, 150, 255]
    assert result.pixels[1, 0].tolist() == [255, 255, 255, 255]
    assert result.pixels[1, 1].tolist() == [0, 0, 0, 0]


def test_dem_range_ignores_infinite_samples(
    make_geotiff: Callable[..., bytes],
) -> None:
    """Test that the elevation range comes from finite samples only."""
    dem = np.array([[[10.0, 20.0], [np.inf, 30.0]]], dtype=np.float32)
    result = _session("cog").preview_dem(make_geotiff(dem))
    assert result.elevation_range == (10.0, 30.0)
    assert result.pixels[1, 0].tolist() == [0, 0, 0, 0]
    assert result.pixels[1, 1].tolist() == [255, 255, 255, 255]


def test_dem_exaggeration_is_passed_through(
    make_geotiff: Callable[..., bytes],
) -> None:
    """Test that exaggeration does not alter colors."""
    tif = make_geotiff(np.array([[[1.0, 2.0]]], dtype=np.float32))
    session = _session("cog")
    flat = session.preview_dem(tif)
    steep = session.preview_dem(tif, vertical_exaggeration=3.5)
    assert steep.vertical_exaggeration == 3.5
    np.testing.assert_array_equal(flat.pixels, steep.pixels)


@pytest.mark.parametrize("value", [0.0, -2.0])
def test_dem_exaggeration_must_be_positive(
    make_geotiff: Callable[..., bytes], value: float
) -> None:
    """Test that non-positive exaggeration is rejected."""
    tif = make_geotiff(np.ones((1, 2, 2), dtype=np.float32))
    with pytest.raises(ValueError):
        _session("cog").preview_dem(tif, vertical_exaggeration=value)


def test_dem_requires_single_band(make_geotiff: Callable[..., bytes]) -> None:
    """Test that DEM coloring refuses multi-band rasters."""
    tif = make_geotiff(np.ones((3, 2, 2), dtype=np.uint8))
    with pytest.raises(errors.RasterError) as exc_info:
        _session("cog").run(tif, mode=preview.RasterMode.DEM)
    assert exc_info.value.kind is errors.RasterErrorKind.INVALID_BAND


def test_cancelled_session_stops(make_geotiff: Callable[..., bytes]) -> None:
    """Test that a cancelled session raises at its next checkpoint."""
    session = _session("geotiff")
    session.cancel()
    assert session.cancelled
    with pytest.raises(errors.PreviewCancelledError):
        session.run(make_geotiff(np.ones((1, 2, 2), dtype=np.uint8)))
    with pytest.raises(errors.PreviewCancelledError):
        session.preview_vector(_parquet({"geometry": [POINT_1_2]}))


def test_sessions_do_not_share_cancellation() -> None:
    """Test that each session owns its own token."""
    first = _session("geojson")
    second = _session("geojson")
    first.cancel()
    assert not second.cancelled
