"""Tests for the per-band linear stretch."""

from __future__ import annotations

import numpy as np
import pytest

from geopreview.domain import models
from geopreview.services import normalize


def _band(
    values: list[list[float]], dtype: str, nodata: float | None = None
) -> models.RasterBand:
    return models.RasterBand(0, np.array(values, dtype=dtype), nodata)


def test_full_range_uint8_is_identity() -> None:
    """Test that a 0..255 uint8 band maps onto itself."""
    data = np.arange(256, dtype=np.uint8).reshape(16, 16)
    result = normalize.normalize_band(models.RasterBand(0, data))
    np.testing.assert_array_equal(result.values, data)
    assert result.values.dtype == np.uint8
    assert (result.minimum, result.maximum) == (0.0, 255.0)
    assert result.valid.all()


def test_stretch_rounds_half_up() -> None:
    """Test the stretch maps min to 0, max to 255, midpoint to 128."""
    result = normalize.normalize_band(_band([[10, 20, 30]], "int16"))
    assert result.values.tolist() == [[0, 128, 255]]


def test_nodata_is_excluded_from_range_and_masked() -> None:
    """Test that the declared sentinel does not widen the range."""
    result = normalize.normalize_band(
        _band([[-9999, 100, 200]], "int32", nodata=-9999)
    )
    assert (result.minimum, result.maximum) == (100.0, 200.0)
    assert result.valid.tolist() == [[False, True, True]]
    assert result.values.tolist() == [[0, 0, 255]]


def test_nan_is_excluded() -> None:
    """Test that NaN samples are excluded even without a sentinel."""
    result = normalize.normalize_band(
        _band([[np.nan, 1.0], [3.0, 2.0]], "float32")
    )
    assert result.valid.tolist() == [[False, True], [True, True]]
    assert result.values.tolist() == [[0, 0], [255, 128]]


def test_nan_nodata_sentinel() -> None:
    """Test a NaN nodata declaration on a float band."""
    result = normalize.normalize_band(
        _band([[np.nan, 5.0]], "float64", nodata=float("nan"))
    )
    assert result.valid.tolist() == [[False, True]]


def test_all_excluded_is_degenerate() -> None:
    """Test that a band with nothing retained is flagged degenerate."""
    result = normalize.normalize_band(_band([[0, 0]], "uint8", nodata=0))
    assert result.degenerate
    assert (result.minimum, result.maximum) == (0.0, 0.0)
    assert not result.valid.any()
    assert result.values.tolist() == [[0, 0]]


def test_flat_band_maps_to_zero() -> None:
    """Test that a constant band uses a span of 1."""
    result = normalize.normalize_band(_band([[7, 7]], "uint16"))
    assert not result.degenerate
    assert result.values.tolist() == [[0, 0]]


def test_zero_is_a_real_value_without_sentinel() -> None:
    """Test that 0 is only excluded when declared as nodata."""
    result = normalize.normalize_band(_band([[0, 10]], "uint8"))
    assert result.valid.all()
    assert result.values.tolist() == [[0, 255]]


def test_normalize_fraction() -> None:
    """Test fractions are in [0, 1] and zero where invalid."""
    fraction, valid = normalize.normalize_fraction(
        _band([[0, 50, 100, -1]], "int16", nodata=-1)
    )
    assert fraction.tolist() == pytest.approx([[0.0, 0.5, 1.0, 0.0]])
    assert valid.tolist() == [[True, True, True, False]]


def test_normalize_raster_reports_ranges() -> None:
    """Test that each band is stretched independently."""
    raster = normalize.normalize_raster(
        [_band([[0, 10]], "uint8"), _band([[100, 300]], "uint16")]
    )
    assert raster.ranges == [(0.0, 10.0), (100.0, 300.0)]
    assert raster.bands[1].values.tolist() == [[0, 255]]


def test_infinite_samples_are_excluded() -> None:
    """Test that infinities neither widen the range nor get a value."""
    result = normalize.normalize_band(
        _band([[1.0, 2.0, np.inf, -np.inf]], "float32")
    )
    assert (result.minimum, result.maximum) == (1.0, 2.0)
    assert result.valid.tolist() == [[True, True, False, False]]
    assert result.values.tolist() == [[0, 255, 0, 0]]


def test_only_infinite_samples_is_degenerate() -> None:
    """Test that a band of infinities has nothing retained."""
    result = normalize.normalize_band(_band([[np.inf, -np.inf]], "float64"))
    assert result.degenerate
    assert (result.minimum, result.maximum) == (0.0, 0.0)


def test_stretch_exposes_range() -> None:
    """Test that the unquantized stretch reports the range it used."""
    result = normalize.stretch(_band([[0, 50, 100, -1]], "int16", nodata=-1))
    assert (result.minimum, result.maximum) == (0.0, 100.0)
    assert not result.degenerate
    assert result.fraction.tolist() == pytest.approx([[0.0, 0.5, 1.0, 0.0]])
