"""Tests for the elevation color ramp."""

from __future__ import annotations

import math

import numpy as np
import pytest

from geopreview.services import color_ramp


def test_ramp_endpoints() -> None:
    """Test the lowest and highest colors."""
    assert color_ramp.ramp_color(0.0) == (0, 0, 150)
    assert color_ramp.ramp_color(1.0) == (255, 255, 255)


@pytest.mark.parametrize("stop", [0.2, 0.4, 0.6, 0.8])
def test_ramp_is_continuous_at_stops(stop: float) -> None:
    """Test that both sides of every stop meet."""
    below = color_ramp.ramp_color(stop - 1e-9)
    at = color_ramp.ramp_color(stop)
    assert all(abs(a - b) <= 1 for a, b in zip(below, at, strict=True))


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0.2, (0, 100, 200)),
        (0.4, (0, 200, 50)),
        (0.6, (200, 200, 0)),
        (0.8, (255, 50, 0)),
        (0.1, (0, 50, 175)),
        (0.3, (0, 150, 125)),
    ],
)
def test_ramp_values(value: float, expected: tuple[int, int, int]) -> None:
    """Test stop colors and interpolation inside segments."""
    assert color_ramp.ramp_color(value) == expected


def test_ramp_clamps_out_of_range_input() -> None:
    """Test that inputs outside [0, 1] clamp to the ends."""
    assert color_ramp.ramp_color(-3.0) == (0, 0, 150)
    assert color_ramp.ramp_color(7.0) == (255, 255, 255)


def test_ramp_rejects_nan() -> None:
    """Test that NaN has no color."""
    with pytest.raises(ValueError):
        color_ramp.ramp_color(math.nan)


def test_apply_ramp_matches_scalar_ramp() -> None:
    """Test the vectorized ramp agrees with ramp_color."""
    fraction = np.linspace(0.0, 1.0, 101).reshape(1, -1)
    rgba = color_ramp.apply_ramp(fraction, np.ones_like(fraction, dtype=bool))
    for i, value in enumerate(fraction[0]):
        expected = color_ramp.ramp_color(float(value))
        actual = rgba[0, i, :3].astype(int)
        assert np.abs(actual - np.array(expected)).max() <= 1
    assert (rgba[..., 3] == 255).all()


def test_apply_ramp_masks_invalid_and_nan() -> None:
    """Test that invalid and NaN samples are fully transparent."""
    fraction = np.array([[0.5, np.nan, 0.25]])
    valid = np.array([[True, True, False]])
    rgba = color_ramp.apply_ramp(fraction, valid)
    assert rgba.shape == (1, 3, 4)
    assert rgba.dtype == np.uint8
    assert rgba[0, :, 3].tolist() == [255, 0, 0]
    assert rgba[0, 1].tolist() == [0, 0, 0, 0]
    assert rgba[0, 2].tolist() == [0, 0, 0, 0]
