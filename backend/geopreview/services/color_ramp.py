"""Elevation color ramp for single-band DEM previews.

Five piecewise-linear segments run from deep blue at the lowest elevation
through green and yellow to white at the highest. Inputs are fractions in
[0, 1] (see normalize.normalize_fraction); values outside are clamped.
Samples marked invalid, or NaN, bypass the ramp and come out fully
transparent.

Example:
    >>> from geopreview.services import color_ramp
    >>> color_ramp.ramp_color(0.0), color_ramp.ramp_color(1.0)
    ((0, 0, 150), (255, 255, 255))
    >>> color_ramp.ramp_color(0.1)
    (0, 50, 175)
"""

from __future__ import annotations

import math

import numpy as np

STOPS: tuple[tuple[float, tuple[int, int, int]], ...] = (
    (0.0, (0, 0, 150)),
    (0.2, (0, 100, 200)),
    (0.4, (0, 200, 50)),
    (0.6, (200, 200, 0)),
    (0.8, (255, 50, 0)),
    (1.0, (255, 255, 255)),
)

_POSITIONS = np.array([p for p, _ in STOPS])
_CHANNELS = np.array([c for _, c in STOPS], dtype=np.float64).T


def ramp_color(value: float) -> tuple[int, int, int]:
    """Map one fraction to an RGB triple.

    Args:
        value: Elevation fraction; clamped into [0, 1].

    Raises:
        ValueError: If value is NaN. NaN samples have no color; mask them.
    """
    if math.isnan(value):
        raise ValueError("NaN has no ramp color")
    v = min(max(value, 0.0), 1.0)
    for (lo, start), (hi, end) in zip(STOPS, STOPS[1:]):
        if v < hi or hi == 1.0:
            t = (v - lo) / (hi - lo)
            return tuple(  # type: ignore[return-value]
                math.floor(a + (b - a) * t + 0.5) for a, b in zip(start, end)
            )
    raise AssertionError("unreachable")


def apply_ramp(fraction: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Color a whole band of fractions.

    Args:
        fraction: 2-D array of elevation fractions.
        valid: Mask of retained samples, same shape.

    Returns:
        (rows, cols, 4) uint8 RGBA. Alpha is 0 and color is black wherever
        the sample is invalid or NaN, 255 elsewhere.
    """
    fraction = np.asarray(fraction, dtype=np.float64)
    valid = np.asarray(valid, dtype=bool) & ~np.isnan(fraction)
    clamped = np.clip(np.where(valid, fraction, 0.0), 0.0, 1.0)

    rgba = np.zeros(fraction.shape + (4,), dtype=np.uint8)
    for channel in range(3):
        values = np.interp(clamped, _POSITIONS, _CHANNELS[channel])
        rgba[..., channel] = np.floor(values + 0.5).astype(np.uint8)
    rgba[~valid] = 0
    rgba[..., 3] = np.where(valid, 255, 0)
    return rgba
