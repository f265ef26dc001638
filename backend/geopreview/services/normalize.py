"""Per-band linear stretch into the 0..255 display range.

A sample is excluded when it equals the band's declared nodata sentinel or
is not finite (NaN, +inf, -inf). The stretch range is the min/max of the
retained samples; when nothing is retained the band is flagged degenerate and
the range collapses to (0, 0).

Retained samples map to floor(clamp((s - min) / span, 0, 1) * 255 + 0.5),
where span is max - min, or 1 for a flat band. Excluded samples get 0 and are
reported in the valid mask so composers can make them transparent.

Example:
    >>> import numpy as np
    >>> from geopreview.domain import models
    >>> from geopreview.services import normalize
    >>> band = models.RasterBand(0, np.array([[10, 20], [30, -1]]), nodata=-1)
    >>> result = normalize.normalize_band(band)
    >>> result.values.tolist(), result.valid.tolist()
    ([[0, 128], [255, 0]], [[True, True], [True, False]])
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from geopreview.domain import models

if TYPE_CHECKING:
    from collections.abc import Sequence


def valid_mask(band: models.RasterBand) -> np.ndarray:
    """Boolean mask of samples that are neither nodata nor non-finite."""
    data = np.asarray(band.data)
    valid = np.ones(data.shape, dtype=bool)
    if np.issubdtype(data.dtype, np.floating):
        valid &= np.isfinite(data)
    nodata = band.nodata
    if nodata is not None and not math.isnan(nodata):
        valid &= data.astype(np.float64, copy=False) != float(nodata)
    return valid


class Stretch(NamedTuple):
    """Fractions in [0, 1] plus the range they were stretched over."""

    fraction: np.ndarray
    valid: np.ndarray
    minimum: float
    maximum: float
    degenerate: bool


def stretch(band: models.RasterBand) -> Stretch:
    """Compute the min/max stretch of a band without quantizing it."""
    data = np.asarray(band.data).astype(np.float64, copy=False)
    valid = valid_mask(band)
    if not valid.any():
        return Stretch(np.zeros(data.shape), valid, 0.0, 0.0, True)

    retained = data[valid]
    minimum = float(retained.min())
    maximum = float(retained.max())
    span = (maximum - minimum) or 1.0
    fraction = np.zeros(data.shape)
    fraction[valid] = (retained - minimum) / span
    np.clip(fraction, 0.0, 1.0, out=fraction)
    return Stretch(fraction, valid, minimum, maximum, False)


def normalize_fraction(band: models.RasterBand) -> tuple[np.ndarray, np.ndarray]:
    """Stretch a band into float fractions in [0, 1].

    Returns:
        (fraction, valid): fraction is 0 wherever valid is False.
    """
    result = stretch(band)
    return result.fraction, result.valid


def normalize_band(band: models.RasterBand) -> models.NormalizedBand:
    """Stretch a band into uint8 display values.

    Args:
        band: Source band in any numeric dtype.

    Returns:
        NormalizedBand with uint8 values, the valid mask and the stretch
        range used.
    """
    fraction, valid, minimum, maximum, degenerate = stretch(band)
    values = np.floor(fraction * 255.0 + 0.5).astype(np.uint8)
    values[~valid] = 0
    return models.NormalizedBand(
        values=values,
        valid=valid,
        minimum=minimum,
        maximum=maximum,
        degenerate=degenerate,
    )


def normalize_raster(
    bands: Sequence[models.RasterBand],
) -> models.NormalizedRaster:
    """Normalize every band independently."""
    return models.NormalizedRaster(bands=[normalize_band(b) for b in bands])
