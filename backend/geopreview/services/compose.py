"""Compose raster bands into a displayable RGBA image.

Rasters with three or more bands map bands 0, 1 and 2 onto red, green and
blue. The caller picks how samples become display values:

    - STRETCH: each band is stretched independently (normalize.py).
    - SHARED_SCALE: natural color. One factor, 255 / max over the three
      bands, is applied when the data exceeds 8 bits, so the relative
      balance between channels survives.

Rasters with one or two bands render as grayscale from band 0. Bands that
are present but not composed are counted in dropped_bands.

A pixel is transparent (alpha 0, color 0) when any composed band's sample is
nodata or not finite; every other pixel is opaque.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import TYPE_CHECKING

import numpy as np

from geopreview.domain import errors
from geopreview.services import normalize

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geopreview.domain import models

logger = logging.getLogger(__name__)


class ComposeMode(str, enum.Enum):
    STRETCH = "stretch"
    SHARED_SCALE = "shared_scale"


@dataclasses.dataclass
class ComposedImage:
    """RGBA pixels plus the soft-failure count.

    Attributes:
        pixels: (rows, cols, 4) uint8 array.
        dropped_bands: Bands present in the input but not composed.
    """

    pixels: np.ndarray
    dropped_bands: int = 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def band_first(self) -> np.ndarray:
        """RGB channels as a (3, rows, cols) array, the layout renderers use."""
        return np.moveaxis(self.pixels[..., :3], -1, 0)

    def report(self) -> errors.PartialResult:
        return errors.PartialResult(dropped_bands=self.dropped_bands)


def _shared_scale(
    bands: Sequence[models.RasterBand], valid: np.ndarray
) -> list[np.ndarray]:
    data = [np.asarray(b.data).astype(np.float64, copy=False) for b in bands]
    peak = max(
        (float(d[valid].max()) for d in data if valid.any()), default=0.0
    )
    factor = 255.0 / peak if peak > 255.0 else 1.0
    logger.debug("Shared scale peak %s, factor %s", peak, factor)
    channels = []
    for d in data:
        scaled = np.clip(np.floor(np.where(valid, d, 0.0) * factor + 0.5), 0, 255)
        channels.append(scaled.astype(np.uint8))
    return channels


def compose_rgba(
    bands: Sequence[models.RasterBand],
    mode: ComposeMode = ComposeMode.STRETCH,
) -> ComposedImage:
    """Compose bands into an RGBA image.

    Args:
        bands: Bands in dataset order, all with the same shape.
        mode: Color path for three or more bands. Grayscale always
            stretches.

    Returns:
        ComposedImage with the pixels and the dropped band count.

    Raises:
        EmptyResultError: If no bands are given.
        RasterError: INVALID_BAND if a band's shape differs from band 0.
    """
    if not bands:
        raise errors.EmptyResultError("No raster bands to compose")
    shape = np.asarray(bands[0].data).shape
    for band in bands[1:]:
        if np.asarray(band.data).shape != shape:
            raise errors.RasterError(
                errors.RasterErrorKind.INVALID_BAND,
                band.index,
                f"shape {band.data.shape} differs from {shape}",
            )

    if len(bands) < 3:
        gray = normalize.normalize_band(bands[0])
        channels = [gray.values] * 3
        valid = gray.valid
        dropped = len(bands) - 1
    else:
        composed = bands[:3]
        dropped = len(bands) - 3
        if mode is ComposeMode.SHARED_SCALE:
            valid = np.logical_and.reduce(
                [normalize.valid_mask(b) for b in composed]
            )
            channels = _shared_scale(composed, valid)
        else:
            stretched = [normalize.normalize_band(b) for b in composed]
            valid = np.logical_and.reduce([s.valid for s in stretched])
            channels = [s.values for s in stretched]

    if dropped:
        logger.warning(
            "Composed %d of %d bands; %d dropped",
            len(bands) - dropped,
            len(bands),
            dropped,
        )

    pixels = np.zeros(shape + (4,), dtype=np.uint8)
    for i, channel in enumerate(channels):
        pixels[..., i] = np.where(valid, channel, 0)
    pixels[..., 3] = np.where(valid, 255, 0)
    return ComposedImage(pixels=pixels, dropped_bands=dropped)
