"""Shared fixtures for raster tests.

GeoTIFF fixtures are written in memory with rasterio so tests never depend
on files outside the repository.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest
from rasterio import io as rio_io
from rasterio import transform as rio_transform
from rasterio.enums import Resampling

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


def write_geotiff(
    data: np.ndarray,
    nodata: float | None = None,
    overviews: Sequence[int] = (),
    crs: str | None = "EPSG:4326",
    bounds: tuple[float, float, float, float] = (0.0, 0.0, 10.0, 10.0),
) -> bytes:
    """Encode a (bands, rows, cols) array as GeoTIFF bytes."""
    count, height, width = data.shape
    with rio_io.MemoryFile() as memfile:
        with memfile.open(
            driver="GTiff",
            width=width,
            height=height,
            count=count,
            dtype=data.dtype,
            crs=crs,
            transform=rio_transform.from_bounds(*bounds, width, height),
            nodata=nodata,
        ) as dst:
            dst.write(data)
            if overviews:
                dst.build_overviews(list(overviews), Resampling.nearest)
        return memfile.read()


@pytest.fixture
def make_geotiff() -> Callable[..., bytes]:
    """Factory fixture returning write_geotiff."""
    return write_geotiff
