"""Read raster bands at a bounded working resolution.

RasterBandReader opens a GeoTIFF/COG (raw bytes through a rasterio
MemoryFile, or a local path) and reads the requested bands into numpy
arrays, keeping the source sample type. To keep previews responsive it never
reads more than max_dimension pixels along the long side:

    1. If the full-resolution grid fits, it is read as is.
    2. Otherwise the finest internal overview that fits is used.
    3. If no overview fits, the coarsest level is resampled down so the long
       side equals max_dimension, keeping the aspect ratio.

Reads use nearest-neighbour resampling so nodata sentinels are never blended
into valid samples.

Example:
    Read every band of an uploaded GeoTIFF:
        >>> from geopreview.services import raster_reader
        >>> reader = raster_reader.RasterBandReader(tif_bytes, max_dimension=512)
        >>> result = reader.read()
        >>> result.width, result.height, result.decimation
        (512, 256, 4)
        >>> result.bands[0].data.dtype
        dtype('uint16')
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import math
from typing import TYPE_CHECKING, Any

import numpy as np
import rasterio
from rasterio import errors as rio_errors
from rasterio import io as rio_io
from rasterio.enums import Resampling

from geopreview.domain import errors
from geopreview.domain import models

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterator, Sequence

    from geopreview.utils import cancellation

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 1024


@dataclasses.dataclass
class RasterRead:
    """Bands read at the working resolution plus dataset georeferencing.

    Attributes:
        bands: One RasterBand per requested index, in request order.
        width: Working grid width in pixels.
        height: Working grid height in pixels.
        full_width: Full-resolution width of the dataset.
        full_height: Full-resolution height of the dataset.
        decimation: Overview factor of the level read (1 = full resolution).
        bounds: Dataset extent in its own CRS.
        crs: CRS as a string ("EPSG:4326", or WKT), None if undeclared.
        band_count: Number of bands in the dataset.
    """

    bands: list[models.RasterBand]
    width: int
    height: int
    full_width: int
    full_height: int
    decimation: int
    bounds: models.BoundingBox
    crs: str | None
    band_count: int


def select_level(
    width: int,
    height: int,
    factors: Sequence[int],
    max_dimension: int,
) -> tuple[int, int, int]:
    """Pick the level to read.

    Args:
        width: Full-resolution width.
        height: Full-resolution height.
        factors: Overview decimation factors available in the dataset.
        max_dimension: Long-side limit of the working grid.

    Returns:
        (decimation, out_width, out_height). When no level fits, decimation
        is the coarsest factor and the output size is scaled down to fit.
    """
    if max(width, height) <= max_dimension:
        return 1, width, height
    for factor in sorted(factors):
        out_w = math.ceil(width / factor)
        out_h = math.ceil(height / factor)
        if max(out_w, out_h) <= max_dimension:
            return factor, out_w, out_h

    coarsest = max(factors, default=1)
    if width >= height:
        out_w = max_dimension
        out_h = max(1, round(height * max_dimension / width))
    else:
        out_h = max_dimension
        out_w = max(1, round(width * max_dimension / height))
    return coarsest, out_w, out_h


def _crs_string(crs: Any) -> str | None:
    if crs is None:
        return None
    epsg = crs.to_epsg()
    return f"EPSG:{epsg}" if epsg else crs.to_wkt()


def _check_dtype(dtype: str, band: int) -> None:
    kind = np.dtype(dtype)
    if not np.issubdtype(kind, np.number) or np.issubdtype(
        kind, np.complexfloating
    ):
        raise errors.RasterError(
            errors.RasterErrorKind.DECODE_FAILED,
            band,
            f"unsupported sample type {dtype}",
        )


class RasterBandReader:
    """Decode bands from one raster source."""

    def __init__(
        self,
        source: bytes | str | pathlib.Path,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
    ) -> None:
        if max_dimension <= 0:
            raise ValueError("max_dimension must be positive")
        self.source = source
        self.max_dimension = max_dimension

    @contextlib.contextmanager
    def _open(self) -> Iterator[Any]:
        if isinstance(self.source, (bytes, bytearray)):
            if not self.source:
                raise errors.RasterError(
                    errors.RasterErrorKind.DECODE_FAILED,
                    message="empty raster content",
                )
            with rio_io.MemoryFile(bytes(self.source)) as memfile:
                with memfile.open() as src:
                    yield src
        else:
            with rasterio.open(self.source) as src:
                yield src

    def read(
        self,
        indexes: Sequence[int] | None = None,
        cancel: cancellation.CancellationToken | None = None,
    ) -> RasterRead:
        """Read bands at the working resolution.

        Args:
            indexes: Zero-based band indices; all bands when None.
            cancel: Token checked before each band read.

        Returns:
            RasterRead with one band per requested index.

        Raises:
            RasterError: DECODE_FAILED for unreadable content or sample
                types, INVALID_BAND for an index outside the dataset.
            PreviewCancelledError: The token was cancelled.
        """
        try:
            with self._open() as src:
                return self._read(src, indexes, cancel)
        except rio_errors.RasterioError as exc:
            raise errors.RasterError(
                errors.RasterErrorKind.DECODE_FAILED, message=str(exc)
            ) from exc

    def _read(
        self,
        src: Any,
        indexes: Sequence[int] | None,
        cancel: cancellation.CancellationToken | None,
    ) -> RasterRead:
        wanted = list(range(src.count)) if indexes is None else list(indexes)
        for index in wanted:
            if not 0 <= index < src.count:
                raise errors.RasterError(
                    errors.RasterErrorKind.INVALID_BAND,
                    index,
                    f"dataset has {src.count} bands",
                )

        factors = src.overviews(1) if src.count else []
        decimation, out_w, out_h = select_level(
            src.width, src.height, factors, self.max_dimension
        )
        logger.info(
            "Reading %d band(s) at %dx%d (full %dx%d, decimation %d)",
            len(wanted),
            out_w,
            out_h,
            src.width,
            src.height,
            decimation,
        )

        bands = []
        for index in wanted:
            if cancel is not None:
                cancel.raise_if_cancelled(f"band {index}")
            _check_dtype(src.dtypes[index], index)
            try:
                data = src.read(
                    index + 1,
                    out_shape=(out_h, out_w),
                    resampling=Resampling.nearest,
                )
            except rio_errors.RasterioError as exc:
                raise errors.RasterError(
                    errors.RasterErrorKind.DECODE_FAILED, index, str(exc)
                ) from exc
            bands.append(
                models.RasterBand(
                    index=index, data=data, nodata=src.nodatavals[index]
                )
            )

        left, bottom, right, top = src.bounds
        return RasterRead(
            bands=bands,
            width=out_w,
            height=out_h,
            full_width=src.width,
            full_height=src.height,
            decimation=decimation,
            bounds=models.BoundingBox(left, bottom, right, top),
            crs=_crs_string(src.crs),
            band_count=src.count,
        )
