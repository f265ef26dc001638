"""Preview sessions: dispatch one file to the right decode path.

A PreviewSession is created for one interactive preview of one file. It owns
the file content handed to it, the resolved PreviewMetadata and a
CancellationToken. Nothing is shared between sessions.

The preview path follows the metadata's preview type:

    - "vector": rows (GeoParquet or GeoJSON) become a FeatureCollection plus
      its bounds.
    - "table": rows of a plain Parquet file become an attribute table page.
    - "raster": bands are composed into RGBA, or colored through the
      elevation ramp for a single-band DEM.

Any other preview type (point clouds, QGIS projects, unknown formats) raises
UnsupportedPreviewError. Soft failures (dropped rows or bands) come back in
each result's ``partial`` record.

Example:
    Preview a GeoJSON upload:
        >>> from geopreview.domain import models
        >>> from geopreview.services import preview
        >>> meta = models.PreviewMetadata(format="geojson")
        >>> session = preview.PreviewSession(meta)
        >>> result = session.run(geojson_bytes)
        >>> result.to_dict()["type"]
        'FeatureCollection'

    Cancel from another thread while a large raster decodes:
        >>> session.cancel()
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import TYPE_CHECKING, Any

from geopreview.core import config
from geopreview.domain import errors
from geopreview.domain import models
from geopreview.services import color_ramp
from geopreview.services import compose
from geopreview.services import features
from geopreview.services import normalize
from geopreview.services import raster_reader
from geopreview.services import sources
from geopreview.utils import cancellation

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy as np

logger = logging.getLogger(__name__)

_PARQUET_FORMATS = {"geoparquet", "parquet"}


class RasterMode(str, enum.Enum):
    STRETCH = "stretch"
    NATURAL_COLOR = "natural_color"
    DEM = "dem"


@dataclasses.dataclass
class VectorPreview:
    collection: models.FeatureCollection
    bounds: models.BoundingBox | None
    crs: str | None = None
    partial: errors.PartialResult = dataclasses.field(
        default_factory=errors.PartialResult
    )

    def to_dict(self) -> dict[str, Any]:
        body = self.collection.to_geojson()
        body["bbox"] = list(self.bounds) if self.bounds is not None else None
        body["droppedRows"] = self.partial.dropped_rows
        return body


@dataclasses.dataclass
class TablePreview:
    table: models.AttributeTable
    partial: errors.PartialResult = dataclasses.field(
        default_factory=errors.PartialResult
    )

    def to_dict(self) -> dict[str, Any]:
        return {**self.table.to_dict(), "droppedRows": self.partial.dropped_rows}


@dataclasses.dataclass
class RasterPreview:
    """Composed RGBA image and where to drape it.

    Attributes:
        pixels: (rows, cols, 4) uint8 RGBA.
        bounds: Footprint used for draping.
        crs: Dataset CRS string, if declared.
        partial: Dropped band count.
        vertical_exaggeration: Display exaggeration, DEM previews only.
        elevation_range: (min, max) of the DEM samples, DEM previews only.
    """

    pixels: np.ndarray
    bounds: models.BoundingBox
    crs: str | None = None
    partial: errors.PartialResult = dataclasses.field(
        default_factory=errors.PartialResult
    )
    vertical_exaggeration: float | None = None
    elevation_range: tuple[float, float] | None = None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def corners(self) -> list[tuple[float, float]]:
        return self.bounds.corners()

    @property
    def is_dem(self) -> bool:
        return self.vertical_exaggeration is not None


class PreviewSession:
    """One preview of one file.

    Attributes:
        metadata: Format record resolved for the file.
        settings: Limits applied by the decoders.
        token: Cancellation token polled between batches and band reads.
    """

    def __init__(
        self,
        metadata: models.PreviewMetadata,
        settings: config.Settings | None = None,
    ) -> None:
        self.metadata = metadata
        self.settings = settings or config.get_settings()
        self.token = cancellation.CancellationToken()

    def cancel(self) -> None:
        self.token.cancel()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def run(
        self,
        data: bytes,
        mode: RasterMode | None = None,
        limit: int | None = None,
        offset: int = 0,
        vertical_exaggeration: float | None = None,
    ) -> VectorPreview | TablePreview | RasterPreview:
        """Decode data along the path named by the metadata's preview type.

        Raster previews default to the DEM path for single-band rasters and
        to a per-band stretch otherwise.

        Raises:
            UnsupportedPreviewError: For preview types without a decoder.
        """
        preview_type = self.metadata.preview_type
        if preview_type == "vector":
            return self.preview_vector(data)
        if preview_type == "table":
            return self.preview_table(data, limit=limit, offset=offset)
        if preview_type == "raster":
            if mode is None:
                mode = (
                    RasterMode.DEM
                    if self.metadata.is_dem_candidate
                    else RasterMode.STRETCH
                )
            if mode is RasterMode.DEM:
                return self.preview_dem(data, vertical_exaggeration)
            return self.preview_raster(data, mode)
        raise errors.UnsupportedPreviewError(
            f"No preview for format {self.metadata.format!r} "
            f"(preview type {preview_type!r})"
        )

    def _rows(self, data: bytes) -> tuple[Iterable[dict[str, Any]], str | None]:
        fmt = self.metadata.format.lower()
        if fmt in _PARQUET_FORMATS:
            source = sources.ParquetRowSource(
                data, batch_size=self.settings.row_batch_size
            )
            return source.iter_rows(), source.crs
        if fmt == "geojson":
            return sources.iter_geojson_rows(data), "OGC:CRS84"
        raise errors.UnsupportedPreviewError(
            f"No row source for format {self.metadata.format!r}"
        )

    def _extract(self, data: bytes) -> tuple[features.ExtractionResult, str | None]:
        rows, crs = self._rows(data)
        extractor = features.FeatureExtractor(
            max_depth=self.settings.max_wkb_depth,
            batch_size=self.settings.row_batch_size,
        )
        return extractor.extract(rows, cancel=self.token), crs

    def preview_vector(self, data: bytes) -> VectorPreview:
        """Decode rows into a FeatureCollection with bounds.

        Raises:
            DecodeError: The container itself is unreadable.
            EmptyResultError: Every row's geometry failed to decode.
        """
        result, crs = self._extract(data)
        return VectorPreview(
            collection=result.collection,
            bounds=result.bounds,
            crs=self.metadata.crs or crs,
            partial=result.report(),
        )

    def preview_table(
        self,
        data: bytes,
        limit: int | None = None,
        offset: int = 0,
    ) -> TablePreview:
        result, _ = self._extract(data)
        table = features.project_attribute_table(
            result.collection,
            limit=limit or self.settings.table_default_limit,
            offset=offset,
            max_limit=self.settings.table_max_limit,
        )
        return TablePreview(table=table, partial=result.report())

    def _reader(self, data: bytes) -> raster_reader.RasterBandReader:
        return raster_reader.RasterBandReader(
            data, max_dimension=self.settings.max_working_dimension
        )

    def _footprint(self, read: raster_reader.RasterRead) -> models.BoundingBox:
        if self.metadata.bounds is not None:
            return self.metadata.bounds.to_box()
        return read.bounds

    def preview_raster(
        self,
        data: bytes,
        mode: RasterMode = RasterMode.STRETCH,
    ) -> RasterPreview:
        """Compose an RGBA image from up to three bands.

        Args:
            data: GeoTIFF/COG content.
            mode: STRETCH for a per-band stretch, NATURAL_COLOR for one
                shared scale across the RGB bands.
        """
        if mode is RasterMode.DEM:
            raise ValueError("use preview_dem for the DEM path")
        read = self._reader(data).read(cancel=self.token)
        compose_mode = (
            compose.ComposeMode.SHARED_SCALE
            if mode is RasterMode.NATURAL_COLOR
            else compose.ComposeMode.STRETCH
        )
        image = compose.compose_rgba(read.bands, compose_mode)
        return RasterPreview(
            pixels=image.pixels,
            bounds=self._footprint(read),
            crs=self.metadata.crs or read.crs,
            partial=image.report(),
        )

    def preview_dem(
        self,
        data: bytes,
        vertical_exaggeration: float | None = None,
    ) -> RasterPreview:
        """Color a single-band raster through the elevation ramp.

        Args:
            data: GeoTIFF/COG content with exactly one band.
            vertical_exaggeration: Display exaggeration, must be > 0.
                Defaults to the configured value. It is passed through to the
                renderer and never changes the colors.

        Raises:
            ValueError: If vertical_exaggeration is not positive.
            RasterError: INVALID_BAND if the raster has more than one band.
        """
        exaggeration = (
            self.settings.default_vertical_exaggeration
            if vertical_exaggeration is None
            else vertical_exaggeration
        )
        if not exaggeration > 0:
            raise ValueError(
                f"vertical exaggeration must be > 0, got {exaggeration}"
            )

        read = self._reader(data).read(indexes=[0], cancel=self.token)
        if read.band_count != 1:
            raise errors.RasterError(
                errors.RasterErrorKind.INVALID_BAND,
                message=f"DEM preview needs 1 band, dataset has {read.band_count}",
            )
        band = read.bands[0]
        stretched = normalize.stretch(band)
        return RasterPreview(
            pixels=color_ramp.apply_ramp(stretched.fraction, stretched.valid),
            bounds=self._footprint(read),
            crs=self.metadata.crs or read.crs,
            vertical_exaggeration=exaggeration,
            elevation_range=(stretched.minimum, stretched.maximum),
        )
