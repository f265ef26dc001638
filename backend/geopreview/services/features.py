"""Columnar rows to GeoJSON-style features.

FeatureExtractor turns the rows of a tabular source (GeoParquet record
batches, flattened GeoJSON) into a FeatureCollection. The geometry column is
detected once from the first row; every other column becomes a feature
property. Geometry values are decoded with the WKB decoder, or taken as-is
when they are already a GeoJSON mapping.

Rows whose geometry fails to decode are dropped and counted rather than
aborting the whole preview. Only when every row fails is the result reported
as empty.

Property values are made JSON-safe: integers beyond the exactly representable
double range (+/- 2**53 - 1) become decimal strings, bytes become hex, dates
become ISO-8601 text. This conversion is stable; callers may rely on it.

Example:
    Extract two rows, one without geometry:
        >>> from geopreview.services import features
        >>> point = bytes.fromhex("0101000000000000000000f03f0000000000000040")
        >>> result = features.FeatureExtractor().extract(
        ...     [{"geometry": point, "name": "A"}, {"geometry": None, "name": "B"}]
        ... )
        >>> len(result.collection), result.dropped_rows
        (2, 0)
        >>> result.bounds
        BoundingBox(min_x=1.0, min_y=2.0, max_x=1.0, max_y=2.0)
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import itertools
import logging
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import numpy as np

from geopreview.domain import errors
from geopreview.domain import models
from geopreview.services import wkb
from geopreview.utils import bounds

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geopreview.utils import cancellation

logger = logging.getLogger(__name__)

GEOMETRY_COLUMNS = ("geometry", "geom", "wkb_geometry")
MAX_SAFE_INTEGER = 2**53 - 1


def find_geometry_column(row: Mapping[str, Any]) -> str | None:
    """Return the first known geometry column name present in the row."""
    for name in GEOMETRY_COLUMNS:
        if name in row:
            return name
    return None


def normalize_value(value: Any) -> Any:
    """Convert a column value into a JSON-safe property value.

    Args:
        value: Value as produced by the row source.

    Returns:
        The value itself for JSON scalars, a string for out-of-range
        integers and other non-JSON scalars, and recursively converted
        lists and dicts.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, float):
        # JSON has no NaN or Infinity.
        return value if math.isfinite(value) else None
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_INTEGER else value
    if isinstance(value, np.generic):
        return normalize_value(value.item())
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    if isinstance(value, Mapping):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    return str(value)


@dataclasses.dataclass
class RowFailure:
    """A dropped row: its position in the input and why it failed."""

    row: int
    error: errors.DecodeError


@dataclasses.dataclass
class ExtractionResult:
    """Output of one extraction.

    Attributes:
        collection: Features in input row order (failed rows omitted).
        bounds: Union of all decoded positions, or None if there were none.
        dropped_rows: Number of rows whose geometry failed to decode.
        failures: Row index and error for each dropped row.
        geometry_column: Detected geometry column, or None.
    """

    collection: models.FeatureCollection
    bounds: models.BoundingBox | None = None
    dropped_rows: int = 0
    failures: list[RowFailure] = dataclasses.field(default_factory=list)
    geometry_column: str | None = None

    @property
    def partial(self) -> bool:
        return self.dropped_rows > 0

    def report(self) -> errors.PartialResult:
        return errors.PartialResult(dropped_rows=self.dropped_rows)


class FeatureExtractor:
    """Decode tabular rows into features, one batch at a time."""

    def __init__(
        self,
        max_depth: int = wkb.DEFAULT_MAX_DEPTH,
        batch_size: int = 1000,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.max_depth = max_depth
        self.batch_size = batch_size

    def _decode(self, value: Any) -> models.Geometry | None:
        if isinstance(value, Mapping):
            try:
                return models.Geometry.from_geojson(value)
            except (ValueError, TypeError) as exc:
                raise errors.DecodeError(
                    errors.DecodeErrorKind.MALFORMED, 0, str(exc)
                ) from exc
        return wkb.decode_wkb(value, max_depth=self.max_depth)

    def extract(
        self,
        rows: Iterable[Mapping[str, Any]],
        cancel: cancellation.CancellationToken | None = None,
    ) -> ExtractionResult:
        """Decode every row.

        Args:
            rows: Row mappings (column name to value), in output order.
            cancel: Token checked before each batch.

        Returns:
            ExtractionResult with the features, bounds and drop report.

        Raises:
            EmptyResultError: A geometry column exists, at least one row was
                read, and every row failed to decode.
            PreviewCancelledError: The token was cancelled.
        """
        result = ExtractionResult(collection=models.FeatureCollection())
        accumulator = bounds.BoundsAccumulator()
        column: str | None = None
        seen = 0

        for batch in itertools.batched(rows, self.batch_size):
            if cancel is not None:
                cancel.raise_if_cancelled(f"row {seen}")
            if seen == 0:
                column = find_geometry_column(batch[0])
                result.geometry_column = column
                if column is None:
                    logger.info(
                        "No geometry column among %s; features get null "
                        "geometry",
                        ", ".join(GEOMETRY_COLUMNS),
                    )
            for row in batch:
                index = seen
                seen += 1
                try:
                    geometry = (
                        self._decode(row.get(column)) if column else None
                    )
                except errors.DecodeError as exc:
                    result.failures.append(RowFailure(index, exc))
                    continue
                accumulator.accumulate_geometry(geometry)
                properties = {
                    str(k): normalize_value(v)
                    for k, v in row.items()
                    if k != column
                }
                result.collection.features.append(
                    models.Feature(geometry=geometry, properties=properties)
                )

        result.dropped_rows = len(result.failures)
        result.bounds = accumulator.to_box()

        if column is not None and seen and result.dropped_rows == seen:
            raise errors.EmptyResultError(
                f"All {seen} rows failed to decode; first failure at row "
                f"{result.failures[0].row}: {result.failures[0].error}"
            )
        if result.dropped_rows:
            logger.warning(
                "Dropped %d of %d rows with undecodable geometry",
                result.dropped_rows,
                seen,
            )
        logger.debug(
            "Extracted %d features from %d rows", len(result.collection), seen
        )
        return result


def project_attribute_table(
    collection: models.FeatureCollection,
    limit: int = 100,
    offset: int = 0,
    max_limit: int = 1000,
) -> models.AttributeTable:
    """Project one page of feature properties into table form.

    Args:
        collection: Features to project.
        limit: Requested page size, clamped to 1..max_limit.
        offset: Index of the first row; negative values count as 0.
        max_limit: Largest page size allowed.

    Returns:
        AttributeTable whose fields list every property name in order of
        first appearance across the whole collection.
    """
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    fields: dict[str, None] = {}
    for feature in collection:
        fields.update(dict.fromkeys(feature.properties))
    page = collection.features[offset : offset + limit]
    total = len(collection)
    return models.AttributeTable(
        fields=list(fields),
        rows=[dict(f.properties) for f in page],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
    )
