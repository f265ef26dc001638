"""Row sources feeding the columnar feature extractor.

Two sources are provided. ParquetRowSource streams a (Geo)Parquet file as
plain row dictionaries, one record batch at a time, so the extractor can
check for cancellation between batches. iter_geojson_rows flattens a GeoJSON
document into the same row shape, with the geometry under the "geometry"
key.

Both accept the raw file content as bytes; fetching that content is the
transport layer's job.

Example:
    Stream rows out of an in-memory GeoParquet file:
        >>> from geopreview.services import sources
        >>> source = sources.ParquetRowSource(parquet_bytes, batch_size=500)
        >>> source.num_rows
        1200
        >>> first = next(source.iter_rows())
        >>> sorted(first)
        ['geometry', 'name']
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import pyarrow as pa
import pyarrow.parquet as pq

from geopreview.domain import errors

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


def _malformed(message: str, offset: int = 0) -> errors.DecodeError:
    return errors.DecodeError(errors.DecodeErrorKind.MALFORMED, offset, message)


class ParquetRowSource:
    """Batch-wise reader over Parquet content.

    Attributes:
        batch_size: Rows per record batch pulled from the file.
    """

    def __init__(
        self,
        data: bytes | pathlib.Path,
        batch_size: int = 1000,
    ) -> None:
        """Open the Parquet footer.

        Args:
            data: Whole-file bytes or a path to a local file.
            batch_size: Rows per record batch.

        Raises:
            DecodeError: MALFORMED when the content is not readable Parquet.
        """
        self.batch_size = batch_size
        source: Any = pa.BufferReader(data) if isinstance(data, bytes) else str(data)
        try:
            self._file = pq.ParquetFile(source)
        except (pa.ArrowException, OSError) as exc:
            raise _malformed(f"not a readable Parquet file: {exc}") from exc

    @property
    def num_rows(self) -> int:
        return int(self._file.metadata.num_rows)

    @property
    def geo_metadata(self) -> dict[str, Any] | None:
        """GeoParquet "geo" schema metadata, if present and valid JSON."""
        raw = (self._file.schema_arrow.metadata or {}).get(b"geo")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unparsable GeoParquet 'geo' metadata")
            return None

    @property
    def crs(self) -> str | None:
        """CRS of the primary geometry column as "AUTHORITY:CODE" or text.

        GeoParquet stores PROJJSON; only its identifier is surfaced here.
        """
        geo = self.geo_metadata
        if not geo:
            return None
        column = (geo.get("columns") or {}).get(geo.get("primary_column"), {})
        crs = column.get("crs")
        if isinstance(crs, str):
            return crs
        if isinstance(crs, dict):
            ident = crs.get("id") or {}
            if ident.get("authority") and ident.get("code") is not None:
                return f"{ident['authority']}:{ident['code']}"
            return crs.get("name")
        return None

    def iter_rows(self) -> Iterator[dict[str, Any]]:
        """Yield each row as a column-name to Python-value dictionary.

        Raises:
            DecodeError: MALFORMED when a row group cannot be decoded.
        """
        try:
            for batch in self._file.iter_batches(batch_size=self.batch_size):
                yield from batch.to_pylist()
        except (pa.ArrowException, OSError) as exc:
            raise _malformed(f"unreadable Parquet row group: {exc}") from exc


def iter_geojson_rows(data: bytes | str) -> Iterator[dict[str, Any]]:
    """Flatten a GeoJSON document into extractor rows.

    Accepts a FeatureCollection, a single Feature, or a bare geometry.

    Args:
        data: GeoJSON text or UTF-8 bytes.

    Yields:
        Rows of the form {**properties, "geometry": geometry_mapping}.

    Raises:
        DecodeError: MALFORMED for invalid JSON or a document that is not
            GeoJSON.
    """
    try:
        doc = json.loads(data)
    except json.JSONDecodeError as exc:
        raise _malformed(f"invalid JSON: {exc.msg}", exc.pos) from exc
    except UnicodeDecodeError as exc:
        raise _malformed("GeoJSON is not UTF-8", exc.start) from exc

    if not isinstance(doc, dict):
        raise _malformed("GeoJSON root must be an object")

    kind = doc.get("type")
    if kind == "FeatureCollection":
        features = doc.get("features")
        if features is None:
            features = []
        elif not isinstance(features, list):
            raise _malformed("FeatureCollection 'features' must be an array")
    elif kind == "Feature":
        features = [doc]
    elif kind:
        features = [{"type": "Feature", "geometry": doc, "properties": {}}]
    else:
        raise _malformed("GeoJSON object has no type")

    for index, feature in enumerate(features):
        if not isinstance(feature, dict):
            raise _malformed(f"feature {index} is not an object")
        properties = feature.get("properties")
        if properties is None:
            properties = {}
        elif not isinstance(properties, dict):
            raise _malformed(f"feature {index} properties is not an object")
        yield {**properties, "geometry": feature.get("geometry")}
