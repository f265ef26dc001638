"""Data models shared by the vector and raster preview paths.

This module defines the in-memory representations produced by the decoders
and handed to the rendering collaborator: tagged geometries, immutable
features, feature collections, raster bands, normalized rasters, bounding
boxes and the attribute table page. It also defines PreviewMetadata, the
record consumed from the metadata-resolution collaborator.

Geometries keep their coordinates exactly as stored, as nested tuples whose
depth depends on the geometry type. Each position has 2, 3 or 4 components
(X, Y[, Z][, M]) according to the decoded dimension flags.

Example:
    Build a point and serialize it to GeoJSON:
        >>> from geopreview.domain import models
        >>> point = models.Geometry(
        ...     type=models.GeometryType.POINT,
        ...     coordinates=(1.0, 2.0),
        ... )
        >>> point.to_geojson()
        {'type': 'Point', 'coordinates': [1.0, 2.0]}

    Parse metadata sent by the resolution service:
        >>> meta = models.PreviewMetadata.model_validate(
        ...     {"format": "cog", "previewType": "raster", "bandCount": 1}
        ... )
        >>> meta.is_dem_candidate
        True
"""

from __future__ import annotations

import dataclasses
import enum
import types
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
import pydantic
from pydantic import alias_generators

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping


class GeometryType(str, enum.Enum):
    POINT = "Point"
    LINESTRING = "LineString"
    POLYGON = "Polygon"
    MULTIPOINT = "MultiPoint"
    MULTILINESTRING = "MultiLineString"
    MULTIPOLYGON = "MultiPolygon"
    GEOMETRYCOLLECTION = "GeometryCollection"


# Nesting depth of the position arrays for each leaf type.
_POSITION_DEPTH = {
    GeometryType.POINT: 0,
    GeometryType.LINESTRING: 1,
    GeometryType.MULTIPOINT: 1,
    GeometryType.POLYGON: 2,
    GeometryType.MULTILINESTRING: 2,
    GeometryType.MULTIPOLYGON: 3,
}


class BoundingBox(NamedTuple):
    """Axis-aligned extent as (min_x, min_y, max_x, max_y)."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def corners(self) -> list[tuple[float, float]]:
        """Return the draping corners: top-left, top-right, bottom-right,
        bottom-left."""
        return [
            (self.min_x, self.max_y),
            (self.max_x, self.max_y),
            (self.max_x, self.min_y),
            (self.min_x, self.min_y),
        ]


@dataclasses.dataclass(frozen=True)
class Geometry:
    """Tagged geometry variant decoded from WKB or GeoJSON.

    Attributes:
        type: Geometry variant.
        coordinates: Nested tuples of positions for leaf variants, None for
            a GeometryCollection.
        geometries: Members of a GeometryCollection, empty otherwise.
        has_z: Whether positions carry a Z component.
        has_m: Whether positions carry an M component.
        srid: SRID recorded from EWKB, if present. Never used to reproject.
    """

    type: GeometryType
    coordinates: Any = None
    geometries: tuple[Geometry, ...] = ()
    has_z: bool = False
    has_m: bool = False
    srid: int | None = None

    @property
    def dimension(self) -> int:
        return 2 + int(self.has_z) + int(self.has_m)

    def iter_positions(self) -> Iterator[tuple[float, ...]]:
        """Yield every position of the geometry, depth first."""
        if self.type is GeometryType.GEOMETRYCOLLECTION:
            for member in self.geometries:
                yield from member.iter_positions()
            return
        yield from _walk_positions(
            self.coordinates, _POSITION_DEPTH[self.type]
        )

    def to_geojson(self) -> dict[str, Any]:
        """Serialize to a GeoJSON geometry mapping (lists, not tuples)."""
        if self.type is GeometryType.GEOMETRYCOLLECTION:
            return {
                "type": self.type.value,
                "geometries": [g.to_geojson() for g in self.geometries],
            }
        return {
            "type": self.type.value,
            "coordinates": _to_lists(self.coordinates),
        }

    @classmethod
    def from_geojson(cls, mapping: Mapping[str, Any]) -> Geometry:
        """Build a geometry from an already-decoded GeoJSON mapping.

        Args:
            mapping: GeoJSON geometry object.

        Returns:
            Geometry with the dimension inferred from the first position
            (3 components means Z, 4 means ZM).

        Raises:
            ValueError: If the type is unknown or positions are inconsistent.
        """
        try:
            geom_type = GeometryType(mapping.get("type"))
        except ValueError as exc:
            raise ValueError(
                f"Unknown GeoJSON geometry type: {mapping.get('type')!r}"
            ) from exc

        if geom_type is GeometryType.GEOMETRYCOLLECTION:
            members = tuple(
                cls.from_geojson(m) for m in mapping.get("geometries") or ()
            )
            return cls(type=geom_type, geometries=members)

        depth = _POSITION_DEPTH[geom_type]
        coordinates = _to_tuples(mapping.get("coordinates"), depth)
        dims = {len(p) for p in _walk_positions(coordinates, depth)}
        if len(dims) > 1 or dims - {2, 3, 4}:
            raise ValueError(
                f"Inconsistent position sizes in {geom_type.value}: {dims}"
            )
        dim = dims.pop() if dims else 2
        return cls(
            type=geom_type,
            coordinates=coordinates,
            has_z=dim >= 3,
            has_m=dim == 4,
        )


def _walk_positions(
    coordinates: Any, depth: int
) -> Iterator[tuple[float, ...]]:
    if depth == 0:
        yield coordinates
        return
    for item in coordinates:
        yield from _walk_positions(item, depth - 1)


def _to_lists(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_to_lists(v) for v in value]
    return value


def _to_tuples(value: Any, depth: int) -> Any:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Expected a coordinate array, got {value!r}")
    if depth == 0:
        return tuple(float(v) for v in value)
    return tuple(_to_tuples(v, depth - 1) for v in value)


@dataclasses.dataclass(frozen=True)
class Feature:
    """One decoded row: nullable geometry plus a read-only property map."""

    geometry: Geometry | None
    properties: Mapping[str, Any] = dataclasses.field(
        default_factory=lambda: types.MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if not isinstance(self.properties, types.MappingProxyType):
            object.__setattr__(
                self,
                "properties",
                types.MappingProxyType(dict(self.properties)),
            )

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": (
                self.geometry.to_geojson()
                if self.geometry is not None
                else None
            ),
            "properties": dict(self.properties),
        }


@dataclasses.dataclass
class FeatureCollection:
    """Ordered features produced by a single decode session."""

    features: list[Feature] = dataclasses.field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }


@dataclasses.dataclass
class RasterBand:
    """A single band read from a raster source.

    Attributes:
        index: Zero-based band index in the source dataset.
        data: 2-D sample buffer (rows, columns) in the source dtype.
        nodata: Declared nodata sentinel, or None.
    """

    index: int
    data: np.ndarray
    nodata: float | None = None

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])


@dataclasses.dataclass
class NormalizedBand:
    """Band stretched into 0..255.

    Attributes:
        values: uint8 buffer with the same shape as the source band.
        valid: True where the source sample was retained (not nodata/NaN).
        minimum: Lower end of the stretch.
        maximum: Upper end of the stretch.
        degenerate: True when every sample was excluded.
    """

    values: np.ndarray
    valid: np.ndarray
    minimum: float
    maximum: float
    degenerate: bool = False


@dataclasses.dataclass
class NormalizedRaster:
    bands: list[NormalizedBand]

    @property
    def ranges(self) -> list[tuple[float, float]]:
        return [(b.minimum, b.maximum) for b in self.bands]


@dataclasses.dataclass
class AttributeTable:
    """One page of the attribute table projection."""

    fields: list[str]
    rows: list[dict[str, Any]]
    total: int
    limit: int
    offset: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": self.fields,
            "rows": self.rows,
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "hasMore": self.has_more,
        }


class _CamelModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=alias_generators.to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PreviewBounds(_CamelModel):
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def to_box(self) -> BoundingBox:
        return BoundingBox(self.min_x, self.min_y, self.max_x, self.max_y)


_PREVIEW_TYPES = {
    "cog": "raster",
    "geotiff": "raster",
    "geoparquet": "vector",
    "geojson": "vector",
    "parquet": "table",
    "copc": "pointcloud",
    "pointcloud": "pointcloud",
    "qgisproject": "qgisproject",
}


class PreviewMetadata(_CamelModel):
    """Format record resolved upstream for one file.

    Attributes:
        format: Format tag ("cog", "geotiff", "geoparquet", "geojson",
            "parquet", ...).
        preview_type: Preview path tag ("raster", "vector", "table", ...).
        crs: CRS string, if known.
        bounds: Footprint, if known. Preferred over dataset bounds for
            draping.
        band_count: Number of raster bands, if known (1 = DEM candidate).
        source_handle: Opaque handle naming the source (key or URL).
    """

    format: str
    preview_type: str = "unknown"
    crs: str | None = None
    bounds: PreviewBounds | None = None
    band_count: int | None = None
    source_handle: str | None = None

    @pydantic.model_validator(mode="before")
    @classmethod
    def _infer_preview_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (
            data.get("previewType") or data.get("preview_type")
        ):
            fmt = str(data.get("format", "")).lower()
            data = {**data, "preview_type": _PREVIEW_TYPES.get(fmt, "unknown")}
        return data

    @property
    def is_dem_candidate(self) -> bool:
        return self.preview_type == "raster" and self.band_count == 1
