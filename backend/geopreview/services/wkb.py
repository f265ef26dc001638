"""Well-Known Binary geometry decoder.

This module decodes WKB (and PostGIS EWKB) buffers into tagged Geometry
objects without any native geometry library. Coordinates are copied exactly
as stored, in stored axis order; nothing is reprojected, even when an SRID is
present.

Layout handled:
    - byte 0: byte order (0 = big endian, 1 = little endian)
    - 4 bytes: type code. EWKB flags 0x80000000 (Z), 0x40000000 (M) and
      0x20000000 (SRID) are honoured, as are ISO codes 1001-3007.
    - 4 bytes SRID when the SRID flag is set
    - type-specific body; Multi* and GeometryCollection members are complete
      WKB geometries of their own, decoded recursively.

Recursion is capped (64 levels by default) so hostile nesting cannot exhaust
the stack. Every failure raises DecodeError carrying the byte offset where it
was detected; a buffer is never partially decoded.

Example:
    Decode a little-endian point:
        >>> from geopreview.services import wkb
        >>> geom = wkb.decode_wkb(
        ...     bytes.fromhex("0101000000000000000000f03f0000000000000040")
        ... )
        >>> geom.type.value, geom.coordinates
        ('Point', (1.0, 2.0))

    Hex and base64 text are accepted as well:
        >>> wkb.decode_wkb("0101000000000000000000f03f0000000000000040")
        Geometry(type=<GeometryType.POINT: 'Point'>, coordinates=(1.0, 2.0), ...)

    Empty input means "no geometry", not an error:
        >>> wkb.decode_wkb(None) is None
        True
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import struct
from typing import Any

import numpy as np

from geopreview.domain import errors
from geopreview.domain import models

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64

Z_FLAG = 0x80000000
M_FLAG = 0x40000000
SRID_FLAG = 0x20000000
_FLAG_MASK = Z_FLAG | M_FLAG | SRID_FLAG

TYPE_CODES = {
    1: models.GeometryType.POINT,
    2: models.GeometryType.LINESTRING,
    3: models.GeometryType.POLYGON,
    4: models.GeometryType.MULTIPOINT,
    5: models.GeometryType.MULTILINESTRING,
    6: models.GeometryType.MULTIPOLYGON,
    7: models.GeometryType.GEOMETRYCOLLECTION,
}

_MEMBER_TYPES = {
    models.GeometryType.MULTIPOINT: models.GeometryType.POINT,
    models.GeometryType.MULTILINESTRING: models.GeometryType.LINESTRING,
    models.GeometryType.MULTIPOLYGON: models.GeometryType.POLYGON,
}

_HEX_RE = re.compile(r"[0-9a-fA-F]*")

# Smallest possible encoded member: byte order + type code.
_MIN_MEMBER_SIZE = 5

Position = tuple[float, ...]


class _Header:
    __slots__ = ("endian", "geom_type", "has_m", "has_z", "srid", "start")

    def __init__(
        self,
        start: int,
        endian: str,
        geom_type: models.GeometryType,
        has_z: bool,
        has_m: bool,
        srid: int | None,
    ) -> None:
        self.start = start
        self.endian = endian
        self.geom_type = geom_type
        self.has_z = has_z
        self.has_m = has_m
        self.srid = srid

    @property
    def dimension(self) -> int:
        return 2 + int(self.has_z) + int(self.has_m)


class _WKBReader:
    """Cursor over one WKB buffer."""

    def __init__(self, buf: memoryview, max_depth: int) -> None:
        self._buf = buf
        self._max_depth = max_depth
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._buf) - self.offset

    def _require(self, size: int) -> None:
        if size > self.remaining:
            raise errors.DecodeError(
                errors.DecodeErrorKind.TRUNCATED,
                self.offset,
                f"need {size} bytes, {self.remaining} left",
            )

    def _uint32(self, endian: str) -> int:
        self._require(4)
        (value,) = struct.unpack_from(endian + "I", self._buf, self.offset)
        self.offset += 4
        return int(value)

    def _count(self, endian: str, min_item_size: int) -> int:
        """Read a count and check the items can fit before allocating."""
        at = self.offset
        count = self._uint32(endian)
        if count * min_item_size > self.remaining:
            raise errors.DecodeError(
                errors.DecodeErrorKind.TRUNCATED,
                at,
                f"count {count} needs at least {count * min_item_size} "
                f"bytes, {self.remaining} left",
            )
        return count

    def _positions(
        self, count: int, dim: int, endian: str
    ) -> tuple[Position, ...]:
        if count == 0:
            return ()
        size = count * dim * 8
        self._require(size)
        values = np.frombuffer(
            self._buf,
            dtype=np.dtype(endian + "f8"),
            count=count * dim,
            offset=self.offset,
        )
        self.offset += size
        return tuple(tuple(p) for p in values.reshape(count, dim).tolist())

    def _header(self) -> _Header:
        start = self.offset
        self._require(1)
        order = self._buf[self.offset]
        if order not in (0, 1):
            raise errors.DecodeError(
                errors.DecodeErrorKind.MALFORMED,
                start,
                f"invalid byte order marker {order}",
            )
        self.offset += 1
        endian = "<" if order == 1 else ">"

        code_at = self.offset
        code = self._uint32(endian)
        has_z = bool(code & Z_FLAG)
        has_m = bool(code & M_FLAG)
        base = code & ~_FLAG_MASK & 0xFFFFFFFF
        if base >= 1000:
            iso, base = divmod(base, 1000)
            if iso > 3:
                raise errors.DecodeError(
                    errors.DecodeErrorKind.UNSUPPORTED_TYPE,
                    code_at,
                    f"type code {code:#x}",
                )
            has_z = has_z or iso in (1, 3)
            has_m = has_m or iso in (2, 3)

        geom_type = TYPE_CODES.get(base)
        if geom_type is None:
            raise errors.DecodeError(
                errors.DecodeErrorKind.UNSUPPORTED_TYPE,
                code_at,
                f"type code {code:#x}",
            )

        srid = self._uint32(endian) if code & SRID_FLAG else None
        return _Header(start, endian, geom_type, has_z, has_m, srid)

    def read_geometry(self, depth: int = 1) -> models.Geometry:
        if depth > self._max_depth:
            raise errors.DecodeError(
                errors.DecodeErrorKind.TOO_DEEP,
                self.offset,
                f"nesting exceeds {self._max_depth} levels",
            )
        header = self._header()
        dim = header.dimension
        endian = header.endian
        geom_type = header.geom_type
        coordinates: Any = None
        members: tuple[models.Geometry, ...] = ()

        if geom_type is models.GeometryType.POINT:
            (coordinates,) = self._positions(1, dim, endian)
        elif geom_type is models.GeometryType.LINESTRING:
            count = self._count(endian, dim * 8)
            coordinates = self._positions(count, dim, endian)
        elif geom_type is models.GeometryType.POLYGON:
            coordinates = self._rings(dim, endian)
        elif geom_type in _MEMBER_TYPES:
            coordinates = self._members(header, depth)
        else:
            count = self._count(endian, _MIN_MEMBER_SIZE)
            members = tuple(
                self.read_geometry(depth + 1) for _ in range(count)
            )

        return models.Geometry(
            type=geom_type,
            coordinates=coordinates,
            geometries=members,
            has_z=header.has_z,
            has_m=header.has_m,
            srid=header.srid,
        )

    def _rings(self, dim: int, endian: str) -> tuple[tuple[Position, ...], ...]:
        ring_count = self._count(endian, 4)
        rings = []
        for _ in range(ring_count):
            count = self._count(endian, dim * 8)
            rings.append(self._positions(count, dim, endian))
        return tuple(rings)

    def _members(self, header: _Header, depth: int) -> tuple[Any, ...]:
        expected = _MEMBER_TYPES[header.geom_type]
        count = self._count(header.endian, _MIN_MEMBER_SIZE)
        parts = []
        for _ in range(count):
            at = self.offset
            member = self.read_geometry(depth + 1)
            if member.type is not expected:
                raise errors.DecodeError(
                    errors.DecodeErrorKind.UNSUPPORTED_TYPE,
                    at,
                    f"{member.type.value} inside {header.geom_type.value}",
                )
            if member.dimension != header.dimension:
                raise errors.DecodeError(
                    errors.DecodeErrorKind.MALFORMED,
                    at,
                    f"member has {member.dimension} dimensions, "
                    f"parent has {header.dimension}",
                )
            parts.append(member.coordinates)
        return tuple(parts)


def _to_buffer(data: Any) -> memoryview | None:
    """Normalize raw bytes or hex/base64 text into a byte view."""
    if data is None:
        return None
    if isinstance(data, str):
        text = data.strip()
        if text[:2].lower() == "0x":
            text = text[2:]
        if not text:
            return None
        if len(text) % 2 == 0 and _HEX_RE.fullmatch(text):
            return memoryview(bytes.fromhex(text))
        try:
            return memoryview(base64.b64decode(text, validate=True))
        except (binascii.Error, ValueError) as exc:
            raise errors.DecodeError(
                errors.DecodeErrorKind.MALFORMED,
                0,
                "text is neither hex nor base64",
            ) from exc
    try:
        view = memoryview(data)
    except TypeError as exc:
        raise errors.DecodeError(
            errors.DecodeErrorKind.MALFORMED,
            0,
            f"geometry value of type {type(data).__name__} is not WKB",
        ) from exc
    if view.format != "B" or view.ndim != 1:
        view = view.cast("B")
    return view


def decode_wkb(
    data: bytes | bytearray | memoryview | str | None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> models.Geometry | None:
    """Decode one WKB/EWKB geometry.

    Args:
        data: Raw WKB bytes, or the same encoded as hex or base64 text.
        max_depth: Maximum nesting of Multi*/GeometryCollection members,
            counting the top-level geometry as level 1.

    Returns:
        The decoded geometry, or None for None/empty input.

    Raises:
        DecodeError: TRUNCATED when the buffer ends early,
            UNSUPPORTED_TYPE for unknown type codes or mismatched Multi*
            members, TOO_DEEP when nesting exceeds max_depth, MALFORMED for
            a bad byte order marker or undecodable text.
    """
    buf = _to_buffer(data)
    if buf is None or len(buf) == 0:
        return None
    reader = _WKBReader(buf, max_depth)
    geometry = reader.read_geometry()
    if reader.remaining:
        logger.debug(
            "Ignoring %d trailing bytes after %s",
            reader.remaining,
            geometry.type.value,
        )
    return geometry

