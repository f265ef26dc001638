"""Error taxonomy for preview decoding.

Hard errors derive from PreviewError and abort the current decode. Each one
carries the location where it was detected: the byte offset for WKB decoding,
the band index for raster reads. Soft errors are never raised; they are
recorded in a PartialResult attached to an otherwise usable output.

Example:
    Surface a decode failure with its offset:
        >>> from geopreview.domain import errors
        >>> from geopreview.services import wkb

        >>> try:
        ...     wkb.decode_wkb(b"\\x01\\x02\\x00\\x00\\x00")
        ... except errors.DecodeError as e:
        ...     print(e.kind, e.offset)
        DecodeErrorKind.TRUNCATED 5
"""

from __future__ import annotations

import dataclasses
import enum


class DecodeErrorKind(enum.Enum):
    TRUNCATED = "truncated"
    UNSUPPORTED_TYPE = "unsupported_type"
    TOO_DEEP = "too_deep"
    MALFORMED = "malformed"


class RasterErrorKind(enum.Enum):
    DECODE_FAILED = "decode_failed"
    INVALID_BAND = "invalid_band"


class PreviewError(Exception):
    """Base class for every hard failure raised by the preview core."""


class DecodeError(PreviewError):
    """Raised when a WKB buffer cannot be decoded.

    Attributes:
        kind: What went wrong (truncated buffer, unknown type code, nesting
            past the depth cap, or malformed framing).
        offset: Byte offset inside the buffer where the problem was detected.
    """

    def __init__(
        self,
        kind: DecodeErrorKind,
        offset: int,
        message: str | None = None,
    ) -> None:
        self.kind = kind
        self.offset = offset
        detail = f": {message}" if message else ""
        super().__init__(f"WKB {kind.value} at byte {offset}{detail}")


class RasterError(PreviewError):
    """Raised when raster bands cannot be read.

    Attributes:
        kind: DECODE_FAILED for corrupt or unreadable content, INVALID_BAND
            for a band index outside the dataset.
        band: Zero-based band index involved, or None when the failure is
            not tied to a band (e.g. the container could not be opened).
    """

    def __init__(
        self,
        kind: RasterErrorKind,
        band: int | None = None,
        message: str | None = None,
    ) -> None:
        self.kind = kind
        self.band = band
        where = f" (band {band})" if band is not None else ""
        detail = f": {message}" if message else ""
        super().__init__(f"Raster {kind.value}{where}{detail}")


class EmptyResultError(PreviewError):
    """Raised when a decode produced nothing usable."""


class UnsupportedPreviewError(PreviewError):
    """Raised for formats or preview types the core does not decode."""


class PreviewCancelledError(PreviewError):
    """Raised when a session notices its cancellation token was set."""


@dataclasses.dataclass
class PartialResult:
    """Soft-failure record carried alongside a usable result.

    Attributes:
        dropped_rows: Rows whose geometry could not be decoded.
        dropped_bands: Bands read or present but not composed.
    """

    dropped_rows: int = 0
    dropped_bands: int = 0

    @property
    def is_partial(self) -> bool:
        return self.dropped_rows > 0 or self.dropped_bands > 0
