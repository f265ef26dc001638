"""Running bounding-box union shared by the vector and raster paths.

The accumulator starts empty and only ever widens. Vector extraction feeds it
every decoded position; the raster path feeds it the dataset footprint. The
resulting box is format-agnostic, so viewport-fit logic downstream does not
care where it came from.

Example:
    Accumulate points and boxes:
        >>> from geopreview.domain import models
        >>> from geopreview.utils import bounds

        >>> acc = bounds.BoundsAccumulator()
        >>> acc.is_empty()
        True
        >>> acc.accumulate((1.0, 2.0))
        >>> acc.accumulate(models.BoundingBox(-1.0, 0.0, 0.5, 5.0))
        >>> acc.to_box()
        BoundingBox(min_x=-1.0, min_y=0.0, max_x=1.0, max_y=5.0)
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from geopreview.domain import models

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class BoundsAccumulator:
    """Mutable (min_x, min_y, max_x, max_y) that only widens."""

    def __init__(self) -> None:
        self.min_x: float | None = None
        self.min_y: float | None = None
        self.max_x: float | None = None
        self.max_y: float | None = None

    def is_empty(self) -> bool:
        return self.min_x is None

    def accumulate(
        self, item: models.BoundingBox | Sequence[float] | None
    ) -> None:
        """Widen by a position (x, y, ...) or by another bounding box.

        Args:
            item: A BoundingBox, a position whose first two components are
                X and Y, or None (ignored).
        """
        if item is None:
            return
        if isinstance(item, models.BoundingBox):
            self.accumulate_box(item)
        else:
            self.accumulate_point(item[0], item[1])

    def accumulate_point(self, x: float, y: float) -> None:
        # NaN marks an empty WKB point; it carries no extent.
        if math.isnan(x) or math.isnan(y):
            return
        if self.min_x is None:
            self.min_x = self.max_x = x
            self.min_y = self.max_y = y
            return
        self.min_x = min(self.min_x, x)
        self.min_y = min(self.min_y, y)  # type: ignore[type-var]
        self.max_x = max(self.max_x, x)  # type: ignore[type-var]
        self.max_y = max(self.max_y, y)  # type: ignore[type-var]

    def accumulate_box(self, box: models.BoundingBox | None) -> None:
        if box is None:
            return
        self.accumulate_point(box.min_x, box.min_y)
        self.accumulate_point(box.max_x, box.max_y)

    def accumulate_positions(
        self, positions: Iterable[Sequence[float]]
    ) -> None:
        for position in positions:
            self.accumulate_point(position[0], position[1])

    def accumulate_geometry(self, geometry: Any) -> None:
        """Widen by every position of a decoded geometry (None is ignored)."""
        if geometry is None:
            return
        self.accumulate_positions(geometry.iter_positions())

    def to_box(self) -> models.BoundingBox | None:
        """Return the accumulated box, or None while still empty."""
        if self.min_x is None:
            return None
        return models.BoundingBox(
            self.min_x,
            self.min_y,  # type: ignore[arg-type]
            self.max_x,  # type: ignore[arg-type]
            self.max_y,  # type: ignore[arg-type]
        )
