"""Preview API endpoints for vector, tabular and raster uploads.

Each endpoint accepts one multipart file upload, decodes it in a fresh
PreviewSession and returns a JSON body the map client can draw directly:

    - /api/preview/vector: GeoJSON FeatureCollection plus bbox and the
      number of rows dropped for undecodable geometry.
    - /api/preview/attributes: one page of the attribute table.
    - /api/preview/raster: a base64 PNG (rendered with rio-tiler), the four
      draping corners, and for DEM previews the vertical exaggeration.

Decoding runs in the threadpool. While it runs the endpoint polls the
connection; if the client goes away the session is cancelled and the decode
stops at its next checkpoint.

Hard failures map to HTTP statuses: 422 for content that cannot be decoded
or previewed, 413 for oversized uploads and 499 when the client went away.

Example:
    Preview a GeoParquet file:
        >>> response = client.post(
        ...     "/api/preview/vector",
        ...     files={"file": ("roads.parquet", parquet_bytes)},
        ...     data={"format": "geoparquet"},
        ... )
        >>> response.json()["droppedRows"]
        0

    Preview an elevation model with 2x exaggeration:
        >>> response = client.post(
        ...     "/api/preview/raster",
        ...     params={"mode": "dem", "exaggeration": 2.0},
        ...     files={"file": ("dem.tif", tif_bytes)},
        ... )
        >>> response.json()["verticalExaggeration"]
        2.0
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from typing import TYPE_CHECKING, Any

import fastapi
import numpy as np
from fastapi import concurrency
from rio_tiler import utils as rio_tiler_utils

from geopreview.core import config
from geopreview.domain import errors
from geopreview.domain import models
from geopreview.services import preview

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/preview", tags=["preview"])

CHUNK_SIZE = 1024 * 1024
CLIENT_CLOSED_REQUEST = 499

_VECTOR_FORMATS = ("geoparquet", "geojson")
_TABLE_FORMATS = ("geoparquet", "parquet", "geojson")
_RASTER_FORMATS = ("geotiff", "cog")


def _read_upload(file: fastapi.UploadFile, max_size: int) -> bytes:
    """Read an upload into memory with size validation.

    Args:
        file: FastAPI UploadFile object containing the file data.
        max_size: Maximum allowed file size in bytes.

    Returns:
        The uploaded bytes.

    Raises:
        HTTPException: If the file exceeds the maximum size limit.
    """
    buffer = io.BytesIO()
    size = 0
    for chunk in iter(lambda: file.file.read(CHUNK_SIZE), b""):
        size += len(chunk)
        if size > max_size:
            raise fastapi.HTTPException(
                status_code=413,
                detail="Upload too large",
            )

        buffer.write(chunk)

    return buffer.getvalue()


def _metadata(
    fmt: str, allowed: tuple[str, ...], file: fastapi.UploadFile
) -> models.PreviewMetadata:
    fmt = fmt.lower()
    if fmt not in allowed:
        raise fastapi.HTTPException(
            status_code=422,
            detail=f"Unsupported format {fmt!r}; expected one of {list(allowed)}",
        )
    return models.PreviewMetadata(format=fmt, source_handle=file.filename)


def _error_detail(exc: Exception) -> dict[str, Any]:
    detail: dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, errors.DecodeError):
        detail["kind"] = exc.kind.value
        detail["offset"] = exc.offset
    elif isinstance(exc, errors.RasterError):
        detail["kind"] = exc.kind.value
        detail["band"] = exc.band
    return detail


async def _run_session(
    request: fastapi.Request,
    session: preview.PreviewSession,
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Run a session call in the threadpool, cancelling on disconnect.

    Raises:
        HTTPException: 499 if the client disconnected, 422 for any preview
            failure or invalid display parameter.
    """
    task = asyncio.ensure_future(
        concurrency.run_in_threadpool(func, *args, **kwargs)
    )
    poll = session.settings.disconnect_poll_seconds
    try:
        while not task.done():
            await asyncio.wait({task}, timeout=poll)
            if not task.done() and not session.cancelled:
                if await request.is_disconnected():
                    logger.info(
                        "Client disconnected, cancelling preview of %s",
                        session.metadata.source_handle,
                    )
                    session.cancel()
        return task.result()
    except errors.PreviewCancelledError as exc:
        raise fastapi.HTTPException(
            status_code=CLIENT_CLOSED_REQUEST, detail=str(exc)
        ) from exc
    except (errors.PreviewError, ValueError) as exc:
        logger.warning(
            "Preview of %s failed: %s", session.metadata.source_handle, exc
        )
        raise fastapi.HTTPException(
            status_code=422, detail=_error_detail(exc)
        ) from exc


def _render_png(pixels: np.ndarray) -> bytes:
    """Encode (rows, cols, 4) RGBA pixels as PNG, alpha taken as the mask."""
    rgb = np.ascontiguousarray(np.moveaxis(pixels[..., :3], -1, 0))
    return rio_tiler_utils.render(rgb, mask=pixels[..., 3], img_format="PNG")


@router.post("/vector")
async def preview_vector(
    request: fastapi.Request,
    file: fastapi.UploadFile,
    fmt: str = fastapi.Form("geoparquet", alias="format"),
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Decode a GeoParquet or GeoJSON upload into a FeatureCollection.

    Args:
        request: Incoming request, polled for client disconnects.
        file: Uploaded file from multipart form data.
        fmt: Form field "format": "geoparquet" or "geojson".
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        GeoJSON FeatureCollection with extra "bbox" ([min_x, min_y, max_x,
        max_y] or null), "crs" and "droppedRows" members.

    Raises:
        HTTPException: 413 for oversized uploads, 422 when nothing can be
            decoded, 499 when the client went away.
    """
    metadata = _metadata(fmt, _VECTOR_FORMATS, file)
    data = _read_upload(file, settings.max_upload_size_bytes)
    session = preview.PreviewSession(metadata, settings)
    result = await _run_session(request, session, session.preview_vector, data)
    body = result.to_dict()
    body["crs"] = result.crs
    return body


@router.post("/attributes")
async def preview_attributes(
    request: fastapi.Request,
    file: fastapi.UploadFile,
    fmt: str = fastapi.Form("parquet", alias="format"),
    limit: int | None = fastapi.Query(None, ge=1),
    offset: int = fastapi.Query(0, ge=0),
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Return one page of the attribute table of a tabular upload.

    The page size defaults to the configured table_default_limit and is
    capped at table_max_limit.
    """
    metadata = _metadata(fmt, _TABLE_FORMATS, file)
    data = _read_upload(file, settings.max_upload_size_bytes)
    session = preview.PreviewSession(metadata, settings)
    result = await _run_session(
        request, session, session.preview_table, data, limit=limit, offset=offset
    )
    return result.to_dict()


@router.post("/raster")
async def preview_raster(
    request: fastapi.Request,
    file: fastapi.UploadFile,
    mode: preview.RasterMode = preview.RasterMode.STRETCH,
    exaggeration: float | None = fastapi.Query(None, gt=0),
    fmt: str = fastapi.Form("geotiff", alias="format"),
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Render a GeoTIFF/COG upload into a drapeable PNG.

    Args:
        request: Incoming request, polled for client disconnects.
        file: Uploaded file from multipart form data.
        mode: "stretch" (per-band stretch), "natural_color" (shared scale
            across RGB) or "dem" (elevation ramp, single-band only).
        exaggeration: DEM vertical exaggeration (> 0); defaults to the
            configured value.
        fmt: Form field "format": "geotiff" or "cog".
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        Dictionary with width, height, crs, coordinates (top-left,
        top-right, bottom-right, bottom-left), image (base64 PNG) and
        droppedBands; DEM previews add verticalExaggeration and
        elevationRange.

    Raises:
        HTTPException: 413 for oversized uploads, 422 for unreadable
            rasters or a DEM request on a multi-band raster, 499 when the
            client went away.
    """
    metadata = _metadata(fmt, _RASTER_FORMATS, file)
    data = _read_upload(file, settings.max_upload_size_bytes)
    session = preview.PreviewSession(metadata, settings)
    if mode is preview.RasterMode.DEM:
        result = await _run_session(
            request, session, session.preview_dem, data, exaggeration
        )
    else:
        result = await _run_session(
            request, session, session.preview_raster, data, mode
        )

    png = await concurrency.run_in_threadpool(_render_png, result.pixels)
    body: dict[str, Any] = {
        "width": result.width,
        "height": result.height,
        "crs": result.crs,
        "coordinates": [list(corner) for corner in result.corners],
        "image": base64.b64encode(png).decode("ascii"),
        "droppedBands": result.partial.dropped_bands,
    }
    if result.is_dem:
        body["verticalExaggeration"] = result.vertical_exaggeration
        body["elevationRange"] = list(result.elevation_range)
    return body
