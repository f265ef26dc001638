"""Cooperative cancellation for long-running preview decodes.

A preview session owns one CancellationToken. The decoders poll it between
row batches and between band reads, so an abandoned preview stops at the
next checkpoint instead of being killed.
"""

from __future__ import annotations

import threading

from geopreview.domain import errors


class CancellationToken:
    """Thread-safe flag set by the caller and polled by the decoders."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        """Raise PreviewCancelledError if cancel() was called.

        Args:
            where: Checkpoint description included in the error message.
        """
        if self._event.is_set():
            suffix = f" before {where}" if where else ""
            raise errors.PreviewCancelledError(f"Preview cancelled{suffix}")
