"""Progress reporting and cooperative cancellation helpers."""

from __future__ import annotations

import asyncio
from typing import Callable

from .errors import OperationCancelledError

# callback(percent in 0..100, stage description)
ProgressCallback = Callable[[int, str], None]


def scale_progress(
    callback: ProgressCallback | None, start: int, end: int
) -> ProgressCallback | None:
    """Map a 0..100 callback onto the ``start..end`` slice of another one.

    Example:
        >>> hashing = scale_progress(on_progress, 0, 20)
        >>> hashing(50, "Hashing")  # reported as 10
    """
    if callback is None:
        return None

    def _scaled(percent: int, stage: str) -> None:
        callback(round(start + (end - start) * percent / 100), stage)

    return _scaled


def raise_if_cancelled(cancel_event: asyncio.Event | None, what: str = "Operation") -> None:
    """Raise OperationCancelledError when the cancel signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"{what} cancelled")
