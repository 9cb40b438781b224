"""Performance monitoring utilities."""

import logging
import time
from collections.abc import Iterator, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageTimer:
    """Context manager for timing one import stage.

    Example:
        with StageTimer("resolve drawings") as timer:
            lookup = await resolve_drawings(...)
        print(timer.duration_ms)
    """

    def __init__(self, operation_name: str, threshold_ms: float = 2000):
        self.operation_name = operation_name
        self.threshold_ms = threshold_ms
        self.start_time = None
        self.duration_ms = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is not None:
            logger.debug(f"{self.operation_name} aborted after {self.duration_ms:.2f}ms")
        elif self.duration_ms > self.threshold_ms:
            logger.warning(f"Slow stage: {self.operation_name} took {self.duration_ms:.2f}ms")
        else:
            logger.debug(f"{self.operation_name} completed in {self.duration_ms:.2f}ms")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]
