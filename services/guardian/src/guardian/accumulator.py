"""Failure evidence counter driving the pause decision."""

from __future__ import annotations


class FailureAccumulator:
    """Count significant detections across frames.

    The count goes up once per significant detection, not once per frame, and
    only drops back to zero on an explicit ``reset()`` (successful pause or a
    printer state change). A failed pause leaves it untouched so the next
    frame re-evaluates the same exceeded condition.
    """

    def __init__(self, count: int = 0):
        if count < 0:
            raise ValueError("Failure count cannot be negative")
        self._count = count

    @property
    def count(self) -> int:
        return self._count

    def record(self, detections: int = 1) -> int:
        if detections < 0:
            raise ValueError("Cannot record a negative number of detections")
        self._count += detections
        return self._count

    def exceeds(self, threshold: int) -> bool:
        return self._count > threshold

    def reset(self) -> None:
        self._count = 0

    def __repr__(self) -> str:
        return f"FailureAccumulator(count={self._count})"


__all__ = ["FailureAccumulator"]
