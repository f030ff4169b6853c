"""Round-robin selection over configured camera endpoints."""

from __future__ import annotations

from typing import List, Sequence, Tuple

from .errors import ConfigError


class SourceRotator:
    """Cycle through camera URLs one call at a time.

    ``next()`` advances the cursor on every call, whether or not the caller
    later succeeds with the returned source. ``get()`` is a separate lookup
    path for callers that always want a specific camera (status screenshots)
    and never moves the cursor.
    """

    def __init__(self, sources: Sequence[str]):
        if not sources:
            raise ConfigError("At least one image source is required")
        self._sources: List[str] = list(sources)
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._sources)

    @property
    def sources(self) -> List[str]:
        return list(self._sources)

    @property
    def current_index(self) -> int:
        """Index the next ``next()`` call will return."""
        return self._cursor

    def next(self) -> Tuple[int, str]:
        index = self._cursor
        self._cursor = (self._cursor + 1) % len(self._sources)
        return index, self._sources[index]

    def get(self, index: int) -> str:
        if not 0 <= index < len(self._sources):
            raise IndexError(
                f"Source index {index} out of range for {len(self._sources)} source(s)"
            )
        return self._sources[index]

    def reset(self) -> None:
        self._cursor = 0


__all__ = ["SourceRotator"]
