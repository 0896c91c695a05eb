"""
Fixed-capacity sliding window for sensor history.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-108)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

DEFAULT_CAPACITY = 120


class SlidingWindow:
    """Append-only buffer keeping the most recent *capacity* values.

    Appending to a full window evicts the oldest value.

    Args:
        capacity: Maximum number of values retained (>= 1).

    Raises:
        ValueError: If capacity is less than 1.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._values: deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen  # type: ignore[return-value]

    def append(self, value: float) -> None:
        self._values.append(value)

    def values(self) -> list[float]:
        """Return the retained values, oldest first."""
        return list(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float]:
        return iter(self._values)
