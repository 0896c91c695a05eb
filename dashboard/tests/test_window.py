"""
Unit tests for the sliding sensor window.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-108)

TODO:
- None
"""

import pytest

from dashboard.src.window import SlidingWindow


class TestSlidingWindow:
    """Fixed-capacity, oldest-evicted buffer."""

    def test_keeps_last_capacity_values(self) -> None:
        """150 pushes into a 120-slot window leave the last 120, oldest first."""
        window = SlidingWindow(120)
        for value in range(150):
            window.append(value)

        assert len(window) == 120
        assert window.values() == list(range(30, 150))

    def test_under_capacity(self) -> None:
        window = SlidingWindow(3)
        window.append(1.5)
        window.append(2.5)

        assert window.values() == [1.5, 2.5]
        assert list(window) == [1.5, 2.5]

    def test_clear(self) -> None:
        window = SlidingWindow(3)
        window.append(1)
        window.clear()

        assert window.values() == []
        assert window.capacity == 3

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity: int) -> None:
        with pytest.raises(ValueError):
            SlidingWindow(capacity)
