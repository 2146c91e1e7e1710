"""
Tests for quantity clamping.
"""
import pytest

from cartsync.stock_guard import clamp


class TestClamp:

    @pytest.mark.parametrize(
        "requested, stock, expected",
        [
            (1, 5, 1),
            (5, 5, 5),
            (6, 5, 5),
            (0, 5, 0),
            (-3, 5, 0),
            (4, 0, 0),
        ],
    )
    def test_clamp_into_zero_and_stock(self, requested, stock, expected):
        assert clamp(requested, stock) == expected

    def test_zero_signals_deletion_when_stock_is_gone(self):
        """A line whose stock dropped to zero clamps to 0 and must be removed"""
        assert clamp(3, 0) == 0
