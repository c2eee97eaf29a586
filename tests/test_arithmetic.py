"""Tests for arithmetic helpers (dsar/utils/arithmetic.py)."""

from dsar.utils.arithmetic import safe_divide


class TestSafeDivide:
    """Test the zero-guarded divide used for all ratios."""

    def test_regular_division(self):
        assert safe_divide(1.0, 4.0) == 0.25

    def test_zero_denominator(self):
        assert safe_divide(5.0, 0.0) == 0.0

    def test_non_finite_result(self):
        assert safe_divide(float("inf"), 2.0) == 0.0
        assert safe_divide(float("nan"), 2.0) == 0.0
