"""Arithmetic helpers that never leak NaN or infinity."""

import math


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, resolving zero denominators and non-finite results to 0.0.

    Args:
        numerator: Dividend
        denominator: Divisor

    Returns:
        The quotient, or 0.0 when the divisor is zero or the result is NaN/inf
    """
    if denominator == 0:
        return 0.0
    result = numerator / denominator
    if not math.isfinite(result):
        return 0.0
    return result
