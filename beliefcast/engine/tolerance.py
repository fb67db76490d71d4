"""
Epsilon-tolerant comparisons.

Two scales are distinguished:
- value scale: utilities and expected values in [-1, 1]
- probability scale: cdf values and belief masses in [0, 1]

Every round-off guard in the engine goes through these helpers so the
horizon for each scale is defined exactly once.
"""

# ── Configuration ────────────────────────────────────────────────────────

VALUE_EPS: float = 1.0e-5        # Value-scale horizon (sorting, degeneracy, Dirac points)
PROBABILITY_EPS: float = 1.0e-6  # Probability-scale horizon (cdf snapping, search tolerance)


def approx_equal(a: float, b: float, eps: float = VALUE_EPS) -> bool:
    """|a - b| within eps."""
    return abs(a - b) <= eps


def approx_less(a: float, b: float, eps: float = VALUE_EPS) -> bool:
    """a is below b by more than eps."""
    return a < b - eps


def approx_greater(a: float, b: float, eps: float = VALUE_EPS) -> bool:
    """a is above b by more than eps."""
    return a > b + eps


def is_degenerate(lower: float, upper: float, eps: float = VALUE_EPS) -> bool:
    """An interval narrower than eps is treated as a single point."""
    return upper - lower < eps


def clamp(value: float, lower: float, upper: float) -> float:
    return max(min(value, upper), lower)


def tolerant_order(values: dict[int, float], eps: float = VALUE_EPS) -> list[int]:
    """
    Keys ordered by descending value; differences within eps keep input order.

    Adjacent-swap sort: a pair is swapped only when the later value exceeds
    the earlier by more than eps, so every swap removes one such inversion
    and the loop terminates.
    """
    order = list(values)
    done = False
    while not done:
        done = True
        for i in range(len(order) - 1):
            if values[order[i]] < values[order[i + 1]] - eps:
                order[i], order[i + 1] = order[i + 1], order[i]
                done = False
    return order
