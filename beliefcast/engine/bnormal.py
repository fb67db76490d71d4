"""
B-normal Distribution Math.

Pure functions for the bounded skew-normal ("B-normal") family:
- Standard normal CDF (Abramowitz & Stegun 7.1.26)
- Inverse standard normal CDF (Abramowitz & Stegun 26.2.23)
- Owen's T-function (Abramowitz & Stegun ref. 26.22, Gauss quadrature)
- Skewed CDF and its numerical inverse
- Moderated delta for the method-of-moments fit

No state, no logging on the hot path. Every search loop carries an
explicit iteration cap and returns a documented fallback on exhaustion.
"""

import math

from beliefcast.engine.tolerance import PROBABILITY_EPS, VALUE_EPS, clamp

# ── Configuration (compatibility-critical constants) ─────────────────────

# Normal CDF rational approximation, |error| < 1.5e-7
_NCDF_A = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)
_NCDF_P: float = 0.3275911

# Inverse normal CDF rational approximation, |error| < 4.5e-4
_INV_C = (2.515517, 0.802853, 0.010328)
_INV_D = (1.432788, 0.189269, 0.001308)

# Owen's T: 5-point Gauss quadrature weights and abscissae
_OWEN_R = (0.1477621, 0.1346334, 0.1095432, 0.0747257, 0.0333357)
_OWEN_U = (0.0744372, 0.2166977, 0.3397048, 0.4325317, 0.4869533)
_OWEN_TP: float = 0.159155          # ~1/(2*pi) as used by the reference routine
OWEN_TINY: float = 1.0e-35          # |h| or |a| below this is treated as zero
OWEN_TAIL: float = 15.0             # |h| beyond this contributes nothing
_OWEN_ROOT_TARGET: float = 15.0     # Auxiliary root target for large a
_OWEN_ROOT_TOL: float = 1.0e-5      # Newton step tolerance
OWEN_MAX_NEWTON: int = 100          # Newton iteration cap

# Inverse skewed CDF search
INVERSE_MAX_LOOPS: int = 100        # Cap for both the outer and the bracketing loop
_INVERSE_BRACKET_STEP: float = 0.1  # Shift applied while the cdf argument is out of [0, 1]

# Skewness moderation
SKEW_PASS_LIMIT: float = 0.9        # Below: skewness used as is
SKEW_CLAMP_LIMIT: float = 2.0       # Above: skewness clamped
SKEW_CLAMPED: float = 0.955         # Clamp value (larger values blow up alpha)
DELTA_K: float = 1.13799131882385   # 2 * ((4 - pi) / 2) ** (2/3)


def sgn(x: float) -> float:
    """Sign with sgn(0) = +1."""
    return 1.0 if x >= 0.0 else -1.0


def normal_cdf(x: float) -> float:
    """CDF of N(0, 1)."""
    sign = -1.0 if x < 0 else 1.0
    x = abs(x) / math.sqrt(2.0)
    a1, a2, a3, a4, a5 = _NCDF_A
    t = 1.0 / (1.0 + _NCDF_P * x)
    y = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-x * x)
    return 0.5 * (1.0 + sign * y)


def _rational_tail(t: float) -> float:
    c0, c1, c2 = _INV_C
    d0, d1, d2 = _INV_D
    return t - ((c2 * t + c1) * t + c0) / (((d2 * t + d1) * t + d0) * t + 1.0)


def inverse_normal_cdf(p: float) -> float:
    """
    Inverse CDF of N(0, 1).

    Arguments outside (0, 1) return the out-of-range markers 0.0 (for
    p <= 0) and 1.0 (for p >= 1) instead of raising.
    """
    if p <= 0.0:
        return 0.0
    if p >= 1.0:
        return 1.0
    if p < 0.5:
        return -_rational_tail(math.sqrt(-2.0 * math.log(p)))
    return _rational_tail(math.sqrt(-2.0 * math.log(1.0 - p)))


def owens_t(h: float, a: float) -> float:
    """
    Owen's T-function T(h, a).

    Piecewise:
      |h| ~ 0      -> atan(a) / (2*pi)
      |h| > 15     -> 0 (tail)
      |a| ~ 0      -> 0
    otherwise a 5-point Gauss quadrature, preceded for large a by a
    bounded Newton refinement of the effective upper limit.
    """
    if abs(h) < OWEN_TINY:
        return _OWEN_TP * math.atan(a)
    if abs(h) > OWEN_TAIL:
        return 0.0
    if abs(a) < OWEN_TINY:
        return 0.0

    hs = -0.5 * h * h
    limit = a
    limit_sq = a * a

    if _OWEN_ROOT_TARGET <= math.log1p(limit_sq) - hs * limit_sq:
        x1 = 0.5 * a
        limit_sq = 0.25 * limit_sq
        for _ in range(OWEN_MAX_NEWTON):
            rt = limit_sq + 1.0
            limit = x1 + (hs * limit_sq + _OWEN_ROOT_TARGET - math.log(rt)) / (
                2.0 * x1 * (1.0 / rt - hs)
            )
            limit_sq = limit * limit
            if abs(limit - x1) < _OWEN_ROOT_TOL:
                break
            x1 = limit

    total = 0.0
    for r, u in zip(_OWEN_R, _OWEN_U):
        r1 = 1.0 + limit_sq * (0.5 + u) ** 2
        r2 = 1.0 + limit_sq * (0.5 - u) ** 2
        total += r * (math.exp(hs * r1) / r1 + math.exp(hs * r2) / r2)
    return total * limit * _OWEN_TP


def _inverse_skewed_standard(p: float, alpha: float) -> float:
    """
    Inverse of the standardised skewed CDF Phi(z) - 2 T(z, alpha).

    Fixed-point iteration on z = Phi^-1(p + 2 T(z, alpha)) with averaging
    of successive estimates. The bracketing budget is shared across the
    outer iterations. Falls back to the unskewed inverse on exhaustion.
    """
    new_val = 0.0
    loops = 0
    bracket_loops = 0
    while True:
        val = new_val
        while True:
            shifted = p + 2.0 * owens_t(val, alpha)
            if shifted < 0.0:
                val -= _INVERSE_BRACKET_STEP
            elif shifted > 1.0:
                val += _INVERSE_BRACKET_STEP
            bracket_loops += 1
            if 0.0 <= shifted <= 1.0 or bracket_loops >= INVERSE_MAX_LOOPS:
                break
        if bracket_loops >= INVERSE_MAX_LOOPS:
            return inverse_normal_cdf(p)
        new_val = inverse_normal_cdf(shifted)
        diff = new_val - val
        new_val = (new_val + val) / 2.0
        loops += 1
        if abs(diff) <= VALUE_EPS or loops >= INVERSE_MAX_LOOPS:
            break
    if loops < INVERSE_MAX_LOOPS:
        return new_val
    return inverse_normal_cdf(p)


def bn_cdf(value: float, location: float, scale2: float, alpha: float) -> float:
    """
    CDF of the B-normal distribution at value.

    Scale below epsilon is a point mass at location: 0 below, 1 above,
    0.5 at the point. Results within 1e-6 of 0 or 1 snap to the bound.
    """
    if scale2 < VALUE_EPS:
        if value < location - VALUE_EPS:
            return 0.0
        if value > location + VALUE_EPS:
            return 1.0
        return 0.5

    z = (value - location) / math.sqrt(scale2)
    cdf = normal_cdf(z) - 2.0 * owens_t(z, alpha)
    if cdf < PROBABILITY_EPS:
        return 0.0
    if cdf > 1.0 - PROBABILITY_EPS:
        return 1.0
    return cdf


def bn_inverse_cdf(p: float, location: float, scale2: float, alpha: float) -> float:
    """Value at which the B-normal CDF reaches p, clamped to [-1, 1]."""
    if alpha:
        z = _inverse_skewed_standard(p, alpha)
    else:
        z = inverse_normal_cdf(p)
    return clamp(z * math.sqrt(scale2) + location, -1.0, 1.0)


def b_delta(skewness: float) -> float:
    """
    Unsigned, moderated delta for a given sample skewness.

    |s| < 0.9 passes through, [0.9, 2.0] is compressed linearly into
    [0.9, 0.955], anything above 2.0 is clamped to 0.955.
    """
    b = abs(skewness)
    if b > SKEW_CLAMP_LIMIT:
        b = SKEW_CLAMPED
    elif b > SKEW_PASS_LIMIT:
        b = (17.1 + b) / 20.0
    tau = b ** (2.0 / 3.0)
    return math.sqrt(math.pi * tau / (2.0 * tau + DELTA_K))
