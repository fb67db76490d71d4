"""
Distribution Fitter.

Method-of-moments fit of the B-normal (bounded skew-normal) family:
    skewness = m3 / m2^1.5
    delta    = sgn(skewness) * b_delta(skewness)      (moderated)
    alpha    = delta / sqrt(1 - delta^2)
    scale2   = m2 / (1 - 2 delta^2 / pi)
    location = m1 - sqrt(scale2) * delta * sqrt(2 / pi)

With zero skewness the fit is exactly the normal N(m1, m2).

Also combines per-alternative moments into the moments of an
aggregation rule (PSI, DELTA, GAMMA, DIGAMMA).
"""

import math
from dataclasses import dataclass
from typing import Sequence

from beliefcast.engine.bnormal import b_delta, sgn
from beliefcast.engine.tolerance import VALUE_EPS
from beliefcast.exceptions import WrongMethodError
from beliefcast.schemas import EvaluationRule, Moments


@dataclass(frozen=True)
class BNormalFit:
    """Fitted B-normal parameters for one slot."""
    location: float  # Shift of the underlying skew-normal
    scale2: float    # Squared scale
    alpha: float     # Shape (0 = symmetric)

    @property
    def is_degenerate(self) -> bool:
        """Scale below epsilon: the fit is a point mass at location."""
        return self.scale2 < VALUE_EPS


def fit_bnormal(moments: Moments) -> BNormalFit:
    """Fit location, scale² and alpha to (mean, variance, third central moment)."""
    m1, m2, m3 = moments.rm1, moments.cm2, moments.cm3
    if m2 > VALUE_EPS:
        skewness = m3 / m2 ** 1.5
        delta = sgn(skewness) * b_delta(skewness)
    else:
        delta = 0.0
    alpha = delta / math.sqrt(1.0 - delta * delta)
    scale2 = m2 / (1.0 - 2.0 * delta * delta / math.pi)
    location = m1 - math.sqrt(max(scale2, 0.0)) * delta * math.sqrt(2.0 / math.pi)
    return BNormalFit(location=location, scale2=scale2, alpha=alpha)


def combine_moments(
    rule: EvaluationRule,
    alt_a: int,
    alt_b: int,
    per_alternative: Sequence[Moments],
) -> Moments:
    """
    Moments of an aggregation rule from per-alternative moments.

    Alternatives are 1-based; ``per_alternative[k-1]`` belongs to k.
    Differences add variances and subtract means and third moments.
    For DIGAMMA, ``alt_b`` is a bitmask whose bit k-1 selects k.
    """
    a = per_alternative[alt_a - 1]
    n_alts = len(per_alternative)

    if rule == EvaluationRule.PSI:
        return a

    if rule == EvaluationRule.DELTA:
        b = per_alternative[alt_b - 1]
        return Moments(a.rm1 - b.rm1, a.cm2 + b.cm2, a.cm3 - b.cm3)

    if rule == EvaluationRule.GAMMA:
        m1, m2, m3 = a.rm1, a.cm2, a.cm3
        for k, other in enumerate(per_alternative, start=1):
            if k != alt_a:
                m1 -= other.rm1 / (n_alts - 1)
                m2 += other.cm2 / (n_alts - 1)
                m3 -= other.cm3 / (n_alts - 1)
        return Moments(m1, m2, m3)

    if rule == EvaluationRule.DIGAMMA:
        m1 = m2 = m3 = 0.0
        n_active = 0
        for k, other in enumerate(per_alternative, start=1):
            if k != alt_a and alt_b & (1 << (k - 1)):
                m1 -= other.rm1
                m2 += other.cm2
                m3 -= other.cm3
                n_active += 1
        if n_active:
            m1 /= n_active
            m2 /= n_active
            m3 /= n_active
        return Moments(m1 + a.rm1, m2 + a.cm2, m3 + a.cm3)

    raise WrongMethodError(rule)
