"""
Truncation / Rescaling Layer.

A kernel evaluation reports only the truncated hull [min, max] of an
outcome; the fitted distribution extends beyond it. Queries therefore
work in "fraction of the truncated mass" (0 at min, 1 at max) and go
through the fitted CDF evaluated at min and max (the reference points).
"""

from dataclasses import dataclass

from beliefcast.engine.bnormal import bn_cdf
from beliefcast.engine.fitting import BNormalFit
from beliefcast.engine.tolerance import VALUE_EPS
from beliefcast.schemas import Moments, ResultTriple

# ── Configuration ────────────────────────────────────────────────────────

INFINITE_MASS_VARIANCE: float = 1.0e-8  # Variance below this is a point mass
WEAK_MASS_SPAN: float = 0.9             # Reference cdf span below this is a weak fit
DEGENERATE_FRACTION: float = 0.5        # Fraction reported for a degenerate reference span


def bn_to_fraction(ref_lo: float, ref_up: float, bn: float) -> float:
    """Fitted-cdf value -> fraction of the truncated mass."""
    if ref_up > ref_lo + VALUE_EPS:
        return (bn - ref_lo) / (ref_up - ref_lo)
    return DEGENERATE_FRACTION


def fraction_to_bn(ref_lo: float, ref_up: float, fraction: float) -> float:
    """Fraction of the truncated mass -> fitted-cdf value."""
    if ref_up > ref_lo + VALUE_EPS:
        return ref_lo + fraction * (ref_up - ref_lo)
    return DEGENERATE_FRACTION


@dataclass(frozen=True)
class TruncatedFit:
    """A fitted distribution together with the hull it is truncated to."""
    fit: BNormalFit
    result: ResultTriple
    moments: Moments

    @property
    def is_point_mass(self) -> bool:
        """Hull or variance too small for the distribution machinery."""
        return (
            self.result.width <= VALUE_EPS
            or self.moments.cm2 <= INFINITE_MASS_VARIANCE
        )

    def cdf(self, value: float) -> float:
        return bn_cdf(value, self.fit.location, self.fit.scale2, self.fit.alpha)

    @property
    def reference(self) -> tuple[float, float]:
        """Fitted cdf at the lower and upper hull."""
        return self.cdf(self.result.lower), self.cdf(self.result.upper)

    def to_fraction(self, bn: float) -> float:
        ref_lo, ref_up = self.reference
        return bn_to_fraction(ref_lo, ref_up, bn)

    def to_bn(self, fraction: float) -> float:
        ref_lo, ref_up = self.reference
        return fraction_to_bn(ref_lo, ref_up, fraction)
