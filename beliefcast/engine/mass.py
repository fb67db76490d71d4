"""
Belief-Mass Query Layer.

Probabilistic queries against the cached fit of a slot:
- mass above / below / in a range of a value level
- density at a value level
- support intervals at a belief level (centered, lower- or upper-anchored)
- risk-aversion value
- validity classification of the fit

Every query needs a valid cache entry for its slot and raises
OutputNotReadyError otherwise. Mass and support answers carry a
MassStatus; the status is informational and never raised.
"""

import math

import structlog

from beliefcast.engine.bnormal import bn_cdf, bn_inverse_cdf
from beliefcast.engine.cache import EvaluationCache
from beliefcast.engine.fitting import BNormalFit
from beliefcast.engine.rescale import WEAK_MASS_SPAN, TruncatedFit
from beliefcast.engine.tolerance import (
    PROBABILITY_EPS,
    VALUE_EPS,
    approx_equal,
    approx_greater,
    approx_less,
    clamp,
    is_degenerate,
)
from beliefcast.exceptions import InputError
from beliefcast.schemas import (
    MassResult,
    MassStatus,
    Moments,
    SupportInterval,
    SupportMode,
    ValueResult,
)

logger = structlog.get_logger(__name__)

# ── Configuration ────────────────────────────────────────────────────────

MIN_SUPPORT_LEVEL: float = 1.0e-5            # Lowest belief level with a usable cdf
MAX_SUPPORT_LEVEL: float = 0.9990234375      # Highest belief level (risk aversion = 10)
MIN_CENTER_BELIEF: float = 0.5               # Support queries start at 50% belief
DENSITY_STEP: float = 1.0e-6                 # Half-width of the density difference
DENSITY_FLOOR: float = 1.0e-10               # Density below this is round-off
POINT_DENSITY: float = math.inf              # Density of a Dirac point
SEARCH_TOLERANCE: float = PROBABILITY_EPS    # |cdf - target| that ends a value search
SEARCH_MIN_STEP: float = 1.0e-7              # Smallest step of a value search
SEARCH_MAX_STEPS: int = 24                   # Step cap, where the step cutoff ends a full-scale search
CDF_POINT_CEILING: float = 0.999             # Belief-level ceiling for single-point lookups


class BeliefMass:
    """Queries over the fits held by an EvaluationCache."""

    def __init__(self, cache: EvaluationCache):
        self.cache = cache

    # ── Mass ─────────────────────────────────────────────────────────────

    def mass_above(self, slot: int, level: float) -> MassResult:
        """Belief mass strictly above a value level (split at a Dirac point)."""
        mass = self.above(slot, level)
        return MassResult(value=mass, status=self.validity(slot))

    def mass_below(self, slot: int, level: float) -> MassResult:
        """Belief mass up to a value level."""
        mass = 1.0 - self.above(slot, level)
        return MassResult(value=mass, status=self.validity(slot))

    def mass_range(self, slot: int, lower: float, upper: float) -> MassResult:
        """Belief mass within [lower, upper]."""
        if lower < -1.0 or upper > 1.0:
            raise InputError(
                "range must lie within [-1, 1]", details={"lower": lower, "upper": upper}
            )
        if lower > upper:
            raise InputError(
                "range lower bound above upper bound",
                details={"lower": lower, "upper": upper},
            )
        lo_mass = self.above(slot, max(lower - 2.0 * VALUE_EPS, -1.0))
        up_mass = self.above(slot, min(upper + 2.0 * VALUE_EPS, 1.0))
        return MassResult(value=lo_mass - up_mass, status=self.validity(slot))

    def mass_density(self, slot: int, level: float) -> float:
        """
        Density at a value level by central difference of the mass above.

        Infinite at a Dirac point, 0 outside the hull.
        """
        entry = self.cache.entry(slot)
        self._check_level(level)
        level_hi = min(level + DENSITY_STEP, 1.0)
        level_lo = max(level - DENSITY_STEP, -1.0)
        mass_hi = self.above(slot, level_hi)
        mass_lo = self.above(slot, level_lo)
        lower, upper = entry.result.lower, entry.result.upper
        if level_lo > lower and level_hi < upper and level_hi > level_lo:
            density = (mass_lo - mass_hi) / (level_hi - level_lo)
            return 0.0 if density < DENSITY_FLOOR else density
        if is_degenerate(lower, upper) and approx_equal(lower, level):
            return POINT_DENSITY
        return 0.0

    # ── Support ──────────────────────────────────────────────────────────

    def support_interval(
        self,
        slot: int,
        belief: float,
        mode: SupportMode = SupportMode.CENTER,
    ) -> SupportInterval:
        """
        Value interval holding a share ``belief`` of the mass.

        CENTER: central interval (belief in [0.5, 0.999]).
        LOWER:  from the lower hull up to the belief quantile.
        UPPER:  from the (1 - belief) quantile up to the upper hull.
        """
        if belief < MIN_CENTER_BELIEF:
            raise InputError(
                f"belief level must be at least {MIN_CENTER_BELIEF}", details={"belief": belief}
            )
        if mode == SupportMode.CENTER:
            lower, upper = self.belief_bounds(slot, belief)
        else:
            lower, upper = self.belief_bounds(slot, 2.0 * belief - 1.0)
            entry = self.cache.entry(slot)
            if mode == SupportMode.LOWER:
                lower = entry.result.lower
            else:
                upper = entry.result.upper
        return SupportInterval(lower=lower, upper=upper, status=self.validity(slot))

    def inverse_support_interval(self, slot: int, belief: float) -> SupportInterval:
        """
        Central support interval through the closed inverse CDF instead of a search.

        The closed form does not classify the fit: status is always OK. Use
        ``validity`` to check a weak or infinite mass.
        """
        if belief < MIN_CENTER_BELIEF:
            raise InputError(
                f"belief level must be at least {MIN_CENTER_BELIEF}", details={"belief": belief}
            )
        entry = self.cache.entry(slot)
        self._check_belief(belief)
        if entry.is_point_mass:
            point = entry.moments.rm1
            return SupportInterval(lower=point, upper=point, status=MassStatus.OK)
        fit = entry.fit
        lo_target = entry.to_bn((1.0 - belief) / 2.0)
        up_target = entry.to_bn((1.0 + belief) / 2.0)
        return SupportInterval(
            lower=bn_inverse_cdf(lo_target, fit.location, fit.scale2, fit.alpha),
            upper=bn_inverse_cdf(up_target, fit.location, fit.scale2, fit.alpha),
            status=MassStatus.OK,
        )

    def support_mid(self, slot: int) -> ValueResult:
        """Value at which half of the truncated mass lies below."""
        entry = self.cache.entry(slot)
        if entry.is_point_mass:
            return ValueResult(value=entry.moments.rm1, status=self.validity(slot))
        value = self._search_value(entry, entry.to_bn(0.5))
        return ValueResult(value=value, status=self.validity(slot))

    def aversion_value(self, slot: int, risk_aversion: float) -> ValueResult:
        """
        Certainty value for a risk attitude.

        risk_aversion > 0 is risk averse (reads the lower support bound),
        < 0 is risk prone (upper bound), 0 is neutral. The support level
        is 1 - 2^-|risk_aversion|; below the minimum support level the
        value is interpolated toward the 50% point.
        """
        ra_level = 1.0 - 2.0 ** (-abs(risk_aversion))
        if ra_level > MIN_SUPPORT_LEVEL:
            ra_lo, ra_up = self.belief_bounds(slot, ra_level)
            value = ra_lo if risk_aversion > 0.0 else ra_up
        else:
            ra_lo, ra_up = self.belief_bounds(slot, MIN_SUPPORT_LEVEL)
            ip = (MIN_SUPPORT_LEVEL - ra_level) / (2.0 * MIN_SUPPORT_LEVEL)
            if risk_aversion > 0.0:
                value = (1.0 - ip) * ra_lo + ip * ra_up
            else:
                value = ip * ra_lo + (1.0 - ip) * ra_up
        return ValueResult(value=value, status=self.validity(slot))

    # ── Conversions ──────────────────────────────────────────────────────

    def value_to_cdf(self, slot: int, value: float) -> float:
        """Truncated cdf (mass at or below) of a value."""
        return 1.0 - self.above(slot, value)

    def cdf_to_value(self, slot: int, cdf: float) -> float:
        """Value at which the truncated cdf reaches ``cdf``."""
        if cdf < 0.0 or cdf > 1.0:
            raise InputError("cdf must lie within [0, 1]", details={"cdf": cdf})
        entry = self.cache.entry(slot)
        if entry.is_point_mass:
            return entry.moments.rm1
        return self._search_value(entry, entry.to_bn(cdf))

    def fitted_to_truncated_cdf(self, slot: int, cdf: float) -> float:
        """Share of the truncated mass corresponding to a fitted-cdf value."""
        entry = self.cache.entry(slot)
        if cdf < 0.0 or cdf > 1.0:
            raise InputError("cdf must lie within [0, 1]", details={"cdf": cdf})
        ref_lo, ref_up = entry.reference
        if cdf < ref_lo:
            return 0.0
        if cdf > ref_up:
            return 1.0
        return entry.to_fraction(cdf)

    # ── Validity and debug getters ───────────────────────────────────────

    def validity(self, slot: int) -> MassStatus:
        """Classify how well the fit represents the truncated hull."""
        entry = self.cache.entry(slot)
        if is_degenerate(entry.result.lower, entry.result.upper):
            return MassStatus.INFINITE_MASS
        ref_lo, ref_up = entry.reference
        if ref_up - ref_lo < WEAK_MASS_SPAN:
            logger.debug("weak_mass_distribution", slot=slot, span=round(ref_up - ref_lo, 4))
            return MassStatus.WEAK_MASS_DISTRIBUTION
        return MassStatus.OK

    def mass_moments(self, slot: int) -> Moments:
        """Moments the slot's fit was derived from."""
        return self.cache.entry(slot).moments

    def bn_params(self, slot: int) -> BNormalFit:
        """Fitted location, scale² and alpha of the slot."""
        return self.cache.entry(slot).fit

    # ── Primitives shared with ranking and dominance ─────────────────────

    def above(self, slot: int, level: float) -> float:
        """
        Raw mass above a value level, without status.

        Outside the hull the answer is 0 or 1. For a point mass the
        comparison is against the mean, with an even split at the point
        itself (except at the scale ends -1 and 1).
        """
        entry = self.cache.entry(slot)
        self._check_level(level)
        result = entry.result
        if approx_less(level, result.lower):
            return 1.0
        if approx_greater(level, result.upper):
            return 0.0
        if not entry.is_point_mass:
            ref_lo, ref_up = entry.reference
            cur = clamp(entry.cdf(level), ref_lo, ref_up)
            return max(1.0 - entry.to_fraction(cur), 0.0)
        point = entry.moments.rm1
        if approx_less(level, point):
            return 1.0
        if approx_greater(level, point):
            return 0.0
        if level < -1.0 + VALUE_EPS:
            return 1.0
        if level > 1.0 - VALUE_EPS:
            return 0.0
        return 0.5

    def belief_bounds(self, slot: int, belief: float) -> tuple[float, float]:
        """Central interval holding ``belief`` of the truncated mass."""
        entry = self.cache.entry(slot)
        self._check_belief(belief)
        if entry.is_point_mass:
            return entry.moments.rm1, entry.moments.rm1
        lower = self._search_value(entry, entry.to_bn((1.0 - belief) / 2.0))
        upper = self._search_value(entry, entry.to_bn((1.0 + belief) / 2.0))
        return lower, upper

    def cdf_point(self, slot: int, cdf: float) -> float:
        """Single value at a truncated-cdf position via the nearest support bound."""
        if cdf < 0.5:
            lower, _ = self.belief_bounds(
                slot, clamp(1.0 - 2.0 * cdf, MIN_SUPPORT_LEVEL, CDF_POINT_CEILING)
            )
            return lower
        _, upper = self.belief_bounds(
            slot, clamp(2.0 * cdf - 1.0, MIN_SUPPORT_LEVEL, CDF_POINT_CEILING)
        )
        return upper

    def positive_mass(self, slot: int) -> float:
        """
        Belief that the evaluated quantity is positive.

        Averages the mass above just over and just under zero so that a
        difference centred on zero splits evenly.
        """
        return (self.above(slot, PROBABILITY_EPS) + self.above(slot, -PROBABILITY_EPS)) / 2.0

    # ── Private helpers ──────────────────────────────────────────────────

    @staticmethod
    def _search_value(entry: TruncatedFit, target: float) -> float:
        """
        Step-halving search on the value axis for the fitted-cdf target.

        Seeded at the hull midpoint with a first step of a quarter hull.
        """
        lower, upper = entry.result.lower, entry.result.upper
        fit = entry.fit
        step = (upper - lower) / 2.0
        new_val = (upper + lower) / 2.0
        val = new_val
        for _ in range(SEARCH_MAX_STEPS):
            val = new_val
            cdf = bn_cdf(val, fit.location, fit.scale2, fit.alpha)
            step /= 2.0
            new_val = val - step if cdf > target else val + step
            if abs(cdf - target) <= SEARCH_TOLERANCE or step <= SEARCH_MIN_STEP:
                break
        return val

    @staticmethod
    def _check_level(level: float) -> None:
        if level < -1.0 or level > 1.0:
            raise InputError("value level must lie within [-1, 1]", details={"level": level})

    @staticmethod
    def _check_belief(belief: float) -> None:
        if belief < MIN_SUPPORT_LEVEL or belief > MAX_SUPPORT_LEVEL:
            raise InputError(
                f"belief level must lie within [{MIN_SUPPORT_LEVEL}, {MAX_SUPPORT_LEVEL}]",
                details={"belief": belief},
            )

