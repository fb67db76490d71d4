"""
Evaluation Engine.

Turns kernel output into cached B-normal fits:
1. Validate slot and alternatives for the aggregation rule
2. Read the truncated hull from the kernel
3. Combine per-alternative moments for the rule and fit the B-normal
4. Store fit + hull in the evaluation cache

The slot being evaluated is invalid from the start of the evaluation; a
failed evaluation leaves it unreadable. Whole-problem evaluations clear
the whole cache first.

Whole-problem and partial slots (<= 0) evaluate every criterion first
(empty criteria get a fixed stand-in) and let the kernel aggregate them
over the weight tree.

Also expands a cached evaluation into a 21-step result cone.
"""

from typing import Callable, Optional

import structlog

from beliefcast.engine.cache import EvaluationCache
from beliefcast.engine.fitting import combine_moments, fit_bnormal
from beliefcast.engine.mass import MIN_SUPPORT_LEVEL, BeliefMass
from beliefcast.engine.rescale import TruncatedFit
from beliefcast.exceptions import (
    BeliefCastError,
    InputError,
    UnknownAlternativeError,
    UnknownCriterionError,
    WrongMethodError,
)
from beliefcast.kernel import MomentKernel
from beliefcast.schemas import (
    EvaluationRule,
    ExpansionMode,
    Moments,
    ResultCone,
    ResultTriple,
)

logger = structlog.get_logger(__name__)

# ── Configuration ────────────────────────────────────────────────────────

RESULT_STEPS: int = 21  # Belief levels 100%, 95%, ..., 0%

# Stand-in for a criterion without a value frame
STANDIN_UNSIGNED = (0.0, 1.0, Moments(rm1=0.5, cm2=1.0 / 24.0, cm3=0.0))   # PSI, unmasked DIGAMMA
STANDIN_SIGNED = (-1.0, 1.0, Moments(rm1=0.0, cm2=1.0 / 12.0, cm3=0.0))    # Difference rules

AbortCheck = Callable[[], None]


def _no_abort() -> None:
    return None


class Evaluator:
    """
    Evaluates alternatives against a kernel and fills the cache.

    ``abort_check`` is called between criteria of a whole-problem
    evaluation; it raises to stop the scan.
    """

    def __init__(
        self,
        kernel: MomentKernel,
        cache: EvaluationCache,
        abort_check: Optional[AbortCheck] = None,
    ):
        self.kernel = kernel
        self.cache = cache
        self.mass = BeliefMass(cache)
        self.abort_check = abort_check or _no_abort

    @property
    def n_alts(self) -> int:
        return self.kernel.alternative_count()

    @property
    def n_crit(self) -> int:
        return self.kernel.criterion_count()

    def check_slot(self, slot: int) -> None:
        """Slot must name a loaded criterion or a known aggregation node."""
        if slot > 0:
            if slot > self.n_crit or not self.kernel.has_criterion(slot):
                raise UnknownCriterionError(slot)
        elif not self.kernel.has_node(slot):
            raise UnknownCriterionError(slot)

    def evaluate(
        self,
        slot: int,
        rule: EvaluationRule,
        alt_a: int,
        alt_b: int = 0,
    ) -> ResultTriple:
        """
        Evaluate alternative ``alt_a`` (against ``alt_b`` for DELTA, or the
        subset bitmask ``alt_b`` for DIGAMMA) and cache the fit for ``slot``.
        """
        # A slot being recomputed never reads as valid, even if the call fails
        if slot > 0:
            self.cache.discard(slot)
        else:
            self.cache.invalidate()
        rule = self._check_rule(rule)
        self.check_slot(slot)
        alt_b = self._check_alternatives(rule, alt_a, alt_b)
        try:
            if slot > 0:
                entry = self._evaluate_criterion(slot, rule, alt_a, alt_b)
            else:
                entry = self._evaluate_aggregate(slot, rule, alt_a, alt_b)
        except BeliefCastError as exc:
            if slot <= 0:
                # criteria filled before the failure belong to the aborted scan
                self.cache.invalidate()
            logger.info(
                "evaluation_failed",
                slot=slot,
                rule=rule.value,
                alt_a=alt_a,
                error_code=exc.code.value,
            )
            raise
        logger.debug(
            "evaluation_completed",
            slot=slot,
            rule=rule.value,
            alt_a=alt_a,
            alt_b=alt_b,
            lower=round(entry.result.lower, 6),
            mid=round(entry.result.mid, 6),
            upper=round(entry.result.upper, 6),
        )
        return entry.result

    def evaluate_full(
        self,
        slot: int,
        rule: EvaluationRule,
        alt_a: int,
        alt_b: int = 0,
        mode: ExpansionMode = ExpansionMode.CONVERGE_MASS,
    ) -> ResultCone:
        """Evaluate and expand the result into a 21-step cone."""
        base = self.evaluate(slot, rule, alt_a, alt_b)
        return self.expand_cone(slot, base, mode)

    def expand_cone(
        self,
        slot: int,
        base: ResultTriple,
        mode: ExpansionMode = ExpansionMode.CONVERGE_MASS,
    ) -> ResultCone:
        """Expand a cached evaluation of ``slot`` into belief-level steps."""
        if mode == ExpansionMode.CONVERGE_HALF:
            return self._expand_to_half(slot, base, swap=False)
        if mode == ExpansionMode.CONVERGE_HALF_SWAP:
            return self._expand_to_half(slot, base, swap=True)
        if mode == ExpansionMode.CONVERGE_MASS:
            return self._expand_to_mass(slot, base, interpolate=False)
        if mode == ExpansionMode.CONVERGE_MASS_INTERPOLATED:
            return self._expand_to_mass(slot, base, interpolate=True)
        raise WrongMethodError(mode)

    # ── Private helpers ──────────────────────────────────────────────────

    @staticmethod
    def _check_rule(rule: EvaluationRule) -> EvaluationRule:
        try:
            return EvaluationRule(rule)
        except ValueError as exc:
            raise WrongMethodError(rule) from exc

    def _check_alternatives(self, rule: EvaluationRule, alt_a: int, alt_b: int) -> int:
        n_alts = self.n_alts
        if alt_a < 1 or alt_a > n_alts:
            raise UnknownAlternativeError(alt_a, n_alts)
        if rule == EvaluationRule.DELTA:
            if alt_b < 1 or alt_b > n_alts:
                raise UnknownAlternativeError(alt_b, n_alts)
            if alt_a == alt_b:
                raise InputError(
                    "difference evaluation needs two distinct alternatives",
                    details={"alt_a": alt_a, "alt_b": alt_b},
                )
            return alt_b
        if rule == EvaluationRule.DIGAMMA:
            if alt_b < 0:
                raise InputError("subset mask must be non-negative", details={"mask": alt_b})
            return alt_b
        return 0

    def _evaluate_criterion(
        self, crit: int, rule: EvaluationRule, alt_a: int, alt_b: int
    ) -> TruncatedFit:
        result = self.kernel.evaluate_criterion(crit, rule, alt_a, alt_b)
        moments = combine_moments(rule, alt_a, alt_b, self.kernel.criterion_moments(crit))
        entry = TruncatedFit(fit=fit_bnormal(moments), result=result, moments=moments)
        self.cache.store(crit, entry)
        return entry

    def _evaluate_aggregate(
        self, node: int, rule: EvaluationRule, alt_a: int, alt_b: int
    ) -> TruncatedFit:
        lower: dict[int, float] = {}
        upper: dict[int, float] = {}
        moments: dict[int, Moments] = {}
        unsigned = rule == EvaluationRule.PSI or (rule == EvaluationRule.DIGAMMA and not alt_b)
        for crit in range(1, self.n_crit + 1):
            if not self.kernel.has_criterion(crit):
                lower[crit], upper[crit], moments[crit] = (
                    STANDIN_UNSIGNED if unsigned else STANDIN_SIGNED
                )
                logger.debug("standin_evaluation", crit=crit, rule=rule.value)
                continue
            entry = self._evaluate_criterion(crit, rule, alt_a, alt_b)
            lower[crit], upper[crit] = entry.result.lower, entry.result.upper
            moments[crit] = entry.moments
            self.abort_check()

        aggregate = self.kernel.aggregate(node, lower, upper, moments)
        result = ResultTriple(
            lower=aggregate.lower,
            mid=aggregate.moments.rm1,
            upper=aggregate.upper,
        )
        entry = TruncatedFit(
            fit=fit_bnormal(aggregate.moments),
            result=result,
            moments=aggregate.moments,
        )
        self.cache.store(node, entry)
        return entry

    def _expand_to_half(self, slot: int, base: ResultTriple, swap: bool) -> ResultCone:
        """Cone narrowing toward the 50% point of the truncated cdf."""
        lowers, mids, uppers = [base.lower], [base.mid], [base.upper]
        for i in range(1, RESULT_STEPS):
            level = 1.0 - i / (RESULT_STEPS - 1)
            lo, up = self.mass.belief_bounds(slot, max(level, MIN_SUPPORT_LEVEL))
            lowers.append(lo)
            mids.append((lo + up) / 2.0)
            uppers.append(up)
        if swap:
            last = RESULT_STEPS - 1
            raw_mid = mids[0]
            mids[0] = mids[last]
            mids[last] = raw_mid
            lowers[last] = uppers[last] = raw_mid
        return _cone(lowers, mids, uppers)

    def _expand_to_mass(self, slot: int, base: ResultTriple, interpolate: bool) -> ResultCone:
        """Cone narrowing toward the mass point, shifted by the skew at the midpoint."""
        mid_mass = self.mass.above(slot, base.mid)
        lowers = [base.lower]
        uppers = [base.upper]
        mids = [(base.lower + base.upper) / 2.0]
        for i in range(1, RESULT_STEPS):
            level = 1.0 - i / (RESULT_STEPS - 1)
            shift = (1.0 - level) * (mid_mass - 0.5)
            lo = self.mass.cdf_point(slot, (1.0 - level) / 2.0 - shift)
            up = self.mass.cdf_point(slot, (1.0 + level) / 2.0 - shift)
            lowers.append(lo)
            uppers.append(up)
            mids.append((lo + up) / 2.0)
        if interpolate:
            # extend the first inner steps at constant derivative out to the hull
            denom = lowers[3] - lowers[2]
            if denom:
                step = (lowers[2] - lowers[1]) ** 2 / denom
                lowers[0] = max(lowers[0], lowers[1] - step)
            denom = uppers[2] - uppers[3]
            if denom:
                step = (uppers[1] - uppers[2]) ** 2 / denom
                uppers[0] = min(uppers[0], uppers[1] + step)
            mids[0] = (lowers[0] + uppers[0]) / 2.0
        return _cone(lowers, mids, uppers)


def _cone(lowers: list[float], mids: list[float], uppers: list[float]) -> ResultCone:
    return ResultCone(
        steps=tuple(ResultTriple(lo, mid, up) for lo, mid, up in zip(lowers, mids, uppers))
    )
