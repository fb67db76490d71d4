"""
Alternative Ranking.

Ranks alternatives from repeated evaluations:
- omega: the PSI expected value of each alternative
- gamma: the GAMMA expected value (or a mass, support point or
  consecutive dominance, depending on the mode)

Both sequences are sorted descending with an epsilon-tolerant comparator
and converted to ranks by the mode's discipline. Disagreement between
the gamma and omega ranks is reported as ``differing_ranks``, not raised.

Also hosts the pairwise helpers built on the same evaluations:
support-bound comparison and the delta-mass matrix. Criterion
contributions (omega split by criterion, and summed per first-level
weight-tree node) rank criteria instead of alternatives.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, TypeVar

import structlog

from beliefcast.engine.dominance import DominanceAnalyzer
from beliefcast.engine.evaluation import AbortCheck, Evaluator
from beliefcast.engine.mass import MAX_SUPPORT_LEVEL, MIN_SUPPORT_LEVEL
from beliefcast.engine.tolerance import VALUE_EPS, tolerant_order
from beliefcast.exceptions import (
    InputError,
    TooFewAlternativesError,
    UnknownAlternativeError,
    WrongMethodError,
    WrongToleranceError,
)
from beliefcast.schemas import (
    AlternativeMatrix,
    DeltaMassMode,
    EvaluationRule,
    RankingMode,
)

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Enum)

# ── Configuration ────────────────────────────────────────────────────────

MAX_TOLERANCE: float = 0.1          # Upper bound for ranking tolerances
TIEBREAK_WEIGHT: float = 1.0e-2     # Variance nudge for STRICT_TIEBREAK (criterion slots only)
UNUSED_RANK: int = -1               # Last alternative of a consecutive chain
UNUSED_VALUE: float = -1.0
STANDIN_OMEGA: float = 0.5          # Expected value of a criterion without a value frame

STRICT_MODES = frozenset(
    {
        RankingMode.STRICT,
        RankingMode.STRICT_TIEBREAK,
        RankingMode.MASS,
        RankingMode.SUPPORT,
        RankingMode.DOMINANCE,
    }
)

OMEGA_RANK_MODES = frozenset({RankingMode.OLYMPIC, RankingMode.GROUPED, RankingMode.STRICT})

# Monotone adjustment phases of delta_mass, keyed by mode
_DELTA_MASS_CODES = {
    DeltaMassMode.RAW: 0,
    DeltaMassMode.ROW_PRIORITY: 1,
    DeltaMassMode.COLUMN_PRIORITY: 2,
    DeltaMassMode.ROW_ONLY: 3,
    DeltaMassMode.COLUMN_ONLY: -1,
}


@dataclass(frozen=True)
class RankingResult:
    """Ranks and values per alternative for both the gamma and omega views."""

    gamma_rank: dict[int, int]
    omega_rank: dict[int, int]
    gamma_value: dict[int, float]
    omega_value: dict[int, float]
    differing_ranks: bool


@dataclass(frozen=True)
class ComparisonResult:
    """Support bounds per alternative at one belief level."""

    lower: dict[int, float]
    upper: dict[int, float]


@dataclass(frozen=True)
class DeltaMassResult:
    """Pairwise expected differences and belief masses of A_i - A_j > 0."""

    value: AlternativeMatrix[float]
    mass: AlternativeMatrix[float]


@dataclass(frozen=True)
class OmegaResult:
    """Per-criterion contributions to one alternative's expected value."""

    total: float
    contribution: dict[int, float]
    order: tuple[int, ...]          # Criteria, largest contribution first
    rank: dict[int, int]


@dataclass(frozen=True)
class PartWorthResult:
    """Contributions summed per first-level weight-tree node."""

    total: float
    contribution: dict[int, float]


class Ranker:
    """Ranking and pairwise comparison of all alternatives of a slot."""

    def __init__(
        self,
        evaluator: Evaluator,
        dominance: Optional[DominanceAnalyzer] = None,
        abort_check: Optional[AbortCheck] = None,
    ):
        self.evaluator = evaluator
        self.mass = evaluator.mass
        self.dominance = dominance or DominanceAnalyzer(evaluator, abort_check)
        self.abort_check = abort_check or evaluator.abort_check

    def rank_alternatives(
        self,
        slot: int,
        mode: RankingMode = RankingMode.OLYMPIC,
        gamma_tolerance: float = 0.0,
        omega_tolerance: float = 0.0,
    ) -> RankingResult:
        """
        Rank every alternative of ``slot``.

        For SUPPORT, ``gamma_tolerance`` is the support target in [0, 1]
        (0.5 ranks on omega alone); otherwise both tolerances lie within
        [0, 0.1]. Clears the cache.
        """
        mode = _coerce(RankingMode, mode, "ranking mode")
        omega_only = False
        if mode == RankingMode.SUPPORT:
            if gamma_tolerance < 0.0 or gamma_tolerance > 1.0:
                raise InputError(
                    "support target must lie within [0, 1]",
                    details={"target": gamma_tolerance},
                )
            if abs(gamma_tolerance - 0.5) < MIN_SUPPORT_LEVEL:
                # no cdf at the midpoint
                omega_only = True
                gamma_tolerance = omega_tolerance
        else:
            _check_tolerance("gamma_tolerance", gamma_tolerance)
        _check_tolerance("omega_tolerance", omega_tolerance)
        self.evaluator.check_slot(slot)
        if self.evaluator.n_alts < 1:
            raise TooFewAlternativesError(1, self.evaluator.n_alts)

        variances = None
        if slot > 0:
            variances = [m.cm2 for m in self.evaluator.kernel.criterion_moments(slot)]

        gamma_value: dict[int, float] = {}
        omega_value: dict[int, float] = {}
        sort_value: dict[int, float] = {}
        for alt in range(1, self.evaluator.n_alts + 1):
            self.abort_check()
            psi = self.evaluator.evaluate(slot, EvaluationRule.PSI, alt)
            omega_value[alt] = psi.mid
            self.abort_check()
            if omega_only:
                gamma_value[alt] = psi.mid
            elif mode == RankingMode.SUPPORT:
                gamma_value[alt] = self._support_point(slot, psi.lower, psi.upper, gamma_tolerance)
            else:
                gamma = self.evaluator.evaluate(slot, EvaluationRule.GAMMA, alt)
                if mode == RankingMode.MASS:
                    gamma_value[alt] = self.mass.positive_mass(slot)
                else:
                    gamma_value[alt] = gamma.mid
                    nudge = TIEBREAK_WEIGHT * variances[alt - 1] if variances else 0.0
                    sort_value[alt] = gamma.mid + nudge

        gamma_order = tolerant_order(
            sort_value if mode == RankingMode.STRICT_TIEBREAK else gamma_value
        )
        omega_order = tolerant_order(omega_value)

        if omega_only or mode in STRICT_MODES:
            gamma_rank = _strict_rank(gamma_order)
            omega_rank = _strict_rank(omega_order)
        else:
            dense = mode == RankingMode.OLYMPIC
            gamma_rank = _soft_rank(gamma_order, gamma_value, gamma_tolerance, dense)
            omega_rank = _soft_rank(omega_order, omega_value, omega_tolerance, dense)

        if mode == RankingMode.DOMINANCE:
            for alt, successor in zip(omega_order, omega_order[1:]):
                self.abort_check()
                result = self.dominance.dominance(slot, alt, successor)
                gamma_value[alt] = result.magnitude
                gamma_rank[alt] = int(result.order)
            gamma_rank[omega_order[-1]] = UNUSED_RANK
            gamma_value[omega_order[-1]] = UNUSED_VALUE

        self.evaluator.cache.invalidate()

        differing = mode != RankingMode.DOMINANCE and gamma_rank != omega_rank
        logger.info(
            "alternatives_ranked",
            slot=slot,
            mode=mode.value,
            n_alts=len(omega_rank),
            differing_ranks=differing,
        )
        return RankingResult(
            gamma_rank=gamma_rank,
            omega_rank=omega_rank,
            gamma_value=gamma_value,
            omega_value=omega_value,
            differing_ranks=differing,
        )

    def compare_alternatives(
        self,
        slot: int,
        rule: EvaluationRule,
        belief: float,
    ) -> ComparisonResult:
        """
        Support bounds of every alternative at belief level ``belief``.

        Below the lowest usable level the bounds move linearly toward the
        50% point; above the highest they move quadratically toward the
        hull. Clears the cache.
        """
        if belief < 0.0 or belief > 1.0:
            raise InputError("belief level must lie within [0, 1]", details={"belief": belief})
        try:
            rule = EvaluationRule(rule)
        except ValueError as exc:
            raise WrongMethodError(rule) from exc
        self.evaluator.check_slot(slot)

        lower: dict[int, float] = {}
        upper: dict[int, float] = {}
        for alt in range(1, self.evaluator.n_alts + 1):
            self.abort_check()
            result = self.evaluator.evaluate(slot, rule, alt)
            if belief < MIN_SUPPORT_LEVEL:
                lo, up = self.mass.belief_bounds(slot, MIN_SUPPORT_LEVEL)
                share = (MIN_SUPPORT_LEVEL - belief) / (2.0 * MIN_SUPPORT_LEVEL)
                lower[alt] = (1.0 - share) * lo + share * up
                upper[alt] = (1.0 - share) * up + share * lo
            elif belief > MAX_SUPPORT_LEVEL:
                lo, up = self.mass.belief_bounds(slot, MAX_SUPPORT_LEVEL)
                share = ((belief - MAX_SUPPORT_LEVEL) / (1.0 - MAX_SUPPORT_LEVEL)) ** 2
                lower[alt] = (1.0 - share) * lo + share * result.lower
                upper[alt] = (1.0 - share) * up + share * result.upper
            else:
                lower[alt], upper[alt] = self.mass.belief_bounds(slot, belief)

        self.evaluator.cache.invalidate()
        return ComparisonResult(lower=lower, upper=upper)

    def delta_mass(self, slot: int, mode: DeltaMassMode = DeltaMassMode.RAW) -> DeltaMassResult:
        """
        Pairwise difference values and belief masses for every pair.

        Cell (i, j) of ``mass`` is the belief that A_i exceeds A_j, and
        (j, i) its complement. Non-raw modes first lift every pair to at
        least 0.5 in favour of the higher omega, then make the upper
        triangle (in omega order) monotone along rows and/or columns.
        Clears the cache.
        """
        mode = _coerce(DeltaMassMode, mode, "delta mass mode")
        self.evaluator.check_slot(slot)
        n_alts = self.evaluator.n_alts
        value = [[0.0] * n_alts for _ in range(n_alts)]
        mass = [[0.0] * n_alts for _ in range(n_alts)]

        for i in range(1, n_alts + 1):
            for j in range(i + 1, n_alts + 1):
                self.abort_check()
                result = self.evaluator.evaluate(slot, EvaluationRule.DELTA, i, j)
                value[i - 1][j - 1] = result.mid
                value[j - 1][i - 1] = -result.mid
                positive = self.mass.positive_mass(slot)
                mass[i - 1][j - 1] = positive
                mass[j - 1][i - 1] = 1.0 - positive

        code = _DELTA_MASS_CODES[mode]
        if code:
            omega: dict[int, float] = {}
            for alt in range(1, n_alts + 1):
                self.abort_check()
                omega[alt] = self.evaluator.evaluate(slot, EvaluationRule.PSI, alt).mid
            order = [alt - 1 for alt in tolerant_order(omega)]
            _lift_to_half(mass, order)
            if code == 1:
                _monotone_rows(mass, order)
            if code < 3:
                _monotone_columns(mass, order)
            if code > 1:
                _monotone_rows(mass, order)

        self.evaluator.cache.invalidate()
        return DeltaMassResult(
            value=AlternativeMatrix.from_rows(value),
            mass=AlternativeMatrix.from_rows(mass),
        )

    def evaluate_omega(
        self,
        alt: int,
        mode: RankingMode = RankingMode.OLYMPIC,
        renormalize: bool = False,
    ) -> OmegaResult:
        """
        Split the whole-problem expected value of ``alt`` by criterion.

        Each criterion contributes its weight times the alternative's
        expected value on it; a criterion without a value frame counts as
        0.5. ``alt`` 0 averages over every alternative. Criteria are
        ordered by contribution and ranked by ``mode`` (OLYMPIC, GROUPED
        or STRICT). With ``renormalize`` contributions are shares of the
        total instead of the value scale. Clears the cache.
        """
        mode = _coerce(RankingMode, mode, "omega rank mode")
        if mode not in OMEGA_RANK_MODES:
            raise InputError("unknown omega rank mode", details={"mode": str(mode)})
        contribution = self._omega_contributions(alt)
        total = sum(contribution.values())
        order = tolerant_order(contribution)
        if mode == RankingMode.STRICT:
            rank = _strict_rank(order)
        else:
            rank = _soft_rank(order, contribution, 0.0, dense=mode == RankingMode.OLYMPIC)
        if renormalize:
            contribution = _shares(contribution, total)

        self.evaluator.cache.invalidate()
        logger.info(
            "omega_evaluated",
            alt=alt,
            mode=mode.value,
            total=round(total, 6),
            leading_criterion=order[0],
        )
        return OmegaResult(total=total, contribution=contribution, order=tuple(order), rank=rank)

    def evaluate_part_worth(self, alt: int, renormalize: bool = False) -> PartWorthResult:
        """
        Criterion contributions summed per first-level weight-tree node.

        Same contributions as ``evaluate_omega``; ``total`` is the
        whole-problem value either way. Clears the cache.
        """
        contribution = self._omega_contributions(alt)
        total = sum(contribution.values())
        worth = {
            node: sum(contribution.get(crit, 0.0) for crit in criteria)
            for node, criteria in self.evaluator.kernel.top_level_nodes().items()
        }
        if renormalize:
            worth = _shares(worth, total)

        self.evaluator.cache.invalidate()
        logger.info("part_worth_evaluated", alt=alt, nodes=len(worth), total=round(total, 6))
        return PartWorthResult(total=total, contribution=worth)

    # ── Private helpers ──────────────────────────────────────────────────

    def _support_point(self, slot: int, lower: float, upper: float, target: float) -> float:
        """Value at cdf position ``target`` of the cached PSI fit."""
        if target > MAX_SUPPORT_LEVEL:
            return upper
        if 1.0 - target > MAX_SUPPORT_LEVEL:
            return lower
        if target > 0.5:
            _, up = self.mass.belief_bounds(slot, 2.0 * target - 1.0)
            return up
        lo, _ = self.mass.belief_bounds(slot, 1.0 - 2.0 * target)
        return lo

    def _omega_contributions(self, alt: int) -> dict[int, float]:
        """Weighted expected value per criterion, averaged over all alternatives for 0."""
        n_alts = self.evaluator.n_alts
        if alt < 0 or alt > n_alts:
            raise UnknownAlternativeError(alt, n_alts)
        alts = [alt] if alt else list(range(1, n_alts + 1))
        kernel = self.evaluator.kernel
        weights = kernel.criterion_weights()
        contribution: dict[int, float] = {}
        for crit in range(1, self.evaluator.n_crit + 1):
            if kernel.has_criterion(crit):
                omega = sum(
                    kernel.evaluate_criterion(crit, EvaluationRule.PSI, a, 0).mid for a in alts
                ) / len(alts)
            else:
                omega = STANDIN_OMEGA
            contribution[crit] = weights.get(crit, 0.0) * omega
            self.abort_check()
        return contribution


def _coerce(enum_cls: type[E], value: object, what: str) -> E:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise InputError(f"unknown {what}", details={"value": str(value)}) from exc


def _check_tolerance(name: str, value: float) -> None:
    if value < 0.0 or value > MAX_TOLERANCE:
        raise WrongToleranceError(name, value)


def _strict_rank(order: list[int]) -> dict[int, int]:
    return {alt: position for position, alt in enumerate(order, start=1)}


def _soft_rank(
    order: list[int],
    values: dict[int, float],
    tolerance: float,
    dense: bool,
) -> dict[int, int]:
    """
    Ranks where alternatives within ``tolerance`` of their group leader tie.

    Groups are formed from the top of the order. ``dense`` numbers groups
    consecutively; otherwise a group takes the position of its leader.
    """
    leader = order[0]
    level = 1
    rank = {leader: 1}
    for position, alt in enumerate(order[1:], start=2):
        if values[leader] - values[alt] < tolerance + VALUE_EPS:
            rank[alt] = level if dense else rank[leader]
        else:
            level += 1
            rank[alt] = level if dense else position
            leader = alt
    return rank


def _shares(values: dict[int, float], total: float) -> dict[int, float]:
    """Values as fractions of ``total``; all zero when the total is."""
    if abs(total) < VALUE_EPS:
        return {key: 0.0 for key in values}
    return {key: value / total for key, value in values.items()}


def _lift_to_half(mass: list[list[float]], order: list[int]) -> None:
    """The higher-omega alternative of a pair holds at least half the mass."""
    for a, i in enumerate(order):
        for j in order[a + 1:]:
            if mass[i][j] < 0.5:
                mass[i][j] = mass[j][i] = 0.5


def _monotone_rows(mass: list[list[float]], order: list[int]) -> None:
    """Upper-triangle rows never decrease to the right."""
    for a, i in enumerate(order):
        level = 0.0
        for j in order[a + 1:]:
            if mass[i][j] < level:
                mass[i][j] = level
                mass[j][i] = 1.0 - level
            else:
                level = mass[i][j]


def _monotone_columns(mass: list[list[float]], order: list[int]) -> None:
    """Upper-triangle columns never increase going down."""
    for b in range(1, len(order)):
        j = order[b]
        level = 1.0
        for i in order[:b]:
            if mass[i][j] > level:
                mass[i][j] = level
                mass[j][i] = 1.0 - level
            else:
                level = mass[i][j]
