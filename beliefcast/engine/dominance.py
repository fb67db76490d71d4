"""
Belief Dominance Analysis.

Stochastic dominance between alternatives, read off their PSI cones:
1. Expand each alternative's evaluation toward its 50% cdf point
2. Compare the cones step by step (min vs min, max vs max, final mid)
3. Accumulate the signed differences into a DominanceFlags state
4. Significant aggregate + one side superior = first order;
   significant aggregate + crossing cones = second order

Built on top of the pairwise test:
- dominance matrix and its transitive reduction
- layered (peel-off) dominance ranking
- cardinal dominance matrix
- absolute dominance across all criteria via two fixed state machines
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

import structlog

from beliefcast.engine.evaluation import RESULT_STEPS, AbortCheck, Evaluator
from beliefcast.engine.tolerance import VALUE_EPS
from beliefcast.exceptions import (
    InputError,
    InternalEngineError,
    TooFewAlternativesError,
)
from beliefcast.schemas import (
    AlternativeMatrix,
    EvaluationRule,
    ExpansionMode,
    RankingMode,
)

logger = structlog.get_logger(__name__)

# ── Configuration ────────────────────────────────────────────────────────

DOMINANCE_LIMIT: float = 1.0e-3    # Significant difference (visible at 3 decimals)
MAX_THRESHOLD: float = 0.1         # Upper bound for caller-supplied thresholds
CONE_TERMS: int = 2 * RESULT_STEPS - 1  # Min and max of 20 steps plus the final mid


class DominanceOrder(IntEnum):
    """Verdict of a pairwise dominance test."""

    NONE = 0
    FIRST = 1     # One cone lies above the other throughout
    SECOND = 2    # Cones cross but the aggregate difference is significant


class DominanceFlags(Enum):
    """Which side has been seen superior while scanning two cones."""

    UNDETERMINED = "undetermined"
    FIRST_SUPERIOR = "first_superior"
    SECOND_SUPERIOR = "second_superior"
    CROSSING = "crossing"

    def observe(self, diff: float) -> "DominanceFlags":
        """Fold one signed step difference into the state."""
        if diff > DOMINANCE_LIMIT:
            seen = DominanceFlags.FIRST_SUPERIOR
        elif diff < -DOMINANCE_LIMIT:
            seen = DominanceFlags.SECOND_SUPERIOR
        else:
            return self
        if self in (DominanceFlags.UNDETERMINED, seen):
            return seen
        return DominanceFlags.CROSSING

    @property
    def order(self) -> DominanceOrder:
        if self == DominanceFlags.UNDETERMINED:
            return DominanceOrder.NONE
        if self == DominanceFlags.CROSSING:
            return DominanceOrder.SECOND
        return DominanceOrder.FIRST


# ── Absolute dominance state machines ────────────────────────────────────
#
# Rows: old state, columns: incoming verdict.

# Per-criterion fold: no dominance overshadows both orders, second order
# overshadows first (chain 1 -> 2 -> 0).
ABS_DOM_TABLE: tuple[tuple[int, int, int], ...] = (
    (0, 0, 0),
    (0, 1, 2),
    (0, 2, 2),
)

# Per-alternative summary: first order overshadows both, second order
# overshadows none (chain 0 -> 2 -> 1).
ABS_SUM_TABLE: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (1, 1, 1),
    (2, 1, 2),
)


def abs_dom(old: int, cur: int) -> DominanceOrder:
    """Combine the running verdict of a pair with one more criterion."""
    return DominanceOrder(ABS_DOM_TABLE[old][cur])


def abs_sum(old: int, cur: int) -> DominanceOrder:
    """Combine a running dominated/dominating summary with one more pair."""
    return DominanceOrder(ABS_SUM_TABLE[old][cur])


@dataclass(frozen=True)
class DominanceResult:
    """Signed cone difference and the resulting order."""

    magnitude: float
    order: DominanceOrder


@dataclass(frozen=True)
class AbsoluteDominance:
    """
    Criterion-independent dominance.

    ``dominated[j]`` is the summary verdict of alternative j being
    dominated by any other; ``dominating[i]`` of i dominating the others
    (only computed for alternatives that are not dominated themselves).
    """

    matrix: AlternativeMatrix[int]
    dominated: dict[int, int]
    dominating: dict[int, int]
    any_dominated: bool


class DominanceAnalyzer:
    """Pairwise and matrix dominance over an evaluator's kernel."""

    def __init__(self, evaluator: Evaluator, abort_check: Optional[AbortCheck] = None):
        self.evaluator = evaluator
        self.abort_check = abort_check or evaluator.abort_check

    @property
    def n_alts(self) -> int:
        return self.evaluator.n_alts

    def dominance(self, slot: int, alt_a: int, alt_b: int) -> DominanceResult:
        """
        Compare the PSI cones of two alternatives.

        A positive magnitude favours ``alt_a``. The order is NONE unless
        the magnitude reaches DOMINANCE_LIMIT. Clears the cache.
        """
        self.evaluator.check_slot(slot)
        if self.n_alts < 2:
            raise TooFewAlternativesError(2, self.n_alts)
        if alt_a == alt_b:
            raise InputError(
                "dominance needs two distinct alternatives",
                details={"alt_a": alt_a, "alt_b": alt_b},
            )
        first = self.evaluator.evaluate_full(
            slot, EvaluationRule.PSI, alt_a, mode=ExpansionMode.CONVERGE_HALF
        )
        second = self.evaluator.evaluate_full(
            slot, EvaluationRule.PSI, alt_b, mode=ExpansionMode.CONVERGE_HALF
        )

        last = RESULT_STEPS - 1
        diff = first.mid[last] - second.mid[last]
        total = diff
        flags = DominanceFlags.UNDETERMINED.observe(diff)
        for i in range(last):
            for diff in (first.lower[i] - second.lower[i], first.upper[i] - second.upper[i]):
                total += diff
                flags = flags.observe(diff)

        magnitude = total / CONE_TERMS
        order = flags.order if abs(magnitude) >= DOMINANCE_LIMIT else DominanceOrder.NONE
        self.evaluator.cache.invalidate()

        logger.debug(
            "dominance_evaluated",
            slot=slot,
            alt_a=alt_a,
            alt_b=alt_b,
            magnitude=round(magnitude, 6),
            flags=flags.value,
            order=int(order),
        )
        return DominanceResult(magnitude=magnitude, order=order)

    def dominance_matrix(self, slot: int, threshold: float = 0.0) -> AlternativeMatrix[int]:
        """
        Orders of all pairs: cell (i, j) holds the order by which i
        dominates j when the magnitude clears ``threshold``, else 0.
        """
        self._check_threshold(threshold)
        self.evaluator.check_slot(slot)
        n_alts = self.n_alts
        rows = [[0] * n_alts for _ in range(n_alts)]
        for i in range(1, n_alts):
            for j in range(i + 1, n_alts + 1):
                self.abort_check()
                result = self.dominance(slot, i, j)
                if result.magnitude > threshold:
                    rows[i - 1][j - 1] = int(result.order)
                elif result.magnitude < -threshold:
                    rows[j - 1][i - 1] = int(result.order)
        return AlternativeMatrix.from_rows(rows)

    def dominance_nt_matrix(self, slot: int, threshold: float = 0.0) -> AlternativeMatrix[int]:
        """
        Dominance matrix with edges implied by a two-step chain removed.

        A first-order edge i -> j goes when i -> k -> j are both first
        order; a second-order edge goes when any i -> k -> j chain exists.
        """
        full = self.dominance_matrix(slot, threshold)
        n_alts = full.n_alts
        rows = [list(row) for row in full]
        for i in range(1, n_alts + 1):
            for j in range(1, n_alts + 1):
                edge = rows[i - 1][j - 1]
                if not edge:
                    continue
                for k in range(1, n_alts + 1):
                    if (edge == DominanceOrder.FIRST and full[i, k] == 1 and full[k, j] == 1) or (
                        edge == DominanceOrder.SECOND and full[i, k] and full[k, j]
                    ):
                        rows[i - 1][j - 1] = 0
                        break
        return AlternativeMatrix.from_rows(rows)

    def dominance_rank(
        self,
        slot: int,
        mode: RankingMode = RankingMode.OLYMPIC,
        strong: bool = False,
        threshold: float = 0.0,
    ) -> dict[int, int]:
        """
        Rank alternatives by peeling off undominated layers.

        Each pass ranks every active alternative that no other active
        alternative dominates (with ``strong`` only first-order edges
        count). OLYMPIC numbers layers 1, 2, 3...; GROUPED numbers a
        layer by its first position; STRICT gives every alternative its
        own position.
        """
        if mode not in (RankingMode.OLYMPIC, RankingMode.GROUPED, RankingMode.STRICT):
            raise InputError("unknown dominance rank mode", details={"mode": str(mode)})
        reduced = self.dominance_nt_matrix(slot, threshold)
        n_alts = reduced.n_alts
        rank = {alt: 0 for alt in range(1, n_alts + 1)}
        active = set(rank)
        remaining = n_alts
        level = 1
        for layer in range(1, n_alts + 1):
            for j in range(1, n_alts + 1):
                if j not in active:
                    continue
                if any(
                    reduced[i, j] and (not strong or reduced[i, j] == DominanceOrder.FIRST)
                    for i in active
                ):
                    continue
                if mode == RankingMode.STRICT:
                    rank[j] = n_alts + 1 - remaining
                elif mode == RankingMode.GROUPED:
                    rank[j] = level
                else:
                    rank[j] = layer
                remaining -= 1
            active = {alt for alt, value in rank.items() if value == 0}
            level = n_alts + 1 - remaining
            if not remaining:
                break
        if remaining:
            raise InternalEngineError(
                "dominance layering did not terminate",
                details={"slot": slot, "remaining": remaining},
            )
        return rank

    def cardinal_dominance_matrix(
        self, slot: int, strong: bool = False, threshold: float = 0.0
    ) -> AlternativeMatrix[float]:
        """
        Dominance magnitudes: cell (i, j) holds how much i dominates j.

        With ``strong`` only first-order verdicts are kept.
        """
        self._check_threshold(threshold)
        self.evaluator.check_slot(slot)
        n_alts = self.n_alts
        rows = [[0.0] * n_alts for _ in range(n_alts)]
        for i in range(1, n_alts):
            for j in range(i + 1, n_alts + 1):
                self.abort_check()
                result = self.dominance(slot, i, j)
                counted = result.order == DominanceOrder.FIRST or (
                    result.order != DominanceOrder.NONE and not strong
                )
                if not counted:
                    continue
                if result.magnitude > threshold:
                    rows[i - 1][j - 1] = result.magnitude
                elif result.magnitude < -threshold:
                    rows[j - 1][i - 1] = -result.magnitude
        return AlternativeMatrix.from_rows(rows)

    def absolute_dominance_matrix(
        self, strong: bool = False, threshold: float = 0.0
    ) -> AbsoluteDominance:
        """
        Dominance that holds on every criterion, whatever the weights.

        A pair starts as first-order dominance and is disproved on the
        first criterion where the magnitude does not clear ``threshold``.
        Criteria without a value frame count as no dominance when there
        is more than one criterion.
        """
        self._check_threshold(threshold)
        threshold = max(threshold, VALUE_EPS)
        kernel = self.evaluator.kernel
        n_crit = self.evaluator.n_crit
        n_alts = self.n_alts

        rows = [[0 if i == j else 1 for j in range(n_alts)] for i in range(n_alts)]
        for i in range(1, n_alts + 1):
            self.abort_check()
            for j in range(1, n_alts + 1):
                if i == j:
                    continue
                for crit in range(1, n_crit + 1):
                    if n_crit > 1 and not kernel.has_criterion(crit):
                        magnitude, order = 0.0, DominanceOrder.NONE
                    else:
                        result = self.dominance(crit, i, j)
                        magnitude, order = result.magnitude, result.order
                    if magnitude > threshold:
                        rows[i - 1][j - 1] = abs_dom(rows[i - 1][j - 1], order)
                    else:
                        rows[i - 1][j - 1] = 0
                        break

        dominated: dict[int, int] = {}
        for j in range(1, n_alts + 1):
            state = DominanceOrder.NONE
            for i in range(1, n_alts + 1):
                if i == j:
                    continue
                state = abs_sum(state, rows[i - 1][j - 1])
                if state == DominanceOrder.FIRST:
                    break
            if strong and state == DominanceOrder.SECOND:
                state = DominanceOrder.NONE
            dominated[j] = int(state)

        dominating: dict[int, int] = {}
        for i in range(1, n_alts + 1):
            state = DominanceOrder.NONE
            if not dominated[i]:
                for j in range(1, n_alts + 1):
                    if i == j:
                        continue
                    state = abs_sum(state, rows[i - 1][j - 1])
                    if state == DominanceOrder.FIRST:
                        break
            if strong and state == DominanceOrder.SECOND:
                state = DominanceOrder.NONE
            dominating[i] = int(state)

        any_dominated = any(dominated.values())
        logger.info(
            "absolute_dominance_computed",
            n_alts=n_alts,
            n_crit=n_crit,
            dominated=sum(1 for value in dominated.values() if value),
            strong=strong,
        )
        return AbsoluteDominance(
            matrix=AlternativeMatrix.from_rows(rows),
            dominated=dominated,
            dominating=dominating,
            any_dominated=any_dominated,
        )

    # ── Private helpers ──────────────────────────────────────────────────

    @staticmethod
    def _check_threshold(threshold: float) -> None:
        if threshold < 0.0 or threshold > MAX_THRESHOLD:
            raise InputError(
                f"dominance threshold must lie within [0, {MAX_THRESHOLD}]",
                details={"threshold": threshold},
            )
