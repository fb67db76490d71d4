"""
BeliefCast Decision Engine - public entry point of the belief core.

The DecisionEngine is the HIGH-LEVEL API over a moment kernel.

It provides:
1. Evaluations of one alternative (or a pair) under the four rules
2. Belief-mass and support queries against the latest evaluation
3. Ranking, pairwise comparison and delta-mass matrices
4. Dominance tests, matrices, layered ranks and absolute dominance
5. Daisy chains and pie charts for presentation

Every public operation runs under the reentrancy guard and re-arms the
abort flag. Upstream changes to the kernel's data must be reported with
``notify_mutation()``, which invalidates every cached evaluation.
"""

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import structlog

from beliefcast.config import Settings, settings as default_settings
from beliefcast.engine.cache import EvaluationCache
from beliefcast.engine.charts import ChartBuilder, DaisyChain, DaisyMode, PieMode
from beliefcast.engine.dominance import (
    AbsoluteDominance,
    DominanceAnalyzer,
    DominanceResult,
)
from beliefcast.engine.evaluation import Evaluator
from beliefcast.engine.fitting import BNormalFit
from beliefcast.engine.guard import AbortFlag, ReentrancyGuard, process_guard
from beliefcast.engine.ranking import (
    ComparisonResult,
    DeltaMassResult,
    OmegaResult,
    PartWorthResult,
    Ranker,
    RankingResult,
)
from beliefcast.kernel import MomentKernel
from beliefcast.schemas import (
    AlternativeMatrix,
    DeltaMassMode,
    EvaluationRule,
    ExpansionMode,
    MassResult,
    MassStatus,
    Moments,
    RankingMode,
    ResultCone,
    ResultTriple,
    SupportInterval,
    SupportMode,
    ValueResult,
)

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def engine_operation(name: str) -> Callable[[F], F]:
    """Run a public method under the guard with a fresh abort flag."""

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(self: "DecisionEngine", *args, **kwargs):
            with self.guard.enter(name):
                self._abort.arm(name)
                return func(self, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


class DecisionEngine:
    """
    Belief engine over one kernel.

    Owns the evaluation cache, the abort flag and the analyzers. The
    reentrancy guard is process-wide unless one is passed in.
    """

    def __init__(
        self,
        kernel: MomentKernel,
        config: Optional[Settings] = None,
        guard: Optional[ReentrancyGuard] = None,
    ):
        self.kernel = kernel
        self.config = config or default_settings
        self.guard = guard or process_guard
        self.cache = EvaluationCache()
        self._abort = AbortFlag()
        self.evaluator = Evaluator(kernel, self.cache, abort_check=self._abort.check)
        self.dominance_analyzer = DominanceAnalyzer(self.evaluator)
        self.ranker = Ranker(self.evaluator, self.dominance_analyzer)
        self.charts = ChartBuilder(self.evaluator)

        logger.info(
            "decision_engine_created",
            n_alts=kernel.alternative_count(),
            n_crit=kernel.criterion_count(),
        )

    # ── Lifecycle ────────────────────────────────────────────────────────

    def notify_mutation(self) -> None:
        """Report a change to the kernel's data; every evaluation goes stale."""
        self.cache.invalidate()

    def request_abort(self) -> None:
        """Ask the running scan to stop at the next alternative boundary."""
        self._abort.request()

    def cache_stats(self) -> dict[str, object]:
        return self.cache.get_stats()

    # ── Evaluation ───────────────────────────────────────────────────────

    @engine_operation("evaluate")
    def evaluate(
        self, slot: int, rule: EvaluationRule, alt_a: int, alt_b: int = 0
    ) -> ResultTriple:
        return self.evaluator.evaluate(slot, rule, alt_a, alt_b)

    @engine_operation("evaluate_full")
    def evaluate_full(
        self,
        slot: int,
        rule: EvaluationRule,
        alt_a: int,
        alt_b: int = 0,
        mode: ExpansionMode = ExpansionMode.CONVERGE_MASS,
    ) -> ResultCone:
        return self.evaluator.evaluate_full(slot, rule, alt_a, alt_b, mode)

    # ── Belief mass ──────────────────────────────────────────────────────

    @engine_operation("mass_above")
    def mass_above(self, slot: int, level: float) -> MassResult:
        return self.evaluator.mass.mass_above(slot, level)

    @engine_operation("mass_below")
    def mass_below(self, slot: int, level: float) -> MassResult:
        return self.evaluator.mass.mass_below(slot, level)

    @engine_operation("mass_range")
    def mass_range(self, slot: int, lower: float, upper: float) -> MassResult:
        return self.evaluator.mass.mass_range(slot, lower, upper)

    @engine_operation("mass_density")
    def mass_density(self, slot: int, level: float) -> float:
        return self.evaluator.mass.mass_density(slot, level)

    @engine_operation("support_interval")
    def support_interval(
        self, slot: int, belief: float, mode: SupportMode = SupportMode.CENTER
    ) -> SupportInterval:
        return self.evaluator.mass.support_interval(slot, belief, mode)

    @engine_operation("inverse_support_interval")
    def inverse_support_interval(self, slot: int, belief: float) -> SupportInterval:
        return self.evaluator.mass.inverse_support_interval(slot, belief)

    @engine_operation("support_mid")
    def support_mid(self, slot: int) -> ValueResult:
        return self.evaluator.mass.support_mid(slot)

    @engine_operation("aversion_value")
    def aversion_value(self, slot: int, risk_aversion: float) -> ValueResult:
        return self.evaluator.mass.aversion_value(slot, risk_aversion)

    @engine_operation("value_to_cdf")
    def value_to_cdf(self, slot: int, value: float) -> float:
        return self.evaluator.mass.value_to_cdf(slot, value)

    @engine_operation("cdf_to_value")
    def cdf_to_value(self, slot: int, cdf: float) -> float:
        return self.evaluator.mass.cdf_to_value(slot, cdf)

    @engine_operation("fitted_to_truncated_cdf")
    def fitted_to_truncated_cdf(self, slot: int, cdf: float) -> float:
        return self.evaluator.mass.fitted_to_truncated_cdf(slot, cdf)

    @engine_operation("validity")
    def validity(self, slot: int) -> MassStatus:
        return self.evaluator.mass.validity(slot)

    @engine_operation("mass_moments")
    def mass_moments(self, slot: int) -> Moments:
        return self.evaluator.mass.mass_moments(slot)

    @engine_operation("bn_params")
    def bn_params(self, slot: int) -> BNormalFit:
        return self.evaluator.mass.bn_params(slot)

    # ── Ranking ──────────────────────────────────────────────────────────

    @engine_operation("rank_alternatives")
    def rank_alternatives(
        self,
        slot: int,
        mode: RankingMode = RankingMode.OLYMPIC,
        gamma_tolerance: Optional[float] = None,
        omega_tolerance: Optional[float] = None,
    ) -> RankingResult:
        if gamma_tolerance is None:
            gamma_tolerance = self.config.gamma_tolerance
        if omega_tolerance is None:
            omega_tolerance = self.config.omega_tolerance
        return self.ranker.rank_alternatives(slot, mode, gamma_tolerance, omega_tolerance)

    @engine_operation("compare_alternatives")
    def compare_alternatives(
        self, slot: int, rule: EvaluationRule, belief: float
    ) -> ComparisonResult:
        return self.ranker.compare_alternatives(slot, rule, belief)

    @engine_operation("delta_mass")
    def delta_mass(self, slot: int, mode: DeltaMassMode = DeltaMassMode.RAW) -> DeltaMassResult:
        return self.ranker.delta_mass(slot, mode)

    @engine_operation("evaluate_omega")
    def evaluate_omega(
        self,
        alt: int,
        mode: RankingMode = RankingMode.OLYMPIC,
        renormalize: bool = False,
    ) -> OmegaResult:
        return self.ranker.evaluate_omega(alt, mode, renormalize)

    @engine_operation("evaluate_part_worth")
    def evaluate_part_worth(self, alt: int, renormalize: bool = False) -> PartWorthResult:
        return self.ranker.evaluate_part_worth(alt, renormalize)

    # ── Dominance ────────────────────────────────────────────────────────

    @engine_operation("dominance")
    def dominance(self, slot: int, alt_a: int, alt_b: int) -> DominanceResult:
        return self.dominance_analyzer.dominance(slot, alt_a, alt_b)

    @engine_operation("dominance_matrix")
    def dominance_matrix(
        self, slot: int, threshold: Optional[float] = None
    ) -> AlternativeMatrix[int]:
        return self.dominance_analyzer.dominance_matrix(slot, self._threshold(threshold))

    @engine_operation("dominance_nt_matrix")
    def dominance_nt_matrix(
        self, slot: int, threshold: Optional[float] = None
    ) -> AlternativeMatrix[int]:
        return self.dominance_analyzer.dominance_nt_matrix(slot, self._threshold(threshold))

    @engine_operation("dominance_rank")
    def dominance_rank(
        self,
        slot: int,
        mode: RankingMode = RankingMode.OLYMPIC,
        strong: bool = False,
        threshold: Optional[float] = None,
    ) -> dict[int, int]:
        return self.dominance_analyzer.dominance_rank(
            slot, mode, strong, self._threshold(threshold)
        )

    @engine_operation("cardinal_dominance_matrix")
    def cardinal_dominance_matrix(
        self, slot: int, strong: bool = False, threshold: Optional[float] = None
    ) -> AlternativeMatrix[float]:
        return self.dominance_analyzer.cardinal_dominance_matrix(
            slot, strong, self._threshold(threshold)
        )

    @engine_operation("absolute_dominance_matrix")
    def absolute_dominance_matrix(
        self, strong: bool = False, threshold: Optional[float] = None
    ) -> AbsoluteDominance:
        return self.dominance_analyzer.absolute_dominance_matrix(
            strong, self._threshold(threshold)
        )

    # ── Presentation ─────────────────────────────────────────────────────

    @engine_operation("daisy_chain")
    def daisy_chain(
        self,
        slot: int,
        mode: DaisyMode = DaisyMode.ABSOLUTE,
        radius: Optional[float] = None,
    ) -> DaisyChain:
        if radius is None:
            radius = self.config.daisy_radius
        return self.charts.daisy_chain(slot, mode, radius)

    @engine_operation("pie_chart")
    def pie_chart(
        self,
        slot: int,
        mode: PieMode = PieMode.FAITHFUL,
        moderation1: float = 0.0,
        moderation2: float = 0.0,
    ) -> dict[int, float]:
        return self.charts.pie_chart(slot, mode, moderation1, moderation2)

    @engine_operation("moderated_pie_chart")
    def moderated_pie_chart(self, slot: int, moderation: float = 0.0) -> dict[int, float]:
        return self.charts.moderated_pie_chart(slot, moderation)

    # ── Private helpers ──────────────────────────────────────────────────

    def _threshold(self, threshold: Optional[float]) -> float:
        return self.config.dominance_threshold if threshold is None else threshold


def create_decision_engine(
    kernel: MomentKernel,
    config: Optional[Settings] = None,
) -> DecisionEngine:
    """Create an engine with its own reentrancy guard."""
    return DecisionEngine(kernel, config=config, guard=ReentrancyGuard())
