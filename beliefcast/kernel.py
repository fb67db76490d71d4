"""
Consistency Kernel Interface.

The engine never checks interval consistency itself. It reads moments
and truncated hulls from a kernel that does. ``MomentKernel`` is the
contract; ``StaticKernel`` is an in-memory implementation over fixed
per-criterion hulls and moments, used for tests and offline analyses.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, Sequence, runtime_checkable

import structlog

from beliefcast.exceptions import KernelError
from beliefcast.schemas import EvaluationRule, Moments, ResultTriple

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AggregateResult:
    """Weighted multi-criteria hull and moments for one aggregation node."""
    lower: float
    upper: float
    moments: Moments


@runtime_checkable
class MomentKernel(Protocol):
    """What the belief engine consumes from the consistency kernel."""

    def alternative_count(self) -> int: ...

    def criterion_count(self) -> int: ...

    def has_criterion(self, crit: int) -> bool:
        """True if criterion ``crit`` has a loaded value frame (False = empty/shadow)."""
        ...

    def has_node(self, node: int) -> bool:
        """True if ``node`` (0 or negative) names an aggregation node."""
        ...

    def criterion_moments(self, crit: int) -> Sequence[Moments]:
        """Per-alternative moments for a criterion, alternative k at index k-1."""
        ...

    def evaluate_criterion(
        self, crit: int, rule: EvaluationRule, alt_a: int, alt_b: int
    ) -> ResultTriple: ...

    def aggregate(
        self,
        node: int,
        lower: Mapping[int, float],
        upper: Mapping[int, float],
        moments: Mapping[int, Moments],
    ) -> AggregateResult: ...

    def criterion_weights(self) -> Mapping[int, float]:
        """Whole-problem weight of each criterion (midpoint of its weight interval)."""
        ...

    def top_level_nodes(self) -> Mapping[int, Sequence[int]]:
        """Criteria beneath each node at the first level of the weight tree."""
        ...


# ── In-memory kernel ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class AlternativeProfile:
    """Hull and moments of one alternative under one criterion."""
    lower: float
    mid: float
    upper: float
    moments: Moments

    @classmethod
    def point(cls, value: float) -> "AlternativeProfile":
        """A fully determined value (zero variance)."""
        return cls(value, value, value, Moments(value, 0.0, 0.0))

    @classmethod
    def uniform(cls, lower: float, upper: float) -> "AlternativeProfile":
        """Uniform belief over [lower, upper]."""
        mid = (lower + upper) / 2.0
        return cls(lower, mid, upper, Moments(mid, (upper - lower) ** 2 / 12.0, 0.0))


@dataclass
class StaticKernel:
    """
    Kernel over fixed profiles.

    ``criteria`` maps criterion number to one profile per alternative, or
    to None for a criterion without a value frame. ``weights`` are the
    whole-problem criterion weights; ``partial_nodes`` maps negative node
    numbers to their own criterion weights. ``groups`` maps first-level
    weight-tree nodes to the criteria beneath them; by default every
    criterion is its own first-level node.
    """
    criteria: dict[int, Optional[list[AlternativeProfile]]]
    weights: dict[int, float] = field(default_factory=dict)
    partial_nodes: dict[int, dict[int, float]] = field(default_factory=dict)
    groups: dict[int, list[int]] = field(default_factory=dict)

    def __post_init__(self):
        if not self.criteria:
            raise ValueError("at least one criterion is required")
        sizes = {len(p) for p in self.criteria.values() if p is not None}
        if len(sizes) != 1:
            raise ValueError(f"criteria disagree on the number of alternatives: {sorted(sizes)}")
        self._n_alts = sizes.pop()
        if not self.weights:
            n = len(self.criteria)
            self.weights = {c: 1.0 / n for c in self.criteria}

    @classmethod
    def single_criterion(cls, profiles: list[AlternativeProfile]) -> "StaticKernel":
        return cls(criteria={1: profiles})

    def alternative_count(self) -> int:
        return self._n_alts

    def criterion_count(self) -> int:
        return max(self.criteria)

    def has_criterion(self, crit: int) -> bool:
        return self.criteria.get(crit) is not None

    def has_node(self, node: int) -> bool:
        return node == 0 or node in self.partial_nodes

    def criterion_weights(self) -> dict[int, float]:
        return {c: self.weights.get(c, 0.0) for c in range(1, self.criterion_count() + 1)}

    def top_level_nodes(self) -> dict[int, list[int]]:
        if self.groups:
            return {node: list(criteria) for node, criteria in self.groups.items()}
        return {c: [c] for c in sorted(self.criteria)}

    def criterion_moments(self, crit: int) -> list[Moments]:
        return [p.moments for p in self._profiles(crit)]

    def evaluate_criterion(
        self, crit: int, rule: EvaluationRule, alt_a: int, alt_b: int
    ) -> ResultTriple:
        profiles = self._profiles(crit)
        a = profiles[alt_a - 1]
        if rule == EvaluationRule.PSI:
            return ResultTriple(a.lower, a.mid, a.upper)
        if rule == EvaluationRule.DELTA:
            b = profiles[alt_b - 1]
            return ResultTriple(a.lower - b.upper, a.mid - b.mid, a.upper - b.lower)
        if rule == EvaluationRule.GAMMA:
            others = [p for k, p in enumerate(profiles, start=1) if k != alt_a]
        else:
            others = [
                p for k, p in enumerate(profiles, start=1)
                if k != alt_a and alt_b & (1 << (k - 1))
            ]
        if not others:
            return ResultTriple(a.lower, a.mid, a.upper)
        n = len(others)
        return ResultTriple(
            a.lower - sum(p.upper for p in others) / n,
            a.mid - sum(p.mid for p in others) / n,
            a.upper - sum(p.lower for p in others) / n,
        )

    def aggregate(
        self,
        node: int,
        lower: Mapping[int, float],
        upper: Mapping[int, float],
        moments: Mapping[int, Moments],
    ) -> AggregateResult:
        weights = self.weights if node == 0 else self.partial_nodes.get(node)
        if weights is None:
            raise KernelError(f"unknown aggregation node {node}", details={"node": node})
        try:
            return AggregateResult(
                lower=sum(w * lower[c] for c, w in weights.items()),
                upper=sum(w * upper[c] for c, w in weights.items()),
                moments=Moments(
                    rm1=sum(w * moments[c].rm1 for c, w in weights.items()),
                    cm2=sum(w * w * moments[c].cm2 for c, w in weights.items()),
                    cm3=sum(w ** 3 * moments[c].cm3 for c, w in weights.items()),
                ),
            )
        except KeyError as exc:
            raise KernelError(
                f"criterion {exc.args[0]} missing from aggregation input",
                details={"node": node},
            ) from exc

    # ── Private helpers ──────────────────────────────────────────────────

    def _profiles(self, crit: int) -> list[AlternativeProfile]:
        profiles = self.criteria.get(crit)
        if profiles is None:
            raise KernelError(f"criterion {crit} has no value frame", details={"crit": crit})
        return profiles
