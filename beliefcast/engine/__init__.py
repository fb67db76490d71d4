"""
BeliefCast Engine Module.

Components, bottom-up:
- bnormal: skew-normal CDF, inverse CDF and Owen's T
- tolerance: named epsilon comparisons and tolerant ordering
- fitting: B-normal fit from moments, per-rule moment combination
- rescale: truncation of a fit to the kernel's hull
- cache: per-slot evaluation cache
- mass: belief-mass and support queries
- evaluation: kernel evaluation and result cones
- dominance / ranking / charts: analyses over repeated evaluations
- guard: reentrancy guard and abort flag

Usage:
    from beliefcast.engine import EvaluationCache, Evaluator, Ranker
"""

from beliefcast.engine.cache import EvaluationCache
from beliefcast.engine.charts import ChartBuilder, DaisyChain, DaisyMode, PieMode
from beliefcast.engine.dominance import (
    AbsoluteDominance,
    DominanceAnalyzer,
    DominanceFlags,
    DominanceOrder,
    DominanceResult,
)
from beliefcast.engine.evaluation import Evaluator
from beliefcast.engine.fitting import BNormalFit, fit_bnormal
from beliefcast.engine.guard import AbortFlag, ReentrancyGuard
from beliefcast.engine.mass import BeliefMass
from beliefcast.engine.ranking import (
    ComparisonResult,
    DeltaMassResult,
    OmegaResult,
    PartWorthResult,
    Ranker,
    RankingResult,
)

__all__ = [
    "AbortFlag",
    "AbsoluteDominance",
    "BNormalFit",
    "BeliefMass",
    "ChartBuilder",
    "ComparisonResult",
    "DaisyChain",
    "DaisyMode",
    "DeltaMassResult",
    "DominanceAnalyzer",
    "DominanceFlags",
    "DominanceOrder",
    "DominanceResult",
    "EvaluationCache",
    "Evaluator",
    "OmegaResult",
    "PartWorthResult",
    "PieMode",
    "Ranker",
    "RankingResult",
    "ReentrancyGuard",
    "fit_bnormal",
]
