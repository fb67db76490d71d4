"""
Engine Schemas: shared value types of the belief engine.

Alternatives are numbered from 1. Slots are signed integers:
0 is the whole problem, positive values are criteria, negative values
are partial nodes of the criteria tree.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")


class EvaluationRule(StrEnum):
    PSI = "psi"            # Alternative A on its own
    DELTA = "delta"        # A minus B
    GAMMA = "gamma"        # A against the mean of all other alternatives
    DIGAMMA = "digamma"    # A against the mean of a subset (bitmask in B)


class ExpansionMode(StrEnum):
    CONVERGE_HALF = "converge_half"                            # Cone narrows to the 50% cdf point
    CONVERGE_HALF_SWAP = "converge_half_swap"                  # Same, midpoints swapped
    CONVERGE_MASS = "converge_mass"                            # Cone narrows to the mass point
    CONVERGE_MASS_INTERPOLATED = "converge_mass_interpolated"  # Same, outer hull interpolated


class SupportMode(StrEnum):
    CENTER = "center"  # Central interval around the 50% point
    LOWER = "lower"    # From the lower hull up to the belief level
    UPPER = "upper"    # From the belief level up to the upper hull


class RankingMode(StrEnum):
    OLYMPIC = "olympic"                  # Ties share a rank, next rank follows on (1, 1, 2)
    GROUPED = "grouped"                  # Ties share a rank, next rank skips the group (1, 1, 3)
    STRICT = "strict"                    # Distinct positions even under ties
    STRICT_TIEBREAK = "strict_tiebreak"  # Strict, ties nudged by criterion variance
    MASS = "mass"                        # Strict on gamma belief mass above zero
    SUPPORT = "support"                  # Strict on a support point of the omega fit
    DOMINANCE = "dominance"              # Gamma replaced by consecutive omega-order dominance


class DeltaMassMode(StrEnum):
    RAW = "raw"                          # Pairwise masses as evaluated
    ROW_PRIORITY = "row_priority"        # Rows non-decreasing, then columns non-increasing
    COLUMN_PRIORITY = "column_priority"  # Columns non-increasing, then rows non-decreasing
    ROW_ONLY = "row_only"                # Rows non-decreasing
    COLUMN_ONLY = "column_only"          # Columns non-increasing


class MassStatus(StrEnum):
    OK = "ok"
    WEAK_MASS_DISTRIBUTION = "weak_mass_distribution"  # Fit spans < 90% of its own mass
    INFINITE_MASS = "infinite_mass"                    # Hull narrower than epsilon (Dirac)


@dataclass(frozen=True)
class Moments:
    """Raw mean, central variance and central third moment."""
    rm1: float
    cm2: float
    cm3: float


@dataclass(frozen=True)
class ResultTriple:
    """Truncated outcome range and midpoint of one evaluation."""
    lower: float
    mid: float
    upper: float

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class MassResult:
    value: float
    status: MassStatus


@dataclass(frozen=True)
class SupportInterval:
    lower: float
    upper: float
    status: MassStatus


@dataclass(frozen=True)
class AlternativeMatrix(Generic[T]):
    """
    Square matrix over alternatives, addressed 1-based as m[i, j].

    The diagonal holds the neutral value of the matrix (0 or 0.0).
    """
    cells: tuple[tuple[T, ...], ...]

    @property
    def n_alts(self) -> int:
        return len(self.cells)

    def __getitem__(self, key: tuple[int, int]) -> T:
        i, j = key
        if i < 1 or j < 1:
            raise IndexError(f"alternatives are numbered from 1, got {key}")
        return self.cells[i - 1][j - 1]

    def row(self, i: int) -> tuple[T, ...]:
        return self.cells[i - 1]

    def __iter__(self) -> Iterator[tuple[T, ...]]:
        return iter(self.cells)

    @classmethod
    def from_rows(cls, rows: list[list[T]]) -> "AlternativeMatrix[T]":
        return cls(cells=tuple(tuple(r) for r in rows))


@dataclass(frozen=True)
class ValueResult:
    """A point on the value axis with the validity of the fit it came from."""
    value: float
    status: MassStatus


@dataclass(frozen=True)
class ResultCone:
    """
    Evaluation expanded over 21 belief levels.

    Step 0 is the raw evaluation (100% belief, the full hull); step i
    holds the interval containing (100 - 5i)% of the belief mass.
    """
    steps: tuple[ResultTriple, ...]

    @property
    def lower(self) -> tuple[float, ...]:
        return tuple(s.lower for s in self.steps)

    @property
    def mid(self) -> tuple[float, ...]:
        return tuple(s.mid for s in self.steps)

    @property
    def upper(self) -> tuple[float, ...]:
        return tuple(s.upper for s in self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> ResultTriple:
        return self.steps[index]
