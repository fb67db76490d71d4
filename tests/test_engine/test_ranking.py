"""
Alternative Ranking Tests.

Rank disciplines, tolerance handling, the special gamma modes, support
comparison, the delta-mass matrix and per-criterion contributions.
"""

import pytest

from beliefcast.engine.ranking import UNUSED_RANK, UNUSED_VALUE, Ranker
from beliefcast.exceptions import (
    InputError,
    UnknownAlternativeError,
    UnknownCriterionError,
    WrongMethodError,
    WrongToleranceError,
)
from beliefcast.kernel import AlternativeProfile, StaticKernel
from beliefcast.schemas import DeltaMassMode, EvaluationRule, Moments, RankingMode

from factories import make_evaluator, point_kernel, uniform_kernel


def _ranker(kernel: StaticKernel) -> Ranker:
    return Ranker(make_evaluator(kernel))


class TestRankDisciplines:
    """Olympic, grouped and strict ranks on tied values."""

    def setup_method(self):
        self.ranker = _ranker(point_kernel(0.9, 0.9, 0.5))

    def test_olympic(self):
        """Ties share a rank and the next rank follows on."""
        result = self.ranker.rank_alternatives(1, RankingMode.OLYMPIC)
        assert result.omega_rank == {1: 1, 2: 1, 3: 2}
        assert result.gamma_rank == {1: 1, 2: 1, 3: 2}
        assert not result.differing_ranks

    def test_grouped(self):
        """Ties share a rank and the next rank skips the group."""
        result = self.ranker.rank_alternatives(1, RankingMode.GROUPED)
        assert result.omega_rank == {1: 1, 2: 1, 3: 3}

    def test_strict(self):
        """Strict ranks are distinct and keep input order among ties."""
        result = self.ranker.rank_alternatives(1, RankingMode.STRICT)
        assert result.omega_rank == {1: 1, 2: 2, 3: 3}
        assert sorted(result.gamma_rank.values()) == [1, 2, 3]

    def test_values(self):
        """Omega is the expected value, gamma the excess over the others."""
        result = self.ranker.rank_alternatives(1)
        assert result.omega_value == pytest.approx({1: 0.9, 2: 0.9, 3: 0.5})
        assert result.gamma_value == pytest.approx({1: 0.2, 2: 0.2, 3: -0.4})

    def test_mode_by_value(self):
        """Modes may be given by their string value."""
        result = self.ranker.rank_alternatives(1, "grouped")
        assert result.omega_rank == {1: 1, 2: 1, 3: 3}

    def test_cache_cleared(self):
        """Ranking leaves no evaluation behind."""
        self.ranker.rank_alternatives(1)
        assert not self.ranker.evaluator.cache.is_valid(1)


class TestRankTolerances:
    """Tolerance-based grouping."""

    def test_tolerance_groups_close_values(self):
        """Values within the tolerance of the group leader tie."""
        ranker = _ranker(point_kernel(0.9, 0.85, 0.8, 0.5))
        result = ranker.rank_alternatives(1, RankingMode.OLYMPIC, omega_tolerance=0.06)
        # 0.8 is within 0.06 of 0.85 but not of the leader 0.9
        assert result.omega_rank == {1: 1, 2: 1, 3: 2, 4: 3}

    def test_zero_tolerance_separates(self):
        """Without tolerance distinct values get distinct ranks."""
        ranker = _ranker(point_kernel(0.9, 0.85, 0.8))
        result = ranker.rank_alternatives(1, RankingMode.OLYMPIC)
        assert result.omega_rank == {1: 1, 2: 2, 3: 3}

    @pytest.mark.parametrize("tolerance", [-0.01, 0.2])
    def test_out_of_range(self, tolerance):
        """Tolerances lie within [0, 0.1]."""
        ranker = _ranker(point_kernel(0.9, 0.5))
        with pytest.raises(WrongToleranceError):
            ranker.rank_alternatives(1, gamma_tolerance=tolerance)
        with pytest.raises(WrongToleranceError):
            ranker.rank_alternatives(1, omega_tolerance=tolerance)

    def test_unknown_mode(self):
        """Unknown ranking modes are an input error."""
        with pytest.raises(InputError):
            _ranker(point_kernel(0.9, 0.5)).rank_alternatives(1, "alphabetical")

    def test_unknown_slot(self):
        """The slot is checked before any evaluation."""
        with pytest.raises(UnknownCriterionError):
            _ranker(point_kernel(0.9, 0.5)).rank_alternatives(2)


class TestSpecialModes:
    """Tiebreak, mass, support and dominance gamma views."""

    def test_tiebreak_prefers_larger_variance(self):
        """Tied gammas are separated by criterion variance."""
        ranker = _ranker(uniform_kernel((0.45, 0.55), (0.3, 0.7), (0.0, 0.2)))
        result = ranker.rank_alternatives(1, RankingMode.STRICT_TIEBREAK)
        assert result.gamma_rank == {1: 2, 2: 1, 3: 3}
        # the reported values are the plain gamma means
        assert result.gamma_value[1] == pytest.approx(result.gamma_value[2])

    def test_mass(self):
        """Gamma becomes the belief mass above zero."""
        ranker = _ranker(point_kernel(0.9, 0.5, 0.1))
        result = ranker.rank_alternatives(1, RankingMode.MASS)
        assert result.gamma_value == pytest.approx({1: 1.0, 2: 0.5, 3: 0.0})
        assert result.gamma_rank == {1: 1, 2: 2, 3: 3}

    def test_support_upper_point(self):
        """An upper support target reads above the expected value."""
        ranker = _ranker(uniform_kernel((0.2, 0.8), (0.3, 0.5)))
        result = ranker.rank_alternatives(1, RankingMode.SUPPORT, gamma_tolerance=0.9)
        assert result.gamma_value[1] > result.omega_value[1]
        assert result.gamma_value[1] <= 0.8

    def test_support_lower_point_reorders(self):
        """A cautious target prefers the narrow alternative."""
        ranker = _ranker(uniform_kernel((0.0, 0.9), (0.35, 0.45)))
        result = ranker.rank_alternatives(1, RankingMode.SUPPORT, gamma_tolerance=0.05)
        assert result.omega_rank == {1: 1, 2: 2}
        assert result.gamma_rank == {1: 2, 2: 1}
        assert result.differing_ranks

    def test_support_midpoint_is_omega(self):
        """A target of one half ranks on the expected values alone."""
        ranker = _ranker(uniform_kernel((0.0, 0.9), (0.35, 0.45)))
        result = ranker.rank_alternatives(1, RankingMode.SUPPORT, gamma_tolerance=0.5)
        assert result.gamma_value == result.omega_value
        assert result.gamma_rank == result.omega_rank

    @pytest.mark.parametrize("target", [-0.1, 1.1])
    def test_support_target_range(self, target):
        """Support targets lie within [0, 1]."""
        ranker = _ranker(point_kernel(0.9, 0.5))
        with pytest.raises(InputError):
            ranker.rank_alternatives(1, RankingMode.SUPPORT, gamma_tolerance=target)

    def test_dominance(self):
        """Gamma holds consecutive dominance along the omega order."""
        ranker = _ranker(point_kernel(0.5, 0.9, 0.1))
        result = ranker.rank_alternatives(1, RankingMode.DOMINANCE)
        assert result.omega_rank == {2: 1, 1: 2, 3: 3}
        assert result.gamma_rank[2] == 1
        assert result.gamma_value[2] == pytest.approx(0.4)
        assert result.gamma_rank[1] == 1
        assert result.gamma_value[1] == pytest.approx(0.4)
        assert result.gamma_rank[3] == UNUSED_RANK
        assert result.gamma_value[3] == UNUSED_VALUE
        assert not result.differing_ranks

    def test_dominance_tie(self):
        """Equal neighbours show no dominance."""
        ranker = _ranker(point_kernel(0.7, 0.7))
        result = ranker.rank_alternatives(1, RankingMode.DOMINANCE)
        assert result.gamma_rank == {1: 0, 2: UNUSED_RANK}


class TestCompareAlternatives:
    """Support bounds of every alternative at one belief level."""

    def setup_method(self):
        self.ranker = _ranker(uniform_kernel((0.2, 0.8), (0.1, 0.5)))

    def test_bounds_straddle_mean(self):
        """A central interval contains the expected value."""
        result = self.ranker.compare_alternatives(1, EvaluationRule.PSI, 0.9)
        assert result.lower[1] < 0.5 < result.upper[1]
        assert result.lower[2] < 0.3 < result.upper[2]

    def test_full_belief_is_hull(self):
        """At belief 1 the bounds reach the hull."""
        result = self.ranker.compare_alternatives(1, EvaluationRule.PSI, 1.0)
        assert result.lower[1] == pytest.approx(0.2)
        assert result.upper[1] == pytest.approx(0.8)

    def test_zero_belief_is_point(self):
        """At belief 0 both bounds meet."""
        result = self.ranker.compare_alternatives(1, EvaluationRule.PSI, 0.0)
        assert result.lower[1] == pytest.approx(result.upper[1])
        assert result.lower[1] == pytest.approx(0.5, abs=1e-3)

    def test_belief_range(self):
        """Belief levels lie within [0, 1]."""
        with pytest.raises(InputError):
            self.ranker.compare_alternatives(1, EvaluationRule.PSI, 1.5)

    def test_unknown_rule(self):
        """Unknown rules are a wrong method."""
        with pytest.raises(WrongMethodError):
            self.ranker.compare_alternatives(1, "sigma", 0.9)


class TestDeltaMass:
    """Pairwise difference values and masses."""

    def test_points(self):
        """Separate points give certain pairwise verdicts."""
        result = _ranker(point_kernel(0.9, 0.5, 0.1)).delta_mass(1)
        assert result.value[1, 3] == pytest.approx(0.8)
        assert result.value[3, 1] == pytest.approx(-0.8)
        assert result.mass[1, 2] == 1.0
        assert result.mass[2, 1] == 0.0

    def test_diagonal_and_complement(self):
        """The diagonal is empty and each pair sums to one."""
        result = _ranker(uniform_kernel((0.3, 0.9), (0.2, 0.7), (0.1, 0.6))).delta_mass(1)
        for i in range(1, 4):
            assert result.mass[i, i] == 0.0
            assert result.value[i, i] == 0.0
            for j in range(1, 4):
                if i != j:
                    assert result.mass[i, j] + result.mass[j, i] == pytest.approx(1.0)

    @pytest.mark.parametrize("mode", list(DeltaMassMode))
    def test_complement_survives_adjustment(self, mode):
        """Monotone adjustments keep every pair complementary."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8), (0.0, 0.4))
        result = _ranker(kernel).delta_mass(1, mode)
        for i in range(1, 5):
            for j in range(i + 1, 5):
                assert result.mass[i, j] + result.mass[j, i] == pytest.approx(1.0)

    def test_lift_to_half(self):
        """The higher expected value holds at least half the pairwise mass."""
        kernel = StaticKernel.single_criterion(
            [
                AlternativeProfile(0.2, 0.6, 0.8, Moments(0.4, 0.01, 0.0)),
                AlternativeProfile(0.2, 0.5, 0.8, Moments(0.5, 0.01, 0.0)),
            ]
        )
        raw = _ranker(kernel).delta_mass(1, DeltaMassMode.RAW)
        assert raw.mass[1, 2] < 0.5
        lifted = _ranker(kernel).delta_mass(1, DeltaMassMode.ROW_PRIORITY)
        assert lifted.mass[1, 2] == 0.5
        assert lifted.mass[2, 1] == 0.5

    def test_rows_monotone(self):
        """Row modes leave upper-triangle rows non-decreasing in omega order."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8), (0.0, 0.4))
        result = _ranker(kernel).delta_mass(1, DeltaMassMode.ROW_ONLY)
        for i in range(1, 5):
            row = [result.mass[i, j] for j in range(i + 1, 5)]
            assert row == sorted(row)

    def test_columns_monotone(self):
        """Column modes leave upper-triangle columns non-increasing in omega order."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8), (0.0, 0.4))
        result = _ranker(kernel).delta_mass(1, DeltaMassMode.COLUMN_ONLY)
        for j in range(2, 5):
            column = [result.mass[i, j] for i in range(1, j)]
            assert column == sorted(column, reverse=True)

    def test_unknown_mode(self):
        """Unknown adjustment modes are an input error."""
        with pytest.raises(InputError):
            _ranker(point_kernel(0.9, 0.5)).delta_mass(1, "diagonal")


def _criteria_kernel(**overrides) -> StaticKernel:
    """Three weighted criteria; alternative 1 ties on its two leading contributions."""
    point = AlternativeProfile.point
    return StaticKernel(
        criteria={
            1: [point(0.6), point(0.2)],
            2: [point(1.0), point(0.5)],
            3: [point(0.5), point(1.0)],
        },
        weights={1: 0.5, 2: 0.3, 3: 0.2},
        **overrides,
    )


class TestOmegaContributions:
    """Expected value split by criterion and criteria ranked by contribution."""

    def setup_method(self):
        self.ranker = _ranker(_criteria_kernel())

    def test_weighted_contributions(self):
        """Each criterion contributes weight times expected value."""
        result = self.ranker.evaluate_omega(1)
        assert result.contribution == pytest.approx({1: 0.3, 2: 0.3, 3: 0.1})
        assert result.total == pytest.approx(0.7)
        assert result.order == (1, 2, 3)

    @pytest.mark.parametrize(
        "mode,expected",
        [
            (RankingMode.OLYMPIC, {1: 1, 2: 1, 3: 2}),
            (RankingMode.GROUPED, {1: 1, 2: 1, 3: 3}),
            (RankingMode.STRICT, {1: 1, 2: 2, 3: 3}),
        ],
    )
    def test_rank_modes(self, mode, expected):
        """Criteria rank with the same disciplines as alternatives."""
        assert self.ranker.evaluate_omega(1, mode).rank == expected

    def test_order_follows_contribution(self):
        """The order lists criteria largest contribution first."""
        result = self.ranker.evaluate_omega(2)
        assert result.contribution == pytest.approx({1: 0.1, 2: 0.15, 3: 0.2})
        assert result.order == (3, 2, 1)
        assert result.rank == {3: 1, 2: 2, 1: 3}

    def test_renormalize(self):
        """Renormalised contributions are shares of the total and sum to one."""
        result = self.ranker.evaluate_omega(1, renormalize=True)
        assert result.contribution == pytest.approx({1: 3 / 7, 2: 3 / 7, 3: 1 / 7})
        assert sum(result.contribution.values()) == pytest.approx(1.0)
        assert result.total == pytest.approx(0.7)

    def test_average_over_alternatives(self):
        """Alternative 0 averages the contributions of every alternative."""
        result = self.ranker.evaluate_omega(0)
        assert result.contribution == pytest.approx({1: 0.2, 2: 0.225, 3: 0.15})
        assert result.total == pytest.approx((0.7 + 0.45) / 2)
        assert result.order == (2, 1, 3)

    def test_empty_criterion_standin(self):
        """A criterion without a value frame counts as the scale midpoint."""
        kernel = StaticKernel(
            criteria={1: [AlternativeProfile.point(0.8), AlternativeProfile.point(0.4)], 2: None},
            weights={1: 0.5, 2: 0.5},
        )
        result = _ranker(kernel).evaluate_omega(1)
        assert result.contribution == pytest.approx({1: 0.4, 2: 0.25})

    @pytest.mark.parametrize("alt", [-1, 3])
    def test_unknown_alternative(self, alt):
        """Alternatives are 1..n, or 0 for the average."""
        with pytest.raises(UnknownAlternativeError):
            self.ranker.evaluate_omega(alt)

    @pytest.mark.parametrize("mode", [RankingMode.MASS, "sigma"])
    def test_unsupported_mode(self, mode):
        """Only olympic, grouped and strict criterion ranks exist."""
        with pytest.raises(InputError):
            self.ranker.evaluate_omega(1, mode)

    def test_cache_cleared(self):
        """Contribution analysis leaves no evaluation behind."""
        self.ranker.evaluator.evaluate(1, EvaluationRule.PSI, 1)
        self.ranker.evaluate_omega(1)
        assert not self.ranker.evaluator.cache.is_valid(1)


class TestPartWorth:
    """Contributions summed per first-level weight-tree node."""

    def test_grouped_nodes(self):
        """Criteria beneath one first-level node add up."""
        ranker = _ranker(_criteria_kernel(groups={10: [1, 2], 20: [3]}))
        result = ranker.evaluate_part_worth(1)
        assert result.contribution == pytest.approx({10: 0.6, 20: 0.1})
        assert result.total == pytest.approx(0.7)

    def test_renormalize(self):
        """Renormalised part worths are shares of the total."""
        ranker = _ranker(_criteria_kernel(groups={10: [1, 2], 20: [3]}))
        result = ranker.evaluate_part_worth(1, renormalize=True)
        assert result.contribution == pytest.approx({10: 6 / 7, 20: 1 / 7})

    def test_flat_tree_matches_omega(self):
        """Without groups every criterion is its own first-level node."""
        ranker = _ranker(_criteria_kernel())
        worth = ranker.evaluate_part_worth(2)
        omega = ranker.evaluate_omega(2)
        assert worth.contribution == pytest.approx(omega.contribution)
        assert worth.total == pytest.approx(omega.total)

    def test_zero_total_shares(self):
        """A zero total gives zero shares rather than a division error."""
        kernel = StaticKernel(
            criteria={1: [AlternativeProfile.point(0.0), AlternativeProfile.point(0.4)]}
        )
        result = _ranker(kernel).evaluate_part_worth(1, renormalize=True)
        assert result.contribution == {1: 0.0}
