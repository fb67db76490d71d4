"""
Daisy Chain and Pie Chart Tests.
"""

import pytest

from beliefcast.engine.charts import UNUSED_VALUE, ChartBuilder, DaisyMode, PieMode
from beliefcast.exceptions import InputError

from factories import make_evaluator, point_kernel, uniform_kernel


def _charts(kernel) -> ChartBuilder:
    return ChartBuilder(make_evaluator(kernel))


class TestDaisyChain:
    """Consecutive beliefs in omega order."""

    def test_points(self):
        """Separate points beat their successor with certainty."""
        chain = _charts(point_kernel(0.5, 0.9, 0.1)).daisy_chain(1)
        assert chain.order == [2, 1, 3]
        assert chain.omega_rank == {2: 1, 1: 2, 3: 3}
        assert chain.daisy_value == {2: 1.0, 1: 1.0, 3: UNUSED_VALUE}

    def test_trimmed_to_half(self):
        """Daisy values never fall below one half."""
        chain = _charts(uniform_kernel((0.2, 0.8), (0.19, 0.79), (0.0, 0.5))).daisy_chain(1)
        for alt in chain.order[:-1]:
            assert 0.5 <= chain.daisy_value[alt] <= 1.0

    def test_relative_omega(self):
        """Relative mode reports the gap to the next alternative."""
        chain = _charts(point_kernel(0.9, 0.5, 0.1)).daisy_chain(1, DaisyMode.RELATIVE)
        assert chain.omega_value[1] == pytest.approx(0.4)
        assert chain.omega_value[2] == pytest.approx(0.4)
        assert chain.omega_value[3] == UNUSED_VALUE

    def test_mixed_pulls_close_pairs_to_half(self):
        """A pair half a radius apart keeps half of its excess belief."""
        kernel = uniform_kernel((0.4, 0.7), (0.35, 0.65))
        plain = _charts(kernel).daisy_chain(1, DaisyMode.ABSOLUTE)
        mixed = _charts(kernel).daisy_chain(1, DaisyMode.MIXED, radius=0.1)
        expected = 0.5 + (plain.daisy_value[1] - 0.5) / 2.0
        assert mixed.daisy_value[1] == pytest.approx(expected)

    def test_mixed_leaves_distant_pairs(self):
        """Pairs further apart than the radius are not moderated."""
        kernel = point_kernel(0.9, 0.5)
        mixed = _charts(kernel).daisy_chain(1, DaisyMode.MIXED, radius=0.1)
        assert mixed.daisy_value[1] == 1.0

    def test_zero_radius(self):
        """A zero radius switches mixing off."""
        kernel = uniform_kernel((0.4, 0.7), (0.35, 0.65))
        plain = _charts(kernel).daisy_chain(1, DaisyMode.ABSOLUTE)
        mixed = _charts(kernel).daisy_chain(1, DaisyMode.MIXED, radius=0.0)
        assert mixed.daisy_value == plain.daisy_value

    def test_invalid_mode(self):
        """Modes beyond relative and mixed are rejected."""
        with pytest.raises(InputError):
            _charts(point_kernel(0.9, 0.5)).daisy_chain(1, 4)

    def test_radius_checked_when_mixed(self):
        """The radius only matters, and is only checked, when mixing."""
        charts = _charts(point_kernel(0.9, 0.5))
        with pytest.raises(InputError):
            charts.daisy_chain(1, DaisyMode.MIXED, radius=0.6)
        charts.daisy_chain(1, DaisyMode.ABSOLUTE, radius=0.6)

    def test_cache_cleared(self):
        """The chain leaves no evaluation behind."""
        charts = _charts(point_kernel(0.9, 0.5))
        charts.daisy_chain(1)
        assert not charts.evaluator.cache.is_valid(1)


class TestPieChart:
    """Shares derived from the daisy chain."""

    def test_faithful_points(self):
        """A certain winner takes the whole pie."""
        shares = _charts(point_kernel(0.9, 0.5, 0.1)).pie_chart(1, PieMode.FAITHFUL)
        assert shares == pytest.approx({1: 1.0, 2: 0.0, 3: 0.0})

    def test_cosy_points(self):
        """Cosy mode chains up from the bottom."""
        shares = _charts(point_kernel(0.9, 0.5, 0.1)).pie_chart(1, PieMode.COSY)
        assert shares == pytest.approx({1: 2.0 / 3.0, 2: 1.0 / 3.0, 3: 0.0})

    @pytest.mark.parametrize(
        "mode", [PieMode.COSY, PieMode.FAITHFUL, PieMode.MIXED, PieMode.FAITHFUL | PieMode.MIXED]
    )
    def test_shares_sum_to_one(self, mode):
        """Every mode hands out the whole pie."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8), (0.0, 0.4))
        shares = _charts(kernel).pie_chart(1, mode)
        assert sum(shares.values()) == pytest.approx(1.0)
        assert all(share >= 0.0 for share in shares.values())

    def test_faithful_ordering(self):
        """Higher omega never receives a smaller faithful share."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8), (0.0, 0.4))
        shares = _charts(kernel).pie_chart(1, PieMode.FAITHFUL)
        assert shares[1] >= shares[2] >= shares[3] >= shares[4]

    def test_single_alternative(self):
        """A lone alternative gets everything."""
        assert _charts(point_kernel(0.4)).pie_chart(1) == {1: 1.0}

    def test_moderation_range(self):
        """Faithful moderations lie within [0, 1]."""
        charts = _charts(point_kernel(0.9, 0.5))
        with pytest.raises(InputError):
            charts.pie_chart(1, PieMode.FAITHFUL, moderation1=1.5)
        with pytest.raises(InputError):
            charts.pie_chart(1, PieMode.FAITHFUL, moderation2=-0.1)

    def test_cosy_ignores_moderation(self):
        """Cosy mode does not look at the moderations."""
        charts = _charts(point_kernel(0.9, 0.5, 0.1))
        assert charts.pie_chart(1, PieMode.COSY, moderation1=5.0) == pytest.approx(
            {1: 2.0 / 3.0, 2: 1.0 / 3.0, 3: 0.0}
        )

    def test_moderation_spreads_shares(self):
        """Softening the top anchor hands more of the pie down the chain."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8))
        sharp = _charts(kernel).pie_chart(1, PieMode.FAITHFUL)
        soft = _charts(kernel).pie_chart(1, PieMode.FAITHFUL, moderation1=1.0)
        assert soft[1] <= sharp[1]

    def test_moderated_pie_chart(self):
        """Signed moderation maps onto the two faithful moderations."""
        kernel = uniform_kernel((0.3, 0.9), (0.25, 0.75), (0.1, 0.8))
        charts = _charts(kernel)
        assert charts.moderated_pie_chart(1, -0.5) == pytest.approx(
            charts.pie_chart(1, PieMode.FAITHFUL, moderation1=0.5)
        )
        assert charts.moderated_pie_chart(1, 0.5) == pytest.approx(
            charts.pie_chart(1, PieMode.FAITHFUL, moderation2=0.5)
        )

    def test_invalid_mode(self):
        """Pie modes beyond faithful and mixed are rejected."""
        with pytest.raises(InputError):
            _charts(point_kernel(0.9, 0.5)).pie_chart(1, 7)
