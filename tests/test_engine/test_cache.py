"""
Evaluation Cache Tests.

Slot validity, the shared whole-problem entry and global invalidation.
"""

import pytest

from beliefcast.engine.cache import EvaluationCache
from beliefcast.engine.fitting import fit_bnormal
from beliefcast.engine.rescale import TruncatedFit
from beliefcast.engine.evaluation import Evaluator
from beliefcast.exceptions import ErrorCode, OutputNotReadyError, UserAbortError
from beliefcast.schemas import EvaluationRule, Moments, ResultTriple

from factories import make_evaluator


def _entry(mean: float = 0.5) -> TruncatedFit:
    moments = Moments(rm1=mean, cm2=0.01, cm3=0.0)
    return TruncatedFit(
        fit=fit_bnormal(moments),
        result=ResultTriple(mean - 0.3, mean, mean + 0.3),
        moments=moments,
    )


class TestEvaluationCache:
    """Direct cache behaviour."""

    def setup_method(self):
        self.cache = EvaluationCache()

    def test_unevaluated_slot(self):
        """Reading a slot that was never evaluated is rejected."""
        with pytest.raises(OutputNotReadyError) as exc_info:
            self.cache.entry(1)
        assert exc_info.value.code == ErrorCode.OUTPUT_NOT_READY

    def test_store_and_read(self):
        """A stored criterion entry is returned as is."""
        entry = _entry()
        self.cache.store(2, entry)
        assert self.cache.entry(2) is entry
        assert self.cache.is_valid(2)
        assert not self.cache.is_valid(1)

    def test_invalidate_clears_everything(self):
        """Invalidation clears criterion and whole-problem slots alike."""
        self.cache.store(1, _entry())
        self.cache.store(0, _entry())
        self.cache.invalidate()
        for slot in (0, 1):
            assert not self.cache.is_valid(slot)
            with pytest.raises(OutputNotReadyError):
                self.cache.entry(slot)

    def test_partial_nodes_share_whole_problem_entry(self):
        """Only the most recent non-positive slot can be read."""
        first, second = _entry(0.4), _entry(0.6)
        self.cache.store(-1, first)
        assert self.cache.entry(-1) is first
        with pytest.raises(OutputNotReadyError):
            self.cache.entry(0)

        self.cache.store(0, second)
        assert self.cache.entry(0) is second
        with pytest.raises(OutputNotReadyError):
            self.cache.entry(-1)
        assert self.cache.latest_aggregate == 0

    def test_criteria_independent_of_aggregate(self):
        """Criterion entries survive whole-problem evaluations."""
        crit_entry = _entry(0.2)
        self.cache.store(1, crit_entry)
        self.cache.store(0, _entry(0.8))
        assert self.cache.entry(1) is crit_entry

    def test_discard(self):
        """Discarding one slot leaves the others."""
        self.cache.store(1, _entry())
        self.cache.store(2, _entry())
        self.cache.discard(1)
        assert not self.cache.is_valid(1)
        assert self.cache.is_valid(2)

    def test_invalidate_forgets_latest_aggregate(self):
        """After invalidation no non-positive slot is the latest aggregate."""
        self.cache.store(-1, _entry())
        self.cache.invalidate()
        assert self.cache.latest_aggregate is None

    def test_discard_whole_problem(self):
        """Discarding a non-positive slot drops the shared entry."""
        self.cache.store(1, _entry())
        self.cache.store(0, _entry())
        self.cache.discard(0)
        assert not self.cache.is_valid(0)
        assert self.cache.latest_aggregate is None
        assert self.cache.is_valid(1)

    def test_stats(self):
        """Stats list the valid slots."""
        self.cache.store(3, _entry())
        self.cache.store(-2, _entry())
        stats = self.cache.get_stats()
        assert stats["valid_slots"] == [0, 3]
        assert stats["latest_aggregate"] == -2


class TestCacheThroughEvaluation:
    """Cache lifecycle as driven by evaluations."""

    def test_evaluate_then_query(self, two_criteria_kernel):
        """Evaluations fill their slot; partial nodes replace the whole problem."""
        evaluator = make_evaluator(two_criteria_kernel)
        evaluator.evaluate(0, EvaluationRule.PSI, 1)
        assert evaluator.cache.is_valid(0)
        # whole-problem evaluation fills every criterion on the way
        assert evaluator.cache.is_valid(1)
        assert evaluator.cache.is_valid(2)

        evaluator.evaluate(-1, EvaluationRule.PSI, 1)
        assert evaluator.cache.is_valid(-1)
        assert not evaluator.cache.is_valid(0)

    def test_query_after_invalidation(self, two_criteria_kernel):
        """A mass query after invalidation fails until re-evaluated."""
        evaluator = make_evaluator(two_criteria_kernel)
        evaluator.evaluate(1, EvaluationRule.PSI, 1)
        evaluator.mass.mass_above(1, 0.5)
        evaluator.cache.invalidate()
        with pytest.raises(OutputNotReadyError):
            evaluator.mass.mass_above(1, 0.5)

    def test_query_after_aborted_whole_problem(self, two_criteria_kernel):
        """An aborted whole-problem evaluation leaves nothing to query."""
        aborting = False

        def abort():
            if aborting:
                raise UserAbortError("evaluate")

        evaluator = Evaluator(two_criteria_kernel, EvaluationCache(), abort_check=abort)
        evaluator.evaluate(0, EvaluationRule.PSI, 1)
        aborting = True
        with pytest.raises(UserAbortError):
            evaluator.evaluate(0, EvaluationRule.PSI, 2)
        for slot in (0, 1, 2):
            with pytest.raises(OutputNotReadyError):
                evaluator.mass.mass_above(slot, 0.5)
        assert evaluator.cache.latest_aggregate is None
