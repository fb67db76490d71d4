"""
Evaluation Cache.

Per-slot store of the most recent evaluation: fitted distribution,
truncated result triple and the moments it was fitted from.

Lifecycle per slot:
    Invalid --(successful evaluation)--> Valid --(any mutation)--> Invalid

Invalidation is unconditional and global: every slot, the whole-problem
slot included, is cleared at once. Slots <= 0 share the whole-problem
entry and are only readable when they equal the node of the most recent
whole-problem evaluation.
"""

from typing import Optional

import structlog

from beliefcast.engine.rescale import TruncatedFit
from beliefcast.exceptions import OutputNotReadyError

logger = structlog.get_logger(__name__)

WHOLE_PROBLEM_SLOT: int = 0


class EvaluationCache:
    """
    Explicit cache object owned by one engine instance.

    Not shared between engines and not thread-safe; the engine's
    reentrancy guard serialises access.
    """

    def __init__(self):
        self._entries: dict[int, TruncatedFit] = {}
        self._latest_aggregate: Optional[int] = None

    def store(self, slot: int, entry: TruncatedFit) -> None:
        """Record a successful evaluation for a slot."""
        if slot <= WHOLE_PROBLEM_SLOT:
            self._latest_aggregate = slot
        self._entries[max(slot, WHOLE_PROBLEM_SLOT)] = entry

    def discard(self, slot: int) -> None:
        """Mark one slot invalid before it is recomputed."""
        if slot <= WHOLE_PROBLEM_SLOT:
            self._latest_aggregate = None
        self._entries.pop(max(slot, WHOLE_PROBLEM_SLOT), None)

    def entry(self, slot: int) -> TruncatedFit:
        """
        Valid entry for a slot.

        Raises:
            OutputNotReadyError: slot never evaluated, invalidated since,
                or a non-positive slot other than the latest aggregate.
        """
        if slot <= WHOLE_PROBLEM_SLOT and self._latest_aggregate != slot:
            raise OutputNotReadyError(
                slot,
                reason=f"latest whole-problem evaluation was node {self._latest_aggregate}",
            )
        cached = self._entries.get(max(slot, WHOLE_PROBLEM_SLOT))
        if cached is None:
            raise OutputNotReadyError(slot)
        return cached

    def is_valid(self, slot: int) -> bool:
        if slot <= WHOLE_PROBLEM_SLOT and self._latest_aggregate != slot:
            return False
        return max(slot, WHOLE_PROBLEM_SLOT) in self._entries

    @property
    def latest_aggregate(self) -> Optional[int]:
        return self._latest_aggregate

    def invalidate(self) -> None:
        """Clear every slot."""
        count = len(self._entries)
        self._entries.clear()
        self._latest_aggregate = None
        if count:
            logger.debug("evaluation_cache_invalidated", slots=count)

    def get_stats(self) -> dict[str, object]:
        return {
            "valid_slots": sorted(self._entries),
            "latest_aggregate": self._latest_aggregate,
        }
