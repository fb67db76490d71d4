"""
Daisy Chain and Pie Chart.

Presentation allocations built from consecutive comparisons in omega
order, never used for ranking decisions:
- daisy chain: belief that each alternative beats the next one down
- pie chart: daisy chain turned into shares that sum to 1, either by
  geometric decay from the top ("faithful") or by chaining up from the
  bottom ("cosy", compatible with older output)
"""

from dataclasses import dataclass
from enum import IntFlag
from typing import Optional

import structlog

from beliefcast.engine.evaluation import AbortCheck, Evaluator
from beliefcast.engine.tolerance import tolerant_order
from beliefcast.exceptions import InputError
from beliefcast.schemas import EvaluationRule

logger = structlog.get_logger(__name__)

# ── Configuration ────────────────────────────────────────────────────────

DAISY_RADIUS: float = 0.1        # Default mixing radius
MAX_DAISY_RADIUS: float = 0.5    # Wider radii mix deltas half a scale apart
UNUSED_VALUE: float = -1.0       # Last link of the chain


class DaisyMode(IntFlag):
    ABSOLUTE = 0
    RELATIVE = 1   # Omega values as gaps to the next alternative
    MIXED = 2      # Moderate belief by omega distance within the radius


class PieMode(IntFlag):
    COSY = 0
    FAITHFUL = 1   # Geometric decay from the top alternative
    MIXED = 2      # Build on a mixed daisy chain


@dataclass(frozen=True)
class DaisyChain:
    """Per alternative: strict omega rank, belief over the next, omega value."""

    omega_rank: dict[int, int]
    daisy_value: dict[int, float]
    omega_value: dict[int, float]

    @property
    def order(self) -> list[int]:
        return sorted(self.omega_rank, key=self.omega_rank.__getitem__)


class ChartBuilder:
    """Daisy chains and pie charts over an evaluator's kernel."""

    def __init__(self, evaluator: Evaluator, abort_check: Optional[AbortCheck] = None):
        self.evaluator = evaluator
        self.abort_check = abort_check or evaluator.abort_check

    def daisy_chain(
        self,
        slot: int,
        mode: DaisyMode = DaisyMode.ABSOLUTE,
        radius: float = DAISY_RADIUS,
    ) -> DaisyChain:
        """
        Chain each alternative to the next one in omega order.

        The daisy value is the belief mass of A_i - A_next > 0, trimmed to
        at least 0.5. With MIXED, pairs closer than ``radius`` in omega
        have their belief pulled toward 0.5. Clears the cache.
        """
        if int(mode) < 0 or int(mode) > 3:
            raise InputError("unknown daisy chain mode", details={"mode": int(mode)})
        mode = DaisyMode(mode)
        mixed = DaisyMode.MIXED in mode
        if mixed and (radius < 0.0 or radius > MAX_DAISY_RADIUS):
            raise InputError(
                f"daisy radius must lie within [0, {MAX_DAISY_RADIUS}]",
                details={"radius": radius},
            )
        self.evaluator.check_slot(slot)

        omega: dict[int, float] = {}
        for alt in range(1, self.evaluator.n_alts + 1):
            self.abort_check()
            omega[alt] = self.evaluator.evaluate(slot, EvaluationRule.PSI, alt).mid
        order = tolerant_order(omega)

        daisy: dict[int, float] = {}
        for alt, successor in zip(order, order[1:]):
            self.abort_check()
            self.evaluator.evaluate(slot, EvaluationRule.DELTA, alt, successor)
            daisy[alt] = max(self.evaluator.mass.positive_mass(slot), 0.5)
        daisy[order[-1]] = UNUSED_VALUE

        if mixed and radius > 0.0:
            for alt, successor in zip(order, order[1:]):
                closeness = max(1.0 - (omega[alt] - omega[successor]) / radius, 0.0)
                daisy[alt] -= closeness * (daisy[alt] - 0.5)

        if DaisyMode.RELATIVE in mode:
            for alt, successor in zip(order, order[1:]):
                omega[alt] -= omega[successor]
            omega[order[-1]] = UNUSED_VALUE

        self.evaluator.cache.invalidate()
        return DaisyChain(
            omega_rank={alt: position for position, alt in enumerate(order, start=1)},
            daisy_value=daisy,
            omega_value=omega,
        )

    def pie_chart(
        self,
        slot: int,
        mode: PieMode = PieMode.FAITHFUL,
        moderation1: float = 0.0,
        moderation2: float = 0.0,
    ) -> dict[int, float]:
        """
        Shares per alternative summing to 1.

        FAITHFUL moderations in [0, 1]: ``moderation1`` softens how much
        the top alternative hands down the chain, ``moderation2`` how much
        the others do. Both are ignored in cosy mode.
        """
        if int(mode) < 0 or int(mode) > 3:
            raise InputError("unknown pie chart mode", details={"mode": int(mode)})
        mode = PieMode(mode)
        faithful = PieMode.FAITHFUL in mode
        if faithful:
            for name, value in (("moderation1", moderation1), ("moderation2", moderation2)):
                if value < 0.0 or value > 1.0:
                    raise InputError(f"{name} must lie within [0, 1]", details={name: value})
            divisor = moderation1 + 1.0
            offset = moderation2 / 2.0

        chain = self.daisy_chain(
            slot,
            DaisyMode.MIXED if PieMode.MIXED in mode else DaisyMode.ABSOLUTE,
            DAISY_RADIUS,
        )
        order = chain.order
        pie = dict(chain.daisy_value)
        if len(order) == 1:
            return {order[0]: 1.0}

        if faithful:
            pos = min(1.0 - pie[order[0]] / divisor, 0.5)
            total = pie[order[0]]
            for alt in order[1:]:
                current = pie[alt]
                pie[alt] = pos
                pos *= offset + 2.0 * (1.0 - offset) * (1.0 - current)
                total += pie[alt]
        else:
            pie[order[-1]] = 1.0 - pie[order[-2]]
            total = 1.0
            for index in range(len(order) - 3, -1, -1):
                alt = order[index]
                pie[alt] = pie[order[index + 1]] + 2.0 * (pie[alt] - 0.5)
                total += pie[alt]

        shares = {alt: pie[alt] / total for alt in sorted(pie)}
        logger.debug(
            "pie_chart_built",
            slot=slot,
            mode=int(mode),
            shares={alt: round(share, 4) for alt, share in shares.items()},
        )
        return shares

    def moderated_pie_chart(self, slot: int, moderation: float = 0.0) -> dict[int, float]:
        """
        Faithful pie chart driven by one signed moderation.

        Negative values soften the top alternative's anchor, positive
        values soften the chain itself.
        """
        return self.pie_chart(
            slot,
            PieMode.FAITHFUL,
            moderation1=max(-moderation, 0.0),
            moderation2=max(moderation, 0.0),
        )
