"""
Pytest Configuration and Fixtures.

Provides reusable kernels and engines for testing the belief engine.
"""

import os

import pytest

# Keep test runs independent of a developer's environment
os.environ["ENVIRONMENT"] = "testing"
os.environ.pop("LOG_FORMAT", None)

from beliefcast.decision_engine import DecisionEngine, create_decision_engine  # noqa: E402
from beliefcast.kernel import AlternativeProfile, StaticKernel  # noqa: E402


# ============================================================================
# KERNEL FIXTURES
# ============================================================================


@pytest.fixture
def spread_kernel() -> StaticKernel:
    """Three overlapping alternatives with distinct expected values."""
    return StaticKernel.single_criterion(
        [
            AlternativeProfile.uniform(0.4, 0.9),
            AlternativeProfile.uniform(0.3, 0.7),
            AlternativeProfile.uniform(0.0, 0.5),
        ]
    )


@pytest.fixture
def two_criteria_kernel() -> StaticKernel:
    """Two weighted criteria and one partial node holding criterion 2 alone."""
    return StaticKernel(
        criteria={
            1: [
                AlternativeProfile.uniform(0.5, 0.9),
                AlternativeProfile.uniform(0.1, 0.5),
            ],
            2: [
                AlternativeProfile.uniform(0.4, 0.8),
                AlternativeProfile.uniform(0.2, 0.6),
            ],
        },
        weights={1: 0.6, 2: 0.4},
        partial_nodes={-1: {2: 1.0}},
    )


# ============================================================================
# ENGINE FIXTURES
# ============================================================================


@pytest.fixture
def engine(spread_kernel) -> DecisionEngine:
    """Engine with its own reentrancy guard."""
    return create_decision_engine(spread_kernel)
