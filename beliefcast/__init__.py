"""
BeliefCast: belief-distribution core for multi-criteria decision analysis.

Architecture:
    beliefcast/
    ├── config.py           # Settings (pydantic-settings)
    ├── log_config.py       # structlog setup
    ├── exceptions.py       # Error catalogue and BeliefCastError hierarchy
    ├── schemas.py          # Shared enums and value types
    ├── kernel.py           # Moment kernel protocol + in-memory kernel
    ├── decision_engine.py  # DecisionEngine facade
    └── engine/             # Fitting, cache, mass queries, ranking, dominance, charts

Data Flow:
    Kernel moments + hull → B-normal fit → Evaluation cache
    → Mass / support queries → Ranking, dominance, daisy chain, pie chart

Module Boundaries:
    - The kernel owns consistency, hulls and moments; this package trusts them
    - Every query reads the cache; every upstream change invalidates it
    - Single-threaded: one public operation at a time

Version: 1.0.0
"""

__version__ = "1.0.0"
