"""
Module: stock_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.  This is
    the import surface for stock_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain and stock_kernel.logging_config.
    MUST NOT import stock_services or stock_config.

Invariants enforced:
    - Engines never read the clock; dates arrive as parameters.
    - Decimal-only cost arithmetic.
    - Identical inputs always produce identical outputs.
"""

from stock_engines.fifo import DrawCandidate, DrawPlan, PlannedDraw, plan_draws
from stock_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DrawCandidate",
    "DrawPlan",
    "PlannedDraw",
    "compute_input_fingerprint",
    "plan_draws",
    "traced_engine",
]
