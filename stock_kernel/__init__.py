"""
Stock Kernel - inventory accounting core

An append-only stock movement ledger with:
- Derived (never stored) stock positions per batch and location
- Advisory reservations from draft transfer plans, re-checked at booking
- Batch split/merge preserving cost provenance
- FIFO attribution of sales and losses to batches (COGS)
"""

__version__ = "0.1.0"
