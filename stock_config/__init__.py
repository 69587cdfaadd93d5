"""
Stock ledger configuration.

``load_settings()`` is the single runtime entry point; it returns a frozen
``LedgerSettings``.
"""

from stock_config.loader import compute_checksum, load_settings, parse_settings
from stock_config.schema import AttributionSettings, DatabaseSettings, LedgerSettings

__all__ = [
    "AttributionSettings",
    "DatabaseSettings",
    "LedgerSettings",
    "compute_checksum",
    "load_settings",
    "parse_settings",
]
