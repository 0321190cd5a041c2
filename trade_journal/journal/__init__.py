"""
Trade Journal — ledger, daily journal and analysis
==================================================

Architecture:
  asset.py             — Asset reference data and classification enums
  journal_models.py    — Trade / TradeSnapshot / ExecutedSale / JournalEntry
  validation.py        — field constraint checks (ValidationFailure)
  journal_analytics.py — day-level metrics over a loaded entry
  journal_store.py     — SQLite aggregate repository
  journal_service.py   — facade wiring store + analytics, change listeners
"""

from trade_journal.journal.asset import (
    Asset,
    AssetClass,
    Exchange,
    Industry,
    Sector,
)
from trade_journal.journal.journal_models import (
    ExecutedSale,
    JournalEntry,
    Trade,
    TradeSnapshot,
)

from trade_journal.journal.journal_analytics import JournalAnalytics
from trade_journal.journal.journal_store import JournalStore
from trade_journal.journal.journal_service import JournalEntryService

__all__ = [
    # Models
    "Asset", "AssetClass", "Exchange", "Industry", "Sector",
    "ExecutedSale", "JournalEntry", "Trade", "TradeSnapshot",
    # Engines
    "JournalAnalytics", "JournalStore", "JournalEntryService",
]
